"""Query package."""

from trove.queries.executor import BalanceQueries, group_by_day

__all__ = ["BalanceQueries", "group_by_day"]
