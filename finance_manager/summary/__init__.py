"""Account summary maintenance package."""

from finance_manager.summary.aggregator import SummaryAggregator, contribution, sum_by_type

__all__ = ["SummaryAggregator", "contribution", "sum_by_type"]
