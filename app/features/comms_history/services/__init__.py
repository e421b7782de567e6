"""
Service layer for the communication history feature.
"""

from .aggregation_service import AggregationPipeline

__all__ = ["AggregationPipeline"]
