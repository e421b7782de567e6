"""
Pipeline building blocks: paging, export polling, bounded fan-out,
normalization, contact matching and timeline assembly.
"""

from .assembler import EntityTimeline, assemble_flat, assemble_grouped
from .contact_matcher import canonicalize, matches
from .export_poller import AsyncJobPoller
from .fan_out import FanOutResult, run_bounded
from .normalizer import normalize_records, parse_timestamp
from .pagination import PagedCollectionFetcher

__all__ = [
    "AsyncJobPoller",
    "EntityTimeline",
    "FanOutResult",
    "PagedCollectionFetcher",
    "assemble_flat",
    "assemble_grouped",
    "canonicalize",
    "matches",
    "normalize_records",
    "parse_timestamp",
    "run_bounded",
]
