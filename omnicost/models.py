"""
Data models for omnicost providers.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class CostRecord:
    """
    Normalized cost record produced by every provider.

    Records are immutable; providers build a new record per vendor row and
    only ever append to their result list.
    """
    date: str  # YYYY-MM-DD, or YYYY-MM for monthly-only sources
    service: str  # Label of the grouping dimension, "Total" when ungrouped
    amount: float
    currency: str = "USD"
    tags: Optional[Dict[str, str]] = None
    region: Optional[str] = None
    account: Optional[str] = None


@dataclass(frozen=True)
class FetchParams:
    """Input to CostProvider.fetch_costs()."""
    start_date: str  # YYYY-MM-DD, inclusive
    end_date: str  # YYYY-MM-DD, inclusive
    group_by: Optional[str] = None
    filters: Dict[str, str] = field(default_factory=dict)
