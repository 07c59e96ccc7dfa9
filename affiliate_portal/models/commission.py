"""Commission tier configuration and per-user progression snapshot."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CommissionTier(BaseModel):
    """A revenue bracket. min_revenue is inclusive, max_revenue exclusive (None = open-ended)."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    min_revenue: float
    max_revenue: Optional[float] = None
    commission_rate: float  # percent, e.g. 8.0 for 8%
    color: str = "#CD7F32"
    created_at: Optional[datetime] = None


class UserProgression(BaseModel):
    """Where a user sits on the tier ladder.

    current_tier_id and the totals are written by the backend process that
    attributes completed conversions; this service only reads them.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    current_tier_id: Optional[int] = None
    total_revenue: float = 0.0
    total_commission: float = 0.0
    manual_override: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
