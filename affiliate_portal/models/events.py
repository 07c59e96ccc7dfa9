"""Affiliate link, click and conversion models, the raw event rows the dashboard is built from."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeviceType(str, Enum):
    MOBILE = "mobile"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


class ConversionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class AffiliateLink(BaseModel):
    """One shareable code per user. Never modified once created."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    code: str
    created_at: datetime


class ClickEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    affiliate_link_id: str
    created_at: datetime
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    device_type: Optional[str] = None  # mobile | desktop | unknown, None for legacy rows
    path: Optional[str] = None
    ip_address: Optional[str] = None


class ConversionEvent(BaseModel):
    """A sale attributed to a link. Only status == "completed" counts as revenue."""
    model_config = ConfigDict(frozen=True)

    id: str
    affiliate_link_id: str
    created_at: datetime
    product: str
    amount: float = Field(..., gt=0)
    status: Optional[str] = None  # pending | completed | None (unspecified)
    updated_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == ConversionStatus.COMPLETED.value
