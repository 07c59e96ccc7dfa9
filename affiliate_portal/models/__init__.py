from affiliate_portal.models.commission import CommissionTier, UserProgression
from affiliate_portal.models.events import (
    AffiliateLink,
    ClickEvent,
    ConversionEvent,
    ConversionStatus,
    DeviceType,
)
from affiliate_portal.models.profile import Profile

__all__ = [
    "AffiliateLink",
    "ClickEvent",
    "CommissionTier",
    "ConversionEvent",
    "ConversionStatus",
    "DeviceType",
    "Profile",
    "UserProgression",
]
