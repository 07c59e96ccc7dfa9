"""
Commission tier engine.

Given the tier ladder (ordered by min_revenue) and a user's progression
snapshot, works out which tier the user is on, which one comes next and how
far along they are. Also builds the "what would I earn" examples shown next to
each tier.

Tier assignment belongs to the backend process that writes
user_progression.current_tier_id. This module only reads it and derives the
progress bar; it never promotes or demotes anyone, even when the revenue
total looks like it belongs to another bracket.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from affiliate_portal.models import CommissionTier, UserProgression


class ConfigurationError(Exception):
    """The tier ladder (or a progression's reference into it) is unusable."""


# ── Example sales per tier ───────────────────────────────────────────────────
# Keyed by lower-cased tier name. Tiers not listed here get no examples.

PRODUCT_PRICES = {
    "basic": 49.0,
    "pro": 99.0,
    "enterprise": 299.0,
}

COMMISSION_EXAMPLES: dict[str, list[tuple[str, float]]] = {
    "bronze": [
        ("1 Basic subscription", PRODUCT_PRICES["basic"]),
        ("1 Pro subscription", PRODUCT_PRICES["pro"]),
    ],
    "argent": [
        ("5 Pro subscriptions", 5 * PRODUCT_PRICES["pro"]),
        ("1 Enterprise subscription", PRODUCT_PRICES["enterprise"]),
    ],
    "or": [
        ("10 Pro subscriptions", 10 * PRODUCT_PRICES["pro"]),
        ("5 Enterprise subscriptions", 5 * PRODUCT_PRICES["enterprise"]),
    ],
    "platine": [
        ("10 Enterprise subscriptions", 10 * PRODUCT_PRICES["enterprise"]),
        ("25 Pro subscriptions", 25 * PRODUCT_PRICES["pro"]),
    ],
    "diamant": [
        ("25 Enterprise subscriptions", 25 * PRODUCT_PRICES["enterprise"]),
    ],
}

# Ladder used when seeding a fresh database (scripts/seed_demo.py).
DEFAULT_TIERS = [
    {"id": 1, "name": "Bronze", "min_revenue": 0.0, "max_revenue": 500.0, "commission_rate": 5.0, "color": "#CD7F32"},
    {"id": 2, "name": "Argent", "min_revenue": 500.0, "max_revenue": 2000.0, "commission_rate": 8.0, "color": "#C0C0C0"},
    {"id": 3, "name": "Or", "min_revenue": 2000.0, "max_revenue": 5000.0, "commission_rate": 12.0, "color": "#FFD700"},
    {"id": 4, "name": "Platine", "min_revenue": 5000.0, "max_revenue": None, "commission_rate": 15.0, "color": "#E5E4E2"},
]


@dataclass(frozen=True)
class TierPosition:
    current: CommissionTier
    next: Optional[CommissionTier]
    progress_percent: float

    @property
    def is_top_tier(self) -> bool:
        return self.next is None

    def to_dict(self) -> dict:
        return {
            "current": self.current.model_dump(mode="json"),
            "next": self.next.model_dump(mode="json") if self.next else None,
            "progress_percent": self.progress_percent,
            "is_top_tier": self.is_top_tier,
        }


@dataclass(frozen=True)
class CommissionExample:
    description: str
    value: float
    commission: float


@dataclass(frozen=True)
class TierExamples:
    tier: CommissionTier
    examples: tuple[CommissionExample, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "tier": self.tier.model_dump(mode="json"),
            "examples": [
                {"description": e.description, "value": e.value, "commission": e.commission}
                for e in self.examples
            ],
        }


@dataclass(frozen=True)
class CommissionOverview:
    """Everything the commission panel needs. position is None until the user has a progression row."""
    tiers: tuple[CommissionTier, ...]
    progression: Optional[UserProgression]
    position: Optional[TierPosition]
    examples: tuple[TierExamples, ...]

    @property
    def has_progression(self) -> bool:
        return self.progression is not None

    def to_dict(self) -> dict:
        return {
            "tiers": [t.model_dump(mode="json") for t in self.tiers],
            "progression": self.progression.model_dump(mode="json") if self.progression else None,
            "position": self.position.to_dict() if self.position else None,
            "examples": [e.to_dict() for e in self.examples],
        }


# ── Validation ───────────────────────────────────────────────────────────────

def validate_tiers(tiers: Sequence[CommissionTier]) -> None:
    """Check the ladder is a gap-free, non-overlapping partition of [0, inf).

    Raises:
        ConfigurationError: describing the first problem found
    """
    if not tiers:
        raise ConfigurationError("No commission tiers configured")

    if tiers[0].min_revenue != 0:
        raise ConfigurationError(
            f"Lowest tier '{tiers[0].name}' must start at 0, starts at {tiers[0].min_revenue}"
        )

    seen_ids = set()
    for index, tier in enumerate(tiers):
        if tier.id in seen_ids:
            raise ConfigurationError(f"Duplicate tier id {tier.id}")
        seen_ids.add(tier.id)

        if tier.commission_rate < 0:
            raise ConfigurationError(f"Tier '{tier.name}' has a negative commission rate")

        is_last = index == len(tiers) - 1
        if is_last:
            if tier.max_revenue is not None:
                raise ConfigurationError(
                    f"Highest tier '{tier.name}' must be open-ended (max_revenue is {tier.max_revenue})"
                )
            continue

        following = tiers[index + 1]
        if following.min_revenue <= tier.min_revenue:
            raise ConfigurationError(
                f"Tiers not strictly increasing: '{following.name}' ({following.min_revenue}) "
                f"after '{tier.name}' ({tier.min_revenue})"
            )
        if tier.max_revenue is None:
            raise ConfigurationError(f"Only the highest tier may be open-ended, '{tier.name}' is not last")
        if tier.max_revenue != following.min_revenue:
            problem = "overlaps" if tier.max_revenue > following.min_revenue else "leaves a gap before"
            raise ConfigurationError(
                f"Tier '{tier.name}' (max {tier.max_revenue}) {problem} '{following.name}' "
                f"(min {following.min_revenue})"
            )


# ── Position on the ladder ───────────────────────────────────────────────────

def _current_index(tiers: Sequence[CommissionTier], current_tier_id: Optional[int]) -> int:
    # No assigned tier yet means the default lowest tier.
    if current_tier_id is None:
        return 0
    for index, tier in enumerate(tiers):
        if tier.id == current_tier_id:
            return index
    raise ConfigurationError(f"Progression references unknown tier id {current_tier_id}")


def progress_between(revenue: float, lower: float, upper: float) -> float:
    """Percent of the way from lower to upper, clamped to [0, 100]."""
    span = upper - lower
    if span <= 0:
        return 100.0
    progress = (revenue - lower) / span * 100
    return min(max(progress, 0.0), 100.0)


def locate_tier(
    tiers: Sequence[CommissionTier],
    progression: UserProgression,
) -> TierPosition:
    """Current tier, next tier and progress toward it.

    The current tier is the one named by progression.current_tier_id, not the
    one the revenue would fall into. On the highest tier, next is None and
    progress is 100.

    Raises:
        ConfigurationError: if the ladder is invalid or the progression points
            at a tier that is not in it
    """
    validate_tiers(tiers)
    index = _current_index(tiers, progression.current_tier_id)
    current = tiers[index]

    if index == len(tiers) - 1:
        return TierPosition(current=current, next=None, progress_percent=100.0)

    following = tiers[index + 1]
    progress = progress_between(
        progression.total_revenue or 0.0,
        current.min_revenue,
        following.min_revenue,
    )
    return TierPosition(current=current, next=following, progress_percent=progress)


# ── Examples ─────────────────────────────────────────────────────────────────

def commission_for(tier: CommissionTier, amount: float) -> float:
    return round(amount * tier.commission_rate / 100, 2)


def build_commission_examples(tiers: Sequence[CommissionTier]) -> tuple[TierExamples, ...]:
    result = []
    for tier in tiers:
        scenarios = COMMISSION_EXAMPLES.get(tier.name.strip().lower(), [])
        result.append(TierExamples(
            tier=tier,
            examples=tuple(
                CommissionExample(description=desc, value=value, commission=commission_for(tier, value))
                for desc, value in scenarios
            ),
        ))
    return tuple(result)


def build_commission_overview(
    tiers: Sequence[CommissionTier],
    progression: Optional[UserProgression],
) -> CommissionOverview:
    """Tier ladder, the user's position on it (if any) and the example table.

    A missing progression is not an error: position is simply None.
    """
    validate_tiers(tiers)
    position = locate_tier(tiers, progression) if progression is not None else None
    return CommissionOverview(
        tiers=tuple(tiers),
        progression=progression,
        position=position,
        examples=build_commission_examples(tiers),
    )
