"""
Allocation algorithms used by strategies.

This module provides the two allocation primitives that strategies build on:

- Waterfall allocation: a budget is poured into capped buckets in priority
  order, with any leftover landing in an uncapped overflow bucket.
- Glide path interpolation: a target weight moves smoothly between a start
  and an end value as progress runs from 0 to 1, shaped by an easing curve.
"""

import math
from typing import Callable, Dict, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import ArrayLike
from pydantic import BaseModel, ConfigDict, Field, model_validator

CurveShape = Literal["linear", "ease_in", "ease_out", "s_curve"]

CURVE_SHAPES: Tuple[str, ...] = ("linear", "ease_in", "ease_out", "s_curve")

WEIGHT_TOLERANCE = 1e-6


# ---------------------------------------------------------------------------
# Waterfall allocation
# ---------------------------------------------------------------------------


class WaterfallBucket(BaseModel):
    """A capped destination in a waterfall allocation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Bucket name")
    cap: float = Field(default=math.inf, ge=0, description="Maximum amount (inf = no cap)")
    eligible: Union[bool, Callable[[], bool]] = Field(
        default=True, description="Whether the bucket may receive money"
    )

    def is_eligible(self) -> bool:
        """Evaluate the eligibility flag or predicate."""
        if callable(self.eligible):
            return bool(self.eligible())
        return bool(self.eligible)


class AllocationPlan(BaseModel):
    """Result of a waterfall allocation."""

    model_config = ConfigDict(frozen=True)

    total_budget: float = Field(..., ge=0, description="Budget that was allocated")
    allocations: Dict[str, float] = Field(
        ..., description="Allocated amount per bucket, in priority order"
    )
    caps: Dict[str, float] = Field(..., description="Cap per bucket")
    overflow_bucket: Optional[str] = Field(
        default=None, description="Uncapped bucket receiving the leftover"
    )
    unallocated: float = Field(
        default=0.0, ge=0, description="Budget left over with no overflow bucket"
    )

    @model_validator(mode="after")
    def validate_invariants(self):
        total = sum(self.allocations.values())
        if total > self.total_budget + WEIGHT_TOLERANCE:
            raise ValueError(
                f"Allocated {total} exceeds total budget {self.total_budget}"
            )
        for name, amount in self.allocations.items():
            cap = self.caps.get(name, math.inf)
            if amount > cap + WEIGHT_TOLERANCE:
                raise ValueError(f"Bucket {name} allocation {amount} exceeds cap {cap}")
        return self

    @property
    def total_allocated(self) -> float:
        """Sum of all bucket allocations."""
        return float(sum(self.allocations.values()))

    def amount(self, name: str) -> float:
        """Amount allocated to a bucket (0 for unknown buckets)."""
        return self.allocations.get(name, 0.0)


def allocate_waterfall(
    total_budget: float,
    buckets: Sequence[WaterfallBucket],
    overflow_bucket: Optional[str] = None,
) -> AllocationPlan:
    """
    Distribute a budget across capped buckets in priority order.

    Each eligible bucket receives ``min(remaining, cap)`` before the next one
    is considered. Whatever is left after the last bucket goes to
    ``overflow_bucket`` when one is named, otherwise it is reported as
    ``unallocated``.

    Args:
        total_budget: Amount to distribute (>= 0)
        buckets: Buckets in priority order
        overflow_bucket: Optional name of an uncapped bucket for the leftover

    Returns:
        AllocationPlan with one entry per bucket (plus the overflow bucket)

    Raises:
        ValueError: If the budget is negative or bucket names repeat
    """
    if total_budget < 0:
        raise ValueError(f"Total budget cannot be negative: {total_budget}")

    names = [bucket.name for bucket in buckets]
    if overflow_bucket is not None:
        names.append(overflow_bucket)
    if len(set(names)) != len(names):
        raise ValueError(f"Bucket names must be unique: {names}")

    remaining = float(total_budget)
    allocations: Dict[str, float] = {}
    caps: Dict[str, float] = {}

    for bucket in buckets:
        caps[bucket.name] = bucket.cap
        amount = 0.0
        if remaining > 0 and bucket.cap > 0 and bucket.is_eligible():
            amount = min(remaining, bucket.cap)
            remaining = max(0.0, remaining - amount)
        allocations[bucket.name] = amount

    unallocated = remaining
    if overflow_bucket is not None:
        caps[overflow_bucket] = math.inf
        allocations[overflow_bucket] = remaining
        unallocated = 0.0

    return AllocationPlan(
        total_budget=float(total_budget),
        allocations=allocations,
        caps=caps,
        overflow_bucket=overflow_bucket,
        unallocated=unallocated,
    )


# ---------------------------------------------------------------------------
# Glide path interpolation
# ---------------------------------------------------------------------------


def normalize_progress(position: float, range_start: float, range_end: float) -> float:
    """Position within [range_start, range_end] as a fraction clamped to [0, 1].

    A zero-width range counts as complete (1.0).
    """
    if range_end == range_start:
        return 1.0
    progress = (position - range_start) / (range_end - range_start)
    return float(min(1.0, max(0.0, progress)))


def ease(progress: ArrayLike, shape: str = "linear", smoothing: float = 1.0):
    """
    Apply a monotonic easing curve to progress values in [0, 1].

    Args:
        progress: Scalar or array of progress values (clamped to [0, 1])
        shape: One of linear, ease_in (p^2), ease_out (sqrt p), s_curve (3p^2 - 2p^3)
        smoothing: Extra exponent applied after the curve (1.0 = none)

    Returns:
        Eased progress, float for scalar input, ndarray otherwise
    """
    if smoothing <= 0:
        raise ValueError(f"Smoothing exponent must be positive: {smoothing}")

    p = np.clip(np.asarray(progress, dtype=np.float64), 0.0, 1.0)

    if shape == "linear":
        eased = p
    elif shape == "ease_in":
        eased = p**2
    elif shape == "ease_out":
        eased = np.sqrt(p)
    elif shape == "s_curve":
        eased = 3 * p**2 - 2 * p**3
    else:
        raise ValueError(f"Unsupported curve shape: {shape}")

    if smoothing != 1.0:
        eased = eased**smoothing

    if eased.ndim == 0:
        return float(eased)
    return eased


def interpolate(
    start_value: float,
    end_value: float,
    progress: float,
    shape: str = "linear",
    smoothing: float = 1.0,
) -> float:
    """
    Interpolate between two values along an eased curve.

    The result always lies between ``start_value`` and ``end_value``
    inclusive and is monotonic in ``progress``.
    """
    eased = ease(progress, shape, smoothing)
    return float(start_value + (end_value - start_value) * eased)


def complement(weight: float) -> float:
    """Counterweight in a two-asset mix."""
    return 1.0 - weight


def distribute(weight: float, shares: Dict[str, float]) -> Dict[str, float]:
    """
    Split a weight across named assets by fixed shares.

    Shares are normalised, so ``{"domestic": 0.7, "international": 0.3}``
    and ``{"domestic": 7, "international": 3}`` are equivalent.
    """
    total_share = sum(shares.values())
    if total_share <= 0:
        raise ValueError("Shares must sum to a positive value")
    return {name: weight * share / total_share for name, share in shares.items()}


def split_weights(primary: float, remainder_split: Dict[str, float]) -> Dict[str, float]:
    """Spread ``1 - primary`` across several secondary assets."""
    return distribute(complement(primary), remainder_split)


class GlidePathPoint(BaseModel):
    """Target mix for one year of a glide path."""

    model_config = ConfigDict(frozen=True)

    age: int = Field(..., ge=0, le=130, description="Age at this point")
    year: int = Field(..., description="Calendar year of this point")
    primary_weight: float = Field(..., ge=0, le=1, description="Growth asset weight")
    secondary_weight: float = Field(..., ge=0, le=1, description="Defensive asset weight")
    extra_weights: Dict[str, float] = Field(
        default_factory=dict, description="Additional asset weights"
    )

    @model_validator(mode="after")
    def validate_total_weight(self):
        total = self.primary_weight + self.secondary_weight + sum(self.extra_weights.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Glide path weights must sum to 1.0, got {total}")
        return self


def build_glide_path(
    current_age: int,
    retirement_age: int,
    start_weight: float,
    retirement_weight: float,
    post_retirement_weight: float,
    shape: str = "s_curve",
    current_year: int = 0,
    smoothing: float = 1.0,
    post_retirement_years: int = 15,
    horizon_years: int = 30,
    bounds: Tuple[float, float] = (0.15, 0.95),
) -> List[GlidePathPoint]:
    """
    Build a yearly two-phase glide path.

    The pre-retirement phase moves ``start_weight`` to ``retirement_weight``
    between ``current_age`` and ``retirement_age``; the post-retirement phase
    moves ``retirement_weight`` to ``post_retirement_weight`` over
    ``post_retirement_years``. Both phases meet at ``retirement_weight`` on
    the retirement year.

    Args:
        current_age: Age at the first point
        retirement_age: Age at which the phases join
        start_weight: Primary weight today
        retirement_weight: Primary weight at retirement
        post_retirement_weight: Primary weight at the end of the post phase
        shape: Easing curve for both phases
        current_year: Calendar year of the first point
        smoothing: Extra easing exponent
        post_retirement_years: Length of the post-retirement phase
        horizon_years: Minimum number of years covered
        bounds: Clamp range for the primary weight

    Returns:
        One GlidePathPoint per year, starting at ``current_age``
    """
    low, high = bounds
    if not 0 <= low <= high <= 1:
        raise ValueError(f"Invalid weight bounds: {bounds}")

    years_to_retirement = max(0, retirement_age - current_age)
    total_years = max(horizon_years, years_to_retirement + post_retirement_years)
    ages = current_age + np.arange(total_years + 1)

    pre_progress = np.array(
        [normalize_progress(age, current_age, retirement_age) for age in ages]
    )
    post_progress = np.clip((ages - retirement_age) / post_retirement_years, 0.0, 1.0)

    pre_weights = start_weight + (retirement_weight - start_weight) * ease(
        pre_progress, shape, smoothing
    )
    post_weights = retirement_weight + (post_retirement_weight - retirement_weight) * ease(
        post_progress, shape, smoothing
    )
    primary = np.clip(np.where(ages <= retirement_age, pre_weights, post_weights), low, high)

    return [
        GlidePathPoint(
            age=int(age),
            year=current_year + offset,
            primary_weight=float(weight),
            secondary_weight=complement(float(weight)),
        )
        for offset, (age, weight) in enumerate(zip(ages, primary))
    ]
