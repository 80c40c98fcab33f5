"""
Calculation service - pure campaign math.

Single source of truth for points, net budget, insurance thresholds,
eligibility and the Robin Hood allocation. Nothing in this module touches
the database; the distribution service feeds it rows and persists results.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional, Sequence, Tuple, TypeVar

from campaign_pool.schemas.calculation import (
    ApproximateEarnings,
    InsuranceCheckResult,
    InsuranceThresholds,
    NetBudget,
    PointsBreakdown,
    RobinHoodResult,
    ShareAllocation,
    ShareEntry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# --- Point multipliers ---
VIEW_POINT_MULTIPLIER = 0.01
LIKE_POINT_MULTIPLIER = 0.5
SHARE_POINT_MULTIPLIER = 1.0

# --- Robin Hood ---
MAX_SHARE_PERCENT = 0.40
MAX_CAPPED_USERS = 2
SOFT_CAP_STEP = 0.0001  # Caps beyond MAX_CAPPED_USERS land at 39.99%
MAX_ITERATIONS = 10
CONVERGENCE_TOLERANCE = 0.0001

# --- Eligibility thresholds (must meet BOTH) ---
MIN_ELIGIBLE_POINTS = 50
MIN_ELIGIBLE_CONTRIBUTION = 0.001  # 0.1%

# --- Insurance thresholds by budget bracket, highest bracket first ---
INSURANCE_BRACKETS: Tuple[Tuple[Decimal, InsuranceThresholds], ...] = (
    (Decimal("100000"), InsuranceThresholds(min_submissions=15, min_points=15_000, min_views=1_500_000)),
    (Decimal("70000"), InsuranceThresholds(min_submissions=8, min_points=5_000, min_views=500_000)),
    (Decimal("40000"), InsuranceThresholds(min_submissions=5, min_points=2_000, min_views=200_000)),
)
DEFAULT_INSURANCE_THRESHOLDS = InsuranceThresholds(min_submissions=3, min_points=500, min_views=50_000)

NO_ELIGIBLE_CHECK = "No eligible submissions after threshold filter"

CENT = Decimal("0.01")


# =========================================================================
# MONEY HELPERS
# =========================================================================

def to_decimal(value: Any) -> Decimal:
    """Convert ints, floats and strings to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def round_money(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


# =========================================================================
# POINTS, SHARES, BUDGET
# =========================================================================

def calculate_points(views: int, likes: int, shares: int) -> PointsBreakdown:
    """
    Calculate points from engagement metrics.

    Precondition: all counts are non-negative. Negative input is a caller
    error and is not checked here.
    """
    view_points = views * VIEW_POINT_MULTIPLIER
    like_points = likes * LIKE_POINT_MULTIPLIER
    share_points = shares * SHARE_POINT_MULTIPLIER
    total_points = view_points + like_points + share_points

    return PointsBreakdown(
        view_points=view_points,
        like_points=like_points,
        share_points=share_points,
        total_points=total_points,
    )


def calculate_share_percent(my_points: float, total_campaign_points: float) -> float:
    """Raw share of the pool with the single-entry 40% cap (no redistribution)."""
    if not total_campaign_points or not my_points:
        return 0.0

    return min(my_points / total_campaign_points, MAX_SHARE_PERCENT)


def calculate_net_budget(total_budget: Any, commission_percent: int) -> NetBudget:
    """Net budget after commission."""
    net_multiplier = (100 - commission_percent) / 100
    net_budget = round_money(
        to_decimal(total_budget) * (Decimal(100) - Decimal(commission_percent)) / Decimal(100)
    )

    return NetBudget(net_budget=net_budget, net_multiplier=net_multiplier)


# =========================================================================
# INSURANCE GATE
# =========================================================================

def get_insurance_thresholds(total_budget: Any) -> InsuranceThresholds:
    budget = to_decimal(total_budget)
    for min_budget, thresholds in INSURANCE_BRACKETS:
        if budget >= min_budget:
            return thresholds
    return DEFAULT_INSURANCE_THRESHOLDS


def check_insurance_thresholds(
    total_budget: Any,
    total_submissions: int,
    total_points: float,
    total_views: int
) -> InsuranceCheckResult:
    """
    Check the campaign against its budget bracket.
    A shortfall is reported as a labeled reason, never raised.
    """
    thresholds = get_insurance_thresholds(total_budget)

    failed_checks: List[str] = []

    if total_submissions < thresholds.min_submissions:
        failed_checks.append(f"Submissions: {total_submissions}/{thresholds.min_submissions}")
    if total_points < thresholds.min_points:
        failed_checks.append(f"Points: {total_points:.0f}/{thresholds.min_points:g}")
    if total_views < thresholds.min_views:
        failed_checks.append(f"Views: {total_views}/{thresholds.min_views:,}")

    return InsuranceCheckResult(passed=not failed_checks, failed_checks=failed_checks)


# =========================================================================
# ELIGIBILITY
# =========================================================================

def filter_eligible_submissions(submissions: Sequence[T], total_campaign_points: float) -> List[T]:
    """
    Keep entries with at least MIN_ELIGIBLE_POINTS points and at least
    MIN_ELIGIBLE_CONTRIBUTION of the campaign total. Entries only need
    `id` and `total_points` attributes; input order is preserved.
    """
    if not total_campaign_points:
        return []

    eligible = []
    for sub in submissions:
        points = getattr(sub, "total_points", 0) or 0
        contribution = points / total_campaign_points

        if points >= MIN_ELIGIBLE_POINTS and contribution >= MIN_ELIGIBLE_CONTRIBUTION:
            eligible.append(sub)

    return eligible


# =========================================================================
# APPROXIMATE EARNINGS
# =========================================================================

def calculate_approximate_earnings(submission: Any, pool_stats: Optional[Any], campaign: Any) -> ApproximateEarnings:
    """
    Uncapped proportional estimate for display while a campaign is running.
    Deliberately skips Robin Hood; the result must not be stored.
    """
    net = calculate_net_budget(campaign.total_budget, campaign.commission_percent)

    current_total = pool_stats.total_campaign_points if pool_stats else 0.0
    last_batch_at = pool_stats.last_batch_at if pool_stats else None
    points = submission.total_points or 0
    confirmed_earnings = round_money(submission.estimated_earnings or 0)
    confirmed_share = submission.share_percent or 0.0

    if not current_total or not points:
        return ApproximateEarnings(
            approximate_earnings=Decimal("0.00"),
            approximate_share_percent=0.0,
            confirmed_earnings=confirmed_earnings,
            confirmed_share_percent=confirmed_share,
            last_updated_at=last_batch_at,
            is_approximate=True,
        )

    raw_share = points / current_total

    return ApproximateEarnings(
        approximate_earnings=round_money(net.net_budget * to_decimal(raw_share)),
        approximate_share_percent=round(raw_share * 100, 2),
        confirmed_earnings=confirmed_earnings,
        confirmed_share_percent=confirmed_share,
        last_updated_at=last_batch_at,
        is_approximate=last_batch_at is not None,
    )


# =========================================================================
# ROBIN HOOD
# =========================================================================

def _share_total(entries: Sequence[ShareEntry]) -> float:
    return sum(entry.share_percent for entry in entries)


def initial_share_entries(submissions: Sequence[Any], total_points: float) -> Tuple[ShareEntry, ...]:
    return tuple(
        ShareEntry(
            id=sub.id,
            points=sub.total_points or 0,
            share_percent=(sub.total_points or 0) / total_points,
        )
        for sub in submissions
    )


def apply_caps(entries: Sequence[ShareEntry]) -> Tuple[Tuple[ShareEntry, ...], bool]:
    """
    Cap every uncapped entry above MAX_SHARE_PERCENT.
    The first MAX_CAPPED_USERS caps sit at exactly 40%, later ones at 39.99%.
    Returns the new entries and whether anything was capped.
    """
    capped_count = sum(1 for entry in entries if entry.is_capped)
    has_new_caps = False
    result = []

    for entry in entries:
        if not entry.is_capped and entry.share_percent > MAX_SHARE_PERCENT:
            if capped_count < MAX_CAPPED_USERS:
                ceiling = MAX_SHARE_PERCENT
            else:
                ceiling = MAX_SHARE_PERCENT - SOFT_CAP_STEP
            entry = entry.model_copy(update={
                "share_percent": ceiling,
                "is_capped": True,
                "cap_ceiling": ceiling,
            })
            capped_count += 1
            has_new_caps = True
        result.append(entry)

    return tuple(result), has_new_caps


def redistribute_shortfall(entries: Sequence[ShareEntry], shortfall: float) -> Tuple[ShareEntry, ...]:
    """
    Hand the shortfall to uncapped entries in proportion to their current share.
    With nobody uncapped, the even split is clamped to each entry's ceiling.
    Capped entries already sit at that ceiling, so this branch pays nothing
    out and the shortfall stays unallocated.
    """
    uncapped = [entry for entry in entries if not entry.is_capped]

    if not uncapped:
        per_entry = shortfall / len(entries)
        return tuple(
            entry.model_copy(update={
                "share_percent": min(entry.share_percent + per_entry, entry.cap_ceiling)
            })
            for entry in entries
        )

    uncapped_total = _share_total(uncapped)
    if uncapped_total <= 0:
        return tuple(entries)

    return tuple(
        entry if entry.is_capped else entry.model_copy(update={
            "share_percent": entry.share_percent + (entry.share_percent / uncapped_total) * shortfall
        })
        for entry in entries
    )


def allocate_robin_hood(
    submissions: Sequence[Any],
    total_campaign_points: float,
    net_budget: Any
) -> RobinHoodResult:
    """
    Iterative capped-proportional allocation of `net_budget`.

    `total_campaign_points` must be the total of the participating set only.
    Each round caps, checks convergence, then redistributes the shortfall;
    the loop ends on convergence, when a round caps nobody new, or after
    MAX_ITERATIONS rounds.
    """
    if not submissions or not total_campaign_points:
        return RobinHoodResult()

    entries = initial_share_entries(submissions, total_campaign_points)
    converged = False
    rounds = 0

    while rounds < MAX_ITERATIONS:
        rounds += 1
        entries, has_new_caps = apply_caps(entries)

        current_total = _share_total(entries)
        if abs(current_total - 1.0) < CONVERGENCE_TOLERANCE:
            converged = True
            break
        if current_total > 1.0:
            break

        entries = redistribute_shortfall(entries, 1.0 - current_total)

        if all(entry.is_capped for entry in entries):
            break
        if not has_new_caps:
            break

    final_total = _share_total(entries)
    converged = converged or abs(final_total - 1.0) < CONVERGENCE_TOLERANCE
    if not converged:
        logger.info(
            f"Robin Hood stopped after {rounds} rounds with {final_total:.4f} of the pool allocated"
        )

    budget = to_decimal(net_budget)
    allocations = [
        ShareAllocation(
            id=entry.id,
            share_percent=entry.share_percent,
            earnings=round_money(budget * to_decimal(entry.share_percent)),
        )
        for entry in entries
    ]

    return RobinHoodResult(
        allocations=allocations,
        converged=converged,
        rounds=rounds,
        unallocated_share=max(0.0, 1.0 - final_total),
    )


def compute_robin_hood_shares(
    submissions: Sequence[Any],
    total_campaign_points: float,
    net_budget: Any
) -> List[ShareAllocation]:
    """Robin Hood shares and earnings per entry; empty when nothing can be allocated."""
    return allocate_robin_hood(submissions, total_campaign_points, net_budget).allocations
