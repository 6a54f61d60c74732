"""
Agent tier rules.

Tier is derived from lifetime job count and rating, never stored as history.
The profile collaborator calls ``apply_stats_change`` after persisting new
stats, so the recompute is an explicit function call.
"""

from collections import namedtuple
from decimal import Decimal

BRONZE = "bronze"
SILVER = "silver"
GOLD = "gold"
PLATINUM = "platinum"

TIERS = (BRONZE, SILVER, GOLD, PLATINUM)

# (tier, min total jobs, min rating), evaluated highest tier first
TIER_THRESHOLDS = (
    (PLATINUM, 75, Decimal("4.8")),
    (GOLD, 30, Decimal("4.5")),
    (SILVER, 10, Decimal("4.0")),
)

# Share of the labor price paid to the agent
TIER_PAYOUT_PERCENTAGES = {
    BRONZE: Decimal("0.50"),
    SILVER: Decimal("0.55"),
    GOLD: Decimal("0.60"),
    PLATINUM: Decimal("0.70"),
}

AgentStatsChanged = namedtuple("AgentStatsChanged", ["agent_id", "total_jobs", "rating"])


def tier_for(total_jobs, rating):
    """Return the tier earned by ``total_jobs`` completed jobs at ``rating``.

    Both thresholds must hold: a 200-job agent rated 3.0 stays bronze.
    """
    jobs = int(total_jobs or 0)
    # str() first so 4.79 does not become 4.7899999...
    score = Decimal(str(rating or 0))
    for tier, min_jobs, min_rating in TIER_THRESHOLDS:
        if jobs >= min_jobs and score >= min_rating:
            return tier
    return BRONZE


def payout_percent_for(tier):
    if tier not in TIER_PAYOUT_PERCENTAGES:
        raise ValueError("Unknown tier: {}".format(tier))
    return TIER_PAYOUT_PERCENTAGES[tier]


def apply_stats_change(profile, event):
    """Copy new stats onto ``profile`` and re-derive its tier.

    Returns ``(old_tier, new_tier)``. Applying the same event twice is a no-op
    the second time.
    """
    old_tier = profile.tier
    profile.total_jobs = int(event.total_jobs)
    profile.rating = float(event.rating)
    profile.tier = tier_for(profile.total_jobs, profile.rating)
    return old_tier, profile.tier
