"""
Tier derivation tests
"""
from decimal import Decimal

import pytest

from fieldops import tiers
from fieldops.models import AgentProfile


class TestTierFor:
    """Test threshold evaluation"""

    @pytest.mark.parametrize('total_jobs, rating, expected', [
        (0, 0, 'bronze'),
        (9, 5.0, 'bronze'),
        (10, 4.0, 'silver'),
        (10, 3.99, 'bronze'),
        (30, 4.5, 'gold'),
        (29, 4.9, 'silver'),
        (75, 4.79, 'gold'),
        (75, 4.8, 'platinum'),
        (200, 3.0, 'bronze'),
    ])
    def test_thresholds(self, total_jobs, rating, expected):
        assert tiers.tier_for(total_jobs, rating) == expected

    def test_none_inputs_are_bronze(self):
        assert tiers.tier_for(None, None) == 'bronze'


class TestPayoutPercent:

    def test_percentages(self):
        assert tiers.payout_percent_for('bronze') == Decimal('0.50')
        assert tiers.payout_percent_for('silver') == Decimal('0.55')
        assert tiers.payout_percent_for('gold') == Decimal('0.60')
        assert tiers.payout_percent_for('platinum') == Decimal('0.70')

    def test_unknown_tier(self):
        with pytest.raises(ValueError):
            tiers.payout_percent_for('diamond')


class TestApplyStatsChange:
    """Test the explicit recompute called after a stats update"""

    def test_promotes_and_reports_old_tier(self):
        profile = AgentProfile(total_jobs=29, rating=4.6, tier='silver')
        event = tiers.AgentStatsChanged('agent-1', 30, 4.6)

        assert tiers.apply_stats_change(profile, event) == ('silver', 'gold')
        assert profile.total_jobs == 30
        assert profile.tier == 'gold'

    def test_idempotent(self):
        profile = AgentProfile(total_jobs=0, rating=0, tier='bronze')
        event = tiers.AgentStatsChanged('agent-1', 80, 4.9)

        tiers.apply_stats_change(profile, event)
        assert tiers.apply_stats_change(profile, event) == ('platinum', 'platinum')

    def test_demotion_on_rating_drop(self):
        profile = AgentProfile(total_jobs=40, rating=4.7, tier='gold')
        old, new = tiers.apply_stats_change(profile, tiers.AgentStatsChanged('agent-1', 40, 4.2))
        assert (old, new) == ('gold', 'silver')
