"""
Payout split tests
"""
from decimal import Decimal

import pytest

from fieldops import payouts
from fieldops.tiers import TIER_PAYOUT_PERCENTAGES


class TestSplit:
    """Test agent payout and platform fee computation"""

    def test_silver_scenario(self):
        result = payouts.split(15000, 12000, 3000, Decimal('0.55'))
        assert result.agent_payout_cents == 9600
        assert result.platform_fee_cents == 5400

    def test_materials_are_not_commissioned(self):
        result = payouts.split(10000, 0, 4000, Decimal('0.50'))
        assert result.agent_payout_cents == 4000
        assert result.platform_fee_cents == 6000

    def test_labor_rounds_half_up(self):
        # 333 * 0.55 = 183.15 -> 183; 335 * 0.50 = 167.5 -> 168
        assert payouts.labor_commission_cents(333, Decimal('0.55')) == 183
        assert payouts.labor_commission_cents(335, Decimal('0.50')) == 168

    def test_unallocated_remainder_goes_to_platform(self):
        result = payouts.split(20000, 15000, 3000, Decimal('0.55'))
        assert result.agent_payout_cents == 8250 + 3000
        assert result.platform_fee_cents == 20000 - 11250

    @pytest.mark.parametrize('tier', sorted(TIER_PAYOUT_PERCENTAGES))
    @pytest.mark.parametrize('total, labor, materials', [
        (1, 1, 0),
        (999, 333, 333),
        (10001, 7777, 1111),
        (12345, 12345, 0),
        (99999, 49999, 50000),
    ])
    def test_reconciles_to_total(self, tier, total, labor, materials):
        result = payouts.split(total, labor, materials, TIER_PAYOUT_PERCENTAGES[tier])
        assert result.agent_payout_cents + result.platform_fee_cents == total
        assert result.platform_fee_cents >= 0


class TestSplitValidation:

    def test_breakdown_exceeding_total(self):
        with pytest.raises(ValueError):
            payouts.split(1000, 800, 300, Decimal('0.50'))

    def test_negative_amounts(self):
        with pytest.raises(ValueError):
            payouts.split(1000, -1, 0, Decimal('0.50'))

    def test_percent_out_of_range(self):
        with pytest.raises(ValueError):
            payouts.split(1000, 500, 0, Decimal('1.5'))
