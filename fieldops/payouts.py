"""
Payout split between agent and platform.

Labor is commissioned at the tier percentage (round half up to the cent);
materials are reimbursed to the agent at cost. The platform keeps the rest,
so agent payout plus platform fee always equals the job price.
"""

from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

PayoutSplit = namedtuple("PayoutSplit", ["agent_payout_cents", "platform_fee_cents"])


def labor_commission_cents(labor_price_cents, tier_percent):
    commission = Decimal(int(labor_price_cents)) * Decimal(str(tier_percent))
    return int(commission.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split(total_price_cents, labor_price_cents, materials_cost_cents, tier_percent):
    """Compute the agent payout and platform fee for one job.

    Args:
        total_price_cents (int): Price charged to the client
        labor_price_cents (int): Commissionable labor portion
        materials_cost_cents (int): Materials, passed through to the agent
        tier_percent (Decimal): Agent labor share, e.g. ``Decimal("0.55")``

    Returns:
        PayoutSplit: ``agent_payout_cents + platform_fee_cents == total_price_cents``

    Raises:
        ValueError: negative amounts, a percentage outside [0, 1], or a
            breakdown whose labor and materials exceed the total
    """
    total = int(total_price_cents)
    labor = int(labor_price_cents)
    materials = int(materials_cost_cents)
    percent = Decimal(str(tier_percent))

    if total < 0 or labor < 0 or materials < 0:
        raise ValueError("Price components must not be negative")
    if percent < 0 or percent > 1:
        raise ValueError("Tier percent must be between 0 and 1")
    if labor + materials > total:
        raise ValueError(
            "Labor ({}) plus materials ({}) exceeds total price ({})".format(labor, materials, total)
        )

    agent_payout = labor_commission_cents(labor, percent) + materials
    return PayoutSplit(agent_payout, total - agent_payout)
