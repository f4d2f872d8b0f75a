# parkspot/pricing.py
import math
from decimal import Decimal, ROUND_HALF_UP

from parkspot.errors import ValidationError
from parkspot.models import PriceType

CENT = Decimal("0.01")
HOURS_PER_UNIT = {
    PriceType.DAY: 24,
    PriceType.MONTH: 24 * 30,
}


def duration_hours(start, end) -> Decimal:
    seconds = Decimal(str((end - start).total_seconds()))
    return seconds / Decimal(3600)


def compute_total_cost(price, price_type, start, end) -> Decimal:
    """
    Cost of parking from ``start`` to ``end``.

    Hourly spots bill the exact duration. Daily and monthly spots bill whole
    units, always rounding the duration up (25 hours at a day rate is 2 days).
    """
    hours = duration_hours(start, end)
    if hours <= 0:
        raise ValidationError("End time must be after start time")

    price = Decimal(str(price))
    price_type = PriceType.parse(price_type)

    if price_type is PriceType.HOUR:
        cost = hours * price
    else:
        units = math.ceil(hours / HOURS_PER_UNIT[price_type])
        cost = units * price

    return cost.quantize(CENT, rounding=ROUND_HALF_UP)
