"""
Pricing model: parcel volume → box tariff → fixed cost basis → sale price
that leaves the desired margin after tax and commission.

All functions are pure except display_price_and_discount, which draws a
random markup from the run's Random instance.
"""

import math
import random
from typing import Optional, Tuple

from . import config
from .models import InfeasibleMargin, NegativePrice, PricingError


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def volume_liters(width: int, height: int, length: int) -> float:
    """Parcel volume in liters from centimeter dimensions."""
    return width * height * length / 1000.0


def box_tariff(volume: float, base: float, per_liter: float) -> float:
    """
    Box delivery tariff for a parcel of `volume` liters.

    Not clamped: parcels under one liter get less than `base`, possibly
    a negative value. Clamping is the caller's decision.
    """
    return (volume - 1) * per_liter + base


def returns_reserve(tariff: float) -> float:
    """Reserve for return and cancellation losses."""
    return (tariff + config.RETURNS_HANDLING) / config.RETURNS_DIVISOR


def procurement_cost(unit_cost: float, pack_count: int) -> int:
    return math.ceil(unit_cost * pack_count)


def fixed_cost(unit_cost: float, pack_count: int, tariff: float,
               delivery_fee: int, warehouse_fee: int) -> int:
    """Cost basis before margin, tax and commission. Each component rounded up."""
    return (
        procurement_cost(unit_cost, pack_count)
        + math.ceil(tariff)
        + delivery_fee
        + warehouse_fee
        + math.ceil(returns_reserve(tariff))
    )


def solve_price(desired_margin: float, tax_rate: float, commission_rate: float,
                fixed_costs: float) -> float:
    """
    Sale price at which tax, commission and margin (all fractions of the
    price) are covered on top of `fixed_costs`.

    Raises InfeasibleMargin when the fractions sum to 100% or more and
    NegativePrice when the cost basis is negative.
    """
    denominator = 1 - tax_rate - commission_rate - desired_margin
    if denominator <= 0:
        raise InfeasibleMargin(
            f"Margin {desired_margin:.2f} unreachable with tax {tax_rate:.2f} "
            f"and commission {commission_rate:.2f}"
        )
    price = fixed_costs / denominator
    if price < 0:
        raise NegativePrice(f"Solved price is negative ({price:.2f}); check fixed costs {fixed_costs}")
    return price


def commission_fraction(commission_pct: float, buffer_pct: float = 0.0) -> float:
    """Commission percent (plus a safety buffer in points) as a fraction."""
    return (commission_pct + buffer_pct) / 100


def commission_amount(price: float, commission_rate: float) -> float:
    return price * commission_rate


def display_price_and_discount(price: float, rng: random.Random,
                               markup_min: float = 1.30, markup_max: float = 1.50,
                               step: int = config.DISPLAY_PRICE_STEP) -> Tuple[int, int]:
    """
    Crossed-out display price and the discount percent that brings it back
    down to `price`.

    The markup is drawn uniformly from [markup_min, markup_max), so runs over
    the same input differ unless `rng` is seeded. The display price is rounded
    to a multiple of `step`, the discount to a whole percent.
    """
    markup = markup_min + rng.random() * (markup_max - markup_min)
    display = round_half_up(price * markup / step) * step
    if display <= 0:
        raise PricingError(f"Display price rounds to {display} for price {price:.2f}")
    discount = round_half_up(100 - (price / display) * 100)
    return display, discount


def make_rng(seed: Optional[int] = None) -> random.Random:
    """Random source for one run."""
    return random.Random(seed)
