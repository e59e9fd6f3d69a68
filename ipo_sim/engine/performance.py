"""Listing price models.

Two models exist on purpose: ``generate_performance`` prices allotted
holdings at -20%/+40%, while ``closing_listing_outcome`` prices IPOs that
drop out of the open pool during rotation at -10%/+30%.
"""
import math
import random
from typing import Tuple

from ipo_sim.engine.models import ListingPerformance

LISTING_VOLATILITY = (-0.20, 0.40)
CLOSING_VOLATILITY = (-0.10, 0.30)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_percent(value: float) -> str:
    return f"{value:.2f}%"


def _draw(rng: random.Random, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    return rng.random() * (high - low) + low


def generate_performance(issue_price: float, rng: random.Random) -> ListingPerformance:
    volatility = _draw(rng, LISTING_VOLATILITY)
    listed_price = round_half_up(issue_price * (1 + volatility))
    change = listed_price - issue_price
    return ListingPerformance(
        listed_price=listed_price,
        change=change,
        percent_change=format_percent(change / issue_price * 100),
        positive=change >= 0,
    )


def closing_listing_outcome(issue_price: float, rng: random.Random) -> Tuple[float, str]:
    """Return (actual_listing_price, listing_gain) from a single draw."""
    volatility = _draw(rng, CLOSING_VOLATILITY)
    return round(issue_price * (1 + volatility), 2), format_percent(volatility * 100)
