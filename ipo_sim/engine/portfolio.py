import random
from typing import Optional

from ipo_sim.engine.models import ALLOTTED, IPO, AllotmentResult, Holding
from ipo_sim.engine.performance import generate_performance


def to_holding(ipo: IPO, result: AllotmentResult, rng: random.Random) -> Optional[Holding]:
    """Turn an allotment into a portfolio holding, or None when not allotted."""
    if result.status != ALLOTTED:
        return None

    performance = generate_performance(ipo.issue_price, rng)
    return Holding(
        symbol=ipo.symbol,
        name=ipo.name,
        quantity=result.shares,
        avg_price=ipo.issue_price,
        listing_price=performance.listed_price,
        pnl={
            "change": performance.change,
            "percent": performance.percent_change,
            "positive": performance.positive,
        },
    )
