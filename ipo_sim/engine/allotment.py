import logging
import random

from ipo_sim.engine.errors import InvalidApplicationError
from ipo_sim.engine.models import ALLOTTED, NOT_ALLOTTED, IPO, AllotmentResult

logger = logging.getLogger(__name__)

# Subscription pressure by risk level.
BASE_ODDS = {
    "Low": 0.70,
    "Medium": 0.45,
    "High": 0.25,
}
DEFAULT_ODDS = 0.40
LOT_PENALTY = 0.05
MAX_LOT_PENALTY = 0.20


def validate_lots(lots) -> int:
    if isinstance(lots, bool) or not isinstance(lots, int) or lots < 1:
        raise InvalidApplicationError(f"Lots must be a positive whole number, got {lots!r}")
    return lots


def validate_ipo(ipo: IPO):
    if ipo.issue_price is None or ipo.issue_price <= 0:
        raise InvalidApplicationError(f"{ipo.symbol}: issue price must be positive")
    if ipo.lot_size is None or ipo.lot_size <= 0:
        raise InvalidApplicationError(f"{ipo.symbol}: lot size must be positive")


def allotment_odds(risk_level: str, lots: int) -> float:
    """Chance of allotment; non-increasing in lots."""
    base = BASE_ODDS.get(risk_level, DEFAULT_ODDS)
    return base - min(lots * LOT_PENALTY, MAX_LOT_PENALTY)


def resolve_allotment(ipo: IPO, lots: int, rng: random.Random) -> AllotmentResult:
    validate_ipo(ipo)
    validate_lots(lots)

    odds = allotment_odds(ipo.risk_level, lots)
    roll = rng.random()

    if roll < odds:
        result = AllotmentResult(status=ALLOTTED, shares=ipo.lot_size * lots, refund=0)
    else:
        result = AllotmentResult(
            status=NOT_ALLOTTED, shares=0, refund=ipo.issue_price * ipo.lot_size * lots
        )
    logger.debug(f"{ipo.symbol}: odds={odds:.2f} roll={roll:.4f} -> {result.status}")
    return result
