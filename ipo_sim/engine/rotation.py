"""Date-driven rotation of the IPO pool.

Every call recomputes membership of the open / upcoming / closed lists from
the IPO date windows, so calling it repeatedly on the same day changes
nothing except through recycling and the open-pool floor.
"""
import itertools
import logging
import random
import threading
from dataclasses import replace
from datetime import date, timedelta
from typing import List, Optional

from ipo_sim.engine.catalog import Catalog
from ipo_sim.engine.clock import Clock
from ipo_sim.engine.models import IPO, RISK_LEVELS, DateWindow, PoolSnapshot, RotationPool
from ipo_sim.engine.performance import closing_listing_outcome

logger = logging.getLogger(__name__)

SUBSCRIPTION_DAYS = 3
LISTING_AFTER_CLOSE_DAYS = 5
MAX_OPEN_OFFSET_DAYS = 6

RECYCLE_UPCOMING_BELOW = 15
RECYCLE_CLOSED_ABOVE = 8
MIN_OPEN = 1

RELISTED_SUFFIX = " (Re-listed)"
RELISTED_NOTE = "This IPO has been re-listed due to market demand."

SYNTHETIC_SECTORS = {
    "Technology": ("Tech Innovation", "TECH"),
    "Healthcare": ("Lifeline Healthcare", "LIFE"),
    "Renewable Energy": ("Greenvolt Energy", "GRNV"),
    "Financial Services": ("Trustline Finance", "TRST"),
    "Consumer Goods": ("Homestead Consumer", "HOME"),
    "Logistics": ("Swiftroute Logistics", "SWFT"),
}


def window_from(open_date: date) -> DateWindow:
    close_date = open_date + timedelta(days=SUBSCRIPTION_DAYS)
    return DateWindow(
        open_date=open_date,
        close_date=close_date,
        listing_date=close_date + timedelta(days=LISTING_AFTER_CLOSE_DAYS),
    )


def upcoming_window(today: date, rng: random.Random) -> DateWindow:
    """Opens 1 to 7 days after today."""
    return window_from(today + timedelta(days=1 + rng.randint(0, MAX_OPEN_OFFSET_DAYS)))


def open_window(today: date, rng: random.Random) -> DateWindow:
    """Already open, with today somewhere inside the subscription window."""
    return window_from(today - timedelta(days=rng.randint(0, SUBSCRIPTION_DAYS)))


def in_window(ipo: IPO, today: date) -> bool:
    return ipo.open_date <= today <= ipo.close_date


class RotationEngine:
    def __init__(self, catalog: Catalog, rng: random.Random, clock: Clock):
        self.catalog = catalog
        self.rng = rng
        self.clock = clock
        self._serial = itertools.count(1)

    def advance(self, pool: RotationPool, today: date) -> RotationPool:
        if not pool.initialized:
            return self._initialize(pool, today)

        if pool.last_rotation_date and today < pool.last_rotation_date:
            logger.warning(
                f"Rotation date {today} is before last rotation {pool.last_rotation_date}; "
                f"holding the pool at {pool.last_rotation_date}"
            )
            today = pool.last_rotation_date

        logger.info(f"Before rotation ({today}): {pool.counts()}")

        # Close first so a window that ended is never promoted.
        still_open = []
        for ipo in pool.open:
            if ipo.close_date < today:
                pool.closed.insert(0, self._close(ipo))
                logger.info(f"{ipo.symbol} moved from OPEN to CLOSED")
            elif today < ipo.open_date:
                pool.upcoming.append(ipo)
            else:
                still_open.append(ipo)
        pool.open = still_open

        waiting = []
        for ipo in pool.upcoming:
            if today < ipo.open_date:
                waiting.append(ipo)
            elif in_window(ipo, today):
                pool.open.append(ipo)
                logger.info(f"{ipo.symbol} moved from UPCOMING to OPEN")
            else:
                # Whole window passed while nobody was looking.
                pool.closed.insert(0, self._close(ipo))
                logger.info(f"{ipo.symbol} moved from UPCOMING to CLOSED (stale)")
        pool.upcoming = waiting

        if len(pool.upcoming) < RECYCLE_UPCOMING_BELOW and len(pool.closed) > RECYCLE_CLOSED_ABOVE:
            pool.upcoming.append(self._recycle(pool.closed.pop(), today))

        if len(pool.open) < MIN_OPEN:
            pool.open.append(self._synthesize(today))

        pool.last_rotation_date = today
        logger.info(f"After rotation ({today}): {pool.counts()}")
        return pool

    def _initialize(self, pool: RotationPool, today: date) -> RotationPool:
        pool.open = [ipo.with_window(open_window(today, self.rng)) for ipo in self.catalog.open]
        pool.upcoming = [
            ipo.with_window(upcoming_window(today, self.rng)) for ipo in self.catalog.upcoming
        ]
        pool.closed = [replace(ipo) for ipo in self.catalog.closed]
        pool.initialized = True
        pool.last_rotation_date = today
        logger.info(f"Initialized IPO pool for {today}: {pool.counts()}")
        return pool

    def _close(self, ipo: IPO) -> IPO:
        price, gain = closing_listing_outcome(ipo.issue_price, self.rng)
        listing_date = ipo.listing_date or ipo.close_date + timedelta(days=LISTING_AFTER_CLOSE_DAYS)
        return replace(ipo, actual_listing_price=price, listing_gain=gain, listing_date=listing_date)

    def _stamp(self) -> int:
        return int(self.clock.now().timestamp() * 1000)

    def _recycle(self, ipo: IPO, today: date) -> IPO:
        description = f"{ipo.description} {RELISTED_NOTE}".strip()
        recycled = replace(
            ipo.with_window(upcoming_window(today, self.rng)),
            id=f"{ipo.id}-RECYCLED-{self._stamp()}",
            name=ipo.name + RELISTED_SUFFIX,
            description=description,
            actual_listing_price=None,
            listing_gain=None,
        )
        logger.info(f"Recycled {ipo.name} from CLOSED to UPCOMING as {recycled.id}")
        return recycled

    def _synthesize(self, today: date) -> IPO:
        sector = self.rng.choice(sorted(SYNTHETIC_SECTORS))
        name, prefix = SYNTHETIC_SECTORS[sector]
        low = self.rng.randint(500, 999)
        high = low + self.rng.randint(20, 100)
        lot_size = self.rng.randint(10, 29)
        ipo = IPO(
            id=f"SYNTHETIC-{self._stamp()}-{next(self._serial)}",
            symbol=f"{prefix}{self.rng.randint(100, 999)}",
            name=f"{name} Ltd",
            sector=sector,
            price_band=f"{low}-{high}",
            issue_price=high,
            lot_size=lot_size,
            min_investment=high * lot_size,
            issue_size=f"₹{self.rng.randint(1000, 5999):,} Cr",
            risk_level=self.rng.choice(RISK_LEVELS),
            description=f"Growing {sector.lower()} company raising capital for expansion.",
        ).with_window(open_window(today, self.rng))
        logger.info(f"Open pool empty, synthesized {ipo.symbol} ({ipo.name})")
        return ipo


class PoolStore:
    """Sole owner and writer of the rotation pool.

    Reads always go through ``rotate``; there is no way to look at the pool
    without advancing it to the current day first.
    """

    def __init__(self, engine: RotationEngine, clock: Clock):
        self.engine = engine
        self.clock = clock
        self._pool = RotationPool()
        self._lock = threading.Lock()

    def rotate(self, today: Optional[date] = None) -> PoolSnapshot:
        today = today or self.clock.today()
        with self._lock:
            self.engine.advance(self._pool, today)
            return PoolSnapshot.of(self._pool, self._pool.last_rotation_date)

    def reset(self):
        with self._lock:
            self._pool = RotationPool()
        logger.info("IPO pool has been reset")

    def load(self, open: List[IPO], upcoming: List[IPO], closed: List[IPO], as_of: date):
        """Replace the pool with an already-rotated state."""
        with self._lock:
            self._pool = RotationPool(
                open=list(open),
                upcoming=list(upcoming),
                closed=list(closed),
                initialized=True,
                last_rotation_date=as_of,
            )
