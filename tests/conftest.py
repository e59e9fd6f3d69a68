import random
from datetime import date, datetime, timedelta, timezone

import pytest

from ipo_sim.config import Config
from ipo_sim.database.db import Database
from ipo_sim.engine.catalog import load_catalog
from ipo_sim.engine.clock import FixedClock
from ipo_sim.engine.models import IPO
from ipo_sim.engine.rotation import PoolStore, RotationEngine, window_from
from ipo_sim.engine.service import IPOService

TODAY = date(2024, 6, 4)
NOW = datetime(2024, 6, 4, 4, 0, tzinfo=timezone.utc)


class SequenceRandom:
    """Stand-in for random.Random that replays fixed draws."""

    def __init__(self, values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def clock():
    return FixedClock(TODAY, NOW)


@pytest.fixture
def catalog():
    return load_catalog()


@pytest.fixture
def store(catalog, rng, clock):
    return PoolStore(RotationEngine(catalog, rng, clock), clock)


@pytest.fixture
def database():
    return Database(Config(data={"database": {"type": "sqlite", "path": ":memory:"}}))


@pytest.fixture
def service(store, database, rng, clock):
    return IPOService(store, database, rng, clock)


@pytest.fixture
def make_ipo():
    counter = iter(range(1, 10_000))

    def _make(open_date=None, risk_level="Medium", issue_price=100, lot_size=10, **fields):
        n = next(counter)
        ipo = IPO(
            id=fields.pop("id", f"T-{n}"),
            symbol=fields.pop("symbol", f"TST{n}"),
            name=fields.pop("name", f"Test Company {n} Ltd"),
            sector="Technology",
            price_band=f"{issue_price - 5}-{issue_price}",
            issue_price=issue_price,
            lot_size=lot_size,
            min_investment=issue_price * lot_size,
            issue_size="₹100 Cr",
            risk_level=risk_level,
            description="Test listing.",
            **fields,
        )
        if open_date is not None:
            ipo = ipo.with_window(window_from(open_date))
        return ipo

    return _make


@pytest.fixture
def days():
    def _days(n):
        return TODAY + timedelta(days=n)

    return _days
