import random
import threading
import time
from datetime import timedelta

import pytest

from ipo_sim.config import Config
from ipo_sim.database.db import Database
from ipo_sim.database.models import IPOApplication
from ipo_sim.engine.clock import FixedClock
from ipo_sim.engine.errors import (
    ApplicationNotFoundError,
    InvalidApplicationError,
    IPONotOpenError,
    WithdrawalNotAllowedError,
)
from ipo_sim.engine.models import Holding
from ipo_sim.engine.service import IPOService, withdrawal_amount

from conftest import NOW, TODAY, SequenceRandom

# Low risk, issue price 222, lot size 67 in the shipped catalog.
SYMBOL = "AQUAGRN"


def at(clock, minutes):
    clock.set(now=NOW + timedelta(minutes=minutes))


def test_list_ipos_by_status(service, catalog):
    open_ipos = service.list_ipos("open")
    everything = service.list_ipos()

    assert [ipo["symbol"] for ipo in open_ipos] == [ipo.symbol for ipo in catalog.open]
    assert all(ipo["status"] == "open" for ipo in open_ipos)
    assert len(everything) == len(catalog.open) + len(catalog.upcoming) + len(catalog.closed)
    assert service.list_ipos("withdrawn") == []


def test_apply_blocks_amount_and_schedules_timeline(service):
    app = service.apply(SYMBOL, 2)

    assert app.id is not None
    assert app.status == "applied"
    assert app.lots == 2
    assert app.shares_applied == 134
    assert app.amount == 14874 * 2
    assert app.risk_level == "Low"
    assert not app.withdrawn

    view = service.timeline(app.id)
    assert view["current_stage"] == "allotment"
    assert view["next_event"]["target_time"] == (NOW + timedelta(minutes=1)).isoformat()
    assert view["timeline"]["close"]["time"] == (NOW + timedelta(minutes=4)).isoformat()
    assert view["can_withdraw"] is False


def test_apply_rejects_symbols_that_are_not_open(service, catalog):
    with pytest.raises(IPONotOpenError):
        service.apply(catalog.upcoming[0].symbol, 1)
    with pytest.raises(IPONotOpenError):
        service.apply("NOPE", 1)


@pytest.mark.parametrize("lots", [0, -1, 2.5])
def test_apply_rejects_bad_lots(service, lots):
    with pytest.raises(InvalidApplicationError):
        service.apply(SYMBOL, lots)


def test_refresh_before_allotment_changes_nothing(service, clock):
    app = service.apply(SYMBOL, 1)
    at(clock, 0.5)

    assert service.refresh(app.id).status == "applied"


def test_allotted_application_lists_and_withdraws(service, clock):
    app = service.apply(SYMBOL, 2)
    # First draw decides allotment, second prices the listing at +10%.
    service.rng = SequenceRandom([0.0, 0.5])

    at(clock, 1)
    app = service.refresh(app.id)
    assert app.status == "allotted"
    assert app.shares_allotted == 134
    assert app.refund_amount == 0
    assert app.listing_price is None

    with pytest.raises(WithdrawalNotAllowedError):
        service.withdraw(app.id)

    at(clock, 2)
    app = service.refresh(app.id)
    assert app.listing_price == 244
    assert app.pnl_percent == "9.91%"
    holdings = service.holdings()
    assert len(holdings) == 1
    assert holdings[0]["quantity"] == 134
    assert holdings[0]["avg_price"] == 222

    at(clock, 3)
    with pytest.raises(WithdrawalNotAllowedError):
        service.withdraw(app.id)

    at(clock, 4)
    result = service.withdraw(app.id)
    assert result["withdrawal_amount"] == 134 * 244
    assert result["application"]["withdrawn"] is True
    assert service.holdings() == []

    with pytest.raises(WithdrawalNotAllowedError):
        service.withdraw(app.id)


def test_not_allotted_application_is_refunded(service, clock):
    app = service.apply(SYMBOL, 3)
    service.rng = SequenceRandom([0.99])

    at(clock, 10)
    view = service.timeline(app.id)
    assert view["status"] == "not_allotted"
    assert view["current_stage"] == "not_allotted"
    assert view["can_withdraw"] is True

    result = service.withdraw(app.id)
    assert result["withdrawal_amount"] == 222 * 67 * 3
    assert service.holdings() == []


def test_withdraw_before_allotment_is_refused(service):
    app = service.apply(SYMBOL, 1)
    with pytest.raises(WithdrawalNotAllowedError):
        service.withdraw(app.id)


def test_status_never_reverts(service, clock):
    app = service.apply(SYMBOL, 1)
    service.rng = SequenceRandom([0.99])
    at(clock, 1)
    service.refresh(app.id)

    service.rng = SequenceRandom([0.0, 0.5])
    at(clock, 10)
    assert service.refresh(app.id).status == "not_allotted"


def test_process_due_sweeps_pending_applications(service, clock):
    first = service.apply(SYMBOL, 1)
    at(clock, 0.1)
    second = service.apply("VOLTRIX", 1)  # High risk: 0.20 odds for one lot
    # Allot first, reject second, then price first's listing.
    service.rng = SequenceRandom([0.0, 0.5, 0.5])

    at(clock, 1.5)
    updated = service.process_due()
    assert {app.id for app in updated} == {first.id, second.id}
    assert len(service.db.get_pending_results()) == 1

    at(clock, 5)
    updated = service.process_due()
    assert [app.id for app in updated] == [first.id]
    assert service.db.get_pending_results() == []


def test_unknown_application(service):
    with pytest.raises(ApplicationNotFoundError):
        service.timeline(999)


def test_reset_reinitializes_pool(service, catalog):
    service.rotate(TODAY + timedelta(days=20))
    service.reset()
    assert [ipo.symbol for ipo in service.rotate(TODAY).open] == [ipo.symbol for ipo in catalog.open]


@pytest.mark.parametrize(
    "listing_price, expected",
    [(120, 1200), (95, 950), (80, 900)],
)
def test_withdrawal_amount_caps_losses(listing_price, expected):
    app = IPOApplication(
        status="allotted",
        shares_allotted=10,
        issue_price=100,
        listing_price=listing_price,
        refund_amount=0,
    )
    assert withdrawal_amount(app, 0.10) == pytest.approx(expected)


def test_from_config_wires_everything(tmp_path):
    config = Config(
        data={
            "simulation": {"timezone": "Asia/Kolkata", "seed": 1},
            "timeline": {"allotment_after_minutes": 5},
            "withdrawal": {"max_loss_pct": 0.2},
            "database": {"path": str(tmp_path / "ipo.db")},
        }
    )
    clock = FixedClock(TODAY, NOW)

    service = IPOService.from_config(config, clock=clock)

    assert service.settings.allotment_after_minutes == 5
    assert service.max_loss_pct == 0.2
    assert service.rotate().as_of == TODAY
    assert (tmp_path / "ipo.db").exists()


class SlowRandom(SequenceRandom):
    """Replays fixed draws slowly enough for a second thread to catch up."""

    def random(self):
        time.sleep(0.05)
        return super().random()


def late_holding(listing_price=180):
    return Holding(
        symbol=SYMBOL,
        name="Aquagreen Ltd",
        quantity=67,
        avg_price=222,
        listing_price=listing_price,
        pnl={"change": listing_price - 222, "percent": "-18.92%", "positive": False},
    )


def test_concurrent_refreshes_list_shares_once(tmp_path, store, clock):
    database = Database(Config(data={"database": {"path": str(tmp_path / "ipo.db")}}))
    service = IPOService(store, database, random.Random(1), clock)
    app = service.apply(SYMBOL, 1)
    service.rng = SlowRandom([0.0, 0.5])
    at(clock, 3)

    threads = [threading.Thread(target=service.refresh, args=(app.id,)) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(database.get_holdings()) == 1
    assert database.get_application(app.id).listing_price == 244


def test_listing_is_recorded_once_per_application(service, clock):
    app = service.apply(SYMBOL, 1)
    service.rng = SequenceRandom([0.0, 0.5])
    at(clock, 3)
    service.refresh(app.id)

    kept = service.db.record_listing(app.id, late_holding(), NOW)

    assert kept.listing_price == 244
    assert len(service.holdings()) == 1
    assert service.db.get_application(app.id).listing_price == 244
    assert service.db.get_application(app.id).pnl_percent == "9.91%"


def test_rejected_application_never_gets_a_holding(service, clock):
    app = service.apply(SYMBOL, 1)
    service.rng = SequenceRandom([0.99])
    at(clock, 1)
    service.refresh(app.id)

    assert service.db.record_listing(app.id, late_holding(), NOW) is None
    assert service.holdings() == []
    assert service.db.get_application(app.id).listing_price is None


def test_resolved_result_is_not_overwritten(service, clock):
    app = service.apply(SYMBOL, 1)
    service.rng = SequenceRandom([0.99])
    at(clock, 1)
    service.refresh(app.id)

    kept = service.db.update_application_result(app.id, "allotted", 67, 0, NOW)

    assert kept.status == "not_allotted"
    assert kept.shares_allotted == 0


def test_applications_lists_newest_first_with_progress(service, clock):
    first = service.apply(SYMBOL, 1)
    at(clock, 0.5)
    second = service.apply(SYMBOL, 2)
    service.rng = SequenceRandom([0.0])

    at(clock, 1.2)
    listed = service.applications()

    assert [app["id"] for app in listed] == [second.id, first.id]
    assert listed[0]["status"] == "applied"
    assert listed[1]["status"] == "allotted"
    assert listed[1]["shares_allotted"] == 67
