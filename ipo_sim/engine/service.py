import logging
import random
import threading
from datetime import date
from typing import Any, Dict, List, Optional

from ipo_sim.config import Config
from ipo_sim.database import models as rows
from ipo_sim.database.db import Database
from ipo_sim.engine.allotment import resolve_allotment, validate_ipo, validate_lots
from ipo_sim.engine.catalog import load_catalog
from ipo_sim.engine.clock import DEFAULT_TIMEZONE, Clock, as_utc
from ipo_sim.engine.errors import (
    ApplicationNotFoundError,
    IPONotOpenError,
    WithdrawalNotAllowedError,
)
from ipo_sim.engine.models import ALLOTTED, NOT_ALLOTTED, IPO, AllotmentResult, PoolSnapshot
from ipo_sim.engine.portfolio import to_holding
from ipo_sim.engine.rotation import PoolStore, RotationEngine
from ipo_sim.engine.timeline import (
    ALLOTMENT,
    CLOSE,
    LISTING,
    ApplicationTimeline,
    TimelineSettings,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOSS_PCT = 0.10

_ROW_STATUS = {ALLOTTED: rows.ALLOTTED, NOT_ALLOTTED: rows.NOT_ALLOTTED}


def withdrawal_amount(app: rows.IPOApplication, max_loss_pct: float = DEFAULT_MAX_LOSS_PCT) -> float:
    """Cash returned when an application is withdrawn.

    Not allotted: the refund. Listed: principal plus P&L, with losses capped
    at ``max_loss_pct`` of the investment.
    """
    if app.status == rows.NOT_ALLOTTED:
        return app.refund_amount

    invested = app.shares_allotted * app.issue_price
    value = app.shares_allotted * app.listing_price
    if value >= invested:
        return value + app.refund_amount
    return max(value, invested * (1 - max_loss_pct)) + app.refund_amount


class IPOService:
    def __init__(
        self,
        store: PoolStore,
        database: Database,
        rng: random.Random,
        clock: Clock,
        settings: TimelineSettings = None,
        max_loss_pct: float = DEFAULT_MAX_LOSS_PCT,
    ):
        self.store = store
        self.db = database
        self.rng = rng
        self.clock = clock
        self.settings = settings or TimelineSettings()
        self.max_loss_pct = max_loss_pct
        # Serialises read-draw-write on applications within this process.
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config, clock: Clock = None) -> "IPOService":
        simulation = config.get_simulation()
        clock = clock or Clock(simulation.get("timezone", DEFAULT_TIMEZONE))
        rng = random.Random(simulation.get("seed"))
        catalog = load_catalog(config.get_catalog().get("path"))
        store = PoolStore(RotationEngine(catalog, rng, clock), clock)
        return cls(
            store,
            Database(config),
            rng,
            clock,
            settings=TimelineSettings.from_config(config.get_timeline()),
            max_loss_pct=config.get_withdrawal().get("max_loss_pct", DEFAULT_MAX_LOSS_PCT),
        )

    def rotate(self, today: Optional[date] = None) -> PoolSnapshot:
        return self.store.rotate(today)

    def reset(self):
        self.store.reset()

    def list_ipos(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        snapshot = self.rotate()
        if status:
            return snapshot.to_dict().get(status, [])
        return [ipo.to_dict(snapshot.as_of) for ipo in snapshot.all]

    def apply(self, symbol: str, lots: int) -> rows.IPOApplication:
        validate_lots(lots)
        ipo = self.rotate().find_open(symbol)
        if ipo is None:
            raise IPONotOpenError(f"IPO {symbol} not found or not currently open")
        validate_ipo(ipo)

        now = self.clock.now()
        timeline = ApplicationTimeline.start(now, self.settings)
        app = self.db.add_application(
            ipo_id=ipo.id,
            symbol=ipo.symbol,
            ipo_name=ipo.name,
            lots=lots,
            shares_applied=ipo.lot_size * lots,
            amount=ipo.min_investment * lots,
            issue_price=ipo.issue_price,
            lot_size=ipo.lot_size,
            risk_level=ipo.risk_level,
            applied_at=now,
            allotment_at=timeline[ALLOTMENT].time,
            listing_at=timeline[LISTING].time,
            close_at=timeline[CLOSE].time,
        )
        logger.info(f"Applied for {lots} lot(s) of {ipo.symbol}, blocked ₹{app.amount:,.2f}")
        return app

    def refresh(self, application_id: int) -> rows.IPOApplication:
        """Bring one application up to date with the wall clock."""
        with self._lock:
            return self._refresh(application_id)

    def _refresh(self, application_id: int) -> rows.IPOApplication:
        app = self._get(application_id)
        if app.withdrawn:
            return app

        ipo = self._ipo_of(app)
        timeline = self._timeline_of(app)
        outcome = {}

        def allot():
            outcome[ALLOTMENT] = resolve_allotment(ipo, app.lots, self.rng)
            return outcome[ALLOTMENT].status

        def list_shares():
            result = outcome.get(ALLOTMENT) or AllotmentResult(
                status=ALLOTTED, shares=app.shares_allotted, refund=app.refund_amount
            )
            outcome[LISTING] = to_holding(ipo, result, self.rng)
            return outcome[LISTING].listing_price

        completed = timeline.advance(self.clock.now(), allot=allot, list_shares=list_shares)
        if not completed:
            return app

        if ALLOTMENT in completed:
            result = outcome[ALLOTMENT]
            self.db.update_application_result(
                application_id,
                _ROW_STATUS[result.status],
                shares_allotted=result.shares,
                refund_amount=result.refund,
                allotment_date=timeline[ALLOTMENT].time,
            )
            logger.info(f"{app.symbol}: {result.status} ({result.shares} shares, refund ₹{result.refund:,.2f})")
        if LISTING in completed:
            holding = outcome[LISTING]
            self.db.record_listing(application_id, holding, timeline[LISTING].time)
            logger.info(f"{app.symbol}: listed at ₹{holding.listing_price}, P&L {holding.pnl['percent']}")
        if CLOSE in completed:
            self.db.mark_auto_closed(application_id)
            logger.info(f"{app.symbol}: auto-closed")
        return self._get(application_id)

    def process_due(self) -> List[rows.IPOApplication]:
        """Refresh every application that still has milestones ahead."""
        updated = []
        for app in self.db.get_pending_results():
            refreshed = self.refresh(app.id)
            if (refreshed.status, refreshed.listing_price, refreshed.auto_closed) != (
                app.status,
                app.listing_price,
                app.auto_closed,
            ):
                updated.append(refreshed)
        logger.info(f"Processed pending applications: {len(updated)} updated")
        return updated

    def applications(self) -> List[Dict[str, Any]]:
        """All applications, newest first, with due milestones applied."""
        self.process_due()
        return [app.to_dict() for app in self.db.get_applications()]

    def timeline(self, application_id: int) -> Dict[str, Any]:
        app = self.refresh(application_id)
        timeline = self._timeline_of(app)
        now = self.clock.now()
        event = timeline.next_event(now)
        if event:
            event = dict(event, target_time=event["target_time"].isoformat())
        can_withdraw, reason = timeline.can_withdraw()
        return {
            "id": app.id,
            "symbol": app.symbol,
            "status": app.status,
            "withdrawn": app.withdrawn,
            "current_stage": timeline.current_stage(now),
            "next_event": event,
            "can_withdraw": can_withdraw and not app.withdrawn,
            "reason": reason,
            "timeline": timeline.to_dict(),
        }

    def withdraw(self, application_id: int) -> Dict[str, Any]:
        app = self.refresh(application_id)
        if app.withdrawn:
            raise WithdrawalNotAllowedError(f"Application {application_id} already withdrawn")

        allowed, reason = self._timeline_of(app).can_withdraw()
        if not allowed:
            raise WithdrawalNotAllowedError(f"{app.symbol}: {reason}")

        amount = withdrawal_amount(app, self.max_loss_pct)
        app = self.db.mark_withdrawn(application_id, amount, self.clock.now())
        logger.info(f"{app.symbol}: withdrew ₹{amount:,.2f}")
        return {
            "application": app.to_dict(),
            "withdrawal_amount": amount,
            "original_investment": app.amount,
        }

    def holdings(self) -> List[Dict[str, Any]]:
        return [holding.to_dict() for holding in self.db.get_holdings()]

    def _get(self, application_id: int) -> rows.IPOApplication:
        app = self.db.get_application(application_id)
        if app is None:
            raise ApplicationNotFoundError(f"Application {application_id} not found")
        return app

    @staticmethod
    def _ipo_of(app: rows.IPOApplication) -> IPO:
        return IPO(
            id=app.ipo_id,
            symbol=app.symbol,
            name=app.ipo_name,
            sector="",
            price_band="",
            issue_price=app.issue_price,
            lot_size=app.lot_size,
            min_investment=app.issue_price * app.lot_size,
            issue_size="",
            risk_level=app.risk_level,
        )

    @staticmethod
    def _timeline_of(app: rows.IPOApplication) -> ApplicationTimeline:
        allotment_status = None
        if app.status == rows.ALLOTTED:
            allotment_status = ALLOTTED
        elif app.status == rows.NOT_ALLOTTED:
            allotment_status = NOT_ALLOTTED
        return ApplicationTimeline.restore(
            as_utc(app.applied_at),
            as_utc(app.allotment_at),
            as_utc(app.listing_at),
            as_utc(app.close_at),
            allotment_status=allotment_status,
            listing_price=app.listing_price,
            closed=app.auto_closed,
        )
