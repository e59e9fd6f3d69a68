from sqlalchemy import create_engine, or_
from sqlalchemy.orm import sessionmaker, Session
from ipo_sim.database.models import (
    Base,
    IPOApplication,
    IPOHolding,
    APPLIED,
    ALLOTTED,
)
from ipo_sim.config import Config
from ipo_sim.engine.models import Holding
from datetime import datetime
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, config: Config):
        self.config = config
        db_config = config.get_database()

        if db_config.get("type") == "postgresql":
            db_url = f"postgresql://{db_config.get('user')}:{db_config.get('password')}@{db_config.get('host')}:{db_config.get('port', 5432)}/{db_config.get('database')}"
        else:
            db_url = f"sqlite:///{db_config.get('path', 'ipo_applications.db')}"

        self.engine = create_engine(db_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        return self.SessionLocal()

    def add_application(self, **fields) -> IPOApplication:
        session = self.get_session()
        try:
            app = IPOApplication(status=APPLIED, **fields)
            session.add(app)
            session.commit()
            session.refresh(app)
            return app
        except Exception as e:
            session.rollback()
            logger.error(f"Error adding application: {e}")
            raise
        finally:
            session.close()

    def get_application(self, application_id: int) -> Optional[IPOApplication]:
        session = self.get_session()
        try:
            return session.get(IPOApplication, application_id)
        finally:
            session.close()

    def update_application_result(
        self,
        application_id: int,
        status: str,
        shares_allotted: int,
        refund_amount: float,
        allotment_date: datetime,
    ) -> Optional[IPOApplication]:
        session = self.get_session()
        try:
            # Only a row still waiting on its draw may change.
            updated = (
                session.query(IPOApplication)
                .filter(IPOApplication.id == application_id, IPOApplication.status == APPLIED)
                .update(
                    {
                        IPOApplication.status: status,
                        IPOApplication.shares_allotted: shares_allotted,
                        IPOApplication.refund_amount: refund_amount,
                        IPOApplication.allotment_date: allotment_date,
                    },
                    synchronize_session=False,
                )
            )
            session.commit()
            app = session.get(IPOApplication, application_id)
            if app is not None and not updated:
                logger.warning(
                    f"Application {application_id} already resolved as {app.status}, keeping it"
                )
            return app
        except Exception as e:
            session.rollback()
            logger.error(f"Error updating result: {e}")
            raise
        finally:
            session.close()

    def record_listing(
        self, application_id: int, holding: Holding, listing_date: datetime
    ) -> Optional[IPOHolding]:
        """Store the listing outcome and its holding once per allotted application.

        Returns the holding already on record when the application is not
        allotted or has been listed before.
        """
        session = self.get_session()
        try:
            updated = (
                session.query(IPOApplication)
                .filter(
                    IPOApplication.id == application_id,
                    IPOApplication.status == ALLOTTED,
                    IPOApplication.listing_price.is_(None),
                )
                .update(
                    {
                        IPOApplication.listing_date: listing_date,
                        IPOApplication.listing_price: holding.listing_price,
                        IPOApplication.pnl_change: holding.pnl["change"],
                        IPOApplication.pnl_percent: holding.pnl["percent"],
                        IPOApplication.pnl_positive: holding.pnl["positive"],
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                session.rollback()
                logger.warning(
                    f"Application {application_id} is not awaiting a listing, keeping its record"
                )
                return session.query(IPOHolding).filter_by(application_id=application_id).first()

            row = IPOHolding(
                application_id=application_id,
                symbol=holding.symbol,
                name=holding.name,
                quantity=holding.quantity,
                avg_price=holding.avg_price,
                listing_price=holding.listing_price,
                pnl_change=holding.pnl["change"],
                pnl_percent=holding.pnl["percent"],
                pnl_positive=holding.pnl["positive"],
                type=holding.type,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return row
        except Exception as e:
            session.rollback()
            logger.error(f"Error recording listing: {e}")
            raise
        finally:
            session.close()

    def mark_auto_closed(self, application_id: int):
        session = self.get_session()
        try:
            app = session.get(IPOApplication, application_id)
            app.auto_closed = True
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Error closing application: {e}")
            raise
        finally:
            session.close()

    def mark_withdrawn(
        self, application_id: int, amount: float, withdrawal_date: datetime
    ) -> IPOApplication:
        session = self.get_session()
        try:
            app = session.get(IPOApplication, application_id)
            app.withdrawn = True
            app.withdrawal_amount = amount
            app.withdrawal_date = withdrawal_date
            session.query(IPOHolding).filter_by(application_id=application_id).update(
                {IPOHolding.withdrawn: True}
            )
            session.commit()
            return app
        except Exception as e:
            session.rollback()
            logger.error(f"Error withdrawing application: {e}")
            raise
        finally:
            session.close()

    def get_pending_results(self) -> List[IPOApplication]:
        session = self.get_session()
        try:
            return (
                session.query(IPOApplication)
                .filter(
                    IPOApplication.withdrawn.is_(False),
                    or_(
                        IPOApplication.status == APPLIED,
                        (IPOApplication.status == ALLOTTED)
                        & IPOApplication.auto_closed.is_(False),
                    ),
                )
                .order_by(IPOApplication.applied_at)
                .all()
            )
        finally:
            session.close()

    def get_applications(self) -> List[IPOApplication]:
        session = self.get_session()
        try:
            return session.query(IPOApplication).order_by(IPOApplication.applied_at.desc()).all()
        finally:
            session.close()

    def get_holdings(self, include_withdrawn: bool = False) -> List[IPOHolding]:
        session = self.get_session()
        try:
            query = session.query(IPOHolding)
            if not include_withdrawn:
                query = query.filter(IPOHolding.withdrawn.is_(False))
            return query.order_by(IPOHolding.id).all()
        finally:
            session.close()
