from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone

Base = declarative_base()

APPLIED = "applied"
ALLOTTED = "allotted"
NOT_ALLOTTED = "not_allotted"


def _iso(value):
    return value.isoformat() if value else None


class IPOApplication(Base):
    __tablename__ = "ipo_applications"

    id = Column(Integer, primary_key=True)
    ipo_id = Column(String(100), nullable=False)
    symbol = Column(String(50), nullable=False, index=True)
    ipo_name = Column(String(255), nullable=False)
    lots = Column(Integer, nullable=False)
    shares_applied = Column(Integer, nullable=False)
    amount = Column(Float, nullable=False)
    issue_price = Column(Float, nullable=False)
    lot_size = Column(Integer, nullable=False)
    risk_level = Column(String(20), nullable=False)
    status = Column(String(50), default=APPLIED, nullable=False, index=True)

    applied_at = Column(DateTime(timezone=True), nullable=False)
    allotment_at = Column(DateTime(timezone=True), nullable=False)
    listing_at = Column(DateTime(timezone=True), nullable=False)
    close_at = Column(DateTime(timezone=True), nullable=False)

    allotment_date = Column(DateTime(timezone=True), nullable=True)
    shares_allotted = Column(Integer, default=0)
    refund_amount = Column(Float, default=0)

    listing_date = Column(DateTime(timezone=True), nullable=True)
    listing_price = Column(Float, nullable=True)
    pnl_change = Column(Float, nullable=True)
    pnl_percent = Column(String(20), nullable=True)
    pnl_positive = Column(Boolean, nullable=True)
    auto_closed = Column(Boolean, default=False, nullable=False)

    withdrawn = Column(Boolean, default=False, nullable=False)
    withdrawal_date = Column(DateTime(timezone=True), nullable=True)
    withdrawal_amount = Column(Float, nullable=True)

    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        data = {
            'id': self.id,
            'ipo_id': self.ipo_id,
            'symbol': self.symbol,
            'ipo_name': self.ipo_name,
            'lots': self.lots,
            'shares_applied': self.shares_applied,
            'amount': self.amount,
            'issue_price': self.issue_price,
            'status': self.status,
            'applied_at': _iso(self.applied_at),
            'allotment_date': _iso(self.allotment_date),
            'shares_allotted': self.shares_allotted,
            'refund_amount': self.refund_amount,
            'listing_price': self.listing_price,
            'withdrawn': self.withdrawn,
        }
        if self.listing_price is not None:
            data['pnl'] = {
                'change': self.pnl_change,
                'percent': self.pnl_percent,
                'positive': self.pnl_positive,
            }
        if self.withdrawn:
            data['withdrawal_date'] = _iso(self.withdrawal_date)
            data['withdrawal_amount'] = self.withdrawal_amount
        return data


class IPOHolding(Base):
    __tablename__ = "ipo_holdings"

    id = Column(Integer, primary_key=True)
    application_id = Column(Integer, ForeignKey("ipo_applications.id"), nullable=False)
    symbol = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    avg_price = Column(Float, nullable=False)
    listing_price = Column(Float, nullable=False)
    pnl_change = Column(Float, nullable=False)
    pnl_percent = Column(String(20), nullable=False)
    pnl_positive = Column(Boolean, nullable=False)
    type = Column(String(20), default="IPO", nullable=False)
    withdrawn = Column(Boolean, default=False, nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self):
        return {
            'id': self.id,
            'application_id': self.application_id,
            'symbol': self.symbol,
            'name': self.name,
            'quantity': self.quantity,
            'avg_price': self.avg_price,
            'listing_price': self.listing_price,
            'type': self.type,
            'pnl': {
                'change': self.pnl_change,
                'percent': self.pnl_percent,
                'positive': self.pnl_positive,
            },
            'withdrawn': self.withdrawn,
        }
