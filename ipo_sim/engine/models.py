from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Optional

UPCOMING = "upcoming"
OPEN = "open"
CLOSED = "closed"

ALLOTTED = "ALLOTTED"
NOT_ALLOTTED = "NOT ALLOTTED"

RISK_LEVELS = ("Low", "Medium", "High")


def _parse_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass(frozen=True)
class DateWindow:
    open_date: date
    close_date: date
    listing_date: date


@dataclass
class IPO:
    id: str
    symbol: str
    name: str
    sector: str
    price_band: str
    issue_price: float
    lot_size: int
    min_investment: float
    issue_size: str
    risk_level: str
    description: str = ""
    open_date: Optional[date] = None
    close_date: Optional[date] = None
    listing_date: Optional[date] = None
    actual_listing_price: Optional[float] = None
    listing_gain: Optional[str] = None

    def status_on(self, today: date) -> str:
        """Status is derived from the window, never stored."""
        if self.open_date is None or today < self.open_date:
            return UPCOMING
        if today <= self.close_date:
            return OPEN
        return CLOSED

    def with_window(self, window: DateWindow) -> "IPO":
        return replace(
            self,
            open_date=window.open_date,
            close_date=window.close_date,
            listing_date=window.listing_date,
        )

    def to_dict(self, today: Optional[date] = None) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "sector": self.sector,
            "price_band": self.price_band,
            "issue_price": self.issue_price,
            "lot_size": self.lot_size,
            "min_investment": self.min_investment,
            "issue_size": self.issue_size,
            "risk_level": self.risk_level,
            "description": self.description,
            "open_date": self.open_date.isoformat() if self.open_date else None,
            "close_date": self.close_date.isoformat() if self.close_date else None,
            "listing_date": self.listing_date.isoformat() if self.listing_date else None,
            "actual_listing_price": self.actual_listing_price,
            "listing_gain": self.listing_gain,
        }
        if today is not None:
            data["status"] = self.status_on(today)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IPO":
        return cls(
            id=str(data["id"]),
            symbol=data["symbol"],
            name=data["name"],
            sector=data.get("sector", ""),
            price_band=data.get("price_band", ""),
            issue_price=data["issue_price"],
            lot_size=data["lot_size"],
            min_investment=data.get("min_investment", data["issue_price"] * data["lot_size"]),
            issue_size=data.get("issue_size", ""),
            risk_level=data.get("risk_level", "Medium"),
            description=data.get("description", ""),
            open_date=_parse_date(data.get("open_date")),
            close_date=_parse_date(data.get("close_date")),
            listing_date=_parse_date(data.get("listing_date")),
            actual_listing_price=data.get("actual_listing_price"),
            listing_gain=data.get("listing_gain"),
        )


@dataclass
class RotationPool:
    open: List[IPO] = field(default_factory=list)
    upcoming: List[IPO] = field(default_factory=list)
    closed: List[IPO] = field(default_factory=list)
    initialized: bool = False
    last_rotation_date: Optional[date] = None

    def counts(self) -> str:
        return f"{len(self.open)} Open, {len(self.upcoming)} Upcoming, {len(self.closed)} Closed"


@dataclass
class PoolSnapshot:
    as_of: date
    open: List[IPO]
    upcoming: List[IPO]
    closed: List[IPO]

    @classmethod
    def of(cls, pool: RotationPool, as_of: date) -> "PoolSnapshot":
        return cls(
            as_of=as_of,
            open=[replace(ipo) for ipo in pool.open],
            upcoming=[replace(ipo) for ipo in pool.upcoming],
            closed=[replace(ipo) for ipo in pool.closed],
        )

    @property
    def all(self) -> List[IPO]:
        return self.open + self.upcoming + self.closed

    def find_open(self, symbol: str) -> Optional[IPO]:
        return next((ipo for ipo in self.open if ipo.symbol == symbol), None)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            OPEN: [ipo.to_dict(self.as_of) for ipo in self.open],
            UPCOMING: [ipo.to_dict(self.as_of) for ipo in self.upcoming],
            CLOSED: [ipo.to_dict(self.as_of) for ipo in self.closed],
        }


@dataclass(frozen=True)
class AllotmentResult:
    status: str
    shares: int
    refund: float

    @property
    def allotted(self) -> bool:
        return self.status == ALLOTTED


@dataclass(frozen=True)
class ListingPerformance:
    listed_price: int
    change: float
    percent_change: str
    positive: bool


@dataclass
class Holding:
    symbol: str
    name: str
    quantity: int
    avg_price: float
    listing_price: int
    pnl: Dict[str, Any]
    type: str = "IPO"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "quantity": self.quantity,
            "avg_price": self.avg_price,
            "listing_price": self.listing_price,
            "type": self.type,
            "pnl": dict(self.pnl),
        }
