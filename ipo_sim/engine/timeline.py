"""Per-application milestone timeline.

Milestones are evaluated lazily against the wall clock whenever somebody
looks at the application; nothing is scheduled. They complete strictly in
order: applied, allotment, listing, close.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ipo_sim.engine.models import ALLOTTED

APPLIED = "applied"
ALLOTMENT = "allotment"
LISTING = "listing"
CLOSE = "close"
MILESTONES = (APPLIED, ALLOTMENT, LISTING, CLOSE)

STAGE_COMPLETED = "completed"
STAGE_NOT_ALLOTTED = "not_allotted"

RESULT_PENDING = "Pending"
RESULT_ALLOTTED = "Allotted"
RESULT_NOT_ALLOTTED = "Not Allotted"

EVENT_TEXT = {
    ALLOTMENT: ("Allotment Result", "Allotment will be announced"),
    LISTING: ("Listing Announcement", "Listing price will be announced"),
    CLOSE: ("Auto Close", "IPO will be automatically closed"),
}


@dataclass(frozen=True)
class TimelineSettings:
    allotment_after_minutes: float = 1
    listing_after_allotment_minutes: float = 1
    auto_close_after_listing_minutes: float = 2

    @classmethod
    def from_config(cls, section: Dict[str, Any]) -> "TimelineSettings":
        defaults = cls()
        return cls(
            allotment_after_minutes=section.get(
                "allotment_after_minutes", defaults.allotment_after_minutes
            ),
            listing_after_allotment_minutes=section.get(
                "listing_after_allotment_minutes", defaults.listing_after_allotment_minutes
            ),
            auto_close_after_listing_minutes=section.get(
                "auto_close_after_listing_minutes", defaults.auto_close_after_listing_minutes
            ),
        )


@dataclass
class Milestone:
    time: datetime
    completed: bool = False
    result: Any = None


@dataclass
class ApplicationTimeline:
    milestones: Dict[str, Milestone] = field(default_factory=dict)

    @classmethod
    def start(cls, applied_at: datetime, settings: TimelineSettings) -> "ApplicationTimeline":
        allotment_at = applied_at + timedelta(minutes=settings.allotment_after_minutes)
        listing_at = allotment_at + timedelta(minutes=settings.listing_after_allotment_minutes)
        close_at = listing_at + timedelta(minutes=settings.auto_close_after_listing_minutes)
        return cls.restore(applied_at, allotment_at, listing_at, close_at)

    @classmethod
    def restore(
        cls,
        applied_at: datetime,
        allotment_at: datetime,
        listing_at: datetime,
        close_at: datetime,
        allotment_status: Optional[str] = None,
        listing_price: Optional[float] = None,
        closed: bool = False,
    ) -> "ApplicationTimeline":
        """Rebuild from stored timestamps and whatever has already happened."""
        timeline = cls(
            milestones={
                APPLIED: Milestone(applied_at, completed=True),
                ALLOTMENT: Milestone(allotment_at, result=RESULT_PENDING),
                LISTING: Milestone(listing_at),
                CLOSE: Milestone(close_at),
            }
        )
        if allotment_status is not None:
            allotment = timeline.milestones[ALLOTMENT]
            allotment.completed = True
            allotment.result = RESULT_ALLOTTED if allotment_status == ALLOTTED else RESULT_NOT_ALLOTTED
        if listing_price is not None:
            timeline.milestones[LISTING].completed = True
            timeline.milestones[LISTING].result = listing_price
            timeline.milestones[CLOSE].completed = closed
        return timeline

    def __getitem__(self, name: str) -> Milestone:
        return self.milestones[name]

    @property
    def allotment_result(self) -> str:
        return self.milestones[ALLOTMENT].result

    @property
    def not_allotted(self) -> bool:
        return self.allotment_result == RESULT_NOT_ALLOTTED

    def advance(
        self,
        now: datetime,
        allot: Optional[Callable[[], str]] = None,
        list_shares: Optional[Callable[[], Any]] = None,
    ) -> List[str]:
        """Complete every due milestone in order and return their names.

        ``allot`` is called at most once, when the allotment milestone is
        reached, and must return ALLOTTED or NOT ALLOTTED; it is required
        whenever that milestone is due. ``list_shares``
        is called when the listing milestone is reached and its return
        value becomes the listing result.
        """
        completed = []
        for previous, name in zip(MILESTONES, MILESTONES[1:]):
            milestone = self.milestones[name]
            if milestone.completed:
                continue
            if not self.milestones[previous].completed or now < milestone.time:
                break
            if self.not_allotted:
                break

            if name == ALLOTMENT:
                if allot is None:
                    raise ValueError("Allotment is due but no allot callback was given")
                status = allot()
                milestone.result = RESULT_ALLOTTED if status == ALLOTTED else RESULT_NOT_ALLOTTED
            elif name == LISTING and list_shares:
                milestone.result = list_shares()
            milestone.completed = True
            completed.append(name)
        return completed

    def next_event(self, now: datetime) -> Optional[Dict[str, Any]]:
        if self.not_allotted:
            return None
        for name in MILESTONES[1:]:
            milestone = self.milestones[name]
            if milestone.completed:
                continue
            title, message = EVENT_TEXT[name]
            return {
                "type": name,
                "target_time": milestone.time,
                "title": title,
                "message": message,
                "countdown": countdown(milestone.time, now),
            }
        return None

    def current_stage(self, now: datetime) -> str:
        if self.not_allotted:
            return STAGE_NOT_ALLOTTED
        event = self.next_event(now)
        return event["type"] if event else STAGE_COMPLETED

    def can_withdraw(self) -> Tuple[bool, str]:
        allotment = self.milestones[ALLOTMENT]
        if not allotment.completed:
            return False, "Allotment not announced yet"
        if self.not_allotted:
            return True, "Eligible for refund"
        if not self.milestones[LISTING].completed:
            return False, "Shares not listed yet"
        if not self.milestones[CLOSE].completed:
            return False, "Cannot withdraw before auto close"
        return True, "Eligible for withdrawal"

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for name in MILESTONES:
            milestone = self.milestones[name]
            entry = {"time": milestone.time.isoformat(), "completed": milestone.completed}
            if name == ALLOTMENT:
                entry["result"] = milestone.result
            elif name == LISTING:
                entry["price"] = milestone.result
            data[name] = entry
        return data


def countdown(target: datetime, now: datetime) -> Dict[str, Any]:
    remaining = int((target - now).total_seconds())
    if remaining <= 0:
        return {
            "days": 0,
            "hours": 0,
            "minutes": 0,
            "seconds": 0,
            "total_seconds": 0,
            "completed": True,
            "formatted": "Completed",
            "short": "Completed",
        }

    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = [f"{value}{label}" for value, label in ((days, "d"), (hours, "h"), (minutes, "m")) if value]
    if seconds or not parts:
        parts.append(f"{seconds}s")

    if remaining >= 60:
        short = f"{remaining // 60}:{remaining % 60:02d}"
    else:
        short = f"{seconds}s"

    return {
        "days": days,
        "hours": hours,
        "minutes": minutes,
        "seconds": seconds,
        "total_seconds": remaining,
        "completed": False,
        "formatted": " ".join(parts),
        "short": short,
    }
