from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ObligationStatus(str, Enum):
    """pending -> active -> completed | failed, or pending -> rejected"""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


class ParticipantStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


ObligationKind = Literal["task", "challenge"]


@dataclass
class CompletionRecord:
    """Completed period keys for one (obligation, participant) pair."""

    completed_keys: set[date] = field(default_factory=set)
    last_uncompleted_date: Optional[date] = None

    def sorted_keys(self) -> List[date]:
        return sorted(self.completed_keys)


@dataclass
class Participant:
    """Membership of one user in an obligation, plus that user's progress."""

    user_id: str
    status: ParticipantStatus = ParticipantStatus.PENDING
    responded_at: Optional[datetime] = None
    progress: CompletionRecord = field(default_factory=CompletionRecord)

    @property
    def completed_keys(self) -> set[date]:
        return self.progress.completed_keys

    @property
    def last_uncompleted_date(self) -> Optional[date]:
        return self.progress.last_uncompleted_date


@dataclass
class Obligation:
    obligation_id: str
    owner_id: str
    title: str
    period: Period
    start_date: date
    created_at: datetime
    description: str = ""
    end_date: Optional[date] = None
    status: ObligationStatus = ObligationStatus.PENDING
    penalty_amount: Decimal = Decimal("0.00")
    # Creation day in the reference timezone; created_at may be in another zone.
    created_on: Optional[date] = None

    kind: ClassVar[ObligationKind]
    # Whether completions must clear the oldest outstanding period first.
    requires_catch_up: ClassVar[bool] = False

    @property
    def anchor_date(self) -> date:
        return self.start_date

    @property
    def accrual_floor(self) -> date:
        """First date a missed period can be charged for."""
        return max(self.start_date, self.created_on or self.created_at.date())

    @property
    def is_closed(self) -> bool:
        return self.status in (ObligationStatus.COMPLETED, ObligationStatus.FAILED, ObligationStatus.REJECTED)

    def accepted_participants(self) -> List[Participant]:
        raise NotImplementedError

    def participant(self, user_id: str) -> Optional[Participant]:
        raise NotImplementedError


@dataclass
class Task(Obligation):
    penalty_recipient_ids: List[str] = field(default_factory=list)
    owner: Optional[Participant] = None

    kind: ClassVar[ObligationKind] = "task"
    requires_catch_up: ClassVar[bool] = False

    def __post_init__(self):
        if self.owner is None:
            self.owner = Participant(user_id=self.owner_id, status=ParticipantStatus.ACCEPTED)

    def accepted_participants(self) -> List[Participant]:
        return [self.owner]

    def participant(self, user_id: str) -> Optional[Participant]:
        return self.owner if user_id == self.owner_id else None


@dataclass
class Challenge(Obligation):
    invited_user_ids: List[str] = field(default_factory=list)
    participants: Dict[str, Participant] = field(default_factory=dict)
    activated_on: Optional[date] = None

    kind: ClassVar[ObligationKind] = "challenge"
    requires_catch_up: ClassVar[bool] = True

    @property
    def creator_id(self) -> str:
        return self.owner_id

    @property
    def accrual_floor(self) -> date:
        """Nobody is charged for days the challenge spent waiting on invitees."""
        floor = super().accrual_floor
        if self.activated_on is not None:
            floor = max(floor, self.activated_on)
        return floor

    def accepted_participants(self) -> List[Participant]:
        return [p for p in self.participants.values() if p.status == ParticipantStatus.ACCEPTED]

    def participant(self, user_id: str) -> Optional[Participant]:
        return self.participants.get(user_id)

    def is_member(self, user_id: str) -> bool:
        return user_id == self.owner_id or user_id in self.invited_user_ids

    def response_of(self, user_id: str) -> ParticipantStatus:
        """Invited users without a record are implicitly pending."""
        record = self.participants.get(user_id)
        return record.status if record else ParticipantStatus.PENDING


AnyObligation = Union[Task, Challenge]


@dataclass
class ProgressSnapshot:
    """Result of a complete/uncomplete call for one participant."""

    obligation_id: str
    user_id: str
    period_key: date
    completed_keys: List[date]
    last_uncompleted_date: Optional[date]
    changed: bool


@dataclass
class ObligationStats:
    obligation_id: str
    user_id: str
    total_completions: int
    current_streak: int
    longest_streak: int
    completion_rate: float
    penalty_amount: Decimal


class CreateTaskRequest(BaseModel):
    """Request to create a personal recurring task"""

    title: str
    description: str = ""
    period: str = Field(description="daily | weekly | monthly")
    start_date: Optional[date] = Field(default=None, description="Defaults to today")
    end_date: Optional[date] = None
    penalty_amount: Decimal = Decimal("0")
    penalty_recipient_ids: List[str] = Field(default_factory=list)


class CreateChallengeRequest(BaseModel):
    """Request to create a multi-party challenge; invitees are fixed at creation"""

    title: str
    description: str = ""
    period: str = Field(description="daily | weekly | monthly")
    start_date: Optional[date] = Field(default=None, description="Defaults to today")
    end_date: Optional[date] = None
    penalty_amount: Decimal = Decimal("0")
    invited_user_ids: List[str] = Field(default_factory=list)
