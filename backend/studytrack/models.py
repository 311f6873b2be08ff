"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Every user-owned table carries a `user_id` (directly, or through its
parent subject for topics and through the goal for allocations) and all
queries in the repositories filter on it.
"""

from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from datetime import datetime, date, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


GOAL_KINDS = ("general", "contest")
GOAL_STATUSES = ("pending", "in_progress", "completed")
PARTNERSHIP_STATUSES = ("pending", "accepted", "rejected")


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login, stored lowercased
    - `password_hash`: hashed password string (never store plaintext)
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Contest(SQLModel, table=True):
    """A public exam the user is preparing for."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    position: Optional[str] = None
    user_id: int = Field(foreign_key='user.id', index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Subject(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    sort_order: int = 0
    user_id: int = Field(foreign_key='user.id', index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Topic(SQLModel, table=True):
    """A topic inside a `Subject`; ownership follows the subject."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    sort_order: int = 0
    subject_id: int = Field(foreign_key='subject.id', index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Goal(SQLModel, table=True):
    """A study target with an optional time budget and date range.

    `kind` is `general` or `contest`; contest goals reference one of the
    user's contests. Minutes are stored as integers.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    kind: str = 'general'
    total_minutes: Optional[int] = None
    daily_minutes: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: str = 'pending'
    user_id: int = Field(foreign_key='user.id', index=True)
    contest_id: Optional[int] = Field(default=None, foreign_key='contest.id')
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class GoalSubjectAllocation(SQLModel, table=True):
    """Minutes of a `Goal` budgeted to one subject."""
    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(foreign_key='goal.id', index=True)
    subject_id: int = Field(foreign_key='subject.id', index=True)
    minutes: Optional[int] = None
    status: str = 'pending'
    created_at: datetime = Field(default_factory=utcnow)


class GoalTopicAllocation(SQLModel, table=True):
    """Minutes of a `Goal` budgeted to one topic."""
    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(foreign_key='goal.id', index=True)
    topic_id: int = Field(foreign_key='topic.id', index=True)
    minutes: Optional[int] = None
    status: str = 'pending'
    created_at: datetime = Field(default_factory=utcnow)


class StudySession(SQLModel, table=True):
    """One recorded study block; `duration` is in minutes."""
    id: Optional[int] = Field(default=None, primary_key=True)
    study_date: date = Field(index=True)
    duration: int
    notes: Optional[str] = None
    user_id: int = Field(foreign_key='user.id', index=True)
    subject_id: int = Field(foreign_key='subject.id', index=True)
    topic_id: int = Field(foreign_key='topic.id', index=True)
    next_topic_id: Optional[int] = Field(default=None, foreign_key='topic.id')
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Question(SQLModel, table=True):
    """A mistake-notebook entry: a question the user got wrong.

    `redone` flips once the user attempts the question again and
    `answered_correctly` records the outcome of that attempt.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    text: str
    image_url: Optional[str] = None
    comment: Optional[str] = None
    redone: bool = False
    answered_correctly: bool = False
    subject_id: int = Field(foreign_key='subject.id', index=True)
    topic_id: int = Field(foreign_key='topic.id', index=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Partnership(SQLModel, table=True):
    """One direction of a study partnership.

    The inviter owns the row created by the invite; accepting it creates
    the mirror row owned by the invitee so both sides list each other.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    partner_email: str = Field(index=True)
    partner_name: Optional[str] = None
    partner_user_id: Optional[int] = Field(default=None, foreign_key='user.id', index=True)
    status: str = 'pending'
    invite_token: Optional[str] = Field(default=None, index=True, unique=True)
    invite_expires_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SharedGoal(SQLModel, table=True):
    __table_args__ = (UniqueConstraint('goal_id', 'partnership_id'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(foreign_key='goal.id', index=True)
    partnership_id: int = Field(foreign_key='partnership.id', index=True)
    created_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    """In-app notification; `kind` is a short code such as `partner_invite`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    kind: str
    title: str
    message: str
    user_id: int = Field(foreign_key='user.id', index=True)
    partnership_id: Optional[int] = Field(default=None, foreign_key='partnership.id')
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
