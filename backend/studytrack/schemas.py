"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Failed validation is reported as a 400
with one entry per offending field (see `main.validation_error_handler`).
"""

from datetime import date
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, StringConstraints, model_validator

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Minutes = Annotated[int, Field(ge=0)]


class RegisterIn(BaseModel):
    """Payload for user registration."""
    name: NonEmptyStr
    email: EmailStr
    password: str = Field(min_length=6)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserOut(BaseModel):
    id: int
    name: str
    email: str


class TokenOut(BaseModel):
    """Authentication response containing an access token and the profile."""
    message: str
    token: str
    user: UserOut


class ContestIn(BaseModel):
    name: NonEmptyStr
    position: Optional[str] = None


class SubjectIn(BaseModel):
    name: NonEmptyStr
    description: Optional[str] = None
    sort_order: int = 0


class ReorderIn(BaseModel):
    """Subject ids in their new display order."""
    subject_ids: List[int]


class TopicIn(BaseModel):
    name: NonEmptyStr
    description: Optional[str] = None
    sort_order: int = 0


class SubjectAllocationIn(BaseModel):
    subject_id: int
    minutes: Optional[Minutes] = None


class TopicAllocationIn(BaseModel):
    topic_id: int
    minutes: Optional[Minutes] = None


class _GoalDates(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode='after')
    def _check_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError('end_date must not be before start_date')
        return self


class GoalCreate(_GoalDates):
    """Request body for creating a goal together with its allocations."""
    title: NonEmptyStr
    description: Optional[str] = None
    kind: Literal['general', 'contest']
    total_minutes: Optional[Minutes] = None
    daily_minutes: Optional[Minutes] = None
    contest_id: Optional[int] = None
    subject_allocations: List[SubjectAllocationIn] = []
    topic_allocations: List[TopicAllocationIn] = []


class GoalUpdate(_GoalDates):
    title: NonEmptyStr
    description: Optional[str] = None
    status: Optional[Literal['pending', 'in_progress', 'completed']] = None
    total_minutes: Optional[Minutes] = None
    daily_minutes: Optional[Minutes] = None


class StudySessionCreate(BaseModel):
    """A study block; `duration` is in minutes."""
    study_date: date
    duration: int = Field(ge=1)
    subject_id: int
    topic_id: int
    notes: Optional[str] = None
    next_topic_id: Optional[int] = None


class StudySessionUpdate(BaseModel):
    study_date: date
    duration: int = Field(ge=1)
    notes: Optional[str] = None
    next_topic_id: Optional[int] = None


class RedoIn(BaseModel):
    answered_correctly: bool


class InviteIn(BaseModel):
    """Invite a study partner by email."""
    email: EmailStr
    name: Optional[str] = None


class ShareGoalIn(BaseModel):
    goal_id: int
