"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
contests, subjects, topics, goals, study sessions, questions,
partnerships, notifications). Reads always take the caller's `user_id`
so rows owned by someone else are indistinguishable from missing rows.

Repositories only `add`/`flush`; committing is left to the services,
which group related writes into one `database.atomic` block.
"""

from datetime import date, datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, update
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from . import models


class _Repository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, obj):
        """Stage `obj` and flush so its primary key is populated."""
        self.session.add(obj)
        self.session.flush()
        return obj

    def remove(self, obj) -> None:
        self.session.delete(obj)
        self.session.flush()


class UserRepository(_Repository):
    """Lookups for `User` objects."""

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by (case-insensitive) email or `None`."""
        stmt = select(models.User).where(models.User.email == email.strip().lower())
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class ContestRepository(_Repository):
    def list_for_user(self, user_id: int) -> List[models.Contest]:
        stmt = select(models.Contest).where(models.Contest.user_id == user_id).order_by(
            models.Contest.created_at.desc(), models.Contest.id.desc()
        )
        return self.session.exec(stmt).all()

    def get_owned(self, contest_id: int, user_id: int) -> Optional[models.Contest]:
        stmt = select(models.Contest).where(models.Contest.id == contest_id, models.Contest.user_id == user_id)
        return self.session.exec(stmt).first()

    def detach_goals(self, contest_id: int) -> None:
        """Turn goals tied to `contest_id` into general goals."""
        self.session.execute(
            update(models.Goal)
            .where(models.Goal.contest_id == contest_id)
            .values(contest_id=None, kind='general', updated_at=models.utcnow())
        )


class SubjectRepository(_Repository):
    def list_for_user(self, user_id: int) -> List[models.Subject]:
        """Return the user's subjects in display order."""
        stmt = select(models.Subject).where(models.Subject.user_id == user_id).order_by(
            models.Subject.sort_order, models.Subject.name
        )
        return self.session.exec(stmt).all()

    def get_owned(self, subject_id: int, user_id: int) -> Optional[models.Subject]:
        stmt = select(models.Subject).where(models.Subject.id == subject_id, models.Subject.user_id == user_id)
        return self.session.exec(stmt).first()

    def list_owned_by_ids(self, subject_ids: Sequence[int], user_id: int) -> List[models.Subject]:
        if not subject_ids:
            return []
        stmt = select(models.Subject).where(models.Subject.id.in_(subject_ids), models.Subject.user_id == user_id)
        return self.session.exec(stmt).all()

    def purge(self, subject_id: int) -> None:
        """Delete a subject and the rows hanging directly off it.

        Topics must be purged first (see `TopicRepository.purge`).
        """
        self.session.execute(delete(models.StudySession).where(models.StudySession.subject_id == subject_id))
        self.session.execute(delete(models.Question).where(models.Question.subject_id == subject_id))
        self.session.execute(
            delete(models.GoalSubjectAllocation).where(models.GoalSubjectAllocation.subject_id == subject_id)
        )
        self.session.execute(delete(models.Subject).where(models.Subject.id == subject_id))


class TopicRepository(_Repository):
    def list_for_subject(self, subject_id: int) -> List[models.Topic]:
        stmt = select(models.Topic).where(models.Topic.subject_id == subject_id).order_by(
            models.Topic.sort_order, models.Topic.name
        )
        return self.session.exec(stmt).all()

    def get_in_subject(self, topic_id: int, subject_id: int) -> Optional[models.Topic]:
        stmt = select(models.Topic).where(models.Topic.id == topic_id, models.Topic.subject_id == subject_id)
        return self.session.exec(stmt).first()

    def get_owned(self, topic_id: int, user_id: int) -> Optional[models.Topic]:
        """Fetch a topic whose subject belongs to `user_id`."""
        stmt = (
            select(models.Topic)
            .join(models.Subject, models.Topic.subject_id == models.Subject.id)
            .where(models.Topic.id == topic_id, models.Subject.user_id == user_id)
        )
        return self.session.exec(stmt).first()

    def ids_for_subject(self, subject_id: int) -> List[int]:
        stmt = select(models.Topic.id).where(models.Topic.subject_id == subject_id)
        return list(self.session.exec(stmt).all())

    def purge(self, topic_ids: Sequence[int]) -> None:
        """Delete topics with their allocations, sessions and questions.

        Sessions elsewhere that point at a purged topic as their next
        topic keep existing with `next_topic_id` cleared.
        """
        ids = list(topic_ids)
        if not ids:
            return
        self.session.execute(
            update(models.StudySession)
            .where(models.StudySession.next_topic_id.in_(ids))
            .values(next_topic_id=None)
        )
        self.session.execute(delete(models.StudySession).where(models.StudySession.topic_id.in_(ids)))
        self.session.execute(delete(models.Question).where(models.Question.topic_id.in_(ids)))
        self.session.execute(delete(models.GoalTopicAllocation).where(models.GoalTopicAllocation.topic_id.in_(ids)))
        self.session.execute(delete(models.Topic).where(models.Topic.id.in_(ids)))


class GoalRepository(_Repository):
    """Goals and their subject/topic allocations."""

    def list_for_user(self, user_id: int):
        """Return `(goal, contest_name)` pairs, newest first."""
        stmt = (
            select(models.Goal, models.Contest.name)
            .join(models.Contest, models.Goal.contest_id == models.Contest.id, isouter=True)
            .where(models.Goal.user_id == user_id)
            .order_by(models.Goal.created_at.desc(), models.Goal.id.desc())
        )
        return self.session.exec(stmt).all()

    def get_owned(self, goal_id: int, user_id: int) -> Optional[models.Goal]:
        stmt = select(models.Goal).where(models.Goal.id == goal_id, models.Goal.user_id == user_id)
        return self.session.exec(stmt).first()

    def subject_allocations(self, goal_id: int):
        """Return `(allocation, subject_name)` pairs for a goal."""
        stmt = (
            select(models.GoalSubjectAllocation, models.Subject.name)
            .join(models.Subject, models.GoalSubjectAllocation.subject_id == models.Subject.id)
            .where(models.GoalSubjectAllocation.goal_id == goal_id)
            .order_by(models.GoalSubjectAllocation.id)
        )
        return self.session.exec(stmt).all()

    def topic_allocations(self, goal_id: int):
        """Return `(allocation, topic_name, subject_name)` tuples for a goal."""
        stmt = (
            select(models.GoalTopicAllocation, models.Topic.name, models.Subject.name)
            .join(models.Topic, models.GoalTopicAllocation.topic_id == models.Topic.id)
            .join(models.Subject, models.Topic.subject_id == models.Subject.id)
            .where(models.GoalTopicAllocation.goal_id == goal_id)
            .order_by(models.GoalTopicAllocation.id)
        )
        return self.session.exec(stmt).all()

    def allocated_subject_ids(self, goal_id: int) -> List[int]:
        stmt = select(models.GoalSubjectAllocation.subject_id).where(
            models.GoalSubjectAllocation.goal_id == goal_id
        ).distinct()
        return list(self.session.exec(stmt).all())

    def delete_dependents(self, goal_id: int) -> None:
        """Remove allocations and shares of a goal."""
        for table in (models.GoalSubjectAllocation, models.GoalTopicAllocation, models.SharedGoal):
            self.session.execute(delete(table).where(table.goal_id == goal_id))


class StudySessionRepository(_Repository):
    """Study session queries; list/get rows carry subject and topic names."""

    def _detail_select(self):
        topic = aliased(models.Topic)
        next_topic = aliased(models.Topic)
        return (
            select(models.StudySession, models.Subject.name, topic.name, next_topic.name)
            .join(models.Subject, models.StudySession.subject_id == models.Subject.id)
            .join(topic, models.StudySession.topic_id == topic.id)
            .join(next_topic, models.StudySession.next_topic_id == next_topic.id, isouter=True)
        )

    def list_for_user(
        self,
        user_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        subject_id: Optional[int] = None,
        topic_id: Optional[int] = None,
    ):
        """Return detail rows filtered by the optional criteria, newest first."""
        stmt = self._detail_select().where(models.StudySession.user_id == user_id)
        if start_date is not None:
            stmt = stmt.where(models.StudySession.study_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(models.StudySession.study_date <= end_date)
        if subject_id is not None:
            stmt = stmt.where(models.StudySession.subject_id == subject_id)
        if topic_id is not None:
            stmt = stmt.where(models.StudySession.topic_id == topic_id)
        stmt = stmt.order_by(models.StudySession.study_date.desc(), models.StudySession.created_at.desc())
        return self.session.exec(stmt).all()

    def get_detail(self, session_id: int, user_id: int):
        stmt = self._detail_select().where(
            models.StudySession.id == session_id, models.StudySession.user_id == user_id
        )
        return self.session.exec(stmt).first()

    def get_owned(self, session_id: int, user_id: int) -> Optional[models.StudySession]:
        stmt = select(models.StudySession).where(
            models.StudySession.id == session_id, models.StudySession.user_id == user_id
        )
        return self.session.exec(stmt).first()


class QuestionRepository(_Repository):
    """Mistake-notebook queries."""

    def _detail_select(self):
        return (
            select(models.Question, models.Subject.name, models.Topic.name)
            .join(models.Subject, models.Question.subject_id == models.Subject.id)
            .join(models.Topic, models.Question.topic_id == models.Topic.id)
        )

    def list_for_user(
        self,
        user_id: int,
        subject_id: Optional[int] = None,
        topic_id: Optional[int] = None,
        redone: Optional[bool] = None,
        answered_correctly: Optional[bool] = None,
    ):
        stmt = self._detail_select().where(models.Question.user_id == user_id)
        if subject_id is not None:
            stmt = stmt.where(models.Question.subject_id == subject_id)
        if topic_id is not None:
            stmt = stmt.where(models.Question.topic_id == topic_id)
        if redone is not None:
            stmt = stmt.where(models.Question.redone == redone)
        if answered_correctly is not None:
            stmt = stmt.where(models.Question.answered_correctly == answered_correctly)
        stmt = stmt.order_by(models.Question.created_at.desc(), models.Question.id.desc())
        return self.session.exec(stmt).all()

    def pending_review(self, user_id: int, limit: int = 20):
        """Entries never redone, or redone and still wrong, oldest first."""
        stmt = (
            self._detail_select()
            .where(
                models.Question.user_id == user_id,
                (models.Question.redone == False) | (models.Question.answered_correctly == False),  # noqa: E712
            )
            .order_by(models.Question.created_at, models.Question.id)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def get_detail(self, question_id: int, user_id: int):
        stmt = self._detail_select().where(models.Question.id == question_id, models.Question.user_id == user_id)
        return self.session.exec(stmt).first()

    def get_owned(self, question_id: int, user_id: int) -> Optional[models.Question]:
        stmt = select(models.Question).where(models.Question.id == question_id, models.Question.user_id == user_id)
        return self.session.exec(stmt).first()

    def image_urls_where(self, *criteria) -> List[str]:
        stmt = select(models.Question.image_url).where(models.Question.image_url.is_not(None), *criteria)
        return list(self.session.exec(stmt).all())


class PartnershipRepository(_Repository):
    """Partnership rows (one per direction) and the shares made through them."""

    def list_for_user(self, user_id: int) -> List[models.Partnership]:
        stmt = select(models.Partnership).where(models.Partnership.user_id == user_id).order_by(
            models.Partnership.created_at.desc(), models.Partnership.id.desc()
        )
        return self.session.exec(stmt).all()

    def get_owned(self, partnership_id: int, user_id: int) -> Optional[models.Partnership]:
        stmt = select(models.Partnership).where(
            models.Partnership.id == partnership_id, models.Partnership.user_id == user_id
        )
        return self.session.exec(stmt).first()

    def get_by_token(self, token: str) -> Optional[models.Partnership]:
        stmt = select(models.Partnership).where(models.Partnership.invite_token == token)
        return self.session.exec(stmt).first()

    def find_by_email(self, user_id: int, email: str) -> Optional[models.Partnership]:
        stmt = select(models.Partnership).where(
            models.Partnership.user_id == user_id, models.Partnership.partner_email == email
        )
        return self.session.exec(stmt).first()

    def find_link(self, user_id: int, partner_user_id: int) -> Optional[models.Partnership]:
        """Return the row `user_id` owns that points at `partner_user_id`."""
        stmt = select(models.Partnership).where(
            models.Partnership.user_id == user_id, models.Partnership.partner_user_id == partner_user_id
        )
        return self.session.exec(stmt).first()

    def pending_for_email(self, email: str, now: datetime):
        """Return `(partnership, inviter_name)` for unexpired pending invites to `email`."""
        stmt = (
            select(models.Partnership, models.User.name)
            .join(models.User, models.Partnership.user_id == models.User.id)
            .where(
                models.Partnership.partner_email == email,
                models.Partnership.status == 'pending',
                models.Partnership.invite_expires_at > now,
            )
            .order_by(models.Partnership.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def get_share(self, goal_id: int, partnership_id: int) -> Optional[models.SharedGoal]:
        stmt = select(models.SharedGoal).where(
            models.SharedGoal.goal_id == goal_id, models.SharedGoal.partnership_id == partnership_id
        )
        return self.session.exec(stmt).first()

    def shared_goals(self, partnership_id: int):
        """Return `(share, goal)` pairs shared through one partnership row."""
        stmt = (
            select(models.SharedGoal, models.Goal)
            .join(models.Goal, models.SharedGoal.goal_id == models.Goal.id)
            .where(models.SharedGoal.partnership_id == partnership_id)
            .order_by(models.SharedGoal.created_at.desc(), models.SharedGoal.id.desc())
        )
        return self.session.exec(stmt).all()

    def shared_with_user(self, user_id: int):
        """Return `(share, goal, sharer_name)` for accepted rows pointing at `user_id`."""
        stmt = (
            select(models.SharedGoal, models.Goal, models.User.name)
            .join(models.Partnership, models.SharedGoal.partnership_id == models.Partnership.id)
            .join(models.Goal, models.SharedGoal.goal_id == models.Goal.id)
            .join(models.User, models.Partnership.user_id == models.User.id)
            .where(models.Partnership.partner_user_id == user_id, models.Partnership.status == 'accepted')
            .order_by(models.SharedGoal.created_at.desc(), models.SharedGoal.id.desc())
        )
        return self.session.exec(stmt).all()

    def delete_rows(self, partnership_ids: Sequence[int]) -> None:
        """Delete partnership rows with their shares; notifications are kept unlinked."""
        ids = list(partnership_ids)
        if not ids:
            return
        self.session.execute(
            update(models.Notification)
            .where(models.Notification.partnership_id.in_(ids))
            .values(partnership_id=None)
        )
        self.session.execute(delete(models.SharedGoal).where(models.SharedGoal.partnership_id.in_(ids)))
        self.session.execute(delete(models.Partnership).where(models.Partnership.id.in_(ids)))


class NotificationRepository(_Repository):
    def list_for_user(self, user_id: int, unread_only: bool = False, limit: int = 50) -> List[models.Notification]:
        stmt = select(models.Notification).where(models.Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(models.Notification.read == False)  # noqa: E712
        stmt = stmt.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).limit(limit)
        return self.session.exec(stmt).all()

    def get_owned(self, notification_id: int, user_id: int) -> Optional[models.Notification]:
        stmt = select(models.Notification).where(
            models.Notification.id == notification_id, models.Notification.user_id == user_id
        )
        return self.session.exec(stmt).first()

    def mark_all_read(self, user_id: int) -> int:
        result = self.session.execute(
            update(models.Notification)
            .where(models.Notification.user_id == user_id, models.Notification.read == False)  # noqa: E712
            .values(read=True)
        )
        return result.rowcount or 0
