"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and auxiliary logic for the CRUD resources. Services are intentionally
thin: they perform ownership checks and validation, execute domain
logic and persist aggregates via repositories inside one transaction.

Ownership failures raise `NotFoundError`, so a row that belongs to
another user looks exactly like a missing one.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

import jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories, schemas
from .config import settings
from .database import atomic
from .errors import BadRequestError, ConflictError, NotFoundError
from .utils import uploads

logger = logging.getLogger("studytrack.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# (payload, filename, content_type) of an uploaded image
ImageUpload = Tuple[bytes, str, Optional[str]]


def public_user(user: models.User) -> dict:
    return {'id': user.id, 'name': user.name, 'email': user.email}


def _touch(obj) -> None:
    obj.updated_at = models.utcnow()


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, name: str, email: str, password: str) -> models.User:
        """Create a new user with a hashed password.

        Emails are unique and compared case-insensitively; a duplicate
        raises `ConflictError`.
        """
        email = email.strip().lower()
        if self.user_repo.get_by_email(email):
            raise ConflictError('email already registered')
        user = models.User(name=name.strip(), email=email, password_hash=PWD_CTX.hash(password))
        try:
            with atomic(self.session):
                self.user_repo.add(user)
        except IntegrityError:
            raise ConflictError('email already registered')
        self.session.refresh(user)
        logger.info("registered user %s", user.id)
        return user

    def authenticate(self, email: str, password: str) -> Optional[models.User]:
        """Return the user when the credentials match, otherwise `None`."""
        user = self.user_repo.get_by_email(email)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return user

    def issue_token(self, user: models.User) -> str:
        """Sign a JWT carrying `{id, name, email}`."""
        expire = datetime.now(timezone.utc) + timedelta(days=settings.JWT_EXPIRE_DAYS)
        payload = {"id": user.id, "name": user.name, "email": user.email, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def profile(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError('user not found')
        return user


class ContestService:
    def __init__(self, session: Session):
        self.session = session
        self.contests = repositories.ContestRepository(session)

    def list(self, user_id: int) -> List[models.Contest]:
        return self.contests.list_for_user(user_id)

    def get(self, contest_id: int, user_id: int) -> models.Contest:
        contest = self.contests.get_owned(contest_id, user_id)
        if not contest:
            raise NotFoundError('contest not found')
        return contest

    def create(self, user_id: int, data: schemas.ContestIn) -> models.Contest:
        contest = models.Contest(name=data.name, position=data.position, user_id=user_id)
        with atomic(self.session):
            self.contests.add(contest)
        self.session.refresh(contest)
        return contest

    def update(self, contest_id: int, user_id: int, data: schemas.ContestIn) -> models.Contest:
        contest = self.get(contest_id, user_id)
        with atomic(self.session):
            contest.name = data.name
            contest.position = data.position
            _touch(contest)
            self.contests.add(contest)
        self.session.refresh(contest)
        return contest

    def delete(self, contest_id: int, user_id: int) -> None:
        """Delete a contest; its goals stay as general goals."""
        contest = self.get(contest_id, user_id)
        with atomic(self.session):
            self.contests.detach_goals(contest.id)
            self.contests.remove(contest)


class SubjectService:
    """Subjects and the topics nested under them."""
    def __init__(self, session: Session):
        self.session = session
        self.subjects = repositories.SubjectRepository(session)
        self.topics = repositories.TopicRepository(session)
        self.questions = repositories.QuestionRepository(session)

    def list(self, user_id: int) -> List[models.Subject]:
        return self.subjects.list_for_user(user_id)

    def get(self, subject_id: int, user_id: int) -> models.Subject:
        subject = self.subjects.get_owned(subject_id, user_id)
        if not subject:
            raise NotFoundError('subject not found')
        return subject

    def get_with_topics(self, subject_id: int, user_id: int) -> dict:
        subject = self.get(subject_id, user_id)
        topics = self.topics.list_for_subject(subject.id)
        return {**subject.model_dump(), 'topics': [t.model_dump() for t in topics]}

    def create(self, user_id: int, data: schemas.SubjectIn) -> models.Subject:
        subject = models.Subject(
            name=data.name, description=data.description, sort_order=data.sort_order, user_id=user_id
        )
        with atomic(self.session):
            self.subjects.add(subject)
        self.session.refresh(subject)
        return subject

    def update(self, subject_id: int, user_id: int, data: schemas.SubjectIn) -> models.Subject:
        subject = self.get(subject_id, user_id)
        with atomic(self.session):
            subject.name = data.name
            subject.description = data.description
            subject.sort_order = data.sort_order
            _touch(subject)
            self.subjects.add(subject)
        self.session.refresh(subject)
        return subject

    def delete(self, subject_id: int, user_id: int) -> None:
        """Delete a subject with its topics, allocations, sessions and questions."""
        subject = self.get(subject_id, user_id)
        topic_ids = self.topics.ids_for_subject(subject.id)
        image_urls = self.questions.image_urls_where(models.Question.subject_id == subject.id)
        with atomic(self.session):
            self.topics.purge(topic_ids)
            self.subjects.purge(subject.id)
        uploads.delete_images(image_urls)
        logger.info("deleted subject %s with %d topics", subject_id, len(topic_ids))

    def reorder(self, user_id: int, subject_ids: Sequence[int]) -> dict:
        """Rewrite `sort_order` from each id's position in `subject_ids`.

        Ids the user does not own are skipped and reported back.
        """
        owned = {s.id: s for s in self.subjects.list_owned_by_ids(list(subject_ids), user_id)}
        updated, ignored = [], []
        with atomic(self.session):
            for index, subject_id in enumerate(subject_ids):
                subject = owned.get(subject_id)
                if subject is None:
                    ignored.append(subject_id)
                    continue
                subject.sort_order = index
                _touch(subject)
                self.session.add(subject)
                updated.append(subject_id)
        return {'updated': updated, 'ignored': ignored}

    def list_topics(self, subject_id: int, user_id: int) -> List[models.Topic]:
        subject = self.get(subject_id, user_id)
        return self.topics.list_for_subject(subject.id)

    def _get_topic(self, subject_id: int, topic_id: int, user_id: int) -> models.Topic:
        subject = self.get(subject_id, user_id)
        topic = self.topics.get_in_subject(topic_id, subject.id)
        if not topic:
            raise NotFoundError('topic not found')
        return topic

    def create_topic(self, subject_id: int, user_id: int, data: schemas.TopicIn) -> models.Topic:
        subject = self.get(subject_id, user_id)
        topic = models.Topic(
            name=data.name, description=data.description, sort_order=data.sort_order, subject_id=subject.id
        )
        with atomic(self.session):
            self.topics.add(topic)
        self.session.refresh(topic)
        return topic

    def update_topic(self, subject_id: int, topic_id: int, user_id: int, data: schemas.TopicIn) -> models.Topic:
        topic = self._get_topic(subject_id, topic_id, user_id)
        with atomic(self.session):
            topic.name = data.name
            topic.description = data.description
            topic.sort_order = data.sort_order
            _touch(topic)
            self.topics.add(topic)
        self.session.refresh(topic)
        return topic

    def delete_topic(self, subject_id: int, topic_id: int, user_id: int) -> None:
        topic = self._get_topic(subject_id, topic_id, user_id)
        image_urls = self.questions.image_urls_where(models.Question.topic_id == topic.id)
        with atomic(self.session):
            self.topics.purge([topic.id])
        uploads.delete_images(image_urls)


class GoalService:
    """Goals with their subject/topic time allocations."""
    def __init__(self, session: Session):
        self.session = session
        self.goals = repositories.GoalRepository(session)
        self.contests = repositories.ContestRepository(session)
        self.subjects = repositories.SubjectRepository(session)
        self.topics = repositories.TopicRepository(session)

    def list(self, user_id: int) -> List[dict]:
        return [
            {**goal.model_dump(), 'contest_name': contest_name}
            for goal, contest_name in self.goals.list_for_user(user_id)
        ]

    def get_owned(self, goal_id: int, user_id: int) -> models.Goal:
        goal = self.goals.get_owned(goal_id, user_id)
        if not goal:
            raise NotFoundError('goal not found')
        return goal

    def get(self, goal_id: int, user_id: int) -> dict:
        """Return the goal with its allocations and their subject/topic names."""
        goal = self.get_owned(goal_id, user_id)
        return {
            **goal.model_dump(),
            'subject_allocations': [
                {**alloc.model_dump(), 'subject_name': subject_name}
                for alloc, subject_name in self.goals.subject_allocations(goal.id)
            ],
            'topic_allocations': [
                {**alloc.model_dump(), 'topic_name': topic_name, 'subject_name': subject_name}
                for alloc, topic_name, subject_name in self.goals.topic_allocations(goal.id)
            ],
        }

    def create(self, user_id: int, data: schemas.GoalCreate) -> dict:
        """Create a goal and its allocations atomically.

        The contest and every allocated subject/topic must belong to the
        user; otherwise nothing is written.
        """
        if data.contest_id is not None and not self.contests.get_owned(data.contest_id, user_id):
            raise NotFoundError('contest not found')
        for alloc in data.subject_allocations:
            if not self.subjects.get_owned(alloc.subject_id, user_id):
                raise NotFoundError(f'subject not found: {alloc.subject_id}')
        for alloc in data.topic_allocations:
            if not self.topics.get_owned(alloc.topic_id, user_id):
                raise NotFoundError(f'topic not found: {alloc.topic_id}')
        goal = models.Goal(
            title=data.title,
            description=data.description,
            kind=data.kind,
            total_minutes=data.total_minutes,
            daily_minutes=data.daily_minutes,
            start_date=data.start_date,
            end_date=data.end_date,
            user_id=user_id,
            contest_id=data.contest_id,
        )
        with atomic(self.session):
            self.goals.add(goal)
            for alloc in data.subject_allocations:
                self.session.add(models.GoalSubjectAllocation(
                    goal_id=goal.id, subject_id=alloc.subject_id, minutes=alloc.minutes
                ))
            for alloc in data.topic_allocations:
                self.session.add(models.GoalTopicAllocation(
                    goal_id=goal.id, topic_id=alloc.topic_id, minutes=alloc.minutes
                ))
        logger.info("created goal %s for user %s", goal.id, user_id)
        return self.get(goal.id, user_id)

    def update(self, goal_id: int, user_id: int, data: schemas.GoalUpdate) -> models.Goal:
        """Replace the editable fields; an omitted `status` keeps the current one."""
        goal = self.get_owned(goal_id, user_id)
        with atomic(self.session):
            goal.title = data.title
            goal.description = data.description
            if data.status is not None:
                goal.status = data.status
            goal.total_minutes = data.total_minutes
            goal.daily_minutes = data.daily_minutes
            goal.start_date = data.start_date
            goal.end_date = data.end_date
            _touch(goal)
            self.goals.add(goal)
        self.session.refresh(goal)
        return goal

    def complete(self, goal_id: int, user_id: int) -> models.Goal:
        goal = self.get_owned(goal_id, user_id)
        with atomic(self.session):
            goal.status = 'completed'
            _touch(goal)
            self.goals.add(goal)
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int, user_id: int) -> None:
        goal = self.get_owned(goal_id, user_id)
        with atomic(self.session):
            self.goals.delete_dependents(goal.id)
            self.goals.remove(goal)


def _session_row(row) -> dict:
    study, subject_name, topic_name, next_topic_name = row
    return {
        **study.model_dump(),
        'subject_name': subject_name,
        'topic_name': topic_name,
        'next_topic_name': next_topic_name,
    }


class StudySessionService:
    def __init__(self, session: Session):
        self.session = session
        self.studies = repositories.StudySessionRepository(session)
        self.subjects = repositories.SubjectRepository(session)
        self.topics = repositories.TopicRepository(session)

    def list(self, user_id: int, **filters) -> List[dict]:
        return [_session_row(row) for row in self.studies.list_for_user(user_id, **filters)]

    def get(self, session_id: int, user_id: int) -> dict:
        row = self.studies.get_detail(session_id, user_id)
        if not row:
            raise NotFoundError('study session not found')
        return _session_row(row)

    def _check_next_topic(self, next_topic_id: Optional[int], subject_id: int) -> None:
        if next_topic_id is not None and not self.topics.get_in_subject(next_topic_id, subject_id):
            raise NotFoundError('next topic not found')

    def create(self, user_id: int, data: schemas.StudySessionCreate) -> models.StudySession:
        """Record a session; its topics must belong to one of the user's subjects."""
        if not self.subjects.get_owned(data.subject_id, user_id):
            raise NotFoundError('subject not found')
        if not self.topics.get_in_subject(data.topic_id, data.subject_id):
            raise NotFoundError('topic not found')
        self._check_next_topic(data.next_topic_id, data.subject_id)
        study = models.StudySession(
            study_date=data.study_date,
            duration=data.duration,
            notes=data.notes,
            user_id=user_id,
            subject_id=data.subject_id,
            topic_id=data.topic_id,
            next_topic_id=data.next_topic_id,
        )
        with atomic(self.session):
            self.studies.add(study)
        self.session.refresh(study)
        return study

    def update(self, session_id: int, user_id: int, data: schemas.StudySessionUpdate) -> models.StudySession:
        study = self.studies.get_owned(session_id, user_id)
        if not study:
            raise NotFoundError('study session not found')
        self._check_next_topic(data.next_topic_id, study.subject_id)
        with atomic(self.session):
            study.study_date = data.study_date
            study.duration = data.duration
            study.notes = data.notes
            study.next_topic_id = data.next_topic_id
            _touch(study)
            self.studies.add(study)
        self.session.refresh(study)
        return study

    def delete(self, session_id: int, user_id: int) -> None:
        study = self.studies.get_owned(session_id, user_id)
        if not study:
            raise NotFoundError('study session not found')
        with atomic(self.session):
            self.studies.remove(study)


def _question_row(row) -> dict:
    question, subject_name, topic_name = row
    return {**question.model_dump(), 'subject_name': subject_name, 'topic_name': topic_name}


class QuestionService:
    """Mistake-notebook entries and their optional images."""
    def __init__(self, session: Session):
        self.session = session
        self.questions = repositories.QuestionRepository(session)
        self.subjects = repositories.SubjectRepository(session)
        self.topics = repositories.TopicRepository(session)

    def list(self, user_id: int, **filters) -> List[dict]:
        return [_question_row(row) for row in self.questions.list_for_user(user_id, **filters)]

    def pending_review(self, user_id: int) -> List[dict]:
        return [_question_row(row) for row in self.questions.pending_review(user_id)]

    def get(self, question_id: int, user_id: int) -> dict:
        row = self.questions.get_detail(question_id, user_id)
        if not row:
            raise NotFoundError('question not found')
        return _question_row(row)

    def _get_owned(self, question_id: int, user_id: int) -> models.Question:
        question = self.questions.get_owned(question_id, user_id)
        if not question:
            raise NotFoundError('question not found')
        return question

    def create(
        self,
        user_id: int,
        text: str,
        subject_id: int,
        topic_id: int,
        comment: Optional[str] = None,
        image: Optional[ImageUpload] = None,
    ) -> models.Question:
        """Store a question; the image is written only after ownership checks pass."""
        if not text or not text.strip():
            raise BadRequestError('text is required')
        if not self.subjects.get_owned(subject_id, user_id):
            raise NotFoundError('subject not found')
        if not self.topics.get_in_subject(topic_id, subject_id):
            raise NotFoundError('topic not found')
        image_url = uploads.save_question_image(*image) if image else None
        question = models.Question(
            text=text.strip(),
            image_url=image_url,
            comment=comment,
            subject_id=subject_id,
            topic_id=topic_id,
            user_id=user_id,
        )
        try:
            with atomic(self.session):
                self.questions.add(question)
        except Exception:
            uploads.delete_images([image_url])
            raise
        self.session.refresh(question)
        return question

    def update(
        self,
        question_id: int,
        user_id: int,
        text: str,
        comment: Optional[str] = None,
        redone: Optional[bool] = None,
        answered_correctly: Optional[bool] = None,
        image: Optional[ImageUpload] = None,
    ) -> models.Question:
        """Update a question; a new image replaces (and deletes) the previous file."""
        if not text or not text.strip():
            raise BadRequestError('text is required')
        question = self._get_owned(question_id, user_id)
        old_image = question.image_url
        new_image = uploads.save_question_image(*image) if image else None
        try:
            with atomic(self.session):
                question.text = text.strip()
                question.comment = comment
                if new_image:
                    question.image_url = new_image
                if redone is not None:
                    question.redone = redone
                if answered_correctly is not None:
                    question.answered_correctly = answered_correctly
                _touch(question)
                self.questions.add(question)
        except Exception:
            uploads.delete_images([new_image])
            raise
        if new_image and old_image:
            uploads.delete_images([old_image])
        self.session.refresh(question)
        return question

    def redo(self, question_id: int, user_id: int, answered_correctly: bool) -> models.Question:
        question = self._get_owned(question_id, user_id)
        with atomic(self.session):
            question.redone = True
            question.answered_correctly = answered_correctly
            _touch(question)
            self.questions.add(question)
        self.session.refresh(question)
        return question

    def delete(self, question_id: int, user_id: int) -> None:
        question = self._get_owned(question_id, user_id)
        image_url = question.image_url
        with atomic(self.session):
            self.questions.remove(question)
        uploads.delete_images([image_url])


class NotificationService:
    def __init__(self, session: Session):
        self.session = session
        self.notifications = repositories.NotificationRepository(session)

    def notify(
        self, user_id: int, kind: str, title: str, message: str, partnership_id: Optional[int] = None
    ) -> models.Notification:
        """Stage a notification inside the caller's transaction."""
        return self.notifications.add(models.Notification(
            kind=kind, title=title, message=message, user_id=user_id, partnership_id=partnership_id
        ))

    def list(self, user_id: int, unread_only: bool = False) -> List[models.Notification]:
        return self.notifications.list_for_user(user_id, unread_only=unread_only)

    def mark_read(self, notification_id: int, user_id: int) -> models.Notification:
        notification = self.notifications.get_owned(notification_id, user_id)
        if not notification:
            raise NotFoundError('notification not found')
        with atomic(self.session):
            notification.read = True
            self.notifications.add(notification)
        self.session.refresh(notification)
        return notification

    def mark_all_read(self, user_id: int) -> int:
        with atomic(self.session):
            count = self.notifications.mark_all_read(user_id)
        return count
