"""Read-only statistics over study sessions, questions and goals.

Every query filters on the caller's `user_id`. Counts and sums are
computed in SQL with `func`; percentages are rounded integers and hours
are minutes / 60 rounded half up (see `utils.periods`).
"""

from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, distinct, func
from sqlmodel import Session, select

from . import models, repositories
from .errors import NotFoundError
from .utils.periods import minutes_to_hours, percent, resolve_window

S = models.StudySession
Q = models.Question


def _in_window(stmt, start: Optional[date], end: Optional[date]):
    if start is not None:
        stmt = stmt.where(S.study_date >= start)
    if end is not None:
        stmt = stmt.where(S.study_date <= end)
    return stmt


def _count(column):
    return func.count(distinct(column))


class ProgressService:
    def __init__(self, session: Session):
        self.session = session
        self.contests = repositories.ContestRepository(session)
        self.subjects = repositories.SubjectRepository(session)
        self.goals = repositories.GoalRepository(session)
        self.partnerships = repositories.PartnershipRepository(session)

    def _scalar(self, stmt) -> int:
        return self.session.exec(stmt).one() or 0

    def _session_totals(self, user_id: int, start: Optional[date] = None, end: Optional[date] = None) -> dict:
        stmt = _in_window(
            select(
                func.count(S.id),
                func.coalesce(func.sum(S.duration), 0),
                func.coalesce(func.avg(S.duration), 0),
                _count(S.study_date),
                _count(S.subject_id),
                _count(S.topic_id),
            ).where(S.user_id == user_id),
            start,
            end,
        )
        sessions, minutes, average, days, subjects, topics = self.session.exec(stmt).one()
        return {
            'total_sessions': sessions,
            'total_minutes': int(minutes),
            'average_minutes': round(float(average), 2),
            'days_studied': days,
            'subjects_studied': subjects,
            'topics_studied': topics,
        }

    def overview(self, user_id: int) -> dict:
        """Lifetime counters for the dashboard."""
        topic_count = (
            select(func.count(models.Topic.id))
            .join(models.Subject, models.Topic.subject_id == models.Subject.id)
            .where(models.Subject.user_id == user_id)
        )
        goals = self._scalar(select(func.count(models.Goal.id)).where(models.Goal.user_id == user_id))
        completed = self._scalar(
            select(func.count(models.Goal.id)).where(models.Goal.user_id == user_id, models.Goal.status == 'completed')
        )
        minutes = self._scalar(select(func.coalesce(func.sum(S.duration), 0)).where(S.user_id == user_id))
        return {
            'total_contests': self._scalar(select(func.count(models.Contest.id)).where(models.Contest.user_id == user_id)),
            'total_subjects': self._scalar(select(func.count(models.Subject.id)).where(models.Subject.user_id == user_id)),
            'total_topics': self._scalar(topic_count),
            'total_goals': goals,
            'completed_goals': completed,
            'total_sessions': self._scalar(select(func.count(S.id)).where(S.user_id == user_id)),
            'total_minutes': minutes,
            'total_questions': self._scalar(select(func.count(Q.id)).where(Q.user_id == user_id)),
            'total_partners': self._scalar(
                select(func.count(models.Partnership.id)).where(
                    models.Partnership.user_id == user_id, models.Partnership.status == 'accepted'
                )
            ),
            'completed_goals_percent': percent(completed, goals),
            'total_hours': minutes_to_hours(minutes),
        }

    def contest_stats(self, contest_id: int, user_id: int) -> dict:
        contest = self.contests.get_owned(contest_id, user_id)
        if not contest:
            raise NotFoundError('contest not found')
        topic_count = (
            select(func.count(models.Topic.id))
            .join(models.Subject, models.Topic.subject_id == models.Subject.id)
            .where(models.Subject.user_id == user_id)
        )
        totals = self._session_totals(user_id)
        return {
            **contest.model_dump(),
            'total_subjects': self._scalar(
                select(func.count(models.Subject.id)).where(models.Subject.user_id == user_id)
            ),
            'total_topics': self._scalar(topic_count),
            'total_sessions': totals['total_sessions'],
            'total_minutes': totals['total_minutes'],
        }

    def goal_progress(self, goal_id: int, user_id: int) -> dict:
        """Minutes studied in the goal's allocated subjects against its budget.

        Only sessions inside the goal's date range count when one is set.
        """
        goal = self.goals.get_owned(goal_id, user_id)
        if not goal:
            raise NotFoundError('goal not found')
        subject_ids = self.goals.allocated_subject_ids(goal.id)
        studied = 0
        if subject_ids:
            stmt = _in_window(
                select(func.coalesce(func.sum(S.duration), 0)).where(
                    S.user_id == user_id, S.subject_id.in_(subject_ids)
                ),
                goal.start_date,
                goal.end_date,
            )
            studied = self._scalar(stmt)
        budget = goal.total_minutes or 0
        return {
            **goal.model_dump(),
            'studied_minutes': studied,
            'goal_minutes': budget,
            'percent_complete': round(studied * 100.0 / budget, 2) if budget > 0 else 0,
        }

    def session_stats(
        self,
        user_id: int,
        period: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        start, end = resolve_window(period, start_date, end_date)
        by_subject = _in_window(
            select(models.Subject.id, models.Subject.name, func.sum(S.duration).label('minutes'))
            .join(models.Subject, S.subject_id == models.Subject.id)
            .where(S.user_id == user_id),
            start,
            end,
        ).group_by(models.Subject.id, models.Subject.name).order_by(func.sum(S.duration).desc())
        return {
            'start_date': start,
            'end_date': end,
            **self._session_totals(user_id, start, end),
            'minutes_by_subject': [
                {'subject_id': sid, 'subject_name': name, 'total_minutes': minutes}
                for sid, name, minutes in self.session.exec(by_subject).all()
            ],
        }

    def _topic_study_counts(self, user_id: int):
        studied = func.count(S.id)
        return (
            select(
                models.Topic.id,
                models.Topic.name,
                models.Subject.id,
                models.Subject.name,
                studied,
                func.coalesce(func.sum(S.duration), 0),
            )
            .join(models.Subject, models.Topic.subject_id == models.Subject.id)
            .join(S, (S.topic_id == models.Topic.id) & (S.user_id == user_id), isouter=True)
            .where(models.Subject.user_id == user_id)
            .group_by(models.Topic.id, models.Topic.name, models.Subject.id, models.Subject.name)
        ), studied

    def next_topics(self, user_id: int, limit: int = 10) -> List[dict]:
        """The least-studied topics, in display order on ties."""
        stmt, studied = self._topic_study_counts(user_id)
        stmt = stmt.order_by(studied, models.Topic.sort_order, models.Topic.name).limit(limit)
        return [
            {'id': tid, 'name': name, 'subject_id': sid, 'subject_name': sname, 'times_studied': times}
            for tid, name, sid, sname, times, _minutes in self.session.exec(stmt).all()
        ]

    def topics_status(self, user_id: int) -> dict:
        stmt, _studied = self._topic_study_counts(user_id)
        stmt = stmt.order_by(models.Subject.name, models.Topic.sort_order, models.Topic.name)
        topics = [
            {
                'id': tid,
                'name': name,
                'subject_id': sid,
                'subject_name': sname,
                'status': 'studied' if times > 0 else 'pending',
                'times_studied': times,
                'total_minutes': minutes,
            }
            for tid, name, sid, sname, times, minutes in self.session.exec(stmt).all()
        ]
        studied = sum(1 for t in topics if t['status'] == 'studied')
        return {
            'total_topics': len(topics),
            'studied_topics': studied,
            'pending_topics': len(topics) - studied,
            'studied_percent': percent(studied, len(topics)),
            'topics': topics,
        }

    def question_stats(self, user_id: int) -> dict:
        redone = func.coalesce(func.sum(case((Q.redone == True, 1), else_=0)), 0)  # noqa: E712
        correct = func.coalesce(
            func.sum(case(((Q.redone == True) & (Q.answered_correctly == True), 1), else_=0)), 0  # noqa: E712
        )
        total, redone_count, correct_count, subjects, topics = self.session.exec(
            select(func.count(Q.id), redone, correct, _count(Q.subject_id), _count(Q.topic_id)).where(
                Q.user_id == user_id
            )
        ).one()
        by_subject = (
            select(models.Subject.id, models.Subject.name, func.count(Q.id), redone, correct)
            .join(models.Subject, Q.subject_id == models.Subject.id)
            .where(Q.user_id == user_id)
            .group_by(models.Subject.id, models.Subject.name)
            .order_by(func.count(Q.id).desc())
        )
        return {
            'total_questions': total,
            'redone_questions': redone_count,
            'correct_questions': correct_count,
            'subjects_with_questions': subjects,
            'topics_with_questions': topics,
            'questions_by_subject': [
                {
                    'subject_id': sid,
                    'subject_name': name,
                    'total_questions': count,
                    'redone_questions': r,
                    'correct_questions': c,
                }
                for sid, name, count, r, c in self.session.exec(by_subject).all()
            ],
        }

    def _question_counts_by(self, column, user_id: int) -> Dict[int, tuple]:
        stmt = (
            select(
                column,
                func.count(Q.id),
                func.sum(case((Q.redone == True, 1), else_=0)),  # noqa: E712
                func.sum(case(((Q.redone == True) & (Q.answered_correctly == True), 1), else_=0)),  # noqa: E712
            )
            .where(Q.user_id == user_id)
            .group_by(column)
        )
        return {key: (total, redone or 0, correct or 0) for key, total, redone, correct in self.session.exec(stmt).all()}

    def _session_counts_by(self, column, user_id: int) -> Dict[int, tuple]:
        stmt = (
            select(column, func.count(S.id), func.coalesce(func.sum(S.duration), 0))
            .where(S.user_id == user_id)
            .group_by(column)
        )
        return {key: (count, minutes) for key, count, minutes in self.session.exec(stmt).all()}

    @staticmethod
    def _progress_row(obj, sessions: tuple, questions: tuple) -> dict:
        count, minutes = sessions
        total, redone, correct = questions
        return {
            'id': obj.id,
            'name': obj.name,
            'description': obj.description,
            'total_sessions': count,
            'total_minutes': minutes,
            'total_hours': minutes_to_hours(minutes),
            'total_questions': total,
            'redone_questions': redone,
            'correct_questions': correct,
            'redone_percent': percent(redone, total),
            'correct_percent': percent(correct, redone),
        }

    def subjects_progress(self, user_id: int) -> List[dict]:
        """Per-subject study and question totals, most studied first."""
        topic_counts = dict(self.session.exec(
            select(models.Topic.subject_id, func.count(models.Topic.id))
            .join(models.Subject, models.Topic.subject_id == models.Subject.id)
            .where(models.Subject.user_id == user_id)
            .group_by(models.Topic.subject_id)
        ).all())
        sessions = self._session_counts_by(S.subject_id, user_id)
        questions = self._question_counts_by(Q.subject_id, user_id)
        rows = []
        for subject in self.subjects.list_for_user(user_id):
            row = self._progress_row(subject, sessions.get(subject.id, (0, 0)), questions.get(subject.id, (0, 0, 0)))
            row['total_topics'] = topic_counts.get(subject.id, 0)
            rows.append(row)
        rows.sort(key=lambda r: r['total_minutes'], reverse=True)
        return rows

    def topics_progress(self, subject_id: int, user_id: int) -> List[dict]:
        subject = self.subjects.get_owned(subject_id, user_id)
        if not subject:
            raise NotFoundError('subject not found')
        sessions = self._session_counts_by(S.topic_id, user_id)
        questions = self._question_counts_by(Q.topic_id, user_id)
        return [
            self._progress_row(topic, sessions.get(topic.id, (0, 0)), questions.get(topic.id, (0, 0, 0)))
            for topic in repositories.TopicRepository(self.session).list_for_subject(subject.id)
        ]

    def history(
        self,
        user_id: int,
        period: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[dict]:
        """Per-day totals inside the window, newest day first."""
        start, end = resolve_window(period, start_date, end_date)
        stmt = _in_window(
            select(S.study_date, func.count(S.id), func.sum(S.duration), _count(S.subject_id), _count(S.topic_id))
            .where(S.user_id == user_id),
            start,
            end,
        ).group_by(S.study_date).order_by(S.study_date.desc())
        return [
            {
                'study_date': day,
                'total_sessions': sessions,
                'total_minutes': minutes,
                'subjects_studied': subjects,
                'topics_studied': topics,
                'total_hours': minutes_to_hours(minutes),
            }
            for day, sessions, minutes, subjects, topics in self.session.exec(stmt).all()
        ]

    def period_stats(
        self,
        user_id: int,
        period: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        start, end = resolve_window(period, start_date, end_date)
        totals = self._session_totals(user_id, start, end)
        days = totals['days_studied']
        daily = totals['total_minutes'] // days if days else 0
        return {
            'start_date': start,
            'end_date': end,
            **totals,
            'daily_average_minutes': daily,
            'total_hours': minutes_to_hours(totals['total_minutes']),
            'average_hours': minutes_to_hours(totals['average_minutes']),
            'daily_average_hours': minutes_to_hours(daily),
        }

    def partner_comparison(self, partnership_id: int, user_id: int) -> dict:
        """Compare lifetime totals of the caller and an accepted partner."""
        partnership = self.partnerships.get_owned(partnership_id, user_id)
        if not partnership or partnership.status != 'accepted' or partnership.partner_user_id is None:
            raise NotFoundError('partner not found or invite not accepted')
        keys = ('total_sessions', 'total_minutes', 'days_studied', 'subjects_studied', 'topics_studied')
        mine = {k: v for k, v in self._session_totals(user_id).items() if k in keys}
        theirs = {k: v for k, v in self._session_totals(partnership.partner_user_id).items() if k in keys}
        mine['total_hours'] = minutes_to_hours(mine['total_minutes'])
        theirs['total_hours'] = minutes_to_hours(theirs['total_minutes'])
        return {
            'partner': {'id': partnership.partner_user_id, 'name': partnership.partner_name,
                        'email': partnership.partner_email},
            'user_stats': mine,
            'partner_stats': theirs,
            'differences': {k: mine[k] - theirs[k] for k in keys},
        }

    def chart(self, user_id: int, days: int = 30, today: Optional[date] = None) -> List[dict]:
        """Per-day minutes over the last `days` days, oldest first."""
        today = today or date.today()
        stmt = _in_window(
            select(S.study_date, func.sum(S.duration), func.count(S.id), _count(S.subject_id))
            .where(S.user_id == user_id),
            today - timedelta(days=days),
            None,
        ).group_by(S.study_date).order_by(S.study_date)
        return [
            {
                'study_date': day,
                'total_minutes': minutes,
                'total_sessions': sessions,
                'subjects_studied': subjects,
                'total_hours': minutes_to_hours(minutes),
            }
            for day, minutes, sessions, subjects in self.session.exec(stmt).all()
        ]
