from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_session
from ..progress import ProgressService
from ..schemas import StudySessionCreate, StudySessionUpdate
from ..services import StudySessionService

router = APIRouter(prefix="/api/study-sessions", tags=["study-sessions"])


@router.get('')
def list_sessions(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    subject_id: Optional[int] = None,
    topic_id: Optional[int] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """List the caller's sessions, newest first, with optional filters."""
    return StudySessionService(db).list(
        user.id, start_date=start_date, end_date=end_date, subject_id=subject_id, topic_id=topic_id
    )


@router.get('/stats')
def session_stats(
    period: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """Totals for `period` (day, week, month, year or custom; month by default)."""
    return ProgressService(db).session_stats(user.id, period, start_date, end_date)


@router.get('/next-topics')
def next_topics(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ProgressService(db).next_topics(user.id)


@router.post('', status_code=201)
def create_session(
    payload: StudySessionCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    study = StudySessionService(db).create(user.id, payload)
    return {'message': 'study session created', 'study_session': study}


@router.get('/{session_id}')
def get_session_detail(session_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return StudySessionService(db).get(session_id, user.id)


@router.put('/{session_id}')
def update_session(
    session_id: int,
    payload: StudySessionUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    study = StudySessionService(db).update(session_id, user.id, payload)
    return {'message': 'study session updated', 'study_session': study}


@router.delete('/{session_id}')
def delete_session(session_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    StudySessionService(db).delete(session_id, user.id)
    return {'message': 'study session deleted'}
