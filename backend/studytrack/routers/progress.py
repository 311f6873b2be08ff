"""Read-only progress endpoints backed by `progress.ProgressService`.

`period` accepts day, week, month, year or custom (with `start_date` and
`end_date`); anything else means the last 30 days.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_session
from ..progress import ProgressService

router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.get('/overview')
def overview(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ProgressService(db).overview(user.id)


@router.get('/subjects')
def subjects_progress(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ProgressService(db).subjects_progress(user.id)


@router.get('/subjects/{subject_id}/topics')
def topics_progress(subject_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ProgressService(db).topics_progress(subject_id, user.id)


@router.get('/history')
def history(
    period: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return ProgressService(db).history(user.id, period, start_date, end_date)


@router.get('/period-stats')
def period_stats(
    period: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return ProgressService(db).period_stats(user.id, period, start_date, end_date)


@router.get('/topics-status')
def topics_status(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ProgressService(db).topics_status(user.id)


@router.get('/partner-comparison/{partnership_id}')
def partner_comparison(partnership_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ProgressService(db).partner_comparison(partnership_id, user.id)


@router.get('/chart')
def chart(
    days: int = Query(30, ge=1, le=365),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return ProgressService(db).chart(user.id, days)
