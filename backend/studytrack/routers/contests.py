from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_session
from ..progress import ProgressService
from ..schemas import ContestIn
from ..services import ContestService

router = APIRouter(prefix="/api/contests", tags=["contests"])


@router.get('')
def list_contests(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ContestService(db).list(user.id)


@router.get('/{contest_id}')
def get_contest(contest_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ContestService(db).get(contest_id, user.id)


@router.get('/{contest_id}/stats')
def contest_stats(contest_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Subjects, topics, sessions and minutes studied by the contest's owner."""
    return ProgressService(db).contest_stats(contest_id, user.id)


@router.post('', status_code=201)
def create_contest(payload: ContestIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    contest = ContestService(db).create(user.id, payload)
    return {'message': 'contest created', 'contest': contest}


@router.put('/{contest_id}')
def update_contest(
    contest_id: int,
    payload: ContestIn,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    contest = ContestService(db).update(contest_id, user.id, payload)
    return {'message': 'contest updated', 'contest': contest}


@router.delete('/{contest_id}')
def delete_contest(contest_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Delete a contest; goals tied to it become general goals."""
    ContestService(db).delete(contest_id, user.id)
    return {'message': 'contest deleted'}
