from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_session
from ..progress import ProgressService
from ..schemas import GoalCreate, GoalUpdate
from ..services import GoalService

router = APIRouter(prefix="/api/goals", tags=["goals"])


@router.get('')
def list_goals(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return GoalService(db).list(user.id)


@router.post('', status_code=201)
def create_goal(payload: GoalCreate, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Create a goal with its subject/topic allocations in one transaction."""
    goal = GoalService(db).create(user.id, payload)
    return {'message': 'goal created', 'goal': goal}


@router.get('/{goal_id}')
def get_goal(goal_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return GoalService(db).get(goal_id, user.id)


@router.get('/{goal_id}/progress')
def goal_progress(goal_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Studied minutes in the allocated subjects against the goal's budget."""
    return ProgressService(db).goal_progress(goal_id, user.id)


@router.put('/{goal_id}')
def update_goal(
    goal_id: int,
    payload: GoalUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    goal = GoalService(db).update(goal_id, user.id, payload)
    return {'message': 'goal updated', 'goal': goal}


@router.patch('/{goal_id}/complete')
def complete_goal(goal_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    goal = GoalService(db).complete(goal_id, user.id)
    return {'message': 'goal completed', 'goal': goal}


@router.delete('/{goal_id}')
def delete_goal(goal_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    GoalService(db).delete(goal_id, user.id)
    return {'message': 'goal deleted'}
