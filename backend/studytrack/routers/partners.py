"""Study partner endpoints.

Invites, acceptances and shares commit first; their emails are queued
as background tasks afterwards, so a failed delivery is only logged.
"""

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_session
from ..partners import EmailJob, PartnerService
from ..schemas import InviteIn, ShareGoalIn
from ..utils.mailer import Mailer, get_mailer

router = APIRouter(prefix="/api/partners", tags=["partners"])


def _queue_email(background_tasks: BackgroundTasks, mailer: Mailer, job: EmailJob) -> None:
    context = dict(job.context)
    if job.invite_token:
        context['invite_link'] = mailer.invite_link(job.invite_token)
    background_tasks.add_task(mailer.send_template, job.to, job.subject, job.template, context)


@router.get('')
def list_partners(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return PartnerService(db).list(user.id)


@router.post('/invite', status_code=201)
def invite_partner(
    payload: InviteIn,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    """Invite someone by email; they do not need an account yet."""
    partnership, job = PartnerService(db).invite(user, payload.email, payload.name)
    _queue_email(background_tasks, mailer, job)
    return {'message': 'invite sent', 'partner': partnership}


@router.get('/invites/received')
def received_invites(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return PartnerService(db).received_invites(user)


@router.post('/accept/{token}')
def accept_invite(
    token: str,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    partnership, job = PartnerService(db).accept(token, user)
    _queue_email(background_tasks, mailer, job)
    return {'message': 'invite accepted', 'partner': partnership}


@router.post('/reject/{token}')
def reject_invite(token: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    PartnerService(db).reject(token, user)
    return {'message': 'invite rejected'}


@router.get('/shared-with-me')
def shared_with_me(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Goals that partners shared with the caller."""
    return PartnerService(db).shared_with_me(user.id)


@router.get('/{partnership_id}')
def get_partner(partnership_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return PartnerService(db).get(partnership_id, user.id)


@router.delete('/{partnership_id}')
def remove_partner(partnership_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """End the partnership for both users."""
    PartnerService(db).remove(partnership_id, user.id)
    return {'message': 'partner removed'}


@router.post('/{partnership_id}/share-goal', status_code=201)
def share_goal(
    partnership_id: int,
    payload: ShareGoalIn,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    share, job = PartnerService(db).share_goal(partnership_id, user, payload.goal_id)
    _queue_email(background_tasks, mailer, job)
    return {'message': 'goal shared', 'shared_goal': share}


@router.get('/{partnership_id}/shared-goals')
def shared_goals(partnership_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return PartnerService(db).shared_goals(partnership_id, user.id)


@router.delete('/{partnership_id}/shared-goals/{goal_id}')
def unshare_goal(
    partnership_id: int,
    goal_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    PartnerService(db).unshare(partnership_id, goal_id, user.id)
    return {'message': 'goal unshared'}
