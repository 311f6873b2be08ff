from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_session
from ..services import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get('')
def list_notifications(
    unread_only: bool = False,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """The latest 50 notifications of the caller."""
    return NotificationService(db).list(user.id, unread_only=unread_only)


@router.patch('/read-all')
def mark_all_read(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    count = NotificationService(db).mark_all_read(user.id)
    return {'message': 'notifications marked as read', 'updated': count}


@router.patch('/{notification_id}/read')
def mark_read(notification_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    notification = NotificationService(db).mark_read(notification_id, user.id)
    return {'message': 'notification marked as read', 'notification': notification}
