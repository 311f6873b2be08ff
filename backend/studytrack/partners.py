"""Study partnerships: invites, acceptance and goal sharing.

A partnership is stored as one row per direction. Inviting creates (or
re-issues) the inviter's row in state `pending` with a random token;
accepting flips it to `accepted` and creates the invitee's mirror row in
the same transaction, so both users list each other.

    pending --accept--> accepted
    pending --reject--> rejected
    rejected/expired --invite--> pending (new token)

Emails are not sent here. Each write returns the `EmailJob` it wants
delivered and the router queues it once the transaction has committed.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session

from . import models, repositories
from .auth import CurrentUser
from .config import settings
from .database import atomic
from .errors import BadRequestError, ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from .services import NotificationService

logger = logging.getLogger("studytrack.partners")


@dataclass
class EmailJob:
    """A templated email to send after commit.

    When `invite_token` is set the mailer adds `invite_link` to the
    template context.
    """
    to: str
    subject: str
    template: str
    context: Dict[str, Any] = field(default_factory=dict)
    invite_token: Optional[str] = None


def _is_expired(partnership: models.Partnership, now) -> bool:
    expires = models.ensure_utc(partnership.invite_expires_at)
    return expires is None or expires <= now


class PartnerService:
    def __init__(self, session: Session):
        self.session = session
        self.partnerships = repositories.PartnershipRepository(session)
        self.users = repositories.UserRepository(session)
        self.goals = repositories.GoalRepository(session)
        self.notifications = NotificationService(session)

    def list(self, user_id: int) -> List[models.Partnership]:
        return self.partnerships.list_for_user(user_id)

    def get(self, partnership_id: int, user_id: int) -> models.Partnership:
        partnership = self.partnerships.get_owned(partnership_id, user_id)
        if not partnership:
            raise NotFoundError('partner not found')
        return partnership

    def _get_accepted(self, partnership_id: int, user_id: int) -> models.Partnership:
        partnership = self.partnerships.get_owned(partnership_id, user_id)
        if not partnership or partnership.status != 'accepted':
            raise NotFoundError('partner not found or invite not accepted')
        return partnership

    def invite(self, user: CurrentUser, email: str, name: Optional[str] = None) -> Tuple[models.Partnership, EmailJob]:
        """Create or re-issue an invitation from `user` to `email`.

        The invitee does not need an account yet; when they have one they
        are linked right away and get an in-app notification.
        """
        email = email.strip().lower()
        if email == user.email.lower():
            raise BadRequestError('you cannot invite yourself')
        now = models.utcnow()
        existing = self.partnerships.find_by_email(user.id, email)
        if existing is not None:
            if existing.status == 'accepted':
                raise ConflictError('already partners')
            if existing.status == 'pending' and not _is_expired(existing, now):
                raise ConflictError('invite already sent')
        invitee = self.users.get_by_email(email)
        token = secrets.token_urlsafe(32)
        expires = now + timedelta(hours=settings.INVITE_TTL_HOURS)
        with atomic(self.session):
            if existing is not None:
                partnership = existing
                partnership.status = 'pending'
                partnership.partner_name = name or existing.partner_name
                partnership.responded_at = None
                partnership.updated_at = now
            else:
                partnership = models.Partnership(user_id=user.id, partner_email=email, partner_name=name)
            partnership.invite_token = token
            partnership.invite_expires_at = expires
            partnership.partner_user_id = invitee.id if invitee else None
            self.partnerships.add(partnership)
            if invitee:
                self.notifications.notify(
                    invitee.id, 'partner_invite', 'New partner invite',
                    f'{user.name} invited you to be study partners.', partnership.id,
                )
            self.notifications.notify(
                user.id, 'invite_sent', 'Invite sent',
                f'Your invite to {email} was sent.', partnership.id,
            )
        self.session.refresh(partnership)
        logger.info("user %s invited %s (partnership %s)", user.id, email, partnership.id)
        job = EmailJob(
            to=email,
            subject='Study partner invite',
            template='partner_invite',
            context={
                'partner_name': name,
                'inviter_name': user.name,
                'ttl_hours': settings.INVITE_TTL_HOURS,
            },
            invite_token=token,
        )
        return partnership, job

    def received_invites(self, user: CurrentUser) -> List[dict]:
        rows = self.partnerships.pending_for_email(user.email.lower(), models.utcnow())
        return [
            {
                'id': p.id,
                'inviter_id': p.user_id,
                'inviter_name': inviter_name,
                'invite_token': p.invite_token,
                'invite_expires_at': p.invite_expires_at,
                'created_at': p.created_at,
            }
            for p, inviter_name in rows
        ]

    def _pending_invite(self, token: str, user: CurrentUser) -> models.Partnership:
        partnership = self.partnerships.get_by_token(token)
        if not partnership:
            raise NotFoundError('invite not found')
        if partnership.status != 'pending':
            raise InvalidStateError(f'invite already {partnership.status}')
        if _is_expired(partnership, models.utcnow()):
            raise InvalidStateError('invite expired')
        if partnership.partner_email != user.email.lower():
            raise ForbiddenError('this invite was sent to another email')
        return partnership

    def accept(self, token: str, user: CurrentUser) -> Tuple[models.Partnership, EmailJob]:
        """Accept an invite and create the invitee's side of the partnership."""
        partnership = self._pending_invite(token, user)
        inviter = self.users.get(partnership.user_id)
        now = models.utcnow()
        with atomic(self.session):
            partnership.status = 'accepted'
            partnership.partner_user_id = user.id
            partnership.responded_at = now
            partnership.updated_at = now
            self.partnerships.add(partnership)

            reverse = (
                self.partnerships.find_link(user.id, inviter.id)
                or self.partnerships.find_by_email(user.id, inviter.email)
            )
            if reverse is None:
                reverse = models.Partnership(user_id=user.id, partner_email=inviter.email)
            reverse.partner_name = inviter.name
            reverse.partner_user_id = inviter.id
            reverse.status = 'accepted'
            reverse.invite_token = None
            reverse.invite_expires_at = None
            reverse.responded_at = now
            reverse.updated_at = now
            self.partnerships.add(reverse)

            self.notifications.notify(
                inviter.id, 'partner_accepted', 'Invite accepted',
                f'{user.name} accepted your partner invite.', partnership.id,
            )
        self.session.refresh(reverse)
        logger.info("partnership %s accepted by user %s", partnership.id, user.id)
        job = EmailJob(
            to=inviter.email,
            subject='Your study partner invite was accepted',
            template='partner_accepted',
            context={'inviter_name': inviter.name, 'partner_email': user.email},
        )
        return reverse, job

    def reject(self, token: str, user: CurrentUser) -> models.Partnership:
        partnership = self._pending_invite(token, user)
        now = models.utcnow()
        with atomic(self.session):
            partnership.status = 'rejected'
            partnership.responded_at = now
            partnership.updated_at = now
            self.partnerships.add(partnership)
            self.notifications.notify(
                partnership.user_id, 'partner_rejected', 'Invite declined',
                f'{user.name} declined your partner invite.', partnership.id,
            )
        self.session.refresh(partnership)
        logger.info("partnership %s rejected by user %s", partnership.id, user.id)
        return partnership

    def remove(self, partnership_id: int, user_id: int) -> None:
        """Delete the partnership in both directions with its shares."""
        partnership = self.get(partnership_id, user_id)
        ids = [partnership.id]
        # a pending invite only ever owns its own row
        if partnership.status == 'accepted' and partnership.partner_user_id is not None:
            reverse = self.partnerships.find_link(partnership.partner_user_id, user_id)
            if reverse is not None and reverse.status == 'accepted':
                ids.append(reverse.id)
        with atomic(self.session):
            self.partnerships.delete_rows(ids)
        logger.info("user %s removed partnership rows %s", user_id, ids)

    def share_goal(self, partnership_id: int, user: CurrentUser, goal_id: int) -> Tuple[models.SharedGoal, EmailJob]:
        partnership = self._get_accepted(partnership_id, user.id)
        goal = self.goals.get_owned(goal_id, user.id)
        if not goal:
            raise NotFoundError('goal not found')
        if self.partnerships.get_share(goal.id, partnership.id):
            raise ConflictError('goal already shared with this partner')
        share = models.SharedGoal(goal_id=goal.id, partnership_id=partnership.id)
        with atomic(self.session):
            self.partnerships.add(share)
            if partnership.partner_user_id is not None:
                self.notifications.notify(
                    partnership.partner_user_id, 'goal_shared', 'Goal shared',
                    f'{user.name} shared the goal "{goal.title}" with you.', partnership.id,
                )
        self.session.refresh(share)
        job = EmailJob(
            to=partnership.partner_email,
            subject='A study goal was shared with you',
            template='goal_shared',
            context={'partner_name': partnership.partner_name, 'sharer_name': user.name, 'goal_title': goal.title},
        )
        return share, job

    def shared_goals(self, partnership_id: int, user_id: int) -> List[dict]:
        partnership = self.get(partnership_id, user_id)
        return [
            {**goal.model_dump(), 'share_id': share.id, 'shared_at': share.created_at}
            for share, goal in self.partnerships.shared_goals(partnership.id)
        ]

    def unshare(self, partnership_id: int, goal_id: int, user_id: int) -> None:
        partnership = self.get(partnership_id, user_id)
        share = self.partnerships.get_share(goal_id, partnership.id)
        if not share:
            raise NotFoundError('shared goal not found')
        with atomic(self.session):
            self.partnerships.remove(share)

    def shared_with_me(self, user_id: int) -> List[dict]:
        return [
            {
                **goal.model_dump(),
                'share_id': share.id,
                'partnership_id': share.partnership_id,
                'shared_by': sharer_name,
                'shared_at': share.created_at,
            }
            for share, goal, sharer_name in self.partnerships.shared_with_user(user_id)
        ]
