from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from .. import services
from ..auth import CurrentUser, get_current_user
from ..database import get_session
from ..schemas import LoginIn, RegisterIn, TokenOut

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post('/register', status_code=201, response_model=TokenOut)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user and sign them in.

    Emails are unique (case-insensitive); a duplicate returns 400.
    """
    svc = services.AuthService(db)
    user = svc.register(payload.name, payload.email, payload.password)
    return {'message': 'user registered', 'token': svc.issue_token(user), 'user': services.public_user(user)}


@router.post('/login', response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a JWT signed with `{id, name, email}`."""
    svc = services.AuthService(db)
    user = svc.authenticate(payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail='invalid credentials', headers={'WWW-Authenticate': 'Bearer'})
    return {'message': 'login successful', 'token': svc.issue_token(user), 'user': services.public_user(user)}


@router.get('/verify')
def verify(user: CurrentUser = Depends(get_current_user)):
    return {'valid': True, 'user': user.model_dump()}


@router.get('/me')
def me(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    profile = services.AuthService(db).profile(user.id)
    return {**services.public_user(profile), 'created_at': profile.created_at}
