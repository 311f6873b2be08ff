"""Subjects and the topics nested under them.

Endpoints implemented:
- GET/POST /api/subjects
- POST /api/subjects/reorder
- GET/PUT/DELETE /api/subjects/{subject_id}
- GET/POST /api/subjects/{subject_id}/topics
- PUT/DELETE /api/subjects/{subject_id}/topics/{topic_id}
"""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_session
from ..schemas import ReorderIn, SubjectIn, TopicIn
from ..services import SubjectService

router = APIRouter(prefix="/api/subjects", tags=["subjects"])


@router.get('')
def list_subjects(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return SubjectService(db).list(user.id)


@router.post('', status_code=201)
def create_subject(payload: SubjectIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    subject = SubjectService(db).create(user.id, payload)
    return {'message': 'subject created', 'subject': subject}


@router.post('/reorder')
def reorder_subjects(payload: ReorderIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Rewrite the display order from the position of each id in the list."""
    result = SubjectService(db).reorder(user.id, payload.subject_ids)
    return {'message': 'subjects reordered', **result}


@router.get('/{subject_id}')
def get_subject(subject_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return SubjectService(db).get_with_topics(subject_id, user.id)


@router.put('/{subject_id}')
def update_subject(
    subject_id: int,
    payload: SubjectIn,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    subject = SubjectService(db).update(subject_id, user.id, payload)
    return {'message': 'subject updated', 'subject': subject}


@router.delete('/{subject_id}')
def delete_subject(subject_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Delete a subject together with its topics, sessions, questions and allocations."""
    SubjectService(db).delete(subject_id, user.id)
    return {'message': 'subject deleted'}


@router.get('/{subject_id}/topics')
def list_topics(subject_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return SubjectService(db).list_topics(subject_id, user.id)


@router.post('/{subject_id}/topics', status_code=201)
def create_topic(
    subject_id: int,
    payload: TopicIn,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    topic = SubjectService(db).create_topic(subject_id, user.id, payload)
    return {'message': 'topic created', 'topic': topic}


@router.put('/{subject_id}/topics/{topic_id}')
def update_topic(
    subject_id: int,
    topic_id: int,
    payload: TopicIn,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    topic = SubjectService(db).update_topic(subject_id, topic_id, user.id, payload)
    return {'message': 'topic updated', 'topic': topic}


@router.delete('/{subject_id}/topics/{topic_id}')
def delete_topic(
    subject_id: int,
    topic_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    SubjectService(db).delete_topic(subject_id, topic_id, user.id)
    return {'message': 'topic deleted'}
