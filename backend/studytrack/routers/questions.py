"""Mistake-notebook endpoints.

Create and update take multipart forms so an image can travel with the
question; images are validated and stored by `utils.uploads`.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlmodel import Session

from ..auth import CurrentUser, get_current_user
from ..config import settings
from ..database import get_session
from ..errors import BadRequestError
from ..progress import ProgressService
from ..schemas import RedoIn
from ..services import ImageUpload, QuestionService

router = APIRouter(prefix="/api/questions", tags=["questions"])


def _read_image(image: Optional[UploadFile]) -> Optional[ImageUpload]:
    if image is None or not image.filename:
        return None
    payload = image.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(payload) > settings.MAX_UPLOAD_BYTES:
        raise BadRequestError('image too large')
    if not payload:
        raise BadRequestError('image is empty')
    return payload, image.filename, image.content_type


@router.get('')
def list_questions(
    subject_id: Optional[int] = None,
    topic_id: Optional[int] = None,
    redone: Optional[bool] = None,
    answered_correctly: Optional[bool] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return QuestionService(db).list(
        user.id, subject_id=subject_id, topic_id=topic_id, redone=redone, answered_correctly=answered_correctly
    )


@router.get('/stats')
def question_stats(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return ProgressService(db).question_stats(user.id)


@router.get('/review/pending')
def pending_review(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Up to 20 questions not redone yet or redone wrong, oldest first."""
    return QuestionService(db).pending_review(user.id)


@router.post('', status_code=201)
def create_question(
    text: str = Form(...),
    subject_id: int = Form(...),
    topic_id: int = Form(...),
    comment: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    question = QuestionService(db).create(
        user.id, text, subject_id, topic_id, comment=comment, image=_read_image(image)
    )
    return {'message': 'question created', 'question': question}


@router.get('/{question_id}')
def get_question(question_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return QuestionService(db).get(question_id, user.id)


@router.put('/{question_id}')
def update_question(
    question_id: int,
    text: str = Form(...),
    comment: Optional[str] = Form(None),
    redone: Optional[bool] = Form(None),
    answered_correctly: Optional[bool] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """Update a question; a new image replaces the stored one."""
    question = QuestionService(db).update(
        question_id,
        user.id,
        text,
        comment=comment,
        redone=redone,
        answered_correctly=answered_correctly,
        image=_read_image(image),
    )
    return {'message': 'question updated', 'question': question}


@router.patch('/{question_id}/redo')
def redo_question(
    question_id: int,
    payload: RedoIn,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    question = QuestionService(db).redo(question_id, user.id, payload.answered_correctly)
    return {'message': 'question marked as redone', 'question': question}


@router.delete('/{question_id}')
def delete_question(question_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    QuestionService(db).delete(question_id, user.id)
    return {'message': 'question deleted'}
