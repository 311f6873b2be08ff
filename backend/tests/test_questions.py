from fastapi.testclient import TestClient

from studytrack.config import settings
from studytrack.main import app
from studytrack.utils import uploads

client = TestClient(app)


def _setup(headers):
    s = client.post('/api/subjects', json={'name': 'Portuguese'}, headers=headers).json()['subject']
    t = client.post(f"/api/subjects/{s['id']}/topics", json={'name': 'Grammar'}, headers=headers).json()['topic']
    return s, t


def _create(headers, subject, topic, text='Which verb tense?', image=None, **extra):
    data = {'text': text, 'subject_id': str(subject['id']), 'topic_id': str(topic['id']), **extra}
    files = {'image': image} if image else None
    return client.post('/api/questions', data=data, files=files, headers=headers)


def test_question_with_image_is_stored_and_served(make_user, png_bytes):
    h = make_user()['headers']
    s, t = _setup(h)
    r = _create(h, s, t, image=('mistake.png', png_bytes, 'image/png'), comment='Confused tenses')
    assert r.status_code == 201, r.text
    question = r.json()['question']
    assert question['image_url'].startswith('/uploads/question-')
    assert question['image_url'].endswith('.png')
    assert uploads.path_for_url(question['image_url']).exists()

    served = client.get(question['image_url'])
    assert served.status_code == 200
    assert served.content == png_bytes

    detail = client.get(f"/api/questions/{question['id']}", headers=h).json()
    assert detail['subject_name'] == 'Portuguese'
    assert detail['topic_name'] == 'Grammar'
    assert detail['redone'] is False


def test_invalid_images_are_rejected(make_user, png_bytes, monkeypatch):
    h = make_user()['headers']
    s, t = _setup(h)
    r = _create(h, s, t, image=('notes.txt', b'plain text', 'text/plain'))
    assert r.status_code == 400
    r2 = _create(h, s, t, image=('fake.png', b'definitely not a png', 'image/png'))
    assert r2.status_code == 400
    assert r2.json()['detail'] == 'file content is not a valid image'

    monkeypatch.setattr(settings, 'MAX_UPLOAD_BYTES', 10)
    r3 = _create(h, s, t, image=('big.png', png_bytes, 'image/png'))
    assert r3.status_code == 400
    assert r3.json()['detail'] == 'image too large'
    assert client.get('/api/questions', headers=h).json() == []


def test_question_requires_owned_subject_and_topic(make_user):
    h = make_user()['headers']
    other = make_user()['headers']
    s, t = _setup(h)
    other_s, other_t = _setup(other)
    assert _create(h, other_s, other_t).status_code == 404
    assert _create(h, s, other_t).status_code == 404
    r = client.post('/api/questions', data={'subject_id': str(s['id']), 'topic_id': str(t['id'])}, headers=h)
    assert r.status_code == 400
    assert r.json()['errors'][0]['field'] == 'text'


def test_update_replaces_image_and_delete_removes_it(make_user, png_bytes):
    h = make_user()['headers']
    s, t = _setup(h)
    question = _create(h, s, t, image=('first.png', png_bytes, 'image/png')).json()['question']
    old_path = uploads.path_for_url(question['image_url'])

    r = client.put(
        f"/api/questions/{question['id']}",
        data={'text': 'Updated text', 'comment': 'Now I get it', 'redone': 'true', 'answered_correctly': 'true'},
        files={'image': ('second.png', png_bytes, 'image/png')},
        headers=h,
    )
    assert r.status_code == 200, r.text
    updated = r.json()['question']
    assert updated['text'] == 'Updated text'
    assert updated['redone'] is True
    assert updated['answered_correctly'] is True
    assert updated['image_url'] != question['image_url']
    assert not old_path.exists()
    new_path = uploads.path_for_url(updated['image_url'])
    assert new_path.exists()

    assert client.delete(f"/api/questions/{question['id']}", headers=h).status_code == 200
    assert not new_path.exists()
    assert client.get(f"/api/questions/{question['id']}", headers=h).status_code == 404


def test_redo_filters_review_and_stats(make_user):
    h = make_user()['headers']
    s, t = _setup(h)
    q1 = _create(h, s, t, text='First').json()['question']
    q2 = _create(h, s, t, text='Second').json()['question']
    q3 = _create(h, s, t, text='Third').json()['question']

    r = client.patch(f"/api/questions/{q1['id']}/redo", json={'answered_correctly': True}, headers=h)
    assert r.status_code == 200
    assert r.json()['question']['redone'] is True
    client.patch(f"/api/questions/{q2['id']}/redo", json={'answered_correctly': False}, headers=h)

    redone = client.get('/api/questions', params={'redone': 'true'}, headers=h).json()
    assert {q['id'] for q in redone} == {q1['id'], q2['id']}
    correct = client.get('/api/questions', params={'answered_correctly': 'true'}, headers=h).json()
    assert [q['id'] for q in correct] == [q1['id']]

    pending = client.get('/api/questions/review/pending', headers=h).json()
    assert [q['id'] for q in pending] == [q2['id'], q3['id']]

    stats = client.get('/api/questions/stats', headers=h).json()
    assert stats['total_questions'] == 3
    assert stats['redone_questions'] == 2
    assert stats['correct_questions'] == 1
    assert stats['questions_by_subject'][0]['subject_name'] == 'Portuguese'
    assert stats['questions_by_subject'][0]['total_questions'] == 3


def test_questions_are_isolated(make_user):
    h = make_user()['headers']
    other = make_user()['headers']
    s, t = _setup(h)
    q = _create(h, s, t).json()['question']
    assert client.get(f"/api/questions/{q['id']}", headers=other).status_code == 404
    assert client.patch(f"/api/questions/{q['id']}/redo", json={'answered_correctly': True}, headers=other).status_code == 404
    assert client.delete(f"/api/questions/{q['id']}", headers=other).status_code == 404
    assert client.get('/api/questions', headers=other).json() == []
