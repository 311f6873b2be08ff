from datetime import date, timedelta

from fastapi.testclient import TestClient

from studytrack.main import app

client = TestClient(app)


def _setup(headers):
    s = client.post('/api/subjects', json={'name': 'Chemistry'}, headers=headers).json()['subject']
    t1 = client.post(f"/api/subjects/{s['id']}/topics", json={'name': 'Atoms', 'sort_order': 1}, headers=headers).json()['topic']
    t2 = client.post(f"/api/subjects/{s['id']}/topics", json={'name': 'Bonds', 'sort_order': 2}, headers=headers).json()['topic']
    return s, t1, t2


def _create(headers, **payload):
    r = client.post('/api/study-sessions', json=payload, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()['study_session']


def test_session_crud_with_names(make_user):
    h = make_user()['headers']
    s, t1, t2 = _setup(h)
    created = _create(
        h, study_date=date.today().isoformat(), duration=50, subject_id=s['id'], topic_id=t1['id'],
        next_topic_id=t2['id'], notes='Periodic table',
    )
    detail = client.get(f"/api/study-sessions/{created['id']}", headers=h).json()
    assert detail['subject_name'] == 'Chemistry'
    assert detail['topic_name'] == 'Atoms'
    assert detail['next_topic_name'] == 'Bonds'

    r = client.put(f"/api/study-sessions/{created['id']}", json={
        'study_date': date.today().isoformat(), 'duration': 70, 'notes': 'More practice',
    }, headers=h)
    assert r.status_code == 200
    assert r.json()['study_session']['duration'] == 70
    assert r.json()['study_session']['next_topic_id'] is None

    assert client.delete(f"/api/study-sessions/{created['id']}", headers=h).status_code == 200
    assert client.get(f"/api/study-sessions/{created['id']}", headers=h).status_code == 404


def test_session_validation_and_ownership(make_user):
    h = make_user()['headers']
    other = make_user()['headers']
    s, t1, _ = _setup(h)
    other_s, other_t, _ = _setup(other)
    today = date.today().isoformat()

    r = client.post('/api/study-sessions', json={
        'study_date': today, 'duration': 0, 'subject_id': s['id'], 'topic_id': t1['id'],
    }, headers=h)
    assert r.status_code == 400
    assert r.json()['errors'][0]['field'] == 'duration'

    # topic from another subject
    r2 = client.post('/api/study-sessions', json={
        'study_date': today, 'duration': 10, 'subject_id': s['id'], 'topic_id': other_t['id'],
    }, headers=h)
    assert r2.status_code == 404

    # subject of another user
    r3 = client.post('/api/study-sessions', json={
        'study_date': today, 'duration': 10, 'subject_id': other_s['id'], 'topic_id': other_t['id'],
    }, headers=h)
    assert r3.status_code == 404

    mine = _create(h, study_date=today, duration=10, subject_id=s['id'], topic_id=t1['id'])
    assert client.get(f"/api/study-sessions/{mine['id']}", headers=other).status_code == 404
    assert client.delete(f"/api/study-sessions/{mine['id']}", headers=other).status_code == 404
    assert client.get('/api/study-sessions', headers=other).json() == []


def test_session_list_filters(make_user):
    h = make_user()['headers']
    s, t1, t2 = _setup(h)
    today = date.today()
    old = _create(h, study_date=(today - timedelta(days=10)).isoformat(), duration=10, subject_id=s['id'], topic_id=t1['id'])
    recent = _create(h, study_date=today.isoformat(), duration=20, subject_id=s['id'], topic_id=t2['id'])

    listed = client.get('/api/study-sessions', headers=h).json()
    assert [x['id'] for x in listed] == [recent['id'], old['id']]

    by_topic = client.get('/api/study-sessions', params={'topic_id': t1['id']}, headers=h).json()
    assert [x['id'] for x in by_topic] == [old['id']]

    since = client.get('/api/study-sessions', params={'start_date': (today - timedelta(days=1)).isoformat()}, headers=h).json()
    assert [x['id'] for x in since] == [recent['id']]

    until = client.get('/api/study-sessions', params={'end_date': (today - timedelta(days=5)).isoformat(), 'subject_id': s['id']}, headers=h).json()
    assert [x['id'] for x in until] == [old['id']]


def test_session_stats_for_periods(make_user):
    h = make_user()['headers']
    s, t1, t2 = _setup(h)
    today = date.today()
    _create(h, study_date=today.isoformat(), duration=30, subject_id=s['id'], topic_id=t1['id'])
    _create(h, study_date=today.isoformat(), duration=90, subject_id=s['id'], topic_id=t2['id'])
    _create(h, study_date=(today - timedelta(days=3)).isoformat(), duration=60, subject_id=s['id'], topic_id=t1['id'])

    day = client.get('/api/study-sessions/stats', params={'period': 'day'}, headers=h).json()
    assert day['total_sessions'] == 2
    assert day['total_minutes'] == 120
    assert day['average_minutes'] == 60.0
    assert day['topics_studied'] == 2

    week = client.get('/api/study-sessions/stats', params={'period': 'week'}, headers=h).json()
    assert week['total_sessions'] == 3
    assert week['days_studied'] == 2
    assert week['minutes_by_subject'] == [{'subject_id': s['id'], 'subject_name': 'Chemistry', 'total_minutes': 180}]

    custom = client.get('/api/study-sessions/stats', params={
        'period': 'custom',
        'start_date': (today - timedelta(days=4)).isoformat(),
        'end_date': (today - timedelta(days=2)).isoformat(),
    }, headers=h).json()
    assert custom['total_minutes'] == 60

    bad = client.get('/api/study-sessions/stats', params={'period': 'custom'}, headers=h)
    assert bad.status_code == 400


def test_next_topics_prefers_least_studied(make_user):
    h = make_user()['headers']
    s, t1, t2 = _setup(h)
    _create(h, study_date=date.today().isoformat(), duration=15, subject_id=s['id'], topic_id=t1['id'])

    topics = client.get('/api/study-sessions/next-topics', headers=h).json()
    assert [t['id'] for t in topics] == [t2['id'], t1['id']]
    assert topics[0]['times_studied'] == 0
    assert topics[1]['times_studied'] == 1
    assert topics[0]['subject_name'] == 'Chemistry'
