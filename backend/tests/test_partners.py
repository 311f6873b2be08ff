from datetime import timedelta
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from studytrack import models
from studytrack.database import engine
from studytrack.main import app
from studytrack.utils.mailer import Mailer, MailerConfig, get_mailer

client = TestClient(app)


def _invite(headers, email, name=None):
    return client.post('/api/partners/invite', json={'email': email, 'name': name}, headers=headers)


def _partner_rows(user_id):
    with Session(engine) as session:
        return session.exec(select(models.Partnership).where(models.Partnership.user_id == user_id)).all()


def _make_partners(make_user, fake_mailer):
    alice = make_user(name='Alice')
    bob = make_user(name='Bob')
    invite = _invite(alice['headers'], bob['email'], 'Bobby').json()['partner']
    r = client.post(f"/api/partners/accept/{invite['invite_token']}", headers=bob['headers'])
    assert r.status_code == 200, r.text
    return alice, bob, invite


def test_invite_queues_email_and_notifies_both_sides(make_user, fake_mailer):
    alice = make_user(name='Alice')
    bob = make_user(name='Bob')
    r = _invite(alice['headers'], bob['email'].upper(), 'Bobby')
    assert r.status_code == 201, r.text
    partner = r.json()['partner']
    assert partner['status'] == 'pending'
    assert partner['partner_email'] == bob['email']
    assert partner['partner_user_id'] == bob['user']['id']
    assert len(partner['invite_token']) >= 40

    assert len(fake_mailer.sent) == 1
    mail = fake_mailer.sent[0]
    assert mail['to'] == bob['email']
    assert mail['template'] == 'partner_invite'
    assert mail['context']['invite_link'].endswith(f"/partners/accept/{partner['invite_token']}")
    assert mail['context']['inviter_name'] == 'Alice'

    bob_notes = client.get('/api/notifications', headers=bob['headers']).json()
    assert [n['kind'] for n in bob_notes] == ['partner_invite']
    alice_notes = client.get('/api/notifications', headers=alice['headers']).json()
    assert [n['kind'] for n in alice_notes] == ['invite_sent']

    received = client.get('/api/partners/invites/received', headers=bob['headers']).json()
    assert [(i['inviter_name'], i['invite_token']) for i in received] == [('Alice', partner['invite_token'])]


def test_invite_guards(make_user):
    alice = make_user()
    r = _invite(alice['headers'], alice['email'])
    assert r.status_code == 400
    assert _invite(alice['headers'], 'friend@example.com').status_code == 201
    r2 = _invite(alice['headers'], 'friend@example.com')
    assert r2.status_code == 400
    assert r2.json()['detail'] == 'invite already sent'
    r3 = _invite(alice['headers'], 'not-an-email')
    assert r3.status_code == 400


def test_accept_creates_both_directions_once(make_user, fake_mailer):
    alice, bob, invite = _make_partners(make_user, fake_mailer)

    alice_rows = _partner_rows(alice['user']['id'])
    bob_rows = _partner_rows(bob['user']['id'])
    assert [(p.status, p.partner_user_id) for p in alice_rows] == [('accepted', bob['user']['id'])]
    assert [(p.status, p.partner_user_id) for p in bob_rows] == [('accepted', alice['user']['id'])]
    assert alice_rows[0].responded_at is not None
    assert bob_rows[0].partner_name == 'Alice'

    # accepting again fails and never duplicates the reverse row
    r = client.post(f"/api/partners/accept/{invite['invite_token']}", headers=bob['headers'])
    assert r.status_code == 400
    assert len(_partner_rows(bob['user']['id'])) == 1

    assert fake_mailer.sent[-1]['template'] == 'partner_accepted'
    assert fake_mailer.sent[-1]['to'] == alice['email']
    kinds = [n['kind'] for n in client.get('/api/notifications', headers=alice['headers']).json()]
    assert 'partner_accepted' in kinds

    listed = client.get('/api/partners', headers=bob['headers']).json()
    assert listed[0]['partner_email'] == alice['email']
    assert _invite(alice['headers'], bob['email']).status_code == 400


def test_accept_checks_token_email_and_expiry(make_user):
    alice = make_user()
    bob = make_user()
    carol = make_user()
    invite = _invite(alice['headers'], bob['email']).json()['partner']

    assert client.post('/api/partners/accept/unknown-token', headers=bob['headers']).status_code == 404
    r = client.post(f"/api/partners/accept/{invite['invite_token']}", headers=carol['headers'])
    assert r.status_code == 403
    assert client.post(f"/api/partners/accept/{invite['invite_token']}").status_code == 401

    with Session(engine) as session:
        row = session.get(models.Partnership, invite['id'])
        row.invite_expires_at = models.utcnow() - timedelta(hours=1)
        session.add(row)
        session.commit()

    r2 = client.post(f"/api/partners/accept/{invite['invite_token']}", headers=bob['headers'])
    assert r2.status_code == 400
    assert r2.json()['detail'] == 'invite expired'
    assert _partner_rows(bob['user']['id']) == []
    assert client.get('/api/partners/invites/received', headers=bob['headers']).json() == []

    # an expired invite can be re-issued with a fresh token
    r3 = _invite(alice['headers'], bob['email'])
    assert r3.status_code == 201
    assert r3.json()['partner']['id'] == invite['id']
    assert r3.json()['partner']['invite_token'] != invite['invite_token']


def test_reject_then_reinvite(make_user):
    alice = make_user()
    bob = make_user()
    invite = _invite(alice['headers'], bob['email']).json()['partner']

    r = client.post(f"/api/partners/reject/{invite['invite_token']}", headers=bob['headers'])
    assert r.status_code == 200
    assert client.get(f"/api/partners/{invite['id']}", headers=alice['headers']).json()['status'] == 'rejected'
    assert client.post(f"/api/partners/accept/{invite['invite_token']}", headers=bob['headers']).status_code == 400

    r2 = _invite(alice['headers'], bob['email'])
    assert r2.status_code == 201
    assert r2.json()['partner']['status'] == 'pending'


def test_invite_for_email_without_account(make_user):
    alice = make_user()
    invite = _invite(alice['headers'], 'newcomer@example.com').json()['partner']
    assert invite['partner_user_id'] is None

    newcomer = make_user(name='Newcomer', email='newcomer@example.com')
    r = client.post(f"/api/partners/accept/{invite['invite_token']}", headers=newcomer['headers'])
    assert r.status_code == 200
    rows = _partner_rows(alice['user']['id'])
    assert rows[0].partner_user_id == newcomer['user']['id']


def test_share_goal_flow(make_user, fake_mailer):
    alice, bob, invite = _make_partners(make_user, fake_mailer)
    goal = client.post('/api/goals', json={'title': 'Finish syllabus', 'kind': 'general'}, headers=alice['headers']).json()['goal']

    r = client.post(f"/api/partners/{invite['id']}/share-goal", json={'goal_id': goal['id']}, headers=alice['headers'])
    assert r.status_code == 201, r.text
    assert fake_mailer.sent[-1]['template'] == 'goal_shared'
    assert fake_mailer.sent[-1]['context']['goal_title'] == 'Finish syllabus'

    dup = client.post(f"/api/partners/{invite['id']}/share-goal", json={'goal_id': goal['id']}, headers=alice['headers'])
    assert dup.status_code == 400

    shared = client.get(f"/api/partners/{invite['id']}/shared-goals", headers=alice['headers']).json()
    assert [g['id'] for g in shared] == [goal['id']]
    with_me = client.get('/api/partners/shared-with-me', headers=bob['headers']).json()
    assert [(g['title'], g['shared_by']) for g in with_me] == [('Finish syllabus', 'Alice')]
    kinds = [n['kind'] for n in client.get('/api/notifications', headers=bob['headers']).json()]
    assert 'goal_shared' in kinds

    r2 = client.delete(f"/api/partners/{invite['id']}/shared-goals/{goal['id']}", headers=alice['headers'])
    assert r2.status_code == 200
    assert client.get('/api/partners/shared-with-me', headers=bob['headers']).json() == []
    r3 = client.delete(f"/api/partners/{invite['id']}/shared-goals/{goal['id']}", headers=alice['headers'])
    assert r3.status_code == 404


def test_share_requires_accepted_partnership_and_owned_goal(make_user, fake_mailer):
    alice = make_user()
    pending = _invite(alice['headers'], 'someone@example.com').json()['partner']
    goal = client.post('/api/goals', json={'title': 'Mine', 'kind': 'general'}, headers=alice['headers']).json()['goal']
    r = client.post(f"/api/partners/{pending['id']}/share-goal", json={'goal_id': goal['id']}, headers=alice['headers'])
    assert r.status_code == 404

    alice2, bob, invite = _make_partners(make_user, fake_mailer)
    bob_goal = client.post('/api/goals', json={'title': 'Bob goal', 'kind': 'general'}, headers=bob['headers']).json()['goal']
    r2 = client.post(f"/api/partners/{invite['id']}/share-goal", json={'goal_id': bob_goal['id']}, headers=alice2['headers'])
    assert r2.status_code == 404


def test_delete_partnership_removes_both_directions(make_user, fake_mailer):
    alice, bob, invite = _make_partners(make_user, fake_mailer)
    goal = client.post('/api/goals', json={'title': 'Shared', 'kind': 'general'}, headers=alice['headers']).json()['goal']
    client.post(f"/api/partners/{invite['id']}/share-goal", json={'goal_id': goal['id']}, headers=alice['headers'])

    bob_row = client.get('/api/partners', headers=bob['headers']).json()[0]
    r = client.delete(f"/api/partners/{bob_row['id']}", headers=bob['headers'])
    assert r.status_code == 200

    assert client.get('/api/partners', headers=alice['headers']).json() == []
    assert client.get('/api/partners', headers=bob['headers']).json() == []
    assert client.get('/api/partners/shared-with-me', headers=bob['headers']).json() == []
    # notifications survive without their partnership
    notes = client.get('/api/notifications', headers=alice['headers']).json()
    assert notes and all(n['partnership_id'] is None for n in notes)
    # the goal itself is untouched
    assert client.get(f"/api/goals/{goal['id']}", headers=alice['headers']).status_code == 200


def test_partners_are_isolated(make_user, fake_mailer):
    alice, bob, invite = _make_partners(make_user, fake_mailer)
    eve = make_user()
    assert client.get(f"/api/partners/{invite['id']}", headers=eve['headers']).status_code == 404
    assert client.delete(f"/api/partners/{invite['id']}", headers=eve['headers']).status_code == 404
    assert client.get(f"/api/partners/{invite['id']}/shared-goals", headers=eve['headers']).status_code == 404


def test_failed_email_does_not_undo_invite(make_user):
    broken = Mailer(MailerConfig(smtp_host='smtp.invalid', smtp_port=2525, from_email='noreply@example.com'))
    app.dependency_overrides[get_mailer] = lambda: broken
    alice = make_user()
    with patch('studytrack.utils.mailer.aiosmtplib.SMTP', side_effect=OSError('connection refused')):
        r = _invite(alice['headers'], 'offline@example.com')
    assert r.status_code == 201
    rows = _partner_rows(alice['user']['id'])
    assert [(p.partner_email, p.status) for p in rows] == [('offline@example.com', 'pending')]


def test_notifications_read_flow(make_user):
    alice = make_user()
    _invite(alice['headers'], 'a1@example.com')
    _invite(alice['headers'], 'a2@example.com')
    notes = client.get('/api/notifications', headers=alice['headers']).json()
    assert len(notes) == 2

    r = client.patch(f"/api/notifications/{notes[0]['id']}/read", headers=alice['headers'])
    assert r.status_code == 200
    assert r.json()['notification']['read'] is True
    unread = client.get('/api/notifications', params={'unread_only': 'true'}, headers=alice['headers']).json()
    assert [n['id'] for n in unread] == [notes[1]['id']]

    r2 = client.patch('/api/notifications/read-all', headers=alice['headers'])
    assert r2.json()['updated'] == 1
    assert client.get('/api/notifications', params={'unread_only': 'true'}, headers=alice['headers']).json() == []

    other = make_user()
    assert client.patch(f"/api/notifications/{notes[0]['id']}/read", headers=other['headers']).status_code == 404


def test_withdrawing_pending_invite_keeps_the_other_users_invite(make_user):
    alice = make_user()
    bob = make_user()
    a_inv = _invite(alice['headers'], bob['email']).json()['partner']
    b_inv = _invite(bob['headers'], alice['email']).json()['partner']
    assert a_inv['partner_user_id'] == bob['user']['id']
    assert b_inv['partner_user_id'] == alice['user']['id']

    r = client.delete(f"/api/partners/{a_inv['id']}", headers=alice['headers'])
    assert r.status_code == 200
    assert _partner_rows(alice['user']['id']) == []
    assert [p.id for p in _partner_rows(bob['user']['id'])] == [b_inv['id']]
    assert _partner_rows(bob['user']['id'])[0].status == 'pending'
