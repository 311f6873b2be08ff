from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

from studytrack.config import settings
from studytrack.main import app

client = TestClient(app)


def test_register_login_verify_and_me():
    r = client.post('/api/auth/register', json={'name': 'Ana', 'email': 'Ana.Reg@Example.com', 'password': 'secret123'})
    assert r.status_code == 201
    body = r.json()
    assert body['user']['email'] == 'ana.reg@example.com'
    assert body['token']

    r2 = client.post('/api/auth/login', json={'email': 'ana.reg@example.com', 'password': 'secret123'})
    assert r2.status_code == 200
    token = r2.json()['token']
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert payload['id'] == body['user']['id']
    assert payload['name'] == 'Ana'
    assert payload['email'] == 'ana.reg@example.com'

    headers = {'Authorization': f'Bearer {token}'}
    r3 = client.get('/api/auth/verify', headers=headers)
    assert r3.status_code == 200
    assert r3.json()['valid'] is True
    r4 = client.get('/api/auth/me', headers=headers)
    assert r4.status_code == 200
    assert r4.json()['name'] == 'Ana'


def test_duplicate_email_is_rejected_case_insensitively(make_user):
    user = make_user(email='dup@example.com')
    r = client.post('/api/auth/register', json={'name': 'Other', 'email': 'DUP@example.com', 'password': 'secret123'})
    assert r.status_code == 400
    assert r.json()['detail'] == 'email already registered'
    assert user['user']['email'] == 'dup@example.com'


def test_register_validation_errors_are_reported_per_field():
    r = client.post('/api/auth/register', json={'name': '', 'email': 'not-an-email', 'password': '123'})
    assert r.status_code == 400
    body = r.json()
    assert body['detail'] == 'validation failed'
    fields = {e['field'] for e in body['errors']}
    assert {'name', 'email', 'password'} <= fields


def test_login_with_wrong_password(make_user):
    user = make_user()
    r = client.post('/api/auth/login', json={'email': user['email'], 'password': 'wrong-pass'})
    assert r.status_code == 401
    r2 = client.post('/api/auth/login', json={'email': 'nobody@example.com', 'password': 'whatever'})
    assert r2.status_code == 401


def test_protected_routes_require_a_valid_token():
    r = client.get('/api/subjects')
    assert r.status_code == 401
    assert r.headers.get('WWW-Authenticate') == 'Bearer'

    r2 = client.get('/api/subjects', headers={'Authorization': 'Bearer garbage'})
    assert r2.status_code == 401
    assert r2.json()['detail'] == 'invalid token'

    expired = jwt.encode(
        {'id': 1, 'name': 'x', 'email': 'x@example.com', 'exp': datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    r3 = client.get('/api/subjects', headers={'Authorization': f'Bearer {expired}'})
    assert r3.status_code == 401
    assert r3.json()['detail'] == 'token expired'

    wrong_shape = jwt.encode({'sub': 'x'}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    r4 = client.get('/api/subjects', headers={'Authorization': f'Bearer {wrong_shape}'})
    assert r4.status_code == 401


def test_health_and_unknown_routes():
    r = client.get('/api/health')
    assert r.status_code == 200
    assert r.json() == {'status': 'ok', 'message': 'Personal study system backend is running'}
    assert client.get('/health').status_code == 200

    r2 = client.get('/api/does-not-exist')
    assert r2.status_code == 404
    assert r2.json()['detail'] == 'route not found'


def test_request_id_is_propagated():
    r = client.get('/api/health', headers={'X-Request-ID': 'abc123'})
    assert r.headers['X-Request-ID'] == 'abc123'
    r2 = client.get('/api/health')
    assert r2.headers['X-Request-ID']
