from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

from study_planner.config import settings
from study_planner.main import app

client = TestClient(app)


def test_register_returns_public_user_without_password():
    r = client.post('/auth/register', json={'email': 'Ada@Example.com', 'password': 'pass123', 'name': 'Ada'})
    assert r.status_code == 201
    body = r.json()
    assert body['success'] is True
    user = body['user']
    assert user['email'] == 'ada@example.com'
    assert user['name'] == 'Ada'
    assert 'createdAt' in user
    assert 'password' not in r.text
    assert 'passwordHash' not in user and 'password_hash' not in user


def test_register_rejects_duplicate_email_and_bad_input():
    payload = {'email': 'dup@example.com', 'password': 'pass123', 'name': 'Dup'}
    assert client.post('/auth/register', json=payload).status_code == 201
    again = client.post('/auth/register', json={**payload, 'email': 'DUP@example.com'})
    assert again.status_code == 400
    assert again.json() == {'error': 'validation_error', 'message': 'email already registered'}
    assert client.post('/auth/register', json={**payload, 'email': 'not-an-email'}).status_code == 400
    assert client.post('/auth/register', json={**payload, 'email': 'short@example.com', 'password': '123'}).status_code == 400
    assert client.post('/auth/register', json={**payload, 'email': 'noname@example.com', 'name': '  '}).status_code == 400


def test_login_failures_are_indistinguishable():
    client.post('/auth/register', json={'email': 'who@example.com', 'password': 'pass123', 'name': 'Who'})
    wrong_password = client.post('/auth/login', json={'email': 'who@example.com', 'password': 'nope!!'})
    unknown_email = client.post('/auth/login', json={'email': 'nobody@example.com', 'password': 'pass123'})
    assert wrong_password.status_code == 401
    assert unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


def test_me_requires_valid_token(make_user):
    user = make_user('Grace')
    r = client.get('/auth/me', headers=user['headers'])
    assert r.status_code == 200
    assert r.json()['user']['id'] == user['id']

    missing = client.get('/auth/me')
    assert missing.status_code == 401
    assert missing.json()['error'] == 'unauthorized'

    assert client.get('/auth/me', headers={'Authorization': 'Bearer garbage'}).status_code == 401
    assert client.get('/auth/me', headers={'Authorization': 'Basic abc'}).status_code == 401


def test_expired_forged_and_orphaned_tokens_are_rejected(make_user):
    user = make_user()
    past = int((datetime.now(timezone.utc) - timedelta(hours=1)).timestamp())
    expired = jwt.encode({'user_id': user['id'], 'exp': past}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    r = client.get('/auth/me', headers={'Authorization': f'Bearer {expired}'})
    assert r.status_code == 401
    assert r.json()['message'] == 'token expired'

    forged = jwt.encode({'user_id': user['id']}, 'some-other-secret', algorithm='HS256')
    assert client.get('/auth/me', headers={'Authorization': f'Bearer {forged}'}).status_code == 401

    orphan = jwt.encode({'user_id': 10_000_000}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    assert client.get('/auth/me', headers={'Authorization': f'Bearer {orphan}'}).status_code == 401

    no_claim = jwt.encode({'email': user['email']}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    assert client.get('/auth/me', headers={'Authorization': f'Bearer {no_claim}'}).status_code == 401


def test_session_cookie_is_accepted_when_no_bearer_header(make_user):
    user = make_user()
    cookie_client = TestClient(app, cookies={settings.SESSION_COOKIE_NAME: user['token']})
    r = cookie_client.get('/study-plans')
    assert r.status_code == 200
    assert r.json() == {'success': True, 'studyPlans': []}


def test_login_is_rate_limited_per_account(monkeypatch):
    monkeypatch.setattr(settings, 'LOGIN_RATE_LIMIT_PER_MIN', 2)
    client.post('/auth/register', json={'email': 'brute@example.com', 'password': 'pass123', 'name': 'B'})
    codes = [client.post('/auth/login', json={'email': 'brute@example.com', 'password': 'guess!'}).status_code for _ in range(3)]
    assert codes == [401, 401, 429]
    blocked = client.post('/auth/login', json={'email': 'brute@example.com', 'password': 'pass123'})
    assert blocked.status_code == 429
    assert blocked.json()['error'] == 'rate_limited'
    assert int(blocked.headers['Retry-After']) >= 1


def test_request_id_is_echoed():
    r = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert r.status_code == 200
    assert r.json() == {'status': 'ok'}
    assert r.headers['X-Request-ID'] == 'abc123'
