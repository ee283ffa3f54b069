from datetime import datetime, timezone

from fastapi.testclient import TestClient
from sqlmodel import select

from study_planner import models
from study_planner.main import app

client = TestClient(app)

PLAN = {
    'title': 'Math',
    'description': 'Linear algebra revision',
    'startDate': '2025-01-06T09:00:00',
    'endDate': '2025-02-06T17:00:00',
}


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def _create_plan(headers, **overrides):
    r = client.post('/study-plans', json={**PLAN, **overrides}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()['studyPlan']


def test_create_plan_applies_defaults_and_ignores_owner_fields(make_user):
    user = make_user()
    other = make_user()
    r = client.post(
        '/study-plans',
        json={'title': 'Physics', 'startDate': PLAN['startDate'], 'endDate': PLAN['endDate'], 'userId': other['id']},
        headers=user['headers'],
    )
    assert r.status_code == 201
    body = r.json()
    assert body['success'] is True
    plan = body['studyPlan']
    assert plan['userId'] == user['id']
    assert plan['status'] == 'pending'
    assert plan['description'] == ''
    assert _parse(plan['startDate']) == datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def test_create_plan_validation_errors(make_user):
    headers = make_user()['headers']
    cases = [
        {k: v for k, v in PLAN.items() if k != 'title'},
        {**PLAN, 'title': '   '},
        {k: v for k, v in PLAN.items() if k != 'endDate'},
        {**PLAN, 'status': 'urgent'},
        {**PLAN, 'status': 'COMPLETED'},
        {**PLAN, 'startDate': 'next tuesday'},
    ]
    for payload in cases:
        r = client.post('/study-plans', json=payload, headers=headers)
        assert r.status_code == 400, payload
        assert r.json()['error'] == 'validation_error'
    assert client.post('/study-plans', headers=headers).status_code == 400
    assert client.post('/study-plans', json=['not', 'an', 'object'], headers=headers).status_code == 400


def test_end_before_start_is_accepted(make_user):
    headers = make_user()['headers']
    plan = _create_plan(headers, startDate='2025-03-01T00:00:00', endDate='2025-02-01T00:00:00')
    assert _parse(plan['endDate']) == datetime(2025, 2, 1, tzinfo=timezone.utc)


def test_round_trip_create_then_get(make_user):
    headers = make_user()['headers']
    created = _create_plan(headers)
    r = client.get(f"/study-plans/{created['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json() == {'success': True, 'studyPlan': created}


def test_list_newest_first_and_status_filter(make_user):
    headers = make_user()['headers']
    first = _create_plan(headers, title='First')
    second = _create_plan(headers, title='Second', status='in_progress')
    r = client.get('/study-plans', headers=headers)
    assert r.status_code == 200
    assert [p['id'] for p in r.json()['studyPlans']] == [second['id'], first['id']]

    filtered = client.get('/study-plans', params={'status': 'in_progress'}, headers=headers)
    assert [p['id'] for p in filtered.json()['studyPlans']] == [second['id']]
    assert client.get('/study-plans', params={'status': 'later'}, headers=headers).status_code == 400


def test_update_status_leaves_other_fields(make_user):
    headers = make_user()['headers']
    plan = _create_plan(headers, status='pending')
    r = client.put(f"/study-plans/{plan['id']}", json={'status': 'completed'}, headers=headers)
    assert r.status_code == 200
    fetched = client.get(f"/study-plans/{plan['id']}", headers=headers).json()['studyPlan']
    assert fetched['status'] == 'completed'
    for key in ('title', 'description', 'startDate', 'endDate', 'userId', 'createdAt'):
        assert fetched[key] == plan[key]


def test_empty_update_changes_nothing(make_user):
    headers = make_user()['headers']
    plan = _create_plan(headers)
    r = client.put(f"/study-plans/{plan['id']}", json={}, headers=headers)
    assert r.status_code == 200
    updated = r.json()['studyPlan']
    assert {k: v for k, v in updated.items() if k != 'updatedAt'} == {k: v for k, v in plan.items() if k != 'updatedAt'}


def test_update_rejects_null_required_fields_and_bad_enums(make_user):
    headers = make_user()['headers']
    plan = _create_plan(headers)
    assert client.put(f"/study-plans/{plan['id']}", json={'title': None}, headers=headers).status_code == 400
    assert client.put(f"/study-plans/{plan['id']}", json={'status': 'done'}, headers=headers).status_code == 400
    fetched = client.get(f"/study-plans/{plan['id']}", headers=headers).json()['studyPlan']
    assert fetched['title'] == plan['title']
    assert fetched['status'] == plan['status']


def test_other_users_plan_looks_missing(make_user):
    owner = make_user()
    intruder = make_user()
    plan = _create_plan(owner['headers'])

    missing = client.get('/study-plans/987654321', headers=intruder['headers'])
    for method in ('get', 'put', 'delete'):
        kwargs = {'json': {'title': 'mine now'}} if method == 'put' else {}
        r = getattr(client, method)(f"/study-plans/{plan['id']}", headers=intruder['headers'], **kwargs)
        assert r.status_code == 404
        assert r.json() == missing.json()

    still_there = client.get(f"/study-plans/{plan['id']}", headers=owner['headers'])
    assert still_there.status_code == 200
    assert still_there.json()['studyPlan']['title'] == plan['title']
    assert client.get('/study-plans', headers=intruder['headers']).json()['studyPlans'] == []


def test_delete_cascades_to_children(make_user, db):
    headers = make_user()['headers']
    plan = _create_plan(headers)
    q = {'studyPlanId': plan['id']}
    material = client.post('/study-materials', params=q, json={'title': 'Book'}, headers=headers).json()['studyMaterial']
    client.post('/study-sessions', params=q, json={'title': 'Morning', 'startTime': '2025-01-07T08:00:00'}, headers=headers)
    client.post('/study-recommendations', params=q, json={'content': 'Use flashcards'}, headers=headers)

    r = client.delete(f"/study-plans/{plan['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json() == {'success': True, 'message': 'Study plan deleted successfully'}
    assert client.get(f"/study-plans/{plan['id']}", headers=headers).status_code == 404
    assert client.get(f"/study-materials/{material['id']}", headers=headers).status_code == 404
    for model in (models.StudyMaterial, models.StudySession, models.StudyRecommendation):
        assert db.exec(select(model).where(model.study_plan_id == plan['id'])).all() == []


def test_requests_without_credentials_are_rejected():
    assert client.get('/study-plans').status_code == 401
    r = client.post('/study-plans', json=PLAN)
    assert r.status_code == 401
    assert r.json()['error'] == 'unauthorized'


def test_bad_ids_and_verbs(make_user):
    headers = make_user()['headers']
    r = client.get('/study-plans/abc', headers=headers)
    assert r.status_code == 400
    assert r.json()['error'] == 'validation_error'
    r = client.patch('/study-plans/1', json={}, headers=headers)
    assert r.status_code == 405
    assert r.json()['error'] == 'method_not_allowed'
