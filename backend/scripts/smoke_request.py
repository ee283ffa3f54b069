"""Run a quick smoke test against the app.

Registers a throwaway account through FastAPI's TestClient, then hits
`/health` and lists that account's study plans.
"""

import os
import sys
import uuid

# Ensure backend folder is on sys.path so `study_planner` can be imported
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastapi.testclient import TestClient  # noqa: E402

from study_planner.main import app  # noqa: E402


def run():
    client = TestClient(app)
    resp = client.get('/health')
    print('HEALTH:', resp.status_code, resp.json())
    email = f"smoke-{uuid.uuid4().hex[:8]}@example.com"
    client.post('/auth/register', json={'email': email, 'password': 'smoke-pass', 'name': 'Smoke'})
    login = client.post('/auth/login', json={'email': email, 'password': 'smoke-pass'})
    print('LOGIN:', login.status_code)
    token = login.json().get('token')
    plans = client.get('/study-plans', headers={'Authorization': f'Bearer {token}'})
    print('PLANS:', plans.status_code, plans.json())


if __name__ == '__main__':
    run()
