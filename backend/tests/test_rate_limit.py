from fastapi.testclient import TestClient

from study_planner import main
from study_planner.main import app
from study_planner.utils.rate_limit import InMemoryRateLimiter

client = TestClient(app)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_expired_keys_are_dropped():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock=clock)
    for i in range(300):
        assert limiter.allow(f'host:user{i}@example.com', 5, 60) == (True, 0)
    assert len(limiter) == 300
    clock.now += 61
    limiter.allow('host:late@example.com', 5, 60)
    assert len(limiter) == 1


def test_window_still_blocks_repeat_attempts():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock=clock)
    assert limiter.allow('k', 2, 60)[0]
    assert limiter.allow('k', 2, 60)[0]
    clock.now += 10
    assert limiter.allow('k', 2, 60) == (False, 50)
    clock.now += 51
    assert limiter.allow('k', 2, 60) == (True, 0)


def test_key_count_is_capped():
    limiter = InMemoryRateLimiter(max_keys=50, clock=FakeClock())
    for i in range(200):
        limiter.allow(f'key{i}', 3, 60)
    assert len(limiter) == 50
    # most recent keys survive eviction
    assert limiter.allow('key199', 1, 60)[0] is False


def test_failed_logins_with_made_up_emails_stay_bounded(monkeypatch):
    limiter = InMemoryRateLimiter(max_keys=25)
    monkeypatch.setattr(main, '_login_limiter', limiter)
    for i in range(120):
        r = client.post('/auth/login', json={'email': f'ghost{i}@example.com', 'password': 'whatever'})
        assert r.status_code == 401
    assert len(limiter) <= 25
