import random
from datetime import datetime, timedelta

import pytest

from onboardx.exceptions import SessionClosed, SessionNotFound
from onboardx.services.onboarding_service import OnboardingSession
from onboardx.services.session_registry import SessionRegistry
from tests.conftest import FakeCompletionClient, FakeDeliverability, FakeNotifier, FakeVerifier


def factory(session_id):
    return OnboardingSession(
        session_id, FakeCompletionClient(), verifier=FakeVerifier(),
        deliverability=FakeDeliverability(), notifier=FakeNotifier(), rng=random.Random(1),
    )


@pytest.fixture
def registry():
    return SessionRegistry(factory, idle_timeout=timedelta(minutes=30))


def test_create_get_close(registry):
    session = registry.create()
    assert registry.get(session.id) is session
    assert len(registry) == 1

    registry.close(session.id)

    assert session.active is False
    with pytest.raises(SessionNotFound):
        registry.get(session.id)
    with pytest.raises(SessionNotFound):
        registry.close(session.id)


async def test_idle_session_is_evicted_and_closed(registry):
    stale = registry.create()
    fresh = registry.create()
    stale.last_activity = datetime.utcnow() - timedelta(minutes=31)
    stale.reference_image = ("aGk=", "image/png")

    with pytest.raises(SessionNotFound):
        registry.get(stale.id)

    assert registry.get(fresh.id) is fresh
    assert len(registry) == 1
    assert stale.active is False
    assert stale.reference_image is None
    with pytest.raises(SessionClosed):
        await stale.send_text("hello?")


def test_eviction_also_runs_on_create(registry):
    stale = registry.create()
    stale.last_activity = datetime.utcnow() - timedelta(hours=2)

    registry.create()

    assert len(registry) == 1
    assert stale.active is False


async def test_busy_session_is_not_evicted(registry):
    session = registry.create()
    session.last_activity = datetime.utcnow() - timedelta(hours=2)
    await session._lock.acquire()
    try:
        assert registry.evict_idle() == 0
    finally:
        session._lock.release()

    assert registry.evict_idle() == 1


def test_lookup_refreshes_activity(registry):
    session = registry.create()
    session.last_activity = datetime.utcnow() - timedelta(minutes=29)

    registry.get(session.id)

    assert registry.evict_idle(now=datetime.utcnow() + timedelta(minutes=5)) == 0
