import asyncio
import time
from datetime import datetime, timedelta

from sqlmodel import Session, create_engine, select

from models import UserRefreshToken
from services.token_cleanup import MIN_CLEANUP_INTERVAL_SECONDS, TokenCleanupScheduler, cleanup_expired_tokens


def add_token(session, user, token_hash, expires_at):
    session.add(UserRefreshToken(user_id=user.id, token_hash=token_hash, expires_at=expires_at))
    session.commit()


def remaining_hashes(engine):
    with Session(engine) as session:
        return sorted(row.token_hash for row in session.exec(select(UserRefreshToken)).all())


def test_only_expired_tokens_are_removed(engine, session, factory):
    user = factory.user()
    now = datetime(2026, 10, 17, 9, 0, 0)
    add_token(session, user, "expired", now - timedelta(seconds=1))
    add_token(session, user, "current", now + timedelta(seconds=1))

    deleted = cleanup_expired_tokens(engine, now=now)

    assert deleted == 1
    assert remaining_hashes(engine) == ["current"]


def test_cleanup_failure_is_logged_and_swallowed(caplog):
    # No tables were created on this engine, so the DELETE fails
    broken_engine = create_engine("sqlite://")

    assert cleanup_expired_tokens(broken_engine) == 0
    assert "Error during cleanup" in caplog.text


def test_scheduler_sweeps_on_start_and_stops_cleanly(engine, session, factory):
    user = factory.user()
    add_token(session, user, "stale", datetime.now() - timedelta(days=1))
    add_token(session, user, "fresh", datetime.now() + timedelta(days=1))

    async def scenario():
        scheduler = TokenCleanupScheduler(engine, interval_seconds=3600)
        scheduler.start()
        assert scheduler.running
        deadline = time.monotonic() + 5
        while scheduler.last_run_at is None and time.monotonic() < deadline:
            await asyncio.sleep(0.05)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert not scheduler.running
    assert remaining_hashes(engine) == ["fresh"]


def test_scheduler_interval_has_a_floor(engine, caplog):
    assert TokenCleanupScheduler(engine, interval_seconds=0).interval_seconds == MIN_CLEANUP_INTERVAL_SECONDS
    assert TokenCleanupScheduler(engine, interval_seconds=7200).interval_seconds == 7200
    assert "too short" in caplog.text
