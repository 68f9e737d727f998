import asyncio
from datetime import timedelta

from wastetrack.dates import utcnow
from wastetrack.enums import UserRole
from wastetrack.jobs import TokenCleanupJob
from wastetrack.models import RefreshToken
from wastetrack.services.auth import AuthService


async def test_session_limit_revokes_oldest(db, settings, make_user):
    user = await make_user(UserRole.CUSTOMER)
    service = AuthService(db, settings)
    issued = [await service._issue_tokens(user) for _ in range(settings.max_active_sessions + 2)]

    live = await db.refresh_tokens.count_documents({"user_id": user["_id"], "is_revoked": False})
    assert live == settings.max_active_sessions
    newest = await db.refresh_tokens.find_one({"token": issued[-1].refresh_token})
    assert newest["is_revoked"] is False
    oldest = await db.refresh_tokens.find_one({"token": issued[0].refresh_token})
    assert oldest["is_revoked"] is True


async def test_logout_all_revokes_every_session(db, settings, make_user):
    user = await make_user(UserRole.CUSTOMER)
    service = AuthService(db, settings)
    for _ in range(3):
        await service._issue_tokens(user)

    revoked = await service.logout_all(user["_id"])

    assert revoked == 3
    assert await db.refresh_tokens.count_documents({"is_revoked": False}) == 0


async def test_logout_only_touches_own_token(db, settings, make_user):
    owner = await make_user(UserRole.CUSTOMER)
    intruder = await make_user(UserRole.CUSTOMER)
    service = AuthService(db, settings)
    tokens = await service._issue_tokens(owner)

    await service.logout(intruder["_id"], tokens.refresh_token)
    assert (await db.refresh_tokens.find_one({"token": tokens.refresh_token}))["is_revoked"] is False

    await service.logout(owner["_id"], tokens.refresh_token)
    assert (await db.refresh_tokens.find_one({"token": tokens.refresh_token}))["is_revoked"] is True


async def test_cleanup_job_removes_expired_and_revoked(db, settings, make_user):
    user = await make_user(UserRole.CUSTOMER)
    now = utcnow()
    for token, expires_at, revoked in (
        ("expired", now - timedelta(days=1), False),
        ("revoked", now + timedelta(days=1), True),
        ("live", now + timedelta(days=1), False),
    ):
        doc = RefreshToken(user_id=user["_id"], token=token, expires_at=expires_at, is_revoked=revoked)
        await db.refresh_tokens.insert_one(doc.to_mongo())

    removed = await TokenCleanupJob(settings).run_once()

    assert removed == 2
    remaining = await db.refresh_tokens.find({}).to_list(length=None)
    assert [doc["token"] for doc in remaining] == ["live"]


async def test_cleanup_job_stops_cleanly(settings):
    job = TokenCleanupJob(settings)
    job.start()
    await job.stop()
    await job.stop()


async def test_cleanup_loop_keeps_running_after_a_failure(settings, monkeypatch):
    job = TokenCleanupJob(settings.model_copy(update={"token_cleanup_interval_seconds": 0}))
    calls = []

    async def flaky_run_once():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("storage unavailable")
        return 0

    monkeypatch.setattr(job, "run_once", flaky_run_once)
    job.start()
    for _ in range(100):
        if len(calls) >= 2:
            break
        await asyncio.sleep(0)
    still_running = not job._task.done()
    await job.stop()

    assert len(calls) >= 2
    assert still_running
