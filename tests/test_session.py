import asyncio

import pytest

from core.result import ErrorKind
from models.constants import DEMO_CARS
from services.local_store import LocalStore
from services.session import SessionManager, UserSession

PHONE = "0501234567"


async def never_sleep(seconds):
    await asyncio.Event().wait()


async def no_sleep(seconds):
    pass


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "state", "42")


@pytest.fixture
async def session(backend, store):
    s = UserSession(42, backend, store, sleep=never_sleep)
    yield s
    s.close()


async def sign_in(session, sender):
    assert (await session.login(PHONE)).ok
    return await session.verify(sender.last_code)


def test_local_store_round_trip(tmp_path):
    store = LocalStore(tmp_path, "7")
    assert store.get("user") is None
    store.set("userLanguage", "ar")
    store.set("phoneNumber", "0501234567")
    assert LocalStore(tmp_path, "7").get("userLanguage") == "ar"
    store.remove("phoneNumber", "missing")
    assert store.get("phoneNumber") is None
    assert store.get("userLanguage") == "ar"


def test_corrupt_local_store_starts_empty(tmp_path):
    (tmp_path / "7.json").write_text("{not json", encoding="utf-8")
    store = LocalStore(tmp_path, "7")
    assert store.get("user", "fallback") == "fallback"


async def test_login_stores_phone_and_token(session, store, sender):
    result = await session.login(PHONE)
    assert result.ok
    assert store.get("phoneNumber") == PHONE
    assert store.get("verificationId") == result.value
    assert session.timer.running
    assert session.cooldown.remaining == 60


async def test_verify_signs_in_and_persists_user(session, store, sender):
    result = await sign_in(session, sender)
    assert result.ok
    assert session.user.phone_number == PHONE
    assert store.get("user")["id"] == session.user.id
    assert store.get("verificationId") is None
    assert session.timer is None


async def test_verify_rejects_malformed_code(session, sender):
    await session.login(PHONE)
    for code in ("", "12", "12345", "12a4"):
        result = await session.verify(code)
        assert result.error.kind == ErrorKind.VALIDATION
        assert result.error.message == "Please enter a valid OTP"


async def test_verify_without_token_is_expired(session):
    result = await session.verify("1234")
    assert result.error.kind == ErrorKind.SESSION_EXPIRED


async def test_resend_blocked_during_cooldown(session, sender):
    await session.login(PHONE)
    result = await session.resend_code()
    assert result.error.kind == ErrorKind.BUSY
    assert len(sender.sent) == 1


async def test_resend_after_cooldown(backend, store, sender):
    session = UserSession(42, backend, store, cooldown_seconds=2, sleep=no_sleep)
    await session.login(PHONE)
    await session.timer.wait()
    assert session.cooldown.can_resend

    result = await session.resend_code()
    assert result.ok
    assert len(sender.sent) == 2
    assert store.get("verificationId") == result.value
    assert not session.cooldown.resending
    session.close()


async def test_cached_user_survives_restart(session, backend, store, sender):
    await sign_in(session, sender)
    restored = UserSession(42, backend, store)
    assert restored.user == session.user


async def test_register_and_logout(session, store, sender):
    await sign_in(session, sender)
    result = await session.register({"display_name": "Sara Ali", "email": "sara@example.com",
                                     "national_id": "1234567890"})
    assert result.ok
    assert session.user.is_complete

    session.set_language("en")
    session.logout()
    assert session.user is None
    assert store.get("user") is None
    assert store.get("phoneNumber") is None
    assert session.language == "en"


async def test_register_requires_sign_in(session):
    result = await session.register({"display_name": "Sara"})
    assert result.error.kind == ErrorKind.SESSION_EXPIRED


async def test_upload_driver_license(session, sender, tmp_path):
    await sign_in(session, sender)
    photo = tmp_path / "license.jpg"
    photo.write_bytes(b"jpeg")
    result = await session.upload_driver_license(str(photo))
    assert result.ok
    assert session.user.driver_license == result.value


async def test_submit_listing_uploads_local_photos(seeded_backend, store, sender, tmp_path):
    session = UserSession(42, seeded_backend, store, sleep=never_sleep)
    await sign_in(session, sender)
    photo = tmp_path / "car.jpg"
    photo.write_bytes(b"jpeg")

    builder = session.start_listing()
    for name, value in {"make": "Kia", "model": "Rio", "year": "2020", "color": "Red",
                        "price_per_day": "120", "address": "Olaya, Riyadh"}.items():
        builder.set_field(name, value)
    builder.add_image(str(photo))
    builder.add_image(DEMO_CARS[0]["images"][0])

    result = await session.submit_listing()
    assert result.ok
    car = result.value
    assert car.owner_id == session.user.id
    assert car.status == "pending"
    assert car.images[0].startswith("http://test/media/")
    assert car.images[1] == DEMO_CARS[0]["images"][0]
    assert session.listing is None
    session.close()


async def test_submit_without_listing(session):
    result = await session.submit_listing()
    assert result.error.kind == ErrorKind.SESSION_EXPIRED


async def test_session_manager_reuses_sessions(backend, tmp_path):
    manager = SessionManager(backend, tmp_path, sleep=never_sleep)
    first = manager.get(1)
    assert manager.get(1) is first
    assert manager.get(2) is not first
    await first.login(PHONE)
    assert first.timer.running
    manager.close_all()
    assert first.timer is None
    assert manager.get(1) is not first
