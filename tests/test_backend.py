from datetime import datetime, timedelta

from core.query import SearchQuery
from core.result import ErrorKind
from database import utcnow
from models.constants import DEMO_CARS
from services.backend import SqlBackend

PHONE = "+966 50 123 4567"


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def listing_payload(**overrides):
    payload = {
        "make": "Kia",
        "model": "Rio",
        "year": 2020,
        "color": "Red",
        "description": "",
        "price": 120.0,
        "weekly_discount": 5.0,
        "monthly_discount": 10.0,
        "instant_booking": True,
        "location": {"latitude": 24.7136, "longitude": 46.6753, "address": "Olaya, Riyadh"},
        "images": ["http://test/media/a.jpg"],
        "specifications": {"transmission": "manual", "seats": 5, "doors": 4, "fuel_type": "petrol",
                           "mileage_limit": 250},
        "features": ["Bluetooth"],
        "rules": {"smoking": False, "pets": True, "additional_drivers": True, "minimum_age": 23},
    }
    payload.update(overrides)
    return payload


async def test_verification_flow_creates_user(backend, sender):
    sent = await backend.send_verification_code(PHONE)
    assert sent.ok
    assert sender.sent[0][0] == "966501234567"
    assert len(sender.last_code) == 4

    verified = await backend.verify_code(sent.value, sender.last_code)
    assert verified.ok
    user = verified.value
    assert user.phone_number == "966501234567"
    assert user.id.startswith("user-")
    assert not user.is_complete

    # a token is single use
    reused = await backend.verify_code(sent.value, sender.last_code)
    assert reused.error.kind == ErrorKind.SESSION_EXPIRED


async def test_wrong_code_is_validation_error(backend, sender):
    sent = await backend.send_verification_code(PHONE)
    wrong = "0000" if sender.last_code != "0000" else "1111"
    result = await backend.verify_code(sent.value, wrong)
    assert result.error.kind == ErrorKind.VALIDATION
    assert result.error.message == "Invalid OTP. Please try again."


async def test_expired_or_unknown_token(session_factory, sender, tmp_path):
    clock = Clock(datetime(2024, 1, 1, 12, 0))
    backend = SqlBackend(session_factory=session_factory, sender=sender, media_dir=tmp_path, now=clock)
    sent = await backend.send_verification_code(PHONE)
    clock.now += timedelta(minutes=10)
    expired = await backend.verify_code(sent.value, sender.last_code)
    assert expired.error.kind == ErrorKind.SESSION_EXPIRED

    unknown = await backend.verify_code("nope", "1234")
    assert unknown.error.kind == ErrorKind.SESSION_EXPIRED
    empty = await backend.verify_code("", "1234")
    assert empty.error.kind == ErrorKind.SESSION_EXPIRED


async def test_short_phone_is_rejected(backend, sender):
    result = await backend.send_verification_code("12345")
    assert result.error.kind == ErrorKind.VALIDATION
    assert sender.sent == []


async def test_profile_create_and_update(backend, sender):
    sent = await backend.send_verification_code(PHONE)
    user = (await backend.verify_code(sent.value, sender.last_code)).value

    created = await backend.create_user_profile({
        "phone_number": PHONE, "display_name": "Sara Ali", "email": "sara@example.com",
        "national_id": "1234567890",
    })
    assert created.ok
    assert created.value.id == user.id
    assert created.value.is_complete

    updated = await backend.update_user_profile(user.id, {"email": "new@example.com", "id": "hijack"})
    assert updated.value.email == "new@example.com"
    assert updated.value.id == user.id

    missing = await backend.update_user_profile("user-unknown", {"email": "x@example.com"})
    assert missing.error.kind == ErrorKind.NOT_FOUND


async def test_list_cars_only_returns_active(seeded_backend):
    owner = "user-2"
    created = await seeded_backend.create_listing(owner, listing_payload())
    assert created.value.status == "pending"

    listed = (await seeded_backend.list_cars()).value
    assert len(listed) == 10
    assert created.value.id not in [car.id for car in listed]

    await seeded_backend.set_listing_status(created.value.id, "active")
    listed = (await seeded_backend.list_cars()).value
    assert created.value.id in [car.id for car in listed]


async def test_list_cars_with_query(seeded_backend):
    found = (await seeded_backend.list_cars(SearchQuery(text="toyota", sort_key="price"))).value
    assert [car.title for car in found] == ["Toyota Camry"]

    near = (await seeded_backend.list_cars(SearchQuery(max_distance=3))).value
    assert [car.distance for car in near] == [2.4]


async def test_create_listing(seeded_backend):
    result = await seeded_backend.create_listing("user-2", listing_payload())
    car = result.value
    assert car.id.startswith("car-")
    assert car.distance == 0.0
    assert car.specifications.transmission == "manual"
    assert car.rules.minimum_age == 23
    assert car.features == frozenset({"Bluetooth"})

    fetched = await seeded_backend.get_car(car.id)
    assert fetched.value == car


async def test_create_listing_validation(seeded_backend):
    no_price = await seeded_backend.create_listing("user-2", listing_payload(price=0))
    assert no_price.error.kind == ErrorKind.VALIDATION
    no_images = await seeded_backend.create_listing("user-2", listing_payload(images=[]))
    assert no_images.error.kind == ErrorKind.VALIDATION
    for price in (float("nan"), float("inf")):
        result = await seeded_backend.create_listing("user-2", listing_payload(price=price))
        assert result.error.kind == ErrorKind.VALIDATION
    assert len((await seeded_backend.list_cars_by_owner("user-2")).value) == 1


async def test_listings_by_owner(seeded_backend):
    await seeded_backend.create_listing("user-2", listing_payload())
    everything = (await seeded_backend.list_cars_by_owner("user-2")).value
    assert len(everything) == 2
    pending = (await seeded_backend.list_cars_by_owner("user-2", "pending")).value
    assert [car.model for car in pending] == ["Rio"]
    bad = await seeded_backend.list_cars_by_owner("user-2", "archived")
    assert bad.error.kind == ErrorKind.VALIDATION


async def test_set_listing_status_errors(seeded_backend):
    assert (await seeded_backend.set_listing_status("car-404", "active")).error.kind == ErrorKind.NOT_FOUND
    assert (await seeded_backend.set_listing_status("car-1", "sold")).error.kind == ErrorKind.VALIDATION


async def test_get_missing_car(backend):
    result = await backend.get_car("car-404")
    assert result.error.kind == ErrorKind.NOT_FOUND


async def test_upload_image_copies_into_media(backend, tmp_path):
    source = tmp_path / "photo.png"
    source.write_bytes(b"\x89PNG")
    result = await backend.upload_image(f"file://{source}")
    assert result.value.startswith("http://test/media/")
    assert result.value.endswith(".png")
    name = result.value.rsplit("/", 1)[1]
    assert (tmp_path / "media" / name).read_bytes() == b"\x89PNG"

    missing = await backend.upload_image(str(tmp_path / "missing.jpg"))
    assert missing.error.kind == ErrorKind.VALIDATION


def test_seed_is_idempotent(backend):
    assert backend.seed_cars(DEMO_CARS) == 10
    assert backend.seed_cars(DEMO_CARS) == 0


async def test_default_clock_is_naive_utc(backend, sender):
    before = utcnow()
    assert before.tzinfo is None
    sent = await backend.send_verification_code(PHONE)
    assert (await backend.verify_code(sent.value, sender.last_code)).ok
