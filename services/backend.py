import math
import secrets
import shutil
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Protocol

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from config import (
    MEDIA_DIR, MEDIA_BASE_URL, OTP_LENGTH, OTP_TTL_SECONDS,
    REFERENCE_LATITUDE, REFERENCE_LONGITUDE,
)
from core.forms import is_valid_phone, normalize_phone
from core.listing import CarListing, Location, Rules, Specifications, UserRecord, haversine_km
from core.query import SearchQuery, search
from core.result import Err, ErrorKind, Ok, Result
from database import SessionLocal, utcnow
from models.car import Car, ListingStatus
from models.user import User
from models.verification import Verification

PROFILE_FIELDS = ("display_name", "email", "national_id", "driver_license", "profile_image")


class Backend(Protocol):
    async def send_verification_code(self, phone_number: str) -> Result: ...

    async def verify_code(self, token: str, code: str) -> Result: ...

    async def create_user_profile(self, fields: dict) -> Result: ...

    async def update_user_profile(self, user_id: str, fields: dict) -> Result: ...

    async def list_cars(self, query: SearchQuery | None = None) -> Result: ...

    async def list_cars_by_owner(self, owner_id: str, status: str | None = None) -> Result: ...

    async def get_car(self, car_id: str) -> Result: ...

    async def create_listing(self, owner_id: str, payload: dict) -> Result: ...

    async def upload_image(self, local_uri: str) -> Result: ...


class CodeSender(Protocol):
    async def send(self, phone_number: str, code: str) -> None: ...


class LogCodeSender:
    """Writes verification codes to the log instead of sending an SMS."""

    async def send(self, phone_number: str, code: str) -> None:
        logger.info(f"Verification code for {phone_number}: {code}")


def _to_user(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        phone_number=user.phone_number,
        display_name=user.display_name or "",
        email=user.email or "",
        is_verified=bool(user.is_verified),
        national_id=user.national_id,
        driver_license=user.driver_license,
        profile_image=user.profile_image,
        created=user.created.isoformat() if user.created else "",
    )


def _to_listing(car: Car) -> CarListing:
    return CarListing(
        id=car.id,
        owner_id=car.owner_id,
        make=car.make,
        model=car.model,
        year=car.year,
        color=car.color,
        price=car.price,
        rating=car.rating or 0.0,
        review_count=car.review_count or 0,
        featured=bool(car.featured),
        instant_booking=bool(car.instant_booking),
        location=Location(latitude=car.latitude, longitude=car.longitude, address=car.address),
        distance=car.distance or 0.0,
        images=tuple(car.images or ()),
        specifications=Specifications(**car.specifications),
        features=frozenset(car.features or ()),
        rules=Rules(**car.rules),
        description=car.description or "",
        weekly_discount=car.weekly_discount or 0.0,
        monthly_discount=car.monthly_discount or 0.0,
        status=car.status.value if car.status else ListingStatus.PENDING.value,
    )


def _failure(action: str, e: Exception) -> Err:
    logger.error(f"{action} failed: {e}")
    return Err.of(ErrorKind.NETWORK, f"Failed to {action}. Please try again.")


class SqlBackend:
    def __init__(
        self,
        session_factory=SessionLocal,
        sender: CodeSender | None = None,
        media_dir: Path = MEDIA_DIR,
        media_base_url: str = MEDIA_BASE_URL,
        reference: tuple[float, float] = (REFERENCE_LATITUDE, REFERENCE_LONGITUDE),
        otp_length: int = OTP_LENGTH,
        otp_ttl: int = OTP_TTL_SECONDS,
        now=utcnow,
    ):
        self.session_factory = session_factory
        self.sender = sender or LogCodeSender()
        self.media_dir = Path(media_dir)
        self.media_base_url = media_base_url.rstrip("/")
        self.reference = reference
        self.otp_length = otp_length
        self.otp_ttl = otp_ttl
        self.now = now

    # ===== Auth =====

    async def send_verification_code(self, phone_number: str) -> Result:
        if not is_valid_phone(phone_number):
            return Err.of(ErrorKind.VALIDATION, "Please enter a valid phone number")
        phone = normalize_phone(phone_number)
        code = "".join(secrets.choice("0123456789") for _ in range(self.otp_length))
        token = uuid.uuid4().hex

        db = self.session_factory()
        try:
            db.add(Verification(
                token=token,
                phone_number=phone,
                code=code,
                expires_at=self.now() + timedelta(seconds=self.otp_ttl),
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            return _failure("send verification code", e)
        finally:
            db.close()

        await self.sender.send(phone, code)
        logger.info(f"Verification code sent to {phone}")
        return Ok(token)

    async def verify_code(self, token: str, code: str) -> Result:
        if not token:
            return Err.of(ErrorKind.SESSION_EXPIRED, "Verification session expired")

        db = self.session_factory()
        try:
            verification = db.get(Verification, token)
            if not verification or verification.used or verification.expires_at < self.now():
                return Err.of(ErrorKind.SESSION_EXPIRED, "Verification session expired")
            if verification.code != code:
                return Err.of(ErrorKind.VALIDATION, "Invalid OTP. Please try again.")

            verification.used = True
            user = db.query(User).filter(User.phone_number == verification.phone_number).first()
            if not user:
                user = User(id=f"user-{uuid.uuid4().hex[:12]}", phone_number=verification.phone_number)
                db.add(user)
            db.commit()
            db.refresh(user)
            logger.info(f"Phone verified: {user.phone_number}, user={user.id}")
            return Ok(_to_user(user))
        except SQLAlchemyError as e:
            db.rollback()
            return _failure("verify code", e)
        finally:
            db.close()

    async def create_user_profile(self, fields: dict) -> Result:
        phone = normalize_phone(fields.get("phone_number", ""))
        if not phone:
            return Err.of(ErrorKind.VALIDATION, "Phone number is required")

        db = self.session_factory()
        try:
            user = db.query(User).filter(User.phone_number == phone).first()
            if not user:
                user = User(id=f"user-{uuid.uuid4().hex[:12]}", phone_number=phone)
                db.add(user)
            for name in PROFILE_FIELDS:
                if name in fields:
                    setattr(user, name, fields[name])
            user.is_verified = True
            db.commit()
            db.refresh(user)
            logger.info(f"User profile created: {user.id}")
            return Ok(_to_user(user))
        except SQLAlchemyError as e:
            db.rollback()
            return _failure("create user profile", e)
        finally:
            db.close()

    async def update_user_profile(self, user_id: str, fields: dict) -> Result:
        db = self.session_factory()
        try:
            user = db.get(User, user_id)
            if not user:
                return Err.of(ErrorKind.NOT_FOUND, "User not found")
            for name in PROFILE_FIELDS:
                if name in fields:
                    setattr(user, name, fields[name])
            db.commit()
            db.refresh(user)
            return Ok(_to_user(user))
        except SQLAlchemyError as e:
            db.rollback()
            return _failure("update user profile", e)
        finally:
            db.close()

    # ===== Cars =====

    async def list_cars(self, query: SearchQuery | None = None) -> Result:
        db = self.session_factory()
        try:
            rows = db.query(Car).filter(Car.status == ListingStatus.ACTIVE).order_by(Car.created_at, Car.id).all()
            records = [_to_listing(car) for car in rows]
        except SQLAlchemyError as e:
            return _failure("load cars", e)
        finally:
            db.close()
        return Ok(search(records, query) if query is not None else records)

    async def list_cars_by_owner(self, owner_id: str, status: str | None = None) -> Result:
        db = self.session_factory()
        try:
            q = db.query(Car).filter(Car.owner_id == owner_id)
            if status and status != "all":
                q = q.filter(Car.status == ListingStatus(status))
            return Ok([_to_listing(car) for car in q.order_by(Car.created_at, Car.id).all()])
        except ValueError:
            return Err.of(ErrorKind.VALIDATION, f"Unknown listing status: {status}")
        except SQLAlchemyError as e:
            return _failure("load listings", e)
        finally:
            db.close()

    async def get_car(self, car_id: str) -> Result:
        db = self.session_factory()
        try:
            car = db.get(Car, car_id)
            if not car:
                return Err.of(ErrorKind.NOT_FOUND, "Car not found")
            return Ok(_to_listing(car))
        except SQLAlchemyError as e:
            return _failure("load car", e)
        finally:
            db.close()

    def _distance(self, location: dict) -> float:
        latitude, longitude = location.get("latitude"), location.get("longitude")
        if latitude is None or longitude is None:
            return 0.0
        return haversine_km(self.reference[0], self.reference[1], latitude, longitude)

    async def create_listing(self, owner_id: str, payload: dict) -> Result:
        price = payload.get("price")
        if not isinstance(price, (int, float)) or not math.isfinite(price) or price <= 0:
            return Err.of(ErrorKind.VALIDATION, "Price per day must be greater than zero")
        if not payload.get("images"):
            return Err.of(ErrorKind.VALIDATION, "Add at least one photo")

        location = payload.get("location", {})
        db = self.session_factory()
        try:
            car = Car(
                id=f"car-{uuid.uuid4().hex[:12]}",
                owner_id=owner_id,
                make=payload["make"],
                model=payload["model"],
                year=payload["year"],
                color=payload["color"],
                description=payload.get("description", ""),
                price=payload["price"],
                weekly_discount=payload.get("weekly_discount", 0.0),
                monthly_discount=payload.get("monthly_discount", 0.0),
                instant_booking=payload.get("instant_booking", False),
                latitude=location.get("latitude"),
                longitude=location.get("longitude"),
                address=location.get("address", ""),
                distance=self._distance(location),
                images=list(payload["images"]),
                specifications=payload["specifications"],
                features=list(payload.get("features", [])),
                rules=payload["rules"],
                status=ListingStatus.PENDING,
            )
            db.add(car)
            db.commit()
            db.refresh(car)
            logger.info(f"Listing created: {car.id} by {owner_id}")
            return Ok(_to_listing(car))
        except SQLAlchemyError as e:
            db.rollback()
            return _failure("submit listing", e)
        finally:
            db.close()

    async def set_listing_status(self, car_id: str, status: str) -> Result:
        try:
            new_status = ListingStatus(status)
        except ValueError:
            return Err.of(ErrorKind.VALIDATION, f"Unknown listing status: {status}")

        db = self.session_factory()
        try:
            car = db.get(Car, car_id)
            if not car:
                return Err.of(ErrorKind.NOT_FOUND, "Car not found")
            car.status = new_status
            db.commit()
            db.refresh(car)
            logger.info(f"Listing {car_id} is now {new_status.value}")
            return Ok(_to_listing(car))
        except SQLAlchemyError as e:
            db.rollback()
            return _failure("change listing status", e)
        finally:
            db.close()

    async def upload_image(self, local_uri: str) -> Result:
        path = Path(local_uri.removeprefix("file://"))
        if not path.is_file():
            return Err.of(ErrorKind.VALIDATION, f"Image not found: {local_uri}")
        name = f"{uuid.uuid4().hex}{path.suffix or '.jpg'}"
        try:
            self.media_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, self.media_dir / name)
        except OSError as e:
            return _failure("upload image", e)
        return Ok(f"{self.media_base_url}/{name}")

    def seed_cars(self, records: list[dict]) -> int:
        """Insert demo listings (and their hosts) that are not stored yet."""
        db = self.session_factory()
        added = 0
        try:
            for data in records:
                if db.get(Car, data["id"]):
                    continue
                if not db.get(User, data["owner_id"]):
                    db.add(User(
                        id=data["owner_id"],
                        phone_number=f"demo-{data['owner_id']}",
                        display_name="Demo host",
                        is_verified=True,
                    ))
                location = data["location"]
                db.add(Car(
                    id=data["id"],
                    owner_id=data["owner_id"],
                    make=data["make"],
                    model=data["model"],
                    year=data["year"],
                    color=data["color"],
                    price=data["price"],
                    rating=data.get("rating", 0.0),
                    review_count=data.get("review_count", 0),
                    featured=data.get("featured", False),
                    instant_booking=data.get("instant_booking", False),
                    latitude=location.get("latitude"),
                    longitude=location.get("longitude"),
                    address=location["address"],
                    distance=data.get("distance", self._distance(location)),
                    images=data.get("images", []),
                    specifications=data["specifications"],
                    features=data.get("features", []),
                    rules=data["rules"],
                    status=ListingStatus.ACTIVE,
                ))
                added += 1
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Seeding demo cars failed: {e}")
            raise
        finally:
            db.close()
        if added:
            logger.info(f"Seeded {added} demo cars")
        return added
