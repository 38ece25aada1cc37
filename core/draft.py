import enum
import math
from dataclasses import dataclass, field, asdict
from typing import Awaitable, Callable

from core.result import Err, ErrorKind, Result
from models.constants import LISTING_STEPS, STEP_TITLES, TRANSMISSIONS, FUEL_TYPES

MAX_PHOTOS = 8

REQUIRED_FIELDS = {
    "details": ("make", "model", "year", "color"),
    "photos": ("images",),
    "pricing": ("price_per_day",),
    "location": ("address",),
    "rules": ("minimum_age",),
}

RULE_FLAGS = ("smoking", "pets", "additional_drivers")

INT_FIELDS = {"year": (1900, 2100), "seats": (1, 60), "doors": (1, 10), "mileage_limit": (0, 100000),
              "minimum_age": (16, 99)}
FLOAT_FIELDS = {"price_per_day": (0.0, None), "weekly_discount": (0.0, 100.0), "monthly_discount": (0.0, 100.0),
                "latitude": (-90.0, 90.0), "longitude": (-180.0, 180.0)}
CHOICE_FIELDS = {"transmission": TRANSMISSIONS, "fuel_type": FUEL_TYPES}


class Move(enum.Enum):
    ADVANCED = "advanced"
    BLOCKED = "blocked"
    SUBMIT = "submit"
    BACK = "back"
    EXIT = "exit"


@dataclass
class ListingDraft:
    make: str = ""
    model: str = ""
    year: str = ""
    color: str = ""
    transmission: str = "automatic"
    fuel_type: str = "petrol"
    seats: str = "5"
    doors: str = "4"
    mileage_limit: str = "300"
    description: str = ""
    price_per_day: str = ""
    weekly_discount: str = "0"
    monthly_discount: str = "0"
    instant_booking: bool = False
    address: str = ""
    latitude: str = ""
    longitude: str = ""
    images: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    smoking: bool = False
    pets: bool = False
    additional_drivers: bool = True
    minimum_age: str = "21"


TEXT_FIELDS = (
    "make", "model", "year", "color", "transmission", "fuel_type", "seats", "doors", "mileage_limit",
    "description", "price_per_day", "weekly_discount", "monthly_discount", "address", "latitude",
    "longitude", "minimum_age",
)


def _number(value: str) -> float | None:
    try:
        number = float(value.replace(",", "."))
    except (AttributeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _integer(value: str) -> int | None:
    if not value.isdecimal():
        return None
    try:
        return int(value)
    except ValueError:
        return None


def field_error(name: str, value: str) -> str | None:
    """Inline message for a rejected value, or None when the value is acceptable."""
    if name in INT_FIELDS:
        low, high = INT_FIELDS[name]
        number = _integer(value)
        if number is None or not (low <= number <= high):
            return f"{name.replace('_', ' ').capitalize()} must be a whole number {low}–{high}."
    elif name in FLOAT_FIELDS:
        low, high = FLOAT_FIELDS[name]
        number = _number(value)
        if number is None or number < low or (high is not None and number > high):
            bound = f"{low:g}–{high:g}" if high is not None else f"above {low:g}"
            return f"{name.replace('_', ' ').capitalize()} must be a number {bound}."
    elif name in CHOICE_FIELDS and value not in CHOICE_FIELDS[name]:
        return f"{name.replace('_', ' ').capitalize()} must be one of: {', '.join(CHOICE_FIELDS[name])}."
    return None


class ListingDraftBuilder:
    """Step-by-step accumulation of a new listing.

    The cursor only moves forward when the current step is complete. The
    draft belongs to one wizard session and is dropped once submitted.
    """

    def __init__(self, draft: ListingDraft | None = None, max_photos: int = MAX_PHOTOS):
        self.draft = draft or ListingDraft()
        self.max_photos = max_photos
        self.step_index = 0
        self.closed = False
        self._submitting = False

    @property
    def step(self) -> str:
        return LISTING_STEPS[self.step_index]

    @property
    def progress(self) -> str:
        return f"Step {self.step_index + 1} of {len(LISTING_STEPS)}"

    @property
    def title(self) -> str:
        return STEP_TITLES[self.step]

    @property
    def submitting(self) -> bool:
        return self._submitting

    def missing_fields(self, step: str | None = None) -> list[str]:
        step = step or self.step
        missing = []
        for name in REQUIRED_FIELDS.get(step, ()):
            value = getattr(self.draft, name)
            if name == "images":
                if not value:
                    missing.append(name)
            elif name == "price_per_day":
                number = _number(value)
                if number is None or number <= 0:
                    missing.append(name)
            elif not value.strip():
                missing.append(name)
        return missing

    def is_step_valid(self, step: str | None = None) -> bool:
        return not self.missing_fields(step)

    def next(self) -> Move:
        if not self.is_step_valid():
            return Move.BLOCKED
        if self.step == LISTING_STEPS[-1]:
            return Move.SUBMIT
        self.step_index += 1
        return Move.ADVANCED

    def back(self) -> Move:
        if self.step_index == 0:
            return Move.EXIT
        self.step_index -= 1
        return Move.BACK

    def set_field(self, name: str, value: str) -> str | None:
        if name not in TEXT_FIELDS:
            raise ValueError(f"unknown draft field: {name}")
        value = (value or "").strip()
        if value:
            error = field_error(name, value)
            if error:
                return error
        setattr(self.draft, name, value)
        return None

    def set_coordinates(self, latitude: float, longitude: float) -> None:
        self.draft.latitude = f"{latitude:.6f}"
        self.draft.longitude = f"{longitude:.6f}"

    def add_image(self, uri: str) -> bool:
        if len(self.draft.images) >= self.max_photos:
            return False
        self.draft.images.append(uri)
        return True

    def remove_image(self, index: int) -> str | None:
        if 0 <= index < len(self.draft.images):
            return self.draft.images.pop(index)
        return None

    def toggle_feature(self, feature: str) -> bool:
        if feature in self.draft.features:
            self.draft.features.remove(feature)
            return False
        self.draft.features.append(feature)
        return True

    def set_rule(self, name: str, value: bool) -> None:
        if name not in RULE_FLAGS:
            raise ValueError(f"unknown rule: {name}")
        setattr(self.draft, name, bool(value))

    def toggle_instant_booking(self) -> bool:
        self.draft.instant_booking = not self.draft.instant_booking
        return self.draft.instant_booking

    def to_payload(self) -> dict:
        d = self.draft
        latitude, longitude = _number(d.latitude), _number(d.longitude)
        return {
            "make": d.make,
            "model": d.model,
            "year": int(d.year),
            "color": d.color,
            "description": d.description,
            "price": _number(d.price_per_day),
            "weekly_discount": _number(d.weekly_discount) or 0.0,
            "monthly_discount": _number(d.monthly_discount) or 0.0,
            "instant_booking": d.instant_booking,
            "location": {"latitude": latitude, "longitude": longitude, "address": d.address},
            "images": list(d.images),
            "specifications": {
                "transmission": d.transmission,
                "seats": int(d.seats or 5),
                "doors": int(d.doors or 4),
                "fuel_type": d.fuel_type,
                "mileage_limit": int(d.mileage_limit or 0),
            },
            "features": list(d.features),
            "rules": {
                "smoking": d.smoking,
                "pets": d.pets,
                "additional_drivers": d.additional_drivers,
                "minimum_age": int(d.minimum_age),
            },
        }

    def summary(self) -> str:
        d = self.draft
        yes_no = {True: "yes", False: "no"}
        lines = [
            f"{d.make} {d.model} ({d.year}), {d.color}",
            f"{d.transmission.capitalize()}, {d.fuel_type}, {d.seats} seats, {d.doors} doors",
            f"Price: {d.price_per_day}/day (weekly -{d.weekly_discount}%, monthly -{d.monthly_discount}%)",
            f"Instant booking: {yes_no[d.instant_booking]}",
            f"Mileage limit: {d.mileage_limit} km/day",
            f"Location: {d.address}",
            f"Photos: {len(d.images)}",
            f"Features: {', '.join(d.features) or 'none'}",
            f"Smoking: {yes_no[d.smoking]}, pets: {yes_no[d.pets]}, "
            f"additional drivers: {yes_no[d.additional_drivers]}, minimum age: {d.minimum_age}",
        ]
        if d.description:
            lines.insert(1, d.description)
        return "\n".join(lines)

    def snapshot(self) -> dict:
        return asdict(self.draft)

    async def submit(self, create_listing: Callable[[dict], Awaitable[Result]]) -> Result:
        if self.closed:
            return Err.of(ErrorKind.VALIDATION, "This listing was already submitted.")
        if self._submitting:
            return Err.of(ErrorKind.BUSY, "Submission already in progress.")
        incomplete = [step for step in LISTING_STEPS if not self.is_step_valid(step)]
        if incomplete:
            return Err.of(ErrorKind.VALIDATION, f"Complete the {STEP_TITLES[incomplete[0]]} step first.")

        self._submitting = True
        try:
            result = await create_listing(self.to_payload())
        finally:
            self._submitting = False

        if result.ok:
            self.closed = True
            self.draft = ListingDraft()
        return result
