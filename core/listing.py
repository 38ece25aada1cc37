from dataclasses import dataclass, field, asdict
from math import radians, sin, cos, asin, sqrt


@dataclass(frozen=True)
class Location:
    latitude: float | None
    longitude: float | None
    address: str


@dataclass(frozen=True)
class Specifications:
    transmission: str = "automatic"
    seats: int = 5
    doors: int = 4
    fuel_type: str = "petrol"
    mileage_limit: int = 300


@dataclass(frozen=True)
class Rules:
    smoking: bool = False
    pets: bool = False
    additional_drivers: bool = True
    minimum_age: int = 21


@dataclass(frozen=True)
class CarListing:
    id: str
    owner_id: str
    make: str
    model: str
    year: int
    color: str
    price: float
    location: Location
    rating: float = 0.0
    review_count: int = 0
    featured: bool = False
    instant_booking: bool = False
    distance: float = 0.0
    images: tuple[str, ...] = ()
    specifications: Specifications = field(default_factory=Specifications)
    features: frozenset[str] = frozenset()
    rules: Rules = field(default_factory=Rules)
    description: str = ""
    weekly_discount: float = 0.0
    monthly_discount: float = 0.0
    status: str = "active"

    @property
    def title(self) -> str:
        return f"{self.make} {self.model}"

    @property
    def primary_image(self) -> str | None:
        return self.images[0] if self.images else None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["images"] = list(self.images)
        data["features"] = sorted(self.features)
        return data


@dataclass(frozen=True)
class UserRecord:
    id: str
    phone_number: str
    display_name: str = ""
    email: str = ""
    is_verified: bool = False
    national_id: str | None = None
    driver_license: str | None = None
    profile_image: str | None = None
    created: str = ""

    @property
    def is_complete(self) -> bool:
        return self.is_verified and bool(self.display_name)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UserRecord":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def listing_from_dict(data: dict) -> CarListing:
    """Build a CarListing from the plain-dict shape used by the demo data and the API."""
    location = data.get("location") or {}
    return CarListing(
        id=str(data["id"]),
        owner_id=str(data["owner_id"]),
        make=data["make"],
        model=data["model"],
        year=int(data["year"]),
        color=data["color"],
        price=float(data["price"]),
        rating=float(data.get("rating", 0.0)),
        review_count=int(data.get("review_count", 0)),
        featured=bool(data.get("featured", False)),
        instant_booking=bool(data.get("instant_booking", False)),
        location=Location(
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
            address=location.get("address", ""),
        ),
        distance=float(data.get("distance", 0.0)),
        images=tuple(data.get("images", ())),
        specifications=Specifications(**data.get("specifications", {})),
        features=frozenset(data.get("features", ())),
        rules=Rules(**data.get("rules", {})),
        description=data.get("description", ""),
        weekly_discount=float(data.get("weekly_discount", 0.0)),
        monthly_discount=float(data.get("monthly_discount", 0.0)),
        status=data.get("status", "active"),
    )


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1, lon1, lat2, lon2 = map(radians, (lat1, lon1, lat2, lon2))
    a = sin((lat2 - lat1) / 2) ** 2 + cos(lat1) * cos(lat2) * sin((lon2 - lon1) / 2) ** 2
    return round(2 * 6371.0 * asin(sqrt(a)), 1)
