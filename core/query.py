from dataclasses import dataclass, field
from typing import Iterable, Sequence

from core.listing import CarListing

DEFAULT_SORT_KEY = "distance"

_SORT_KEYS = {
    "price": lambda car: car.price,
    "distance": lambda car: car.distance,
    "rating": lambda car: -car.rating,
}


@dataclass(frozen=True)
class SearchQuery:
    text: str = ""
    price_min: float | None = None
    price_max: float | None = None
    max_distance: float | None = None
    instant_booking_only: bool = False
    required_features: frozenset[str] = field(default_factory=frozenset)
    sort_key: str = DEFAULT_SORT_KEY

    def with_changes(self, **changes) -> "SearchQuery":
        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        values.update(changes)
        if "required_features" in changes:
            values["required_features"] = frozenset(values["required_features"])
        return SearchQuery(**values)

    @property
    def active_filters(self) -> int:
        return sum((
            self.price_min is not None,
            self.price_max is not None,
            self.max_distance is not None,
            self.instant_booking_only,
            bool(self.required_features),
        ))


def matches(car: CarListing, query: SearchQuery) -> bool:
    if query.text:
        needle = query.text.lower()
        if needle not in car.make.lower() and needle not in car.model.lower():
            return False
    if query.price_min is not None and car.price < query.price_min:
        return False
    if query.price_max is not None and car.price > query.price_max:
        return False
    if query.max_distance is not None and car.distance > query.max_distance:
        return False
    if query.instant_booking_only and not car.instant_booking:
        return False
    return query.required_features <= car.features


def search(records: Sequence[CarListing], query: SearchQuery) -> list[CarListing]:
    """Filter and order listings for a search screen.

    Filters are conjunctive. Sorting is stable, so records that tie on the
    sort key keep their input order. Unknown sort keys leave the filtered
    records in input order.
    """
    found = [car for car in records if matches(car, query)]
    key = _SORT_KEYS.get(query.sort_key)
    if key is not None:
        found.sort(key=key)
    return found


def home_sections(records: Iterable[CarListing], limit: int = 5) -> dict[str, list[CarListing]]:
    records = list(records)
    return {
        "nearby": [car for car in records if car.distance < 10][:limit],
        "featured": [car for car in records if car.featured][:limit],
        "popular": [car for car in records if car.rating > 4.5][:limit],
    }
