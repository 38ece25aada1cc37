from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Query
from loguru import logger
from pydantic import BaseModel

from core.query import DEFAULT_SORT_KEY, SearchQuery, home_sections
from core.result import ErrorKind
from services.backend import SqlBackend

app = FastAPI(title="RentRide listings")

_backend: SqlBackend | None = None

STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 422,
    ErrorKind.SESSION_EXPIRED: 401,
    ErrorKind.BUSY: 409,
    ErrorKind.NETWORK: 503,
}


def get_backend() -> SqlBackend:
    global _backend
    if _backend is None:
        _backend = SqlBackend()
    return _backend


def _unwrap(result):
    if not result.ok:
        logger.warning(f"API request failed: {result.error.kind.value}: {result.error.message}")
        raise HTTPException(status_code=STATUS_CODES[result.error.kind], detail=result.error.message)
    return result.value


class StatusChange(BaseModel):
    status: Literal["pending", "active", "inactive"]


@app.get("/cars")
async def list_cars(
        text: str = "",
        price_min: float | None = None,
        price_max: float | None = None,
        max_distance: float | None = None,
        instant_booking: bool = False,
        features: list[str] = Query(default=[]),
        sort: Literal["price", "distance", "rating"] = DEFAULT_SORT_KEY,
        backend: SqlBackend = Depends(get_backend),
):
    query = SearchQuery(
        text=text,
        price_min=price_min,
        price_max=price_max,
        max_distance=max_distance,
        instant_booking_only=instant_booking,
        required_features=frozenset(features),
        sort_key=sort,
    )
    cars = _unwrap(await backend.list_cars(query))
    return [car.to_dict() for car in cars]


@app.get("/cars/home")
async def home(backend: SqlBackend = Depends(get_backend)):
    cars = _unwrap(await backend.list_cars())
    return {name: [car.to_dict() for car in section] for name, section in home_sections(cars).items()}


@app.get("/cars/{car_id}")
async def get_car(car_id: str, backend: SqlBackend = Depends(get_backend)):
    return _unwrap(await backend.get_car(car_id)).to_dict()


@app.patch("/cars/{car_id}/status")
async def set_status(car_id: str, change: StatusChange, backend: SqlBackend = Depends(get_backend)):
    car = _unwrap(await backend.set_listing_status(car_id, change.status))
    logger.info(f"Listing {car_id} moderated to {change.status}")
    return car.to_dict()
