import pytest
from fastapi.testclient import TestClient

from api.cars import app, get_backend


@pytest.fixture
def client(seeded_backend):
    app.dependency_overrides[get_backend] = lambda: seeded_backend
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_list_cars_default_sort_is_distance(client):
    response = client.get("/cars")
    assert response.status_code == 200
    distances = [car["distance"] for car in response.json()]
    assert distances == sorted(distances)
    assert len(distances) == 10


def test_list_cars_filters(client):
    response = client.get("/cars", params={"text": "toyota", "sort": "price"})
    assert [car["make"] + " " + car["model"] for car in response.json()] == ["Toyota Camry"]

    response = client.get("/cars", params=[("features", "4WD"), ("features", "Cooled Seats"), ("sort", "price")])
    assert [car["id"] for car in response.json()] == ["car-3", "car-8"]

    response = client.get("/cars", params={"instant_booking": "true", "price_max": 200, "sort": "price"})
    assert [car["price"] for car in response.json()] == [150, 190, 200]


def test_list_cars_rejects_unknown_sort(client):
    assert client.get("/cars", params={"sort": "newest"}).status_code == 422


def test_home_sections(client):
    sections = client.get("/cars/home").json()
    assert set(sections) == {"nearby", "featured", "popular"}
    assert all(car["featured"] for car in sections["featured"])
    assert all(len(cars) <= 5 for cars in sections.values())


def test_get_car(client):
    car = client.get("/cars/car-1").json()
    assert car["make"] == "Toyota"
    assert car["location"]["address"] == "King Fahd Rd, Riyadh"
    assert car["features"] == sorted(car["features"])

    assert client.get("/cars/car-404").status_code == 404


def test_moderation_hides_listing(client):
    response = client.patch("/cars/car-1/status", json={"status": "inactive"})
    assert response.status_code == 200
    assert response.json()["status"] == "inactive"
    assert "car-1" not in [car["id"] for car in client.get("/cars").json()]

    assert client.patch("/cars/car-1/status", json={"status": "sold"}).status_code == 422
    assert client.patch("/cars/car-404/status", json={"status": "active"}).status_code == 404
