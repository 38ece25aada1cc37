import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.listing import listing_from_dict
from database import init_db
from models.constants import DEMO_CARS
from services.backend import SqlBackend


class RecordingSender:
    def __init__(self):
        self.sent = []

    async def send(self, phone_number, code):
        self.sent.append((phone_number, code))

    @property
    def last_code(self):
        return self.sent[-1][1]


@pytest.fixture
def demo_listings():
    return [listing_from_dict(data) for data in DEMO_CARS]


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(bind=engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def backend(session_factory, sender, tmp_path):
    return SqlBackend(
        session_factory=session_factory,
        sender=sender,
        media_dir=tmp_path / "media",
        media_base_url="http://test/media",
    )


@pytest.fixture
def seeded_backend(backend):
    backend.seed_cars(DEMO_CARS)
    return backend
