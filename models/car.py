from sqlalchemy import Column, Integer, String, Float, ForeignKey, Boolean, DateTime, Enum, JSON
from database import Base, utcnow
from sqlalchemy.orm import relationship
import enum


class ListingStatus(enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class Car(Base):
    __tablename__ = "cars"

    id = Column(String, primary_key=True, index=True)
    owner_id = Column(String, ForeignKey("users.id"), index=True)
    make = Column(String, nullable=False)
    model = Column(String, nullable=False)
    year = Column(Integer, nullable=False)
    color = Column(String, nullable=False)
    description = Column(String, nullable=True)
    price = Column(Float, nullable=False)
    weekly_discount = Column(Float, default=0.0)
    monthly_discount = Column(Float, default=0.0)
    rating = Column(Float, default=0.0)
    review_count = Column(Integer, default=0)
    featured = Column(Boolean, default=False)
    instant_booking = Column(Boolean, default=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String, nullable=False)
    distance = Column(Float, default=0.0)
    images = Column(JSON, default=list)
    specifications = Column(JSON, nullable=False)
    features = Column(JSON, default=list)
    rules = Column(JSON, nullable=False)
    status = Column(Enum(ListingStatus), default=ListingStatus.PENDING, index=True)
    created_at = Column(DateTime, default=utcnow)

    owner = relationship("User", backref="cars")
