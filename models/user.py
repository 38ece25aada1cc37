from sqlalchemy import Column, String, Boolean, DateTime
from database import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    phone_number = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    is_verified = Column(Boolean, default=False)
    national_id = Column(String, nullable=True)
    driver_license = Column(String, nullable=True)
    profile_image = Column(String, nullable=True)
    created = Column(DateTime, default=utcnow)
