from sqlalchemy import Column, String, DateTime, Boolean
from database import Base, utcnow


class Verification(Base):
    __tablename__ = "verifications"

    token = Column(String, primary_key=True, index=True)
    phone_number = Column(String, nullable=False, index=True)
    code = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
