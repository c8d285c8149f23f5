"""UserRateLimit model: per-account request rate rules"""
from sqlalchemy import JSON, Column, String

from filauth.database import Base


class UserRateLimit(Base):
    __tablename__ = "user_rate_limits"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), primary_key=True)
    service = Column(String(255), default="", nullable=False)
    api = Column(String(255), default="", nullable=False)
    req_limit = Column(JSON, nullable=False)  # {"cap": int, "reset_dur": seconds}
