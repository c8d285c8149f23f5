"""User model: named accounts"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from filauth.database import Base


class User(Base):
    """A named account owning miner and signer bindings.

    ``name`` stays unique across deleted rows too: a deleted account comes
    back through recover, never through a second create.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)                              # uuid4
    name = Column(String(255), unique=True, nullable=False, index=True)
    comment = Column(String(255), default="", nullable=False)
    state = Column(Integer, default=1, nullable=False)                     # 1 enabled, 2 disabled
    create_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    update_time = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=True)
