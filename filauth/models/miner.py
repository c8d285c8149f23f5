"""Miner model: miner address to user binding"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from filauth.database import Base


class Miner(Base):
    """A miner actor bound to exactly one user"""

    __tablename__ = "miners"

    miner = Column(String(128), primary_key=True)                # canonical address
    user = Column(String(255), nullable=False, index=True)
    open_mining = Column(Boolean, default=True, nullable=True)
    create_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    update_time = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=True)
