"""Signer model: wallet address to user bindings (many-to-many)"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint

from filauth.database import Base


class Signer(Base):
    """One (signer, user) pair; a signer may be bound to several users"""

    __tablename__ = "signers"
    __table_args__ = (UniqueConstraint("signer", "user", name="uq_signers_signer_user"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    signer = Column(String(128), nullable=False, index=True)     # canonical address
    user = Column(String(255), nullable=False, index=True)
    create_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    update_time = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=True)
