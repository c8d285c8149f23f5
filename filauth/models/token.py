"""Token model: issued credentials"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from filauth.database import Base


class Token(Base):
    """An issued credential.

    ``token`` is the signed bearer string; ``token_digest`` (its SHA256) is the
    unique lookup key, since bearers have no length bound. Revocation sets
    ``is_deleted``; the signed bytes never change, so recovering a token makes
    the same bearer valid again.
    """

    __tablename__ = "token"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(Text, nullable=False)
    token_digest = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    perm = Column(String(16), nullable=False)
    extra = Column(Text, default="", nullable=False)
    create_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=True)
