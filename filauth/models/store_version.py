"""StoreVersion model: schema generation of the persisted data"""
from sqlalchemy import Column, Integer

from filauth.database import Base


class StoreVersion(Base):
    __tablename__ = "store_versions"

    id = Column(Integer, primary_key=True)
    version = Column(Integer, default=0, nullable=False)
