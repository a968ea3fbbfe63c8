"""
SQLAlchemy models for the hybrid cluster store
"""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class DataPlaneDB(Base):
    """Data plane registered with the control plane"""

    __tablename__ = "clustering_data_planes"

    id = Column(String, primary_key=True)
    hostname = Column(String, nullable=False)
    ip = Column(String, nullable=False)
    last_seen = Column(DateTime(timezone=True), nullable=False)
    config_hash = Column(String(32), nullable=False)
    version = Column(String, nullable=False)
    sync_status = Column(String, nullable=False, default="unknown")
