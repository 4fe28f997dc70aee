"""
Sensor reading model (written by the ingestion listener)
"""
from sqlalchemy import Column, Integer, String, DateTime, Float, Index
from iotmon.models.database import Base, utcnow


class Reading(Base):
    __tablename__ = "readings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(100), nullable=False, index=True)
    ts = Column(DateTime, default=utcnow, nullable=False, index=True)
    temperature_c = Column(Float, nullable=True)
    humidity_pct = Column(Float, nullable=True)
    lux = Column(Float, nullable=True)
    sound = Column(Integer, nullable=True)
    co2_ppm = Column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_readings_device_ts", "device_id", "ts"),
    )

    def __repr__(self):
        return f"<Reading {self.device_id} at {self.ts}>"
