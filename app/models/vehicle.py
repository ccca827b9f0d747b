from sqlalchemy import Column, String, ForeignKey

from app.database import Base


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(String, primary_key=True)
    license_plate = Column(String(20), nullable=False, unique=True)
    member_id = Column(String, ForeignKey("members.id"), nullable=True)
    vip_expires_at = Column(String, nullable=True)
