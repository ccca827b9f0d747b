from sqlalchemy import Column, String, ForeignKey, UniqueConstraint, CheckConstraint

from app.database import Base


class ParkingSession(Base):
    """A vehicle currently inside the facility."""

    __tablename__ = "parking_sessions"
    __table_args__ = (
        # One open session per vehicle
        UniqueConstraint("vehicle_id", name="uq_parking_sessions_vehicle"),
    )

    id = Column(String, primary_key=True)
    vehicle_id = Column(String, ForeignKey("vehicles.id"), nullable=False)
    entered_at = Column(String, nullable=False)
    photo_path = Column(String, nullable=True)


class ArchivedSession(Base):
    """A completed visit. Written once when the open session closes."""

    __tablename__ = "archived_sessions"
    __table_args__ = (
        CheckConstraint("exited_at >= entered_at", name="ck_archived_sessions_exit_after_entry"),
    )

    id = Column(String, primary_key=True)
    vehicle_id = Column(String, ForeignKey("vehicles.id"), nullable=False, index=True)
    entered_at = Column(String, nullable=False)
    exited_at = Column(String, nullable=False)
    photo_path = Column(String, nullable=True)
