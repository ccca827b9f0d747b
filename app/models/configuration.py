from sqlalchemy import Column, Integer, String, Numeric

from app.database import Base


class BillingConfiguration(Base):
    __tablename__ = "billing_configurations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    note = Column(String, nullable=True)
    minute_rounding_threshold = Column(Integer, nullable=False)
    # Stored and exposed, not read by the fee path
    exit_buffer_time = Column(Integer, nullable=False)
    overflow_hour_rate = Column(Numeric(10, 2), nullable=False)
    created_at = Column(String, nullable=False)
