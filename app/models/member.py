from sqlalchemy import Column, String

from app.database import Base


class Member(Base):
    __tablename__ = "members"

    id = Column(String, primary_key=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String(20), nullable=False, unique=True)
