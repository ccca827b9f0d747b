import enum
from dataclasses import dataclass

from sqlalchemy import Column, String, Numeric, ForeignKey, CheckConstraint

from app.database import Base


class PaymentOwnerKind(str, enum.Enum):
    SESSION = "session"
    ARCHIVED_SESSION = "archived_session"


@dataclass(frozen=True)
class PaymentOwner:
    kind: PaymentOwnerKind
    id: str

    @classmethod
    def session(cls, session_id: str) -> "PaymentOwner":
        return cls(PaymentOwnerKind.SESSION, session_id)

    @classmethod
    def archived_session(cls, archived_session_id: str) -> "PaymentOwner":
        return cls(PaymentOwnerKind.ARCHIVED_SESSION, archived_session_id)


class PaymentRecord(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "(session_id IS NULL) <> (archived_session_id IS NULL)",
            name="ck_payments_single_owner",
        ),
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
        CheckConstraint("discount >= 0", name="ck_payments_discount_non_negative"),
    )

    id = Column(String, primary_key=True)
    session_id = Column(String, ForeignKey("parking_sessions.id"), nullable=True, index=True)
    archived_session_id = Column(String, ForeignKey("archived_sessions.id"), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    settled_at = Column(String, nullable=True)

    @property
    def owner(self) -> PaymentOwner:
        if self.session_id is not None:
            return PaymentOwner.session(self.session_id)
        return PaymentOwner.archived_session(self.archived_session_id)

    @owner.setter
    def owner(self, value: PaymentOwner) -> None:
        if value.kind is PaymentOwnerKind.SESSION:
            self.session_id, self.archived_session_id = value.id, None
        else:
            self.session_id, self.archived_session_id = None, value.id

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None
