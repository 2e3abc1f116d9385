from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, text

from .db import Base

CONFIRMED = "confirmed"
CANCELLED = "cancelled"

ROLE_ADMIN = "admin"
ROLE_USER = "user"

# partial index predicate: only confirmed fixed-time bookings occupy a slot
_SLOT_PREDICATE = text("is_rush = false AND status = 'confirmed'")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String, primary_key=True)  # booking:<date>:<time>:<epoch ms>:<suffix>

    service_type = Column(String, nullable=False)
    date = Column(String, nullable=False, index=True)
    time = Column(String, nullable=False)
    is_rush = Column(Boolean, nullable=False, default=False)

    customer_handle = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)

    total_price = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, index=True)  # confirmed/cancelled

    __table_args__ = (
        Index(
            "uq_bookings_confirmed_slot",
            "date",
            "time",
            unique=True,
            postgresql_where=_SLOT_PREDICATE,
            sqlite_where=_SLOT_PREDICATE,
        ),
    )


class AuthUser(Base):
    __tablename__ = "auth_users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_USER)
    created_at = Column(DateTime(timezone=True), nullable=False)
