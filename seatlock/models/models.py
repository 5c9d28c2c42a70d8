from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Numeric,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from seatlock.db.base import Base


class Trip(Base):
    __tablename__ = "trips"
    id = Column(String(64), primary_key=True)
    route = Column(String(255), nullable=False)
    fare = Column(Numeric(10, 2), nullable=False, default=0)
    total_seats = Column(Integer, nullable=False, default=0)
    departure_time = Column(DateTime(timezone=True), nullable=True, index=True)
    arrival_time = Column(DateTime(timezone=True), nullable=True)
    # capacity class, e.g. "AC" / "Non-AC"
    bus_type = Column(String(32), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    seats = relationship("Seat", back_populates="trip")


class Seat(Base):
    __tablename__ = "seats"
    id = Column(String(64), primary_key=True)
    trip_id = Column(String(64), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_number = Column(String(32), nullable=False)
    row_number = Column(Integer, nullable=False)
    column_number = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="available", index=True)
    held_by = Column(String(128), nullable=True)
    hold_expires_at = Column(DateTime(timezone=True), nullable=True)
    # bumped on every conditional write
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    trip = relationship("Trip", back_populates="seats")

    __table_args__ = (
        UniqueConstraint("trip_id", "seat_number", name="uq_trip_seat_number"),
        Index("ix_seats_status_expiry", "status", "hold_expires_at"),
    )


class Booking(Base):
    __tablename__ = "bookings"
    id = Column(Integer, primary_key=True)
    reference = Column(String(32), nullable=False, unique=True, index=True)
    trip_id = Column(String(64), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    holder_id = Column(String(128), nullable=False, index=True)
    seat_ids = Column(JSON, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(50), nullable=False, default="pending", index=True)
    payment_status = Column(String(50), nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_ref = Column(String(255), nullable=True)
    booked_at = Column(DateTime(timezone=True), nullable=False)


class BookingSeat(Base):
    __tablename__ = "booking_seats"
    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_id = Column(String(64), ForeignKey("seats.id", ondelete="CASCADE"), nullable=False)

    # a seat can only ever be sold once
    __table_args__ = (UniqueConstraint("seat_id", name="uq_booking_seat"),)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    actor_id = Column(String(128), nullable=True, index=True)
    action = Column(String(255), nullable=False)
    object_type = Column(String(128), nullable=True)
    object_id = Column(String(128), nullable=True)
    detail = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
