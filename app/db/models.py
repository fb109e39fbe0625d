"""Database models."""
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Restaurant(Base):
    """Tenant settings for one restaurant."""

    __tablename__ = "restaurants"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    max_capacity = Column(Integer, default=0, nullable=False)
    opening_time = Column(String, nullable=True)
    closing_time = Column(String, nullable=True)
    # Raw, as entered in the dashboard: JSON list, delimited string or number
    closed_days = Column(JSON, nullable=True)
    phone_number = Column(String, nullable=True)
    handoff_phone_number = Column(String, nullable=True)
    subscription_status = Column(String, default="active", nullable=False)  # active, trialing, expired
    calls_limit = Column(Integer, nullable=True)

    call_logs = relationship("CallLog", back_populates="restaurant")
    reservations = relationship("Reservation", back_populates="restaurant")


class CallLog(Base):
    """Call metadata model."""

    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(String, ForeignKey("restaurants.id"), nullable=False, index=True)
    stream_sid = Column(String, index=True, nullable=True)
    call_sid = Column(String, index=True, nullable=True)
    caller_phone = Column(String, nullable=True)
    status = Column(String, default="started", nullable=False)  # started, completed
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)

    restaurant = relationship("Restaurant", back_populates="call_logs")
    transcripts = relationship("CallTranscript", back_populates="call_log", cascade="all, delete-orphan")


class CallTranscript(Base):
    """One spoken line of a call."""

    __tablename__ = "call_transcripts"

    id = Column(Integer, primary_key=True, index=True)
    call_log_id = Column(Integer, ForeignKey("call_logs.id"), nullable=False, index=True)
    role = Column(String, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    call_log = relationship("CallLog", back_populates="transcripts")


class Reservation(Base):
    """Table reservation model."""

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(String, ForeignKey("restaurants.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(String, nullable=False)  # HH:MM
    party_size = Column(Integer, nullable=False)
    customer_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    status = Column(String, default="confirmed", nullable=False)  # confirmed, cancelled
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    restaurant = relationship("Restaurant", back_populates="reservations")
