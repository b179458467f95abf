"""
SQLAlchemy ORM models for the Broad ride sharing and garage system.

The production schema is owned by the managed database (migrations, RLS and
triggers live there); these classes mirror it so queries are typed and tests
can build the tables with ``create_all``.
"""

import enum
import uuid
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    Numeric,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    JSON,
    Uuid,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from broad.database.db import Base
from broad.utils.datetime_utils import utcnow

# jsonb / text[] on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")
TextList = JSON().with_variant(ARRAY(Text), "postgresql")


class ProfileRole(str, enum.Enum):
    """Profile role enum."""

    RIDER = "rider"
    MODERATOR = "moderator"
    ADMIN = "admin"


class RideStatus(str, enum.Enum):
    """Ride status enum. Any value may be set by the creator; there is no transition table."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RidePace(str, enum.Enum):
    CRUISE = "cruise"
    GROUP = "group"
    SPIRITED = "spirited"


class ExperienceLevel(str, enum.Enum):
    NOVICE = "novice"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class TripDistance(str, enum.Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class BookingStatus(str, enum.Enum):
    """Booking status enum."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"


class Profile(Base):
    """Identity record; the id is the auth provider's user id."""

    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True)
    handle = Column(String, nullable=True, unique=True)
    display_name = Column(String, nullable=False)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String, nullable=True)
    country_code = Column(String(2), nullable=True)
    phone_number = Column(String, nullable=True, unique=True)
    expo_push_token = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ProfileRole.RIDER.value)
    is_available = Column(Boolean, nullable=False, default=False)
    latitude = Column(Float, nullable=True)  # Last known position
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    rides = relationship("Ride", back_populates="creator", passive_deletes=True)
    bookings = relationship("Booking", back_populates="rider", passive_deletes=True)
    garages = relationship("Garage", back_populates="owner", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("role in ('rider', 'moderator', 'admin')", name="ck_profiles_role"),
        Index("idx_profiles_handle", "handle"),
        Index("profiles_phone_number_idx", "phone_number"),
    )


class Ride(Base):
    """
    Group ride owned by a creator profile.

    Carries two overlapping field sets: the original ride fields (title,
    starts_at, meetup_location, ...) and the newer trip fields (name, date_iso,
    meetup_iso, meet_location, ...). Both are stored as given.
    """

    __tablename__ = "rides"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    tagline = Column(String, nullable=True)
    route_summary = Column(Text, nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    meetup_location = Column(JSONType, nullable=True)  # {latitude, longitude, address?}
    pace = Column(String, nullable=True)
    experience_level = Column(String, nullable=True)
    max_riders = Column(Integer, nullable=False, default=10)
    status = Column(String, nullable=False, default=RideStatus.SCHEDULED.value)

    # Trip fields
    name = Column(String, nullable=True)
    date_iso = Column(Date, nullable=True)
    meetup_iso = Column(DateTime(timezone=True), nullable=True)
    meet_location = Column(Text, nullable=True)
    distance = Column(String, nullable=True)
    gear_callout = Column(Text, nullable=True)
    comm_signals = Column(TextList, nullable=True)
    safety_checks = Column(TextList, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    creator = relationship("Profile", back_populates="rides")
    bookings = relationship("Booking", back_populates="ride", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("max_riders >= 2 and max_riders <= 50", name="ck_rides_max_riders"),
        Index("idx_rides_creator_id", "creator_id"),
        Index("idx_rides_starts_at", "starts_at"),
        Index("idx_rides_status", "status"),
    )


class Booking(Base):
    """A rider's seat on a ride."""

    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ride_id = Column(Uuid, ForeignKey("rides.id", ondelete="CASCADE"), nullable=False)
    rider_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False, default=BookingStatus.CONFIRMED.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    ride = relationship("Ride", back_populates="bookings")
    rider = relationship("Profile", back_populates="bookings")

    __table_args__ = (
        UniqueConstraint("ride_id", "rider_id", name="uq_bookings_ride_rider"),
        Index("idx_bookings_ride_id", "ride_id"),
        Index("idx_bookings_rider_id", "rider_id"),
    )


class Garage(Base):
    """Motorcycle collection owned by a profile."""

    __tablename__ = "garages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    label = Column(String, nullable=False, default="Main Garage")
    workspace_notes = Column(Text, nullable=True)
    primary_bike_id = Column(Uuid, nullable=True)
    backup_bike_id = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    owner = relationship("Profile", back_populates="garages")
    motorcycles = relationship("Motorcycle", back_populates="garage", passive_deletes=True)

    __table_args__ = (UniqueConstraint("owner_id", "label", name="uq_garages_owner_label"),)


class Motorcycle(Base):
    """A bike in a garage. Deletion is soft: ``deleted_at`` is stamped instead."""

    __tablename__ = "motorcycles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    garage_id = Column(Uuid, ForeignKey("garages.id", ondelete="CASCADE"), nullable=False)
    make = Column(String, nullable=False)
    model = Column(String, nullable=False)
    year = Column(Integer, nullable=True)
    nickname = Column(String, nullable=True)
    vin = Column(String, nullable=True, unique=True)
    odometer_km = Column(Numeric(asdecimal=False), nullable=True)
    last_serviced_at = Column(Date, nullable=True)
    category = Column(String, nullable=True)
    colorway = Column(String, nullable=True)
    plate = Column(String, nullable=True)
    next_service_on = Column(Date, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    garage = relationship("Garage", back_populates="motorcycles")
    maintenance_logs = relationship(
        "MaintenanceLog", back_populates="motorcycle", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("odometer_km >= 0", name="ck_motorcycles_odometer"),
        Index("idx_motorcycles_garage_id", "garage_id"),
        Index("idx_motorcycles_deleted_at", "deleted_at"),
    )


class MaintenanceLog(Base):
    """Service record for a motorcycle."""

    __tablename__ = "maintenance_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    motorcycle_id = Column(Uuid, ForeignKey("motorcycles.id", ondelete="CASCADE"), nullable=False)
    performed_at = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    cost = Column(Numeric(asdecimal=False), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    motorcycle = relationship("Motorcycle", back_populates="maintenance_logs")

    __table_args__ = (
        CheckConstraint("cost >= 0", name="ck_maintenance_logs_cost"),
        Index("maintenance_logs_motorcycle_idx", "motorcycle_id", "performed_at"),
    )


class GarageTask(Base):
    """Simple to-do entry scoped to a garage."""

    __tablename__ = "garage_tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    garage_id = Column(Uuid, ForeignKey("garages.id", ondelete="CASCADE"), nullable=False)
    label = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (Index("garage_tasks_garage_idx", "garage_id", "created_at"),)


class GarageDocument(Base):
    """Paperwork (registration, insurance, ...) tracked for a garage."""

    __tablename__ = "garage_documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    garage_id = Column(Uuid, ForeignKey("garages.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    status = Column(String, nullable=False)
    updated_on = Column(Date, nullable=False)
    expires_on = Column(Date, nullable=True)
    storage = Column(String, nullable=False, default="local")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (Index("garage_documents_garage_idx", "garage_id", "updated_on"),)
