"""
Pydantic models for API request validation.

Wire names are camelCase (aliases); attributes are snake_case. Dump with
``model_dump(by_alias=True, exclude_unset=True)`` to get the API-shape dict the
field maps expect.
"""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from broad.database.models import (
    ExperienceLevel,
    ProfileRole,
    RidePace,
    RideStatus,
    TripDistance,
)
from broad.utils.datetime_utils import max_motorcycle_year, to_utc

HANDLE_PATTERN = r"^[a-zA-Z0-9_]+$"

_url_adapter = TypeAdapter(HttpUrl)


class CamelModel(BaseModel):
    """Base for request bodies: camelCase on the wire, snake_case accepted too."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, use_enum_values=True
    )

    def to_api_dict(self) -> dict:
        """Fields the client actually sent, keyed by their API names."""
        return self.model_dump(by_alias=True, exclude_unset=True)


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        _url_adapter.validate_python(value)
    except PydanticValidationError:
        raise ValueError("must be a valid URL")
    return value


def _reject_null(value):
    # Partial updates may omit a required column but never clear it
    if value is None:
        raise ValueError("may be omitted but not set to null")
    return value


# Common schemas


class PaginationParams(BaseModel):
    """Page/limit query parameters."""

    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


class Location(BaseModel):
    """A point with an optional human-readable address."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=255)


# Profile schemas


class ProfileCreate(CamelModel):
    """Request to create the caller's profile."""

    handle: Optional[str] = Field(None, min_length=3, max_length=30, pattern=HANDLE_PATTERN)
    display_name: str = Field(min_length=1, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    avatar_url: Optional[str] = None
    country_code: Optional[str] = Field(None, min_length=2, max_length=2)
    phone_number: Optional[str] = Field(None, min_length=10, max_length=15)

    @field_validator("avatar_url")
    @classmethod
    def validate_avatar_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_url(value)


class ProfileUpdate(CamelModel):
    """Partial profile update. ``fullName`` is accepted as a legacy name for ``displayName``."""

    handle: Optional[str] = Field(None, min_length=3, max_length=30, pattern=HANDLE_PATTERN)
    display_name: Optional[str] = Field(
        None,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("displayName", "fullName", "display_name"),
        serialization_alias="displayName",
    )
    bio: Optional[str] = Field(None, max_length=500)
    avatar_url: Optional[str] = None
    country_code: Optional[str] = Field(None, min_length=2, max_length=2)
    phone_number: Optional[str] = Field(None, min_length=10, max_length=15)
    expo_push_token: Optional[str] = None
    current_location: Optional[Location] = None

    @field_validator("display_name", mode="before")
    @classmethod
    def display_name_not_null(cls, value):
        return _reject_null(value)

    @field_validator("avatar_url")
    @classmethod
    def validate_avatar_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_url(value)


class LocationUpdate(BaseModel):
    """Request to update a profile's last known coordinates."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class AvailabilityUpdate(CamelModel):
    """Request to toggle availability (accepts ``isAvailable`` or ``is_available``)."""

    is_available: bool


class RoleUpdate(BaseModel):
    """Admin request to change a profile's role."""

    model_config = ConfigDict(use_enum_values=True)

    role: ProfileRole


# Ride schemas


class _RideFields(CamelModel):
    tagline: Optional[str] = Field(None, max_length=100)
    route_summary: Optional[str] = Field(None, max_length=1000)
    meetup_location: Optional[Location] = None
    pace: Optional[RidePace] = None
    experience_level: Optional[ExperienceLevel] = None

    # Trip fields
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    date_iso: Optional[date] = Field(None, alias="dateISO")
    meetup_iso: Optional[datetime] = Field(None, alias="meetupISO")
    meet_location: Optional[str] = Field(None, max_length=500)
    distance: Optional[TripDistance] = None
    gear_callout: Optional[str] = Field(None, max_length=1000)
    comm_signals: Optional[List[str]] = None
    safety_checks: Optional[List[str]] = None

    @field_validator("meetup_iso")
    @classmethod
    def meetup_iso_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)


class RideCreate(_RideFields):
    """Request to create a ride."""

    title: str = Field(min_length=1, max_length=200)
    starts_at: datetime
    max_riders: int = Field(10, ge=2, le=50)

    @field_validator("starts_at")
    @classmethod
    def starts_at_utc(cls, value: datetime) -> datetime:
        return to_utc(value)

    def to_api_dict(self) -> dict:
        # maxRiders has a default that must be written even when omitted
        return self.model_dump(by_alias=True, exclude_unset=True) | {
            "maxRiders": self.max_riders
        }


class RideUpdate(_RideFields):
    """Partial ride update. Any status may be set; there is no transition table."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    starts_at: Optional[datetime] = None
    max_riders: Optional[int] = Field(None, ge=2, le=50)
    status: Optional[RideStatus] = None

    @field_validator("title", "starts_at", "max_riders", "status", mode="before")
    @classmethod
    def required_columns_not_null(cls, value):
        return _reject_null(value)

    @field_validator("starts_at")
    @classmethod
    def starts_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)


class RideStatusUpdate(BaseModel):
    """Request to set a ride's status."""

    model_config = ConfigDict(use_enum_values=True)

    status: RideStatus


# Booking schemas


class BookingCreate(CamelModel):
    """Request to book a seat on a ride."""

    ride_id: UUID


# Garage schemas


class GarageCreate(CamelModel):
    """Request to create a garage."""

    label: str = Field(min_length=1, max_length=100)


class GarageUpdate(CamelModel):
    """Partial garage update."""

    label: Optional[str] = Field(None, min_length=1, max_length=100)

    @field_validator("label", mode="before")
    @classmethod
    def label_not_null(cls, value):
        return _reject_null(value)


class WorkspaceNotesUpdate(CamelModel):
    """Free-text notes for a garage workspace."""

    workspace_notes: Optional[str] = Field("", max_length=10000)


class BikeAssignment(CamelModel):
    """Assign (or clear with null) the primary/backup bike of a garage."""

    motorcycle_id: Optional[UUID] = None


# Motorcycle schemas


class _MotorcycleFields(CamelModel):
    nickname: Optional[str] = Field(None, max_length=50)
    vin: Optional[str] = Field(None, min_length=17, max_length=17)
    odometer_km: Optional[float] = Field(None, ge=0)
    last_serviced_at: Optional[date] = None
    category: Optional[str] = Field(None, max_length=50)
    colorway: Optional[str] = Field(None, max_length=50)
    plate: Optional[str] = Field(None, max_length=20)
    next_service_on: Optional[date] = None

    @field_validator("year", check_fields=False)
    @classmethod
    def year_not_in_future(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value > max_motorcycle_year():
            raise ValueError(f"year must be at most {max_motorcycle_year()}")
        return value


class MotorcycleCreate(_MotorcycleFields):
    """Request to add a motorcycle to a garage (the garage comes from the path)."""

    make: str = Field(min_length=1, max_length=50)
    model: str = Field(min_length=1, max_length=50)
    year: int = Field(ge=1960)


class MotorcycleUpdate(_MotorcycleFields):
    """Partial motorcycle update."""

    make: Optional[str] = Field(None, min_length=1, max_length=50)
    model: Optional[str] = Field(None, min_length=1, max_length=50)
    year: Optional[int] = Field(None, ge=1960)

    @field_validator("make", "model", mode="before")
    @classmethod
    def make_and_model_not_null(cls, value):
        return _reject_null(value)


class OdometerUpdate(CamelModel):
    """Request to set a motorcycle's odometer (accepts ``odometerKm`` or ``odometer_km``)."""

    odometer_km: float = Field(ge=0)


# Maintenance log schemas


class MaintenanceLogCreate(CamelModel):
    """Request to record maintenance (the motorcycle comes from the path)."""

    performed_at: date
    description: str = Field(min_length=1, max_length=500)
    cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)


class MaintenanceLogUpdate(CamelModel):
    """Partial maintenance log update."""

    performed_at: Optional[date] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("performed_at", "description", mode="before")
    @classmethod
    def required_columns_not_null(cls, value):
        return _reject_null(value)


# Garage task / document schemas


class TaskCreate(CamelModel):
    label: str = Field(min_length=1, max_length=200)


class TaskUpdate(CamelModel):
    label: str = Field(min_length=1, max_length=200)


class _DocumentFields(CamelModel):
    updated_on: Optional[date] = Field(
        None,
        validation_alias=AliasChoices("updatedOn", "updated_on"),
        serialization_alias="updatedOn",
    )
    expiry_date: Optional[date] = Field(
        None,
        validation_alias=AliasChoices("expiryDate", "expiresOn", "expires_on"),
        serialization_alias="expiryDate",
    )


class DocumentCreate(_DocumentFields):
    """Request to track a garage document."""

    title: str = Field(min_length=1, max_length=200)
    status: str = Field("unknown", max_length=50)
    storage: str = Field("local", max_length=50)

    def to_api_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True) | {
            "status": self.status,
            "storage": self.storage,
        }


class DocumentUpdate(_DocumentFields):
    """Partial document update."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[str] = Field(None, max_length=50)
    storage: Optional[str] = Field(None, max_length=50)


# Authentication schemas


class PhoneAuthRequest(BaseModel):
    """Request an OTP for a phone number (login and signup share this step)."""

    phone: str = Field(min_length=1)


class VerifyOtpRequest(BaseModel):
    """Submit the OTP received by SMS."""

    phone: str = Field(min_length=1)
    token: str = Field(min_length=6, max_length=6, pattern=r"^\d{6}$")


class RefreshRequest(BaseModel):
    """Exchange a refresh token for a new session."""

    refresh_token: str = Field(min_length=1)
