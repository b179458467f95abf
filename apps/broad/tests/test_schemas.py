"""
Unit tests for request validation schemas.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from broad.models.schemas import (
    AvailabilityUpdate,
    DocumentCreate,
    GarageUpdate,
    MaintenanceLogUpdate,
    MotorcycleCreate,
    MotorcycleUpdate,
    OdometerUpdate,
    PaginationParams,
    ProfileCreate,
    ProfileUpdate,
    RideCreate,
    RideUpdate,
    VerifyOtpRequest,
)
from broad.utils.datetime_utils import max_motorcycle_year


def _error_fields(exc_info):
    return {error["loc"][0] for error in exc_info.value.errors()}


# ──────────────────────────────────────────────────────────────
# Profiles
# ──────────────────────────────────────────────────────────────


def test_profile_create_reports_every_violation():
    """All violated fields are reported, not just the first."""
    with pytest.raises(ValidationError) as exc_info:
        ProfileCreate.model_validate(
            {
                "handle": "a!",
                "displayName": "",
                "countryCode": "USA",
                "avatarUrl": "not a url",
            }
        )
    assert _error_fields(exc_info) == {"handle", "displayName", "countryCode", "avatarUrl"}


@pytest.mark.parametrize("handle", ["ada", "Ada_Lovelace", "rider_42", "a" * 30])
def test_valid_handles(handle):
    assert ProfileCreate.model_validate({"handle": handle, "displayName": "Ada"}).handle == handle


@pytest.mark.parametrize("handle", ["ab", "a" * 31, "ada-l", "ada l", "adá"])
def test_invalid_handles(handle):
    with pytest.raises(ValidationError):
        ProfileCreate.model_validate({"handle": handle, "displayName": "Ada"})


def test_profile_update_accepts_legacy_full_name():
    update = ProfileUpdate.model_validate({"fullName": "Ada"})
    assert update.to_api_dict() == {"displayName": "Ada"}


def test_profile_update_only_dumps_sent_fields():
    update = ProfileUpdate.model_validate(
        {"bio": "Twisties", "currentLocation": {"latitude": 1.5, "longitude": 2.5}}
    )
    assert update.to_api_dict() == {
        "bio": "Twisties",
        "currentLocation": {"latitude": 1.5, "longitude": 2.5},
    }


def test_profile_update_rejects_out_of_range_location():
    with pytest.raises(ValidationError):
        ProfileUpdate.model_validate({"currentLocation": {"latitude": 91, "longitude": 0}})


@pytest.mark.parametrize("payload", [{"isAvailable": True}, {"is_available": True}])
def test_availability_accepts_both_spellings(payload):
    assert AvailabilityUpdate.model_validate(payload).is_available is True


# ──────────────────────────────────────────────────────────────
# Rides
# ──────────────────────────────────────────────────────────────


def test_ride_create_defaults_and_utc():
    ride = RideCreate.model_validate(
        {"title": "Coast run", "startsAt": "2030-05-01T09:00:00+02:00"}
    )
    assert ride.max_riders == 10
    assert ride.starts_at == datetime(2030, 5, 1, 7, 0, tzinfo=timezone.utc)
    assert ride.to_api_dict()["maxRiders"] == 10


def test_ride_create_naive_datetime_is_utc():
    ride = RideCreate.model_validate({"title": "Coast run", "startsAt": "2030-05-01T09:00:00"})
    assert ride.starts_at.utcoffset().total_seconds() == 0
    assert ride.starts_at.hour == 9


@pytest.mark.parametrize("max_riders", [1, 51])
def test_ride_max_riders_bounds(max_riders):
    with pytest.raises(ValidationError):
        RideCreate.model_validate(
            {"title": "Coast run", "startsAt": "2030-05-01T09:00:00Z", "maxRiders": max_riders}
        )


def test_ride_create_rejects_bad_enums_and_dates():
    with pytest.raises(ValidationError) as exc_info:
        RideCreate.model_validate(
            {
                "title": "Coast run",
                "startsAt": "next tuesday",
                "pace": "warp",
                "distance": "galactic",
                "dateISO": "2030-13-45",
            }
        )
    assert _error_fields(exc_info) == {"startsAt", "pace", "distance", "dateISO"}


def test_ride_trip_fields_use_iso_aliases():
    ride = RideCreate.model_validate(
        {
            "title": "Coast run",
            "startsAt": "2030-05-01T09:00:00Z",
            "dateISO": "2030-05-01",
            "meetupISO": "2030-05-01T08:30:00Z",
            "safetyChecks": ["tires", "chain"],
        }
    )
    data = ride.to_api_dict()
    assert str(data["dateISO"]) == "2030-05-01"
    assert data["safetyChecks"] == ["tires", "chain"]
    assert "meetupISO" in data


def test_ride_update_accepts_any_status():
    assert RideUpdate.model_validate({"status": "completed"}).to_api_dict() == {
        "status": "completed"
    }


@pytest.mark.parametrize("field", ["title", "startsAt", "maxRiders", "status"])
def test_ride_update_rejects_null_required_columns(field):
    with pytest.raises(ValidationError) as exc_info:
        RideUpdate.model_validate({field: None})
    assert _error_fields(exc_info) == {field}


def test_ride_update_allows_clearing_optional_fields():
    assert RideUpdate.model_validate({"tagline": None}).to_api_dict() == {"tagline": None}


@pytest.mark.parametrize(
    "model, payload",
    [
        (ProfileUpdate, {"displayName": None}),
        (ProfileUpdate, {"fullName": None}),
        (GarageUpdate, {"label": None}),
        (MotorcycleUpdate, {"make": None}),
        (MotorcycleUpdate, {"model": None}),
        (MaintenanceLogUpdate, {"performedAt": None}),
        (MaintenanceLogUpdate, {"description": None}),
    ],
)
def test_partial_updates_reject_null_required_columns(model, payload):
    with pytest.raises(ValidationError):
        model.model_validate(payload)


# ──────────────────────────────────────────────────────────────
# Motorcycles and documents
# ──────────────────────────────────────────────────────────────


def test_motorcycle_year_bounds():
    MotorcycleCreate.model_validate({"make": "Ducati", "model": "Monster", "year": 1960})
    MotorcycleCreate.model_validate(
        {"make": "Ducati", "model": "Monster", "year": max_motorcycle_year()}
    )
    for year in (1959, max_motorcycle_year() + 1):
        with pytest.raises(ValidationError):
            MotorcycleCreate.model_validate({"make": "Ducati", "model": "Monster", "year": year})


def test_motorcycle_vin_must_be_17_chars():
    with pytest.raises(ValidationError):
        MotorcycleCreate.model_validate(
            {"make": "Ducati", "model": "Monster", "year": 2020, "vin": "SHORT"}
        )


@pytest.mark.parametrize("payload", [{"odometerKm": 12.5}, {"odometer_km": 12.5}])
def test_odometer_accepts_both_spellings(payload):
    assert OdometerUpdate.model_validate(payload).odometer_km == 12.5


def test_odometer_cannot_be_negative():
    with pytest.raises(ValidationError):
        OdometerUpdate.model_validate({"odometerKm": -1})


def test_document_defaults_and_expiry_alias():
    document = DocumentCreate.model_validate({"title": "Insurance", "expiresOn": "2026-01-31"})
    data = document.to_api_dict()
    assert data["status"] == "unknown"
    assert data["storage"] == "local"
    assert str(data["expiryDate"]) == "2026-01-31"


# ──────────────────────────────────────────────────────────────
# Pagination and auth
# ──────────────────────────────────────────────────────────────


def test_pagination_defaults_and_cap():
    assert PaginationParams().page == 1
    assert PaginationParams().limit == 20
    with pytest.raises(ValidationError):
        PaginationParams(limit=101)
    with pytest.raises(ValidationError):
        PaginationParams(page=0)


@pytest.mark.parametrize("token", ["12345", "1234567", "abcdef"])
def test_otp_must_be_six_digits(token):
    with pytest.raises(ValidationError):
        VerifyOtpRequest.model_validate({"phone": "+15551234567", "token": token})
