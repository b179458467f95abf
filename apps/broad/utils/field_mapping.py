"""
Bidirectional field mapping between API payloads and storage rows.

API payloads use camelCase names (and a few nested objects); the tables use
snake_case columns. Each resource declares a single ``FieldMap`` that is used
for writes (``to_row``) and reads (``to_api``), so both directions always agree.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from broad.utils.datetime_utils import to_utc
from broad.utils.errors import NotFoundError


def _api_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return to_utc(value)
    return value


def as_uuid(value: Any, resource: str = "Resource") -> uuid.UUID:
    """
    Coerce an id to ``uuid.UUID``.

    A value that cannot name a row (malformed string, None) can never match,
    so it raises ``NotFoundError`` for ``resource``.
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError.for_resource(resource)


def row_from_model(obj: Any) -> Dict[str, Any]:
    """Column-name dict of an ORM instance."""
    return {column.key: getattr(obj, column.key) for column in obj.__table__.columns}


class FieldMap:
    """
    Declared mapping between API field names and column names.

    Args:
        fields: API field name -> column name
        expand: API field holding a nested object -> {nested key: column name}.
            Only applied on writes; the columns are still exposed flat on reads
            when they also appear in ``fields``.
    """

    def __init__(self, fields: Dict[str, str], expand: Optional[Dict[str, Dict[str, str]]] = None):
        self.fields = dict(fields)
        self.columns = {column: api_name for api_name, column in self.fields.items()}
        self.expand = expand or {}

    def to_row(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Translate an API-shape dict into a column dict. Unknown keys are dropped."""
        row: Dict[str, Any] = {}
        for key, value in payload.items():
            if key in self.expand:
                if value is None:
                    continue
                for nested_key, column in self.expand[key].items():
                    if nested_key in value:
                        row[column] = value[nested_key]
            elif key in self.fields:
                row[self.fields[key]] = value
        return row

    def to_api(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Translate a column dict into an API-shape dict."""
        return {
            self.columns[column]: _api_value(value)
            for column, value in row.items()
            if column in self.columns
        }

    def model_to_api(self, obj: Any) -> Dict[str, Any]:
        """Shortcut for ``to_api(row_from_model(obj))``."""
        return self.to_api(row_from_model(obj))


PROFILE_FIELDS = FieldMap(
    {
        "id": "id",
        "handle": "handle",
        "displayName": "display_name",
        "bio": "bio",
        "avatarUrl": "avatar_url",
        "countryCode": "country_code",
        "phoneNumber": "phone_number",
        "expoPushToken": "expo_push_token",
        "role": "role",
        "isAvailable": "is_available",
        "latitude": "latitude",
        "longitude": "longitude",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
    expand={"currentLocation": {"latitude": "latitude", "longitude": "longitude"}},
)

RIDE_FIELDS = FieldMap(
    {
        "id": "id",
        "creatorId": "creator_id",
        "title": "title",
        "tagline": "tagline",
        "routeSummary": "route_summary",
        "startsAt": "starts_at",
        "meetupLocation": "meetup_location",
        "pace": "pace",
        "experienceLevel": "experience_level",
        "maxRiders": "max_riders",
        "status": "status",
        "name": "name",
        "dateISO": "date_iso",
        "meetupISO": "meetup_iso",
        "meetLocation": "meet_location",
        "distance": "distance",
        "gearCallout": "gear_callout",
        "commSignals": "comm_signals",
        "safetyChecks": "safety_checks",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    }
)

BOOKING_FIELDS = FieldMap(
    {
        "id": "id",
        "rideId": "ride_id",
        "riderId": "rider_id",
        "status": "status",
        "createdAt": "created_at",
    }
)

GARAGE_FIELDS = FieldMap(
    {
        "id": "id",
        "ownerId": "owner_id",
        "label": "label",
        "workspaceNotes": "workspace_notes",
        "primaryBikeId": "primary_bike_id",
        "backupBikeId": "backup_bike_id",
        "createdAt": "created_at",
    }
)

MOTORCYCLE_FIELDS = FieldMap(
    {
        "id": "id",
        "garageId": "garage_id",
        "make": "make",
        "model": "model",
        "year": "year",
        "nickname": "nickname",
        "vin": "vin",
        "odometerKm": "odometer_km",
        "lastServicedAt": "last_serviced_at",
        "category": "category",
        "colorway": "colorway",
        "plate": "plate",
        "nextServiceOn": "next_service_on",
        "deletedAt": "deleted_at",
        "createdAt": "created_at",
    }
)

MAINTENANCE_LOG_FIELDS = FieldMap(
    {
        "id": "id",
        "motorcycleId": "motorcycle_id",
        "performedAt": "performed_at",
        "description": "description",
        "cost": "cost",
        "notes": "notes",
        "createdAt": "created_at",
    }
)

TASK_FIELDS = FieldMap(
    {
        "id": "id",
        "garageId": "garage_id",
        "label": "label",
        "createdAt": "created_at",
    }
)

DOCUMENT_FIELDS = FieldMap(
    {
        "id": "id",
        "garageId": "garage_id",
        "title": "title",
        "status": "status",
        "updatedOn": "updated_on",
        "expiryDate": "expires_on",
        "storage": "storage",
        "createdAt": "created_at",
    }
)
