import json
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator


UNKNOWN = "Unknown"


def _present(value: Any) -> Any:
    # empty strings and missing values print the same way
    if value is None or value == "":
        return UNKNOWN
    return value


class _SafeFields(dict):
    """format_map mapping that prints unknown placeholders as `Unknown`"""

    def __missing__(self, key):
        return UNKNOWN


class Record(BaseModel):
    """A schema-less row: every field optional, unknown fields kept as extras."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[Any] = Field(default=None, validation_alias=AliasChoices("id", "_id"))

    default_template: ClassVar[str] = "- ID: {id}"

    def report_fields(self) -> Dict[str, Any]:
        fields = dict(self.model_extra or {})
        fields.update({k: getattr(self, k) for k in type(self).model_fields})
        return {k: _present(v) for k, v in fields.items()}

    def report_line(self, template: Optional[str] = None) -> str:
        return (template or self.default_template).format_map(_SafeFields(self.report_fields()))


class VehicleInfo(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    vehicle_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("vehicle_type", "vehicleType", "type")
    )


class UserRecord(Record):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[Any] = None
    role: Optional[str] = None
    driver_status: Optional[str] = Field(default=None, validation_alias=AliasChoices("driver_status", "driverStatus"))
    is_verified: Optional[bool] = Field(default=None, validation_alias=AliasChoices("is_verified", "isVerified"))
    vehicle_info: Optional[VehicleInfo] = Field(default=None, validation_alias=AliasChoices("vehicle_info", "vehicleInfo"))
    otp_code: Optional[str] = Field(default=None, validation_alias=AliasChoices("otp_code", "otpCode", "otp"))
    otp_expires_at: Optional[Any] = Field(default=None, validation_alias=AliasChoices("otp_expires_at", "otpExpiresAt"))
    created_at: Optional[Any] = Field(default=None, validation_alias=AliasChoices("created_at", "createdAt"))

    default_template: ClassVar[str] = "- Name: {name}, Role: {role}, Status: {driver_status}, Vehicle: {vehicle_type}, ID: {id}"

    @field_validator("vehicle_info", mode="before")
    @classmethod
    def _decode_vehicle_info(cls, value):
        # JSON columns come back as text on some drivers
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return {"vehicle_type": value}
        return value

    def report_fields(self) -> Dict[str, Any]:
        fields = super().report_fields()
        vehicle_type = self.vehicle_info.vehicle_type if self.vehicle_info is not None else None
        fields["vehicle_type"] = _present(vehicle_type)
        fields["vehicle_info"] = _present(self.vehicle_info.model_dump(exclude_none=True) if self.vehicle_info else None)
        return fields


class RideRecord(Record):
    status: Optional[str] = None
    rider: Optional[Any] = None
    vehicle_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("vehicle_type", "vehicleType"))
    created_at: Optional[Any] = Field(default=None, validation_alias=AliasChoices("created_at", "createdAt"))

    default_template: ClassVar[str] = "Ride ID: {id} | Rider: {rider_name} | Status: {status} | Vehicle Type: {vehicle_type}"

    @property
    def rider_name(self) -> Optional[str]:
        # rider is a bare reference until populated with the user row
        if isinstance(self.rider, dict):
            return self.rider.get("name")
        return None

    def report_fields(self) -> Dict[str, Any]:
        fields = super().report_fields()
        fields["rider_name"] = _present(self.rider_name)
        return fields


RECORD_TYPES: Dict[str, Type[Record]] = {
    "rides": RideRecord,
    "users": UserRecord,
}


def to_record(collection: str, row: Dict[str, Any]) -> Record:
    """wrap `row` in its collection's record type, or a bare Record if the row doesn't fit"""
    try:
        return RECORD_TYPES.get(collection, Record).model_validate(row)
    except ValidationError:
        return Record.model_validate(row)


def stored_names(collection: str, field: str) -> List[str]:
    """every column name `field` may be stored under in `collection`, `field` itself first.

    `driver_status` gives `["driver_status", "driverStatus"]` and `_id` gives
    `["_id", "id"]`. Fields with no known aliases come back alone.
    """
    model = RECORD_TYPES.get(collection, Record)
    for name, info in model.model_fields.items():
        alias = info.validation_alias
        choices = [c for c in alias.choices if isinstance(c, str)] if isinstance(alias, AliasChoices) else []
        names = [name] + [c for c in choices if c != name]
        if field in names:
            return [field] + [n for n in names if n != field]
    return [field]
