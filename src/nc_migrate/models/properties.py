"""Custom property models."""

from typing import Optional

from pydantic import Field, field_validator

from .common import CreatePayload, EntityModel, coerce_id


class _CustomProperty(EntityModel):
    property_id: int = Field(..., description='Property ID')
    label: Optional[str] = Field(default=None, description='Property label')
    value: Optional[str] = Field(default=None, description='Property value')
    default_value: Optional[str] = Field(default=None)
    property_type: Optional[str] = Field(default=None)

    @field_validator('property_id', mode='before')
    @classmethod
    def validate_property_id(cls, v):
        return coerce_id(v)

    @field_validator('value', 'default_value', mode='before')
    @classmethod
    def validate_text(cls, v):
        return None if v is None else str(v)


class OrgProperty(_CustomProperty):
    """Custom property value of an org unit."""

    org_unit_id: Optional[int] = Field(default=None, description='Owning org unit')

    @field_validator('org_unit_id', mode='before')
    @classmethod
    def validate_org_unit_id(cls, v):
        return coerce_id(v)


class DeviceProperty(_CustomProperty):
    """Custom property value of a device."""

    device_id: Optional[int] = Field(default=None, description='Owning device')
    device_name: Optional[str] = Field(default=None)

    @field_validator('device_id', mode='before')
    @classmethod
    def validate_device_id(cls, v):
        return coerce_id(v)


class PropertyValueCreate(CreatePayload):
    """Model for setting a custom property value on an org unit or device."""

    label: str = Field(..., description='Property label')
    value: Optional[str] = Field(default=None)
    property_type: Optional[str] = Field(default=None)
    org_unit_id: Optional[int] = Field(default=None)
    device_id: Optional[int] = Field(default=None)

    @field_validator('org_unit_id', 'device_id', mode='before')
    @classmethod
    def validate_ids(cls, v):
        return coerce_id(v)

    @field_validator('value', mode='before')
    @classmethod
    def validate_value(cls, v):
        return None if v is None else str(v)
