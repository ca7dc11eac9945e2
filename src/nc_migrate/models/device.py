"""Device models."""

from typing import Optional

from pydantic import Field, field_validator

from .common import EntityModel, coerce_bool, coerce_id


class Device(EntityModel):
    """N-central device model. Devices are exported, never created."""

    device_id: int = Field(..., description='Device ID')
    long_name: Optional[str] = Field(default=None, description='Device name')
    uri: Optional[str] = Field(default=None, description='Device URI')
    device_class: Optional[str] = Field(default=None, description='Device class')
    description: Optional[str] = Field(default=None, description='Description')
    os_id: Optional[str] = Field(default=None, description='Operating system ID')
    supported_os: Optional[str] = Field(default=None)
    discovered_name: Optional[str] = Field(default=None)
    last_logged_in_user: Optional[str] = Field(default=None)
    still_logged_in: Optional[bool] = Field(default=None)
    license_mode: Optional[str] = Field(default=None)
    is_probe: Optional[bool] = Field(default=None)

    # Placement
    org_unit_id: Optional[int] = Field(default=None)
    so_id: Optional[int] = Field(default=None)
    so_name: Optional[str] = Field(default=None)
    customer_id: Optional[int] = Field(default=None)
    customer_name: Optional[str] = Field(default=None)
    site_id: Optional[int] = Field(default=None)
    site_name: Optional[str] = Field(default=None)

    appliance_id: Optional[int] = Field(default=None)
    last_appliance_checkin_time: Optional[str] = Field(default=None)

    @field_validator(
        'device_id',
        'org_unit_id',
        'so_id',
        'customer_id',
        'site_id',
        'appliance_id',
        mode='before',
    )
    @classmethod
    def validate_ids(cls, v):
        return coerce_id(v)

    @field_validator('still_logged_in', 'is_probe', mode='before')
    @classmethod
    def validate_flags(cls, v):
        return coerce_bool(v)
