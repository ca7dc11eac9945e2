"""Customer and site models."""

from typing import Any, Dict, Optional

from pydantic import Field, field_validator

from .common import CreatePayload, EntityModel, coerce_bool, coerce_id

# Keys the API has been seen to use for a site's parent customer
SITE_PARENT_KEYS = ('parentId', 'customerId', 'customerid')


def normalize_site_parent(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of a site payload with ``parentId`` always populated."""
    normalized = dict(data)
    for key in SITE_PARENT_KEYS:
        if normalized.get(key) not in (None, ''):
            normalized['parentId'] = normalized[key]
            break
    return normalized


class _OrgUnit(EntityModel):
    """Contact and address fields shared by customers and sites."""

    org_unit_type: Optional[str] = Field(default=None, description='Org unit type')
    parent_id: Optional[int] = Field(default=None, description='Parent org unit ID')
    external_id: Optional[str] = Field(default=None, description='External ID')
    external_id2: Optional[str] = Field(default=None, description='Second external ID')

    # Contact
    contact_first_name: Optional[str] = Field(default=None)
    contact_last_name: Optional[str] = Field(default=None)
    contact_email: Optional[str] = Field(default=None)
    contact_phone: Optional[str] = Field(default=None)
    contact_phone_ext: Optional[str] = Field(default=None)
    contact_title: Optional[str] = Field(default=None)
    contact_department: Optional[str] = Field(default=None)
    phone: Optional[str] = Field(default=None)

    # Address
    street1: Optional[str] = Field(default=None)
    street2: Optional[str] = Field(default=None)
    city: Optional[str] = Field(default=None)
    county: Optional[str] = Field(default=None)
    state_prov: Optional[str] = Field(default=None)
    country: Optional[str] = Field(default=None)
    postal_code: Optional[str] = Field(default=None)

    is_system: Optional[bool] = Field(default=None)
    is_service_org: Optional[bool] = Field(default=None)

    @field_validator('parent_id', mode='before')
    @classmethod
    def validate_parent_id(cls, v):
        return coerce_id(v)

    @field_validator('is_system', 'is_service_org', mode='before')
    @classmethod
    def validate_flags(cls, v):
        return coerce_bool(v)


class Customer(_OrgUnit):
    """N-central customer model."""

    customer_id: int = Field(..., description='Customer ID')
    customer_name: str = Field(..., description='Customer name')

    @field_validator('customer_id', mode='before')
    @classmethod
    def validate_customer_id(cls, v):
        return coerce_id(v)


class Site(_OrgUnit):
    """N-central site model."""

    site_id: int = Field(..., description='Site ID')
    site_name: str = Field(..., description='Site name')

    @field_validator('site_id', mode='before')
    @classmethod
    def validate_site_id(cls, v):
        return coerce_id(v)


class _OrgUnitCreate(CreatePayload):
    external_id: Optional[str] = Field(default=None)
    contact_first_name: Optional[str] = Field(default=None)
    contact_last_name: Optional[str] = Field(default=None)
    contact_email: Optional[str] = Field(default=None)
    contact_phone: Optional[str] = Field(default=None)
    street1: Optional[str] = Field(default=None)
    street2: Optional[str] = Field(default=None)
    city: Optional[str] = Field(default=None)
    state_prov: Optional[str] = Field(default=None)
    country: Optional[str] = Field(default=None)
    postal_code: Optional[str] = Field(default=None)


class CustomerCreate(_OrgUnitCreate):
    """Model for creating a new customer under a service organization."""

    customer_name: str = Field(..., description='Customer name')
    parent_id: int = Field(..., description='Destination service organization ID')


class SiteCreate(_OrgUnitCreate):
    """Model for creating a new site under a customer."""

    site_name: str = Field(..., description='Site name')
    # Sent in the URL, not the body
    parent_id: int = Field(..., exclude=True, description='Destination customer ID')

    @field_validator('parent_id', mode='before')
    @classmethod
    def validate_parent_id(cls, v):
        return coerce_id(v)
