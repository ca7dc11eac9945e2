"""Data models for N-central entities."""

from .record import EntityType, Record
from .customer import Customer, CustomerCreate, Site, SiteCreate
from .device import Device
from .access_group import AccessGroup, AccessGroupCreate
from .user import User, UserCreate, UserRole, UserRoleCreate
from .properties import DeviceProperty, OrgProperty, PropertyValueCreate

# Model used to validate a record of each type before it is written out
ENTITY_MODELS = {
    EntityType.CUSTOMER: Customer,
    EntityType.SITE: Site,
    EntityType.DEVICE: Device,
    EntityType.ACCESS_GROUP: AccessGroup,
    EntityType.USER_ROLE: UserRole,
    EntityType.USER: User,
    EntityType.ORG_PROPERTY: OrgProperty,
    EntityType.DEVICE_PROPERTY: DeviceProperty,
}

__all__ = [
    'EntityType',
    'Record',
    'Customer',
    'CustomerCreate',
    'Site',
    'SiteCreate',
    'Device',
    'AccessGroup',
    'AccessGroupCreate',
    'User',
    'UserCreate',
    'UserRole',
    'UserRoleCreate',
    'OrgProperty',
    'DeviceProperty',
    'PropertyValueCreate',
    'ENTITY_MODELS',
]
