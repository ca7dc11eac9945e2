"""Entity type tags and the generic record wrapper."""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EntityType(str, Enum):
    """Entity types known to the tool."""

    CUSTOMER = 'customer'
    SITE = 'site'
    DEVICE = 'device'
    ACCESS_GROUP = 'access_group'
    USER_ROLE = 'user_role'
    USER = 'user'
    ORG_PROPERTY = 'org_property'
    DEVICE_PROPERTY = 'device_property'

    @property
    def label(self) -> str:
        """Human readable plural label, used as the progress phase."""
        return _LABELS[self]


_LABELS = {
    EntityType.CUSTOMER: 'Customers',
    EntityType.SITE: 'Sites',
    EntityType.DEVICE: 'Devices',
    EntityType.ACCESS_GROUP: 'Access Groups',
    EntityType.USER_ROLE: 'User Roles',
    EntityType.USER: 'Users',
    EntityType.ORG_PROPERTY: 'Org Properties',
    EntityType.DEVICE_PROPERTY: 'Device Properties',
}


class Record(BaseModel):
    """A payload fetched from a server, tagged with its type and source id.

    ``data`` is kept exactly as the server returned it (camelCase keys);
    rewriting produces a new record instead of mutating this one.
    """

    entity_type: EntityType = Field(..., description='Entity type')
    source_id: str = Field(..., description='Identifier on the server it came from')
    data: Dict[str, Any] = Field(default_factory=dict, description='Raw payload')

    def get(self, field: str, default: Any = None) -> Any:
        return self.data.get(field, default)

    def with_data(self, data: Dict[str, Any]) -> 'Record':
        """Return a copy carrying a different payload."""
        return self.model_copy(update={'data': data})
