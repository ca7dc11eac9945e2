"""Shared base classes and coercion helpers for entity models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def coerce_id(value: Any) -> Optional[int]:
    """Accept identifiers sent as numbers or numeric strings."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValueError('Identifier must be a number, not a boolean')
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    raise ValueError(f'Invalid identifier: {value!r}')


def coerce_id_list(value: Any) -> List[int]:
    """Accept a list of identifiers, a single identifier or a separated string."""
    if value is None or value == '':
        return []
    if isinstance(value, str):
        value = [part for part in value.replace(';', ',').split(',') if part.strip()]
    elif not isinstance(value, (list, tuple)):
        value = [value]
    return [coerce_id(item) for item in value]


def coerce_bool(value: Any) -> Optional[bool]:
    """Accept booleans sent as strings ("true", "false", "yes", "no")."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', 'yes', '1'):
            return True
        if lowered in ('false', 'no', '0'):
            return False
    if isinstance(value, int):
        return bool(value)
    raise ValueError(f'Invalid boolean: {value!r}')


class EntityModel(BaseModel):
    """Base for entities as returned by the N-central REST API.

    Fields are declared in snake_case and read from camelCase keys. Keys a
    model does not declare are kept, so no server data is lost on export.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra='allow'
    )


class CreatePayload(BaseModel):
    """Base for request bodies of create calls."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra='ignore'
    )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the camelCase body the API expects."""
        return self.model_dump(by_alias=True, exclude_none=True)
