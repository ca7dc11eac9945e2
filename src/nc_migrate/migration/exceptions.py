"""Migration and export exceptions."""

from typing import Any, Optional


class MigrationError(Exception):
    """Base exception for migration and export runs."""

    pass


class ConfigurationError(MigrationError):
    """A run request was rejected before starting."""

    pass


class ConflictError(MigrationError):
    """A run was requested while another run is active."""

    pass


class UnknownEntityTypeError(MigrationError, KeyError):
    """An entity type is absent from the catalog."""

    def __init__(self, entity_type: Any):
        super().__init__(f'Entity type not in catalog: {entity_type}')
        self.entity_type = entity_type

    def __str__(self) -> str:
        return self.args[0]


class UnresolvedReferenceError(MigrationError):
    """A foreign key has no destination mapping yet."""

    def __init__(self, field: str, referenced_type: Any, source_id: Optional[str]):
        """Initialize unresolved reference error.

        Args:
            field: Record field holding the reference
            referenced_type: Entity type the field refers to
            source_id: Source identifier that could not be resolved
        """
        type_name = getattr(referenced_type, 'value', referenced_type)
        if source_id is None:
            message = f'Missing required reference {field} -> {type_name}'
        else:
            message = (
                f'Unresolved reference {field} -> {type_name} '
                f'(source id {source_id})'
            )
        super().__init__(message)
        self.field = field
        self.referenced_type = referenced_type
        self.source_id = source_id


class NaturalKeyCollisionError(MigrationError):
    """Two source records of one type share a natural key."""

    def __init__(self, natural_key: str, first_source_id: str):
        super().__init__(
            f'Natural key "{natural_key}" already used by source record '
            f'{first_source_id}'
        )
        self.natural_key = natural_key
        self.first_source_id = first_source_id
