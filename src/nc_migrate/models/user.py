"""User and user role models."""

from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator

from .common import CreatePayload, EntityModel, coerce_bool, coerce_id, coerce_id_list

# ACTIVE_ISSUES_VIEW, granted when a role's permissions cannot be carried over
DEFAULT_PERMISSION_IDS = [1701]


class UserRole(EntityModel):
    """N-central user role model."""

    role_id: int = Field(
        ...,
        validation_alias=AliasChoices('roleId', 'userRoleId', 'role_id'),
        description='Role ID',
    )
    role_name: Optional[str] = Field(default=None, description='Role name')
    role_description: Optional[str] = Field(default=None)
    permission_ids: List[int] = Field(default_factory=list)

    @field_validator('role_id', mode='before')
    @classmethod
    def validate_role_id(cls, v):
        return coerce_id(v)

    @field_validator('permission_ids', mode='before')
    @classmethod
    def validate_permission_ids(cls, v):
        return coerce_id_list(v)


class UserRoleCreate(CreatePayload):
    """Model for creating a new user role."""

    role_name: str = Field(..., description='Role name')
    description: str = Field(default='Migrated role', description='Role description')
    permission_ids: List[int] = Field(
        default_factory=lambda: list(DEFAULT_PERMISSION_IDS)
    )
    user_ids: List[str] = Field(default_factory=list)

    @field_validator('permission_ids', mode='before')
    @classmethod
    def validate_permission_ids(cls, v):
        return coerce_id_list(v) or list(DEFAULT_PERMISSION_IDS)


class User(EntityModel):
    """N-central user model."""

    user_id: int = Field(..., description='User ID')
    user_name: str = Field(..., description='Login name')
    first_name: Optional[str] = Field(default=None)
    last_name: Optional[str] = Field(default=None)
    full_name: Optional[str] = Field(default=None)
    email: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)

    # Account state
    is_enabled: Optional[bool] = Field(default=None)
    is_ldap: Optional[bool] = Field(default=None)
    is_locked: Optional[bool] = Field(default=None)
    api_only_user: Optional[bool] = Field(default=None)
    read_only: Optional[bool] = Field(default=None)
    two_factor_enabled: Optional[bool] = Field(default=None)

    # Access control
    role_ids: List[int] = Field(default_factory=list)
    access_group_ids: List[int] = Field(default_factory=list)
    customer_tree: List[str] = Field(default_factory=list)

    org_unit_id: Optional[int] = Field(default=None)
    service_org_id: Optional[int] = Field(default=None)
    created_on: Optional[str] = Field(default=None)

    @field_validator('user_id', 'org_unit_id', 'service_org_id', mode='before')
    @classmethod
    def validate_ids(cls, v):
        return coerce_id(v)

    @field_validator('role_ids', 'access_group_ids', mode='before')
    @classmethod
    def validate_id_lists(cls, v):
        return coerce_id_list(v)

    @field_validator(
        'is_enabled',
        'is_ldap',
        'is_locked',
        'api_only_user',
        'read_only',
        'two_factor_enabled',
        mode='before',
    )
    @classmethod
    def validate_flags(cls, v):
        return coerce_bool(v)


class UserCreate(CreatePayload):
    """Model for creating a new user in an org unit."""

    user_name: str = Field(..., description='Login name')
    first_name: Optional[str] = Field(default=None)
    last_name: Optional[str] = Field(default=None)
    email: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    is_enabled: Optional[bool] = Field(default=None)
    role_ids: List[int] = Field(default_factory=list)
    access_group_ids: List[int] = Field(default_factory=list)
    # Sent in the URL, not the body
    org_unit_id: Optional[int] = Field(default=None, exclude=True)

    @field_validator('org_unit_id', mode='before')
    @classmethod
    def validate_org_unit_id(cls, v):
        return coerce_id(v)

    @field_validator('role_ids', 'access_group_ids', mode='before')
    @classmethod
    def validate_id_lists(cls, v):
        return coerce_id_list(v)

    @field_validator('is_enabled', mode='before')
    @classmethod
    def validate_enabled(cls, v):
        return coerce_bool(v)
