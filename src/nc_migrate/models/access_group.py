"""Access group models."""

from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator

from .common import CreatePayload, EntityModel, coerce_id, coerce_id_list

DEVICE_GROUP_TYPE = 'DEVICE'


class AccessGroup(EntityModel):
    """N-central access group model."""

    group_id: int = Field(
        ...,
        validation_alias=AliasChoices('groupId', 'accessGroupId', 'group_id'),
        description='Access group ID',
    )
    group_name: Optional[str] = Field(default=None, description='Group name')
    group_type: Optional[str] = Field(default=None, description='ORG_UNIT or DEVICE')
    group_description: Optional[str] = Field(default=None)
    org_unit_id: Optional[int] = Field(default=None, description='Owning org unit')
    org_unit_ids: List[int] = Field(default_factory=list, description='Member org units')
    user_ids: List[int] = Field(default_factory=list, description='Member users')

    @field_validator('group_id', 'org_unit_id', mode='before')
    @classmethod
    def validate_ids(cls, v):
        return coerce_id(v)

    @field_validator('org_unit_ids', 'user_ids', mode='before')
    @classmethod
    def validate_id_lists(cls, v):
        return coerce_id_list(v)

    @property
    def is_device_group(self) -> bool:
        return (self.group_type or '').upper() == DEVICE_GROUP_TYPE


class AccessGroupCreate(CreatePayload):
    """Model for creating a new access group."""

    group_name: str = Field(..., description='Group name')
    group_description: str = Field(default='', description='Group description')
    org_unit_ids: List[str] = Field(default_factory=list)
    user_ids: List[str] = Field(default_factory=list)
    auto_include_new_org_units: str = Field(default='true')
    # Selects the create endpoint
    group_type: str = Field(default='ORG_UNIT', exclude=True)

    @field_validator('org_unit_ids', 'user_ids', mode='before')
    @classmethod
    def validate_id_lists(cls, v):
        return [str(i) for i in coerce_id_list(v)]

    @field_validator('group_type', mode='before')
    @classmethod
    def validate_group_type(cls, v):
        return (v or 'ORG_UNIT').upper()
