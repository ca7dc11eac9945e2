"""Typed list/create access to N-central entities within one scope."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from loguru import logger

from ..migration.catalog import DEFAULT_CATALOG, EntityCatalog
from ..migration.results import Scope
from ..models import (
    AccessGroupCreate,
    CustomerCreate,
    EntityType,
    PropertyValueCreate,
    Record,
    SiteCreate,
    UserCreate,
    UserRoleCreate,
)
from ..models.customer import normalize_site_parent
from ..models.user import DEFAULT_PERMISSION_IDS
from . import endpoints
from .client import NCentralClient
from .exceptions import NCentralInvalidResponseError


class RemoteEntityClient(ABC):
    """Read and create entities on one server within one scope.

    Authentication and base URL are bound when the client is built; the
    engines only see pages of records and created identifiers.
    """

    scope: Scope

    @abstractmethod
    async def list(self, entity_type: EntityType, page: int) -> Tuple[List[Record], bool]:
        """Fetch one page of records.

        Args:
            entity_type: Type to list
            page: Page number, starting at 1

        Returns:
            Tuple of the records and whether more pages follow
        """

    @abstractmethod
    async def create(self, entity_type: EntityType, record: Record) -> str:
        """Create a record and return its new identifier.

        Raises:
            NCentralAPIError: On transport or server errors
            ValueError: If the record cannot be turned into a create request
        """

    def close(self) -> None:
        pass


async def list_all(client: RemoteEntityClient, entity_type: EntityType) -> List[Record]:
    """Fetch every page of a listing, starting from page 1."""
    records: List[Record] = []
    page = 1
    while True:
        page_records, has_more = await client.list(entity_type, page)
        records.extend(page_records)
        if not has_more:
            break
        page += 1
    return records


def _unwrap(data: Any) -> Any:
    if isinstance(data, dict) and isinstance(data.get('data'), dict):
        return data['data']
    return data


def extract_id(data: Any, fields: Sequence[str]) -> str:
    """Pull the new identifier out of a create response.

    Raises:
        NCentralInvalidResponseError: If no identifier field is present
    """
    body = _unwrap(data)
    if isinstance(body, dict):
        for field in fields:
            value = body.get(field)
            if value not in (None, '', 0):
                return str(value)
    raise NCentralInvalidResponseError(
        f'Create response carries no identifier (looked for {", ".join(fields)})'
    )


class NCentralEntityClient(RemoteEntityClient):
    """Entity client backed by the N-central REST API."""

    def __init__(
        self,
        client: NCentralClient,
        scope: Scope,
        catalog: EntityCatalog = DEFAULT_CATALOG,
        default_permission_ids: Optional[List[int]] = None,
    ):
        """Initialize entity client.

        Args:
            client: HTTP client for the scope's server
            scope: Server and service organization to work within
            catalog: Entity catalog used to read record identifiers
            default_permission_ids: Permissions for roles that carry none
        """
        self.client = client
        self.scope = scope
        self.catalog = catalog
        self.default_permission_ids = list(
            default_permission_ids or DEFAULT_PERMISSION_IDS
        )
        self._customer_ids: Optional[List[str]] = None
        self.logger = logger.bind(component=f'EntityClient[{scope.server_url}]')

        self._listers: Dict[EntityType, Callable] = {
            EntityType.CUSTOMER: self._list_customers,
            EntityType.SITE: self._list_sites,
            EntityType.DEVICE: self._list_devices,
            EntityType.ACCESS_GROUP: self._list_access_groups,
            EntityType.USER_ROLE: self._list_user_roles,
            EntityType.USER: self._list_users,
            EntityType.ORG_PROPERTY: self._list_org_properties,
            EntityType.DEVICE_PROPERTY: self._list_device_properties,
        }
        self._creators: Dict[EntityType, Callable] = {
            EntityType.CUSTOMER: self._create_customer,
            EntityType.SITE: self._create_site,
            EntityType.ACCESS_GROUP: self._create_access_group,
            EntityType.USER_ROLE: self._create_user_role,
            EntityType.USER: self._create_user,
            EntityType.ORG_PROPERTY: self._create_property_value,
            EntityType.DEVICE_PROPERTY: self._create_property_value,
        }

    @property
    def so_id(self) -> int:
        return self.scope.service_org_id

    async def list(self, entity_type: EntityType, page: int) -> Tuple[List[Record], bool]:
        """Fetch one page of records of a type within the scope."""
        lister = self._listers.get(entity_type)
        if lister is None:
            raise ValueError(f'Listing {entity_type} is not supported')

        items, has_more = await lister(page)
        return self._to_records(entity_type, items), has_more

    async def create(self, entity_type: EntityType, record: Record) -> str:
        """Create a record on the server and return its identifier."""
        creator = self._creators.get(entity_type)
        if creator is None:
            raise ValueError(f'{entity_type.label} cannot be created')

        dest_id = await creator(record.data)
        self.logger.debug(
            f'Created {entity_type.value} {record.source_id} as {dest_id}'
        )
        return dest_id

    def close(self) -> None:
        self.client.close()

    def _to_records(
        self, entity_type: EntityType, items: List[Dict[str, Any]]
    ) -> List[Record]:
        records = []
        for item in items:
            if not isinstance(item, dict):
                self.logger.warning(f'Ignoring non-object {entity_type.value} item')
                continue
            source_id = self.catalog.source_id(entity_type, item)
            if source_id is None:
                self.logger.warning(
                    f'Ignoring {entity_type.value} without identifier: {item}'
                )
                continue
            records.append(
                Record(entity_type=entity_type, source_id=source_id, data=item)
            )
        return records

    # Listings

    async def _scope_customer_ids(self, refresh: bool) -> List[str]:
        """Customer ids under the service organization, cached per listing."""
        if refresh or self._customer_ids is None:
            ids = []
            page = 1
            while True:
                items, has_more = await self._list_customers(page)
                ids.extend(
                    str(item['customerId'])
                    for item in items
                    if isinstance(item, dict) and item.get('customerId') is not None
                )
                if not has_more:
                    break
                page += 1
            self._customer_ids = ids
        return self._customer_ids

    async def _list_customers(self, page: int):
        return await self.client.get_page_async(
            endpoints.service_org_customers(self.so_id), page
        )

    async def _list_sites(self, page: int):
        # /api/sites spans the whole server; keep the sites of this scope
        customer_ids: Set[str] = set(await self._scope_customer_ids(refresh=page == 1))
        items, has_more = await self.client.get_page_async(endpoints.SITES, page)
        sites = []
        for item in items:
            site = normalize_site_parent(item)
            if str(site.get('parentId')) in customer_ids:
                sites.append(site)
        return sites, has_more

    async def _list_devices(self, page: int):
        return await self.client.get_page_async(
            endpoints.org_unit_devices(self.so_id), page
        )

    async def _list_access_groups(self, page: int):
        return await self.client.get_page_async(
            endpoints.org_unit_access_groups(self.so_id), page
        )

    async def _list_user_roles(self, page: int):
        return await self.client.get_page_async(
            endpoints.org_unit_user_roles(self.so_id), page
        )

    async def _list_users(self, page: int):
        return await self.client.get_page_async(
            endpoints.org_unit_users(self.so_id), page
        )

    async def _list_org_properties(self, page: int):
        # One page per org unit: the service organization, then each customer
        org_units = [str(self.so_id)] + await self._scope_customer_ids(
            refresh=page == 1
        )
        if page > len(org_units):
            return [], False

        org_unit_id = org_units[page - 1]
        properties = await self._get_all(
            endpoints.org_unit_custom_properties(org_unit_id)
        )
        for prop in properties:
            prop.setdefault('orgUnitId', org_unit_id)
        return properties, page < len(org_units)

    async def _list_device_properties(self, page: int):
        # One page per page of devices
        devices, has_more = await self._list_devices(page)
        properties = []
        for device in devices:
            device_id = device.get('deviceId')
            if device_id is None:
                continue
            for prop in await self._get_all(endpoints.device_custom_properties(device_id)):
                prop.setdefault('deviceId', device_id)
                prop.setdefault('deviceName', device.get('longName'))
                properties.append(prop)
        return properties, has_more

    async def _get_all(self, endpoint: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            page_items, has_more = await self.client.get_page_async(endpoint, page)
            items.extend(item for item in page_items if isinstance(item, dict))
            if not has_more:
                break
            page += 1
        return items

    # Creates

    async def _post(self, endpoint: str, payload: Dict[str, Any], id_fields) -> str:
        response = await self.client.post_async(endpoint, data=payload)
        return extract_id(response.data, id_fields)

    async def _create_customer(self, data: Dict[str, Any]) -> str:
        payload = CustomerCreate.model_validate({**data, 'parentId': self.so_id})
        return await self._post(
            endpoints.service_org_customers(self.so_id),
            payload.to_payload(),
            ('customerId', 'id'),
        )

    async def _create_site(self, data: Dict[str, Any]) -> str:
        payload = SiteCreate.model_validate(data)
        return await self._post(
            endpoints.customer_sites(payload.parent_id),
            payload.to_payload(),
            ('siteId', 'id'),
        )

    async def _create_access_group(self, data: Dict[str, Any]) -> str:
        # Members are users, which are migrated after groups
        payload = AccessGroupCreate.model_validate(
            {
                **data,
                'groupDescription': data.get('groupDescription') or '',
                'userIds': [],
            }
        )
        if payload.group_type == 'DEVICE':
            endpoint = endpoints.device_access_groups_create(self.so_id)
        else:
            endpoint = endpoints.org_unit_access_groups_create(self.so_id)
        return await self._post(
            endpoint, payload.to_payload(), ('groupId', 'accessGroupId', 'id')
        )

    async def _create_user_role(self, data: Dict[str, Any]) -> str:
        payload = UserRoleCreate.model_validate(
            {
                'roleName': data.get('roleName'),
                'description': data.get('roleDescription')
                or data.get('description')
                or 'Migrated role',
                'permissionIds': data.get('permissionIds')
                or self.default_permission_ids,
            }
        )
        return await self._post(
            endpoints.org_unit_user_roles(self.so_id),
            payload.to_payload(),
            ('roleId', 'userRoleId', 'id'),
        )

    async def _create_user(self, data: Dict[str, Any]) -> str:
        payload = UserCreate.model_validate(data)
        org_unit_id = payload.org_unit_id or self.so_id
        return await self._post(
            endpoints.org_unit_users(org_unit_id),
            payload.to_payload(),
            ('userId', 'id'),
        )

    async def _create_property_value(self, data: Dict[str, Any]) -> str:
        payload = PropertyValueCreate.model_validate(data)
        return await self._post(
            endpoints.CUSTOM_PROPERTY_VALUES,
            payload.to_payload(),
            ('propertyId', 'id'),
        )
