"""Tests for the REST-backed entity client."""

import pytest
from unittest.mock import AsyncMock, Mock

from nc_migrate.api.client import APIResponse
from nc_migrate.api.entity_client import NCentralEntityClient, extract_id, list_all
from nc_migrate.api.exceptions import NCentralInvalidResponseError
from nc_migrate.models import EntityType, Record


def _api_response(data, status_code=201):
    return APIResponse(status_code=status_code, data=data, headers={}, success=True)


def _pages(listings):
    """Serve ``{endpoint: [page1_items, page2_items, ...]}`` as paged responses."""

    async def get_page_async(endpoint, page, page_size=None, params=None):
        pages = listings.get(endpoint, [[]])
        items = pages[page - 1] if page <= len(pages) else []
        return list(items), page < len(pages)

    return get_page_async


@pytest.fixture
def http_client():
    client = Mock()
    client.get_page_async = AsyncMock(side_effect=_pages({}))
    client.post_async = AsyncMock(return_value=_api_response({'id': 1}))
    return client


@pytest.fixture
def entity_client(http_client, dest_scope):
    return NCentralEntityClient(http_client, dest_scope)


def _record(entity_type, source_id, **data):
    return Record(entity_type=entity_type, source_id=str(source_id), data=data)


class TestExtractId:
    """Test identifier extraction from create responses."""

    def test_wrapped(self):
        assert extract_id({'data': {'customerId': 7}}, ('customerId', 'id')) == '7'

    def test_fallback_field(self):
        assert extract_id({'id': 'abc'}, ('customerId', 'id')) == 'abc'

    def test_missing(self):
        with pytest.raises(NCentralInvalidResponseError):
            extract_id({'status': 'ok'}, ('customerId', 'id'))


class TestListing:
    """Test paged listings."""

    @pytest.mark.asyncio
    async def test_customers(self, entity_client, http_client):
        http_client.get_page_async.side_effect = _pages(
            {
                '/api/service-orgs/60/customers': [
                    [{'customerId': 1, 'customerName': 'Acme'}],
                    [{'customerId': 2, 'customerName': 'Globex'}],
                ]
            }
        )

        records = await list_all(entity_client, EntityType.CUSTOMER)

        assert [r.source_id for r in records] == ['1', '2']
        assert records[0].data['customerName'] == 'Acme'
        assert records[0].entity_type == EntityType.CUSTOMER

    @pytest.mark.asyncio
    async def test_items_without_identifier_are_ignored(
        self, entity_client, http_client
    ):
        http_client.get_page_async.side_effect = _pages(
            {
                '/api/org-units/60/user-roles': [
                    [{'roleName': 'No id'}, 'junk', {'userRoleId': 5, 'roleName': 'Tech'}]
                ]
            }
        )

        records, has_more = await entity_client.list(EntityType.USER_ROLE, 1)

        assert [r.source_id for r in records] == ['5']
        assert has_more is False

    @pytest.mark.asyncio
    async def test_sites_filtered_to_scope(self, entity_client, http_client):
        http_client.get_page_async.side_effect = _pages(
            {
                '/api/service-orgs/60/customers': [[{'customerId': 1}]],
                '/api/sites': [
                    [
                        {'siteId': 10, 'siteName': 'HQ', 'customerId': 1},
                        {'siteId': 11, 'siteName': 'Elsewhere', 'parentId': 99},
                    ]
                ],
            }
        )

        records, _ = await entity_client.list(EntityType.SITE, 1)

        assert [r.source_id for r in records] == ['10']
        assert records[0].data['parentId'] == 1

    @pytest.mark.asyncio
    async def test_org_properties_one_page_per_org_unit(
        self, entity_client, http_client
    ):
        http_client.get_page_async.side_effect = _pages(
            {
                '/api/service-orgs/60/customers': [[{'customerId': 1}]],
                '/api/org-units/60/custom-properties': [
                    [{'propertyId': 100, 'label': 'Region', 'value': 'EU'}]
                ],
                '/api/org-units/1/custom-properties': [
                    [{'propertyId': 101, 'label': 'Tier', 'value': 'Gold'}]
                ],
            }
        )

        first, more_after_first = await entity_client.list(EntityType.ORG_PROPERTY, 1)
        second, more_after_second = await entity_client.list(EntityType.ORG_PROPERTY, 2)

        assert first[0].data['orgUnitId'] == '60'
        assert more_after_first is True
        assert second[0].data['orgUnitId'] == '1'
        assert more_after_second is False

    @pytest.mark.asyncio
    async def test_device_properties_stamped_with_device(
        self, entity_client, http_client
    ):
        http_client.get_page_async.side_effect = _pages(
            {
                '/api/org-units/60/devices': [[{'deviceId': 7, 'longName': 'srv01'}]],
                '/api/devices/7/custom-properties': [
                    [{'propertyId': 5, 'label': 'Owner', 'value': 'ops'}]
                ],
            }
        )

        records = await list_all(entity_client, EntityType.DEVICE_PROPERTY)

        assert len(records) == 1
        assert records[0].data['deviceId'] == 7
        assert records[0].data['deviceName'] == 'srv01'


class TestCreate:
    """Test create requests."""

    @pytest.mark.asyncio
    async def test_customer(self, entity_client, http_client):
        http_client.post_async.return_value = _api_response({'customerId': 900})

        dest_id = await entity_client.create(
            EntityType.CUSTOMER,
            _record(
                EntityType.CUSTOMER,
                1,
                customerId=1,
                customerName='Acme',
                city='Berlin',
                isSystem=False,
            ),
        )

        assert dest_id == '900'
        endpoint = http_client.post_async.call_args.args[0]
        payload = http_client.post_async.call_args.kwargs['data']
        assert endpoint == '/api/service-orgs/60/customers'
        assert payload == {'customerName': 'Acme', 'parentId': 60, 'city': 'Berlin'}

    @pytest.mark.asyncio
    async def test_site_posts_under_customer(self, entity_client, http_client):
        http_client.post_async.return_value = _api_response({'data': {'siteId': 33}})

        dest_id = await entity_client.create(
            EntityType.SITE,
            _record(EntityType.SITE, 10, siteName='HQ', parentId='900'),
        )

        assert dest_id == '33'
        endpoint = http_client.post_async.call_args.args[0]
        payload = http_client.post_async.call_args.kwargs['data']
        assert endpoint == '/api/customers/900/sites'
        assert payload == {'siteName': 'HQ'}

    @pytest.mark.asyncio
    async def test_device_access_group(self, entity_client, http_client):
        http_client.post_async.return_value = _api_response({'groupId': 4})

        await entity_client.create(
            EntityType.ACCESS_GROUP,
            _record(
                EntityType.ACCESS_GROUP,
                3,
                groupName='Servers',
                groupType='device',
                orgUnitIds=['900'],
                userIds=[1, 2],
            ),
        )

        endpoint = http_client.post_async.call_args.args[0]
        payload = http_client.post_async.call_args.kwargs['data']
        assert endpoint == '/api/org-units/60/device-access-groups'
        assert payload['orgUnitIds'] == ['900']
        assert payload['userIds'] == []
        assert payload['groupDescription'] == ''
        assert 'groupType' not in payload

    @pytest.mark.asyncio
    async def test_user_role_defaults(self, http_client, dest_scope):
        client = NCentralEntityClient(
            http_client, dest_scope, default_permission_ids=[1701, 1702]
        )
        http_client.post_async.return_value = _api_response({'roleId': 8})

        await client.create(
            EntityType.USER_ROLE,
            _record(EntityType.USER_ROLE, 2, roleId=2, roleName='Tech'),
        )

        payload = http_client.post_async.call_args.kwargs['data']
        assert payload['roleName'] == 'Tech'
        assert payload['description'] == 'Migrated role'
        assert payload['permissionIds'] == [1701, 1702]

    @pytest.mark.asyncio
    async def test_user_posts_to_org_unit(self, entity_client, http_client):
        http_client.post_async.return_value = _api_response({'userId': 12})

        await entity_client.create(
            EntityType.USER,
            _record(
                EntityType.USER,
                5,
                userName='alice',
                orgUnitId='900',
                roleIds=['8'],
                isEnabled='true',
            ),
        )

        endpoint = http_client.post_async.call_args.args[0]
        payload = http_client.post_async.call_args.kwargs['data']
        assert endpoint == '/api/org-units/900/users'
        assert payload == {
            'userName': 'alice',
            'isEnabled': True,
            'roleIds': [8],
            'accessGroupIds': [],
        }

    @pytest.mark.asyncio
    async def test_user_without_org_unit(self, entity_client, http_client):
        http_client.post_async.return_value = _api_response({'userId': 12})

        await entity_client.create(
            EntityType.USER, _record(EntityType.USER, 5, userName='bob', roleIds=[8])
        )

        assert http_client.post_async.call_args.args[0] == '/api/org-units/60/users'

    @pytest.mark.asyncio
    async def test_devices_cannot_be_created(self, entity_client):
        with pytest.raises(ValueError):
            await entity_client.create(
                EntityType.DEVICE, _record(EntityType.DEVICE, 1, longName='srv01')
            )

    @pytest.mark.asyncio
    async def test_invalid_payload(self, entity_client):
        with pytest.raises(ValueError):
            await entity_client.create(
                EntityType.CUSTOMER, _record(EntityType.CUSTOMER, 1, city='Berlin')
            )

    def test_close(self, entity_client, http_client):
        entity_client.close()

        http_client.close.assert_called_once()
