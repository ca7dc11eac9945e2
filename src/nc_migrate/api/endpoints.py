"""REST endpoint paths for N-central."""

SERVER_INFO = '/api/server-info'
SITES = '/api/sites'
CUSTOM_PROPERTY_VALUES = '/api/custom-properties/values'


def service_org(so_id) -> str:
    return f'/api/service-orgs/{so_id}'


def service_org_customers(so_id) -> str:
    return f'/api/service-orgs/{so_id}/customers'


def customer_sites(customer_id) -> str:
    return f'/api/customers/{customer_id}/sites'


def org_unit_access_groups(org_unit_id) -> str:
    return f'/api/org-units/{org_unit_id}/access-groups'


def org_unit_access_groups_create(org_unit_id) -> str:
    return f'/api/org-units/{org_unit_id}/org-unit-access-groups'


def device_access_groups_create(org_unit_id) -> str:
    return f'/api/org-units/{org_unit_id}/device-access-groups'


def org_unit_user_roles(org_unit_id) -> str:
    return f'/api/org-units/{org_unit_id}/user-roles'


def org_unit_users(org_unit_id) -> str:
    return f'/api/org-units/{org_unit_id}/users'


def org_unit_devices(org_unit_id) -> str:
    return f'/api/org-units/{org_unit_id}/devices'


def org_unit_custom_properties(org_unit_id) -> str:
    return f'/api/org-units/{org_unit_id}/custom-properties'


def device_custom_properties(device_id) -> str:
    return f'/api/devices/{device_id}/custom-properties'
