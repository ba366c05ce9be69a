"""Account and Service APIs (/api/accounts, /api/services).

Account subscriptions are read-only here; they change through the
subscription routes only.
"""
from billing_api.features.users.service import account_resource, service_resource

router = account_resource.build_router()
services_router = service_resource.build_router()
