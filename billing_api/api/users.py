"""User API (/api/users). POST is public for sign-up."""
from billing_api.features.users.service import user_resource

router = user_resource.build_router()
