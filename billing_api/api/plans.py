"""Plan catalog API (/api/plans). Reads are public."""
from billing_api.features.plans.service import plan_resource

router = plan_resource.build_router()
