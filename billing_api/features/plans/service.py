"""
Plan catalog resource.

Plans are exposed through the generic CRUD resource, keyed by `reference`.
Hooks:
- create: service references in the body become Service rows
- read: services rendered as a collection keyed by service reference
- list/read: VAT pricing applied (`?userPaysVAT=` overrides USER_PAYS_VAT) and `isActive` added
- list: sorted by `position`
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from billing_api.core.crud import CrudResource, HookContext
from billing_api.core.errors import ValidationError
from billing_api.features.pricing.service import apply_plan_pricing
from billing_api.models import Plan, Service

PLAN_FIELDS = {
    "reference": "reference",
    "name": "name",
    "description": "description",
    "price": "price",
    "allowMultiple": "allow_multiple",
    "position": "position",
    "services": "services",
}


def _as_list(result) -> List[Dict[str, Any]]:
    return result if isinstance(result, list) else [result]


def services_reference_to_rows(ctx: HookContext) -> None:
    references = ctx.body.get("services")
    if references is None:
        return
    if not isinstance(references, list):
        raise ValidationError("services must be a list of service references")
    rows = ctx.db.execute(select(Service).where(Service.reference.in_(references))).scalars().all()
    by_reference = {row.reference: row for row in rows}
    missing = [ref for ref in references if ref not in by_reference]
    if missing:
        raise ValidationError(f"Unknown services: {', '.join(missing)}")
    ctx.body["services"] = [by_reference[ref] for ref in references]


def services_as_collection(ctx: HookContext) -> None:
    for plan in _as_list(ctx.result):
        services = ctx.instance.services if ctx.instance is not None else []
        plan["services"] = {service.reference: service.to_dict() for service in services}


def user_pays_vat_flag(ctx: HookContext) -> Optional[bool]:
    """`?userPaysVAT=true|false` overrides USER_PAYS_VAT for one request."""
    if ctx.request is None:
        return None
    raw = ctx.request.query_params.get("userPaysVAT")
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in ("1", "true", "yes"):
        return True
    if value in ("0", "false", "no"):
        return False
    raise ValidationError("userPaysVAT must be true or false")


def show_correct_vat(ctx: HookContext) -> None:
    user_pays_vat = user_pays_vat_flag(ctx)
    for plan in _as_list(ctx.result):
        apply_plan_pricing(plan, user_pays_vat=user_pays_vat)


def add_users_active_plan(ctx: HookContext) -> None:
    # Per-user active flag is not resolved yet
    for plan in _as_list(ctx.result):
        plan["isActive"] = False


def sort_by_position(ctx: HookContext) -> None:
    ctx.result = sorted(
        ctx.result,
        key=lambda plan: (plan.get("position") is None, plan.get("position") or 0),
    )


def build_plan_resource() -> CrudResource:
    resource = CrudResource(Plan, prefix="/api/plans", fields=PLAN_FIELDS, tags=["plans"])
    resource.before(services_reference_to_rows, only=["create", "update"])
    resource.after(services_as_collection, only=["read"])
    resource.after(show_correct_vat, only=["list", "read"])
    resource.after(add_users_active_plan, only=["list", "read"])
    resource.after(sort_by_position, only=["list"])
    return resource


plan_resource = build_plan_resource()
