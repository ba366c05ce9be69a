"""
User and Account resources.

Users are created openly (sign-up) and point at one Account. The body names
the account by reference; it is stored by id.
"""
from typing import Any, Dict

from sqlalchemy import select

from billing_api.core.crud import CrudResource, HookContext
from billing_api.core.errors import ValidationError
from billing_api.models import Account, Service, User

USER_FIELDS = {
    "reference": "reference",
    "name": "name",
    "email": "email",
    "account": "account_id",
}

ACCOUNT_FIELDS = {
    "reference": "reference",
    "name": "name",
    "email": "email",
}

SERVICE_FIELDS = {
    "reference": "reference",
    "name": "name",
    "description": "description",
}


def account_reference_to_id(ctx: HookContext) -> None:
    reference = ctx.body.get("account")
    if reference is None:
        if ctx.action == "create":
            raise ValidationError("account is required")
        return
    account = ctx.db.execute(select(Account).where(Account.reference == reference)).scalars().first()
    if account is None:
        raise ValidationError(f"Account {reference} does not exist")
    ctx.body["account"] = account.id


def populate_account(ctx: HookContext) -> None:
    if ctx.instance is not None and ctx.instance.account is not None:
        ctx.result["account"] = ctx.instance.account.to_dict()


def _strip(user: Dict[str, Any]) -> Dict[str, Any]:
    user.pop("id", None)
    account = user.get("account")
    if isinstance(account, dict):
        account.pop("id", None)
    return user


def strip_internal_ids(ctx: HookContext) -> None:
    if isinstance(ctx.result, list):
        ctx.result = [_strip(user) for user in ctx.result]
    elif isinstance(ctx.result, dict):
        _strip(ctx.result)


def build_user_resource() -> CrudResource:
    resource = CrudResource(User, prefix="/api/users", fields=USER_FIELDS, tags=["users"])
    resource.before(account_reference_to_id, only=["create", "update"])
    resource.after(populate_account, only=["read"])
    resource.after(strip_internal_ids)
    return resource


def build_account_resource() -> CrudResource:
    return CrudResource(Account, prefix="/api/accounts", fields=ACCOUNT_FIELDS, tags=["accounts"])


def build_service_resource() -> CrudResource:
    return CrudResource(Service, prefix="/api/services", fields=SERVICE_FIELDS, tags=["services"])


user_resource = build_user_resource()
account_resource = build_account_resource()
service_resource = build_service_resource()
