"""
Plan pricing and VAT breakdown.

Pure functions: given a plan's stored price mapping and the VAT policy,
compute what the user is shown. Amounts are rounded to 3 decimals,
half away from zero.

    userPaysVAT  vatIncluded  shown price            VAT
    -----------  -----------  ---------------------  -------------------------
    false        true         amount * (1 - pct)     0
    false        false        amount                 0
    true         true         amount                 amount * pct
    true         false        amount / (1 - pct)     amount / (1 - pct) - amount
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from numbers import Number
from typing import Any, Dict, Mapping, Optional

from billing_api.core.config import settings

VAT_INCLUDED_KEY = "vatIncluded"
DEFAULT_VAT_PERCENT = 0.25

_PRECISION = Decimal("0.001")


@dataclass(frozen=True)
class PlanPricing:
    price: Dict[str, float] = field(default_factory=dict)
    vat: Dict[str, float] = field(default_factory=dict)


def _round(value: Decimal) -> float:
    return float(value.quantize(_PRECISION, rounding=ROUND_HALF_UP))


def _is_amount(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def vat_amount(amount: Decimal, percent: Decimal, included: bool, user_pays_vat: bool) -> float:
    if not user_pays_vat:
        return 0.0
    if included:
        return _round(amount * percent)
    return _round(amount / (1 - percent) - amount)


def displayed_price(amount: Decimal, percent: Decimal, included: bool, user_pays_vat: bool) -> float:
    if user_pays_vat:
        return _round(amount if included else amount / (1 - percent))
    return _round(amount * (1 - percent) if included else amount)


def compute_pricing(price: Mapping[str, Any], vat_percent: float = DEFAULT_VAT_PERCENT, user_pays_vat: bool = True) -> PlanPricing:
    """Compute displayed prices and VAT for every time unit in `price`."""
    percent = Decimal(str(vat_percent))
    included = bool(price.get(VAT_INCLUDED_KEY, False))
    result = PlanPricing()
    for time_unit, amount in price.items():
        if time_unit == VAT_INCLUDED_KEY or not _is_amount(amount):
            continue
        value = Decimal(str(amount))
        result.price[time_unit] = displayed_price(value, percent, included, user_pays_vat)
        result.vat[time_unit] = vat_amount(value, percent, included, user_pays_vat)
    return result


def configured_vat_percent(settings_obj=None) -> float:
    """VAT as a fraction; VAT_PERCENT is configured in percent (25 -> 0.25)."""
    cfg = settings_obj or settings
    raw = getattr(cfg, "VAT_PERCENT", None)
    if raw is None:
        return DEFAULT_VAT_PERCENT
    return float(raw) / 100


def apply_plan_pricing(plan: Dict[str, Any], vat_percent: Optional[float] = None, user_pays_vat: Optional[bool] = None) -> Dict[str, Any]:
    """Rewrite a serialized plan's `price` in place and add its `vat` breakdown."""
    if vat_percent is None:
        vat_percent = configured_vat_percent()
    if user_pays_vat is None:
        user_pays_vat = settings.USER_PAYS_VAT
    stored = plan.get("price") or {}
    pricing = compute_pricing(stored, vat_percent, user_pays_vat)
    plan["price"] = {**stored, **pricing.price}
    plan["vat"] = pricing.vat
    return plan
