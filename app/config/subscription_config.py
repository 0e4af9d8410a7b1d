"""
Billing catalogue: subscription plans, credit packs, credit costs and credit policies.

Every Stripe price the backend accepts must be listed here. Lookups go through a price
index built once from the enabled plans and packs.
"""

import logging
import math
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ExpirationMode = Literal["never", "end_of_cycle", "rolling_window"]
ProcessingMode = Literal["upscale", "enhance", "both", "custom"]


class CreditsExpiration(BaseModel):
    mode: ExpirationMode = "never"
    window_days: Optional[int] = None
    grace_period_days: int = 0
    send_expiration_warning: bool = False
    warning_days_before: int = 0


class TrialConfig(BaseModel):
    enabled: bool = False
    duration_days: int = 0
    trial_credits: Optional[int] = None
    requires_payment_method: bool = True
    allowed_plans: List[str] = Field(default_factory=list)
    auto_convert_to_paid: bool = True


class PlanConfig(BaseModel):
    key: str
    name: str
    stripe_price_id: str
    price_in_cents: int
    currency: str = "usd"
    interval: Literal["month", "year"] = "month"
    credits_per_cycle: int
    max_rollover: Optional[int] = None
    rollover_multiplier: int = 6
    credits_expiration: CreditsExpiration = Field(default_factory=CreditsExpiration)
    features: List[str] = Field(default_factory=list)
    recommended: bool = False
    description: Optional[str] = None
    display_order: int = 0
    enabled: bool = True
    trial: TrialConfig = Field(default_factory=TrialConfig)


class CreditPackConfig(BaseModel):
    key: str
    name: str
    credits: int
    price_in_cents: int
    currency: str = "usd"
    stripe_price_id: str
    popular: bool = False
    enabled: bool = True


class CreditCostOptions(BaseModel):
    custom_prompt: int = 0
    priority_processing: int = 1
    batch_per_image: int = 0


class CreditCostConfig(BaseModel):
    modes: Dict[str, int]
    model_multipliers: Dict[str, float]
    scale_multipliers: Dict[str, float]
    options: CreditCostOptions = Field(default_factory=CreditCostOptions)
    minimum_cost: int = 1
    maximum_cost: int = 20


class FreeUserConfig(BaseModel):
    initial_credits: int = 10
    monthly_refresh: bool = False
    monthly_credits: int = 0
    max_balance: int = 10


class CreditWarningConfig(BaseModel):
    low_credit_threshold: int = 5
    low_credit_percentage: float = 0.2
    show_toast_on_dashboard: bool = True
    check_interval_ms: int = 300000


class BillingDefaults(BaseModel):
    currency: str = "usd"
    interval: str = "month"
    credits_rollover: bool = True
    rollover_multiplier: int = 6


class SubscriptionConfig(BaseModel):
    version: str = "1.0.0"
    plans: List[PlanConfig]
    credit_packs: List[CreditPackConfig]
    credit_costs: CreditCostConfig
    free_user: FreeUserConfig = Field(default_factory=FreeUserConfig)
    warnings: CreditWarningConfig = Field(default_factory=CreditWarningConfig)
    defaults: BillingDefaults = Field(default_factory=BillingDefaults)


class ResolvedPrice(BaseModel):
    type: Literal["plan", "pack"]
    key: str
    name: str
    stripe_price_id: str
    credits: int
    max_rollover: Optional[int] = None


class ValidationResult(BaseModel):
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


class BalanceWithExpiration(BaseModel):
    new_balance: int
    expired_amount: int


class ConfigValidationError(ValueError):
    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Invalid subscription config: " + "; ".join(errors))


class UnknownPriceError(ValueError):
    def __init__(self, price_id: str):
        self.price_id = price_id
        super().__init__(
            f"Unknown price ID: {price_id}. This price is not configured in the subscription config."
        )


_END_OF_CYCLE = CreditsExpiration(
    mode="end_of_cycle", grace_period_days=0, send_expiration_warning=True, warning_days_before=7
)


def build_default_config() -> SubscriptionConfig:
    return SubscriptionConfig(
        plans=[
            PlanConfig(
                key="starter",
                name="Starter",
                stripe_price_id="price_1SbAAQALMLhQocpfStarter09",
                price_in_cents=900,
                credits_per_cycle=100,
                max_rollover=600,
                credits_expiration=CreditsExpiration(mode="never"),
                features=[
                    "100 credits per month",
                    "Credits roll over (up to 600)",
                    "Batch processing up to 5 images",
                    "Email support",
                ],
                description="For occasional upscaling",
                display_order=0,
            ),
            PlanConfig(
                key="hobby",
                name="Hobby",
                stripe_price_id="price_1SZmVyALMLhQocpf0H7n5ls8",
                price_in_cents=1900,
                credits_per_cycle=200,
                credits_expiration=_END_OF_CYCLE,
                features=[
                    "200 credits per month",
                    "Credits reset each billing cycle",
                    "Email support",
                    "All processing modes",
                ],
                description="For personal projects",
                display_order=1,
            ),
            PlanConfig(
                key="pro",
                name="Professional",
                stripe_price_id="price_1SZmVzALMLhQocpfPyRX2W8D",
                price_in_cents=4900,
                credits_per_cycle=1000,
                credits_expiration=_END_OF_CYCLE,
                features=[
                    "1000 credits per month",
                    "Credits reset each billing cycle",
                    "Priority support",
                    "All processing modes",
                    "Early access to new features",
                ],
                recommended=True,
                description="For professionals",
                display_order=2,
            ),
            PlanConfig(
                key="business",
                name="Business",
                stripe_price_id="price_1SZmVzALMLhQocpfqPk9spg4",
                price_in_cents=14900,
                credits_per_cycle=5000,
                credits_expiration=_END_OF_CYCLE,
                features=[
                    "5000 credits per month",
                    "Credits reset each billing cycle",
                    "24/7 priority support",
                    "All processing modes",
                    "Dedicated account manager",
                ],
                description="For teams and agencies",
                display_order=3,
            ),
        ],
        credit_packs=[
            CreditPackConfig(
                key="small",
                name="Small Pack",
                credits=50,
                price_in_cents=499,
                stripe_price_id="price_1SbAASALMLhQocpfGUg3wLXM",
            ),
            CreditPackConfig(
                key="medium",
                name="Medium Pack",
                credits=200,
                price_in_cents=1499,
                stripe_price_id="price_1SbAASALMLhQocpf7nw3wRj7",
                popular=True,
            ),
            CreditPackConfig(
                key="large",
                name="Large Pack",
                credits=600,
                price_in_cents=3999,
                stripe_price_id="price_1SbAASALMLhQocpfCrD7P7TW",
            ),
        ],
        credit_costs=CreditCostConfig(
            modes={"upscale": 1, "enhance": 2, "both": 2, "custom": 2},
            model_multipliers={
                "real-esrgan": 1,
                "gfpgan": 2,
                "nano-banana": 2,
                "clarity-upscaler": 4,
                "nano-banana-pro": 8,
            },
            scale_multipliers={"2x": 1.0, "4x": 1.0, "8x": 1.0},
        ),
    )


def validate_subscription_config(config: SubscriptionConfig) -> ValidationResult:
    """Check the catalogue for errors that would break billing and for suspicious settings."""
    result = ValidationResult()

    plan_keys = set()
    pack_keys = set()
    price_ids = set()

    for plan in config.plans:
        if plan.key in plan_keys:
            result.errors.append(f"Duplicate plan key: {plan.key}")
        plan_keys.add(plan.key)
        if not plan.stripe_price_id.startswith("price_"):
            result.errors.append(f"Plan {plan.key}: Stripe price ID must start with 'price_'")
        if plan.stripe_price_id in price_ids:
            result.errors.append(f"Duplicate Stripe price ID: {plan.stripe_price_id}")
        price_ids.add(plan.stripe_price_id)
        if plan.credits_per_cycle <= 0:
            result.errors.append(f"Plan {plan.key}: credits_per_cycle must be positive")
        if plan.price_in_cents <= 0:
            result.errors.append(f"Plan {plan.key}: price_in_cents must be positive")

        expiration = plan.credits_expiration
        if expiration.mode == "rolling_window" and not expiration.window_days:
            result.errors.append(f"Plan {plan.key}: window_days is required for rolling_window expiration")
        if expiration.window_days and expiration.mode != "rolling_window":
            result.warnings.append(f"Plan {plan.key}: window_days is ignored unless mode is rolling_window")
        if expiration.send_expiration_warning and expiration.warning_days_before == 0:
            result.warnings.append(f"Plan {plan.key}: expiration warning enabled but warning_days_before is 0")
        if plan.max_rollover is not None and expiration.mode != "never":
            result.warnings.append(f"Plan {plan.key}: max_rollover has no effect when credits expire")

    for pack in config.credit_packs:
        if pack.key in pack_keys:
            result.errors.append(f"Duplicate credit pack key: {pack.key}")
        pack_keys.add(pack.key)
        if not pack.stripe_price_id.startswith("price_"):
            result.errors.append(f"Credit pack {pack.key}: Stripe price ID must start with 'price_'")
        if pack.stripe_price_id in price_ids:
            result.errors.append(f"Duplicate Stripe price ID: {pack.stripe_price_id}")
        price_ids.add(pack.stripe_price_id)
        if pack.credits <= 0:
            result.errors.append(f"Credit pack {pack.key}: credits must be positive")
        if pack.price_in_cents <= 0:
            result.errors.append(f"Credit pack {pack.key}: price_in_cents must be positive")

    costs = config.credit_costs
    if costs.minimum_cost > costs.maximum_cost:
        result.errors.append("credit_costs.minimum_cost cannot exceed maximum_cost")

    return result


@lru_cache(maxsize=1)
def get_subscription_config() -> SubscriptionConfig:
    config = build_default_config()
    result = validate_subscription_config(config)
    for warning in result.warnings:
        logger.warning(f"Subscription config: {warning}")
    if not result.valid:
        raise ConfigValidationError(result.errors)
    return config


@lru_cache(maxsize=1)
def get_price_index() -> Dict[str, ResolvedPrice]:
    config = get_subscription_config()
    index: Dict[str, ResolvedPrice] = {}
    for plan in config.plans:
        if not plan.enabled:
            continue
        max_rollover = plan.max_rollover
        if max_rollover is None:
            max_rollover = plan.credits_per_cycle * plan.rollover_multiplier
        index[plan.stripe_price_id] = ResolvedPrice(
            type="plan",
            key=plan.key,
            name=plan.name,
            stripe_price_id=plan.stripe_price_id,
            credits=plan.credits_per_cycle,
            max_rollover=max_rollover,
        )
    for pack in config.credit_packs:
        if not pack.enabled:
            continue
        index[pack.stripe_price_id] = ResolvedPrice(
            type="pack",
            key=pack.key,
            name=pack.name,
            stripe_price_id=pack.stripe_price_id,
            credits=pack.credits,
        )
    return index


def resolve_price_id(price_id: Optional[str]) -> Optional[ResolvedPrice]:
    if not price_id:
        return None
    return get_price_index().get(price_id)


def assert_known_price_id(price_id: Optional[str]) -> ResolvedPrice:
    resolved = resolve_price_id(price_id)
    if resolved is None:
        raise UnknownPriceError(price_id or "")
    return resolved


def resolve_plan_or_pack(price_id: Optional[str]):
    """Return the PlanConfig or CreditPackConfig behind a price ID, or None."""
    resolved = resolve_price_id(price_id)
    if resolved is None:
        return None
    if resolved.type == "plan":
        return get_plan_by_key(resolved.key)
    return get_credit_pack_by_key(resolved.key)


def get_plan_by_key(key: str) -> Optional[PlanConfig]:
    for plan in get_subscription_config().plans:
        if plan.key == key:
            return plan
    return None


def get_plan_by_price_id(price_id: Optional[str]) -> Optional[PlanConfig]:
    for plan in get_subscription_config().plans:
        if plan.enabled and plan.stripe_price_id == price_id:
            return plan
    return None


def get_enabled_plans() -> List[PlanConfig]:
    plans = [p for p in get_subscription_config().plans if p.enabled]
    return sorted(plans, key=lambda p: p.display_order)


def get_recommended_plan() -> Optional[PlanConfig]:
    for plan in get_enabled_plans():
        if plan.recommended:
            return plan
    return None


def get_credit_pack_by_key(key: str) -> Optional[CreditPackConfig]:
    for pack in get_subscription_config().credit_packs:
        if pack.key == key:
            return pack
    return None


def get_credit_pack_by_price_id(price_id: Optional[str]) -> Optional[CreditPackConfig]:
    for pack in get_subscription_config().credit_packs:
        if pack.enabled and pack.stripe_price_id == price_id:
            return pack
    return None


def get_enabled_credit_packs() -> List[CreditPackConfig]:
    return [p for p in get_subscription_config().credit_packs if p.enabled]


def is_price_id_credit_pack(price_id: Optional[str]) -> bool:
    return get_credit_pack_by_price_id(price_id) is not None


def get_trial_config(price_id: Optional[str]) -> Optional[TrialConfig]:
    plan = get_plan_by_price_id(price_id)
    return plan.trial if plan else None


def calculate_batch_cost(image_count: int, cost_per_image: int) -> int:
    return image_count * cost_per_image


def calculate_balance_with_expiration(
    current_balance: int,
    new_credits: int,
    expiration_mode: ExpirationMode,
    max_rollover: Optional[int] = None,
) -> BalanceWithExpiration:
    """Balance after a renewal. Expiring modes drop the old balance; `never` rolls it over up to the cap."""
    if expiration_mode in ("end_of_cycle", "rolling_window"):
        return BalanceWithExpiration(new_balance=new_credits, expired_amount=current_balance)
    new_balance = current_balance + new_credits
    if max_rollover is not None:
        new_balance = min(new_balance, max_rollover)
    return BalanceWithExpiration(new_balance=new_balance, expired_amount=0)


def should_send_expiration_warning(plan_key: str, days_until_expiry: int) -> bool:
    plan = get_plan_by_key(plan_key)
    if plan is None:
        return False
    expiration = plan.credits_expiration
    if not expiration.send_expiration_warning or expiration.mode == "never":
        return False
    return 0 <= days_until_expiry <= expiration.warning_days_before


def get_low_credit_threshold() -> int:
    return get_subscription_config().warnings.low_credit_threshold


def calculate_model_credit_cost(mode: str, model_id: str, scale: int) -> int:
    costs = get_subscription_config().credit_costs
    base = costs.modes.get(mode, costs.modes["upscale"])
    model_multiplier = costs.model_multipliers.get(model_id, 1)
    scale_multiplier = costs.scale_multipliers.get(f"{scale}x", 1.0)
    cost = math.ceil(base * model_multiplier * scale_multiplier)
    return max(costs.minimum_cost, min(cost, costs.maximum_cost))


def build_homepage_tiers() -> List[dict]:
    """Pricing cards: the free tier followed by every enabled plan."""
    config = get_subscription_config()
    tiers = [{
        "key": "free",
        "name": "Free",
        "price_in_cents": 0,
        "credits_per_cycle": config.free_user.initial_credits,
        "features": [
            f"{config.free_user.initial_credits} free credits",
            "Single image processing",
            "Standard models",
        ],
        "recommended": False,
    }]
    for plan in get_enabled_plans():
        tiers.append({
            "key": plan.key,
            "name": plan.name,
            "price_in_cents": plan.price_in_cents,
            "credits_per_cycle": plan.credits_per_cycle,
            "features": plan.features,
            "recommended": plan.recommended,
            "stripe_price_id": plan.stripe_price_id,
        })
    return tiers
