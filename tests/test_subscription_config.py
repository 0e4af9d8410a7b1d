import pytest

from app.config.subscription_config import (
    CreditPackConfig,
    CreditsExpiration,
    PlanConfig,
    UnknownPriceError,
    assert_known_price_id,
    build_default_config,
    build_homepage_tiers,
    calculate_balance_with_expiration,
    get_credit_pack_by_key,
    get_enabled_plans,
    get_plan_by_key,
    get_plan_by_price_id,
    get_recommended_plan,
    get_trial_config,
    is_price_id_credit_pack,
    resolve_plan_or_pack,
    resolve_price_id,
    should_send_expiration_warning,
    validate_subscription_config,
)
from tests.conftest import HOBBY_PRICE, MEDIUM_PACK_PRICE, PRO_PRICE, STARTER_PRICE


def test_resolve_plan_price():
    resolved = resolve_price_id(PRO_PRICE)
    assert resolved.type == "plan"
    assert resolved.key == "pro"
    assert resolved.credits == 1000
    # Default rollover cap is six cycles of credits
    assert resolved.max_rollover == 6000


def test_resolve_pack_price():
    resolved = resolve_price_id(MEDIUM_PACK_PRICE)
    assert resolved.type == "pack"
    assert resolved.key == "medium"
    assert resolved.credits == 200
    assert is_price_id_credit_pack(MEDIUM_PACK_PRICE)
    assert not is_price_id_credit_pack(PRO_PRICE)


def test_starter_keeps_explicit_rollover_cap():
    assert resolve_price_id(STARTER_PRICE).max_rollover == 600


def test_unknown_price_id():
    assert resolve_price_id("price_unknown") is None
    assert resolve_price_id(None) is None
    with pytest.raises(UnknownPriceError, match="Unknown price ID: price_unknown"):
        assert_known_price_id("price_unknown")


def test_resolve_plan_or_pack_returns_config_objects():
    assert isinstance(resolve_plan_or_pack(HOBBY_PRICE), PlanConfig)
    assert isinstance(resolve_plan_or_pack(MEDIUM_PACK_PRICE), CreditPackConfig)
    assert resolve_plan_or_pack("price_nope") is None


def test_plan_lookups():
    assert get_plan_by_key("business").credits_per_cycle == 5000
    assert get_plan_by_price_id(HOBBY_PRICE).key == "hobby"
    assert get_plan_by_key("enterprise") is None
    assert [p.key for p in get_enabled_plans()] == ["starter", "hobby", "pro", "business"]
    assert get_recommended_plan().key == "pro"
    assert get_credit_pack_by_key("large").credits == 600


def test_trials_are_disabled_by_default():
    trial = get_trial_config(PRO_PRICE)
    assert trial is not None
    assert not trial.enabled
    assert get_trial_config("price_unknown") is None


def test_default_config_is_valid():
    result = validate_subscription_config(build_default_config())
    assert result.valid
    assert result.errors == []


def test_validation_catches_duplicates_and_bad_ids():
    config = build_default_config()
    config.plans.append(config.plans[0].model_copy())
    config.credit_packs[0].stripe_price_id = "prod_wrong"
    result = validate_subscription_config(config)
    assert not result.valid
    assert "Duplicate plan key: starter" in result.errors
    assert f"Duplicate Stripe price ID: {STARTER_PRICE}" in result.errors
    assert "Credit pack small: Stripe price ID must start with 'price_'" in result.errors


def test_validation_requires_window_days_for_rolling_window():
    config = build_default_config()
    config.plans[1].credits_expiration = CreditsExpiration(mode="rolling_window")
    result = validate_subscription_config(config)
    assert "Plan hobby: window_days is required for rolling_window expiration" in result.errors


def test_balance_expires_at_end_of_cycle():
    result = calculate_balance_with_expiration(150, 200, "end_of_cycle")
    assert result.new_balance == 200
    assert result.expired_amount == 150


def test_balance_rolls_over_up_to_cap():
    result = calculate_balance_with_expiration(550, 100, "never", max_rollover=600)
    assert result.new_balance == 600
    assert result.expired_amount == 0
    assert calculate_balance_with_expiration(50, 100, "never").new_balance == 150


def test_expiration_warning_window():
    assert should_send_expiration_warning("pro", 7)
    assert should_send_expiration_warning("pro", 0)
    assert not should_send_expiration_warning("pro", 8)
    assert not should_send_expiration_warning("starter", 3)
    assert not should_send_expiration_warning("enterprise", 3)


def test_homepage_tiers_start_with_free():
    tiers = build_homepage_tiers()
    assert tiers[0]["key"] == "free"
    assert tiers[0]["price_in_cents"] == 0
    assert [t["key"] for t in tiers[1:]] == ["starter", "hobby", "pro", "business"]
