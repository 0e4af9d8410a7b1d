import pytest

from app.modules.credits.calculator import (
    CreditReason,
    calculate_credit_cost,
    calculate_downgrade_credits,
    calculate_job_cost,
    calculate_upgrade_credits,
    get_explanation,
)


def test_upgrade_adds_tier_difference():
    result = calculate_upgrade_credits(current_balance=150, previous_tier_credits=200, new_tier_credits=1000)
    assert result.credits_to_add == 800
    assert result.reason == CreditReason.TOP_UP_TO_MINIMUM
    assert result.is_legitimate


def test_upgrade_ignores_current_balance():
    low = calculate_upgrade_credits(0, 200, 1000)
    high = calculate_upgrade_credits(5000, 200, 1000)
    assert low.credits_to_add == high.credits_to_add == 800


@pytest.mark.parametrize("previous,new", [(1000, 200), (200, 200)])
def test_upgrade_rejects_non_upgrades(previous, new):
    with pytest.raises(ValueError, match="more credits"):
        calculate_upgrade_credits(100, previous, new)


def test_upgrade_rejects_negative_amounts():
    with pytest.raises(ValueError, match="negative"):
        calculate_upgrade_credits(-1, 200, 1000)


def test_downgrade_never_adds_credits():
    result = calculate_downgrade_credits()
    assert result.credits_to_add == 0
    assert result.reason == CreditReason.PRESERVE_LEGITIMATE_EXCESS


def test_explanations():
    upgrade = calculate_upgrade_credits(150, 200, 1000)
    assert get_explanation(upgrade, 150, 1000) == (
        "User has 150 credits. Adding 800 (tier difference) to reach 950 on upgrade to 1000 tier."
    )
    assert get_explanation(calculate_downgrade_credits(), 300, 200) == (
        "Downgrade: User keeps their 300 credits until next renewal."
    )


def test_credit_cost_uses_mode_and_model_multiplier():
    assert calculate_credit_cost("upscale", "real-esrgan", 2) == 1
    assert calculate_credit_cost("enhance", "gfpgan", 4) == 4
    assert calculate_credit_cost("both", "clarity-upscaler", 8) == 8


def test_credit_cost_is_clamped_to_maximum():
    assert calculate_credit_cost("enhance", "nano-banana-pro", 8) == 16
    assert calculate_credit_cost("custom", "nano-banana-pro", 8) <= 20


def test_unknown_model_and_mode_fall_back():
    assert calculate_credit_cost("unknown-mode", "unknown-model", 2) == 1


def test_job_cost_rounds_up():
    assert calculate_job_cost(1, 0, 1) == 1
    assert calculate_job_cost(1, 1, 2, resolution="4k") == 6
    assert calculate_job_cost(1, 0, 1, resolution="4k") == 2
    assert calculate_job_cost(2, 1, 4, resolution="8k") == 24
    assert calculate_job_cost(1, 0, 1, resolution="unknown") == 1
