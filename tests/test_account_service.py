from datetime import datetime, timedelta, timezone

from db.models import UserProfile
from misan.services import account_service
from misan.services.account_service import calculate_token_cost, check_access

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_profile(**overrides) -> UserProfile:
    data = {
        "id": 1,
        "email": "ali@example.dz",
        "name": "Ali",
        "role": "pro",
        "subscription_type": "pro",
        "subscription_status": "active",
        "subscription_start": None,
        "subscription_end": (NOW + timedelta(days=30)).isoformat(),
        "tokens_balance": 1000,
        "trial_used": False,
        "access_token": "tok",
        "created_at": "2026-01-01",
    }
    data.update(overrides)
    return UserProfile(**data)


def test_admin_always_has_access():
    result = check_access(make_profile(role="admin", tokens_balance=0, subscription_status="expired"), now=NOW)
    assert result.can_access_ai is True
    assert result.message == "Accès administrateur complet"


def test_inactive_and_expired_status():
    inactive = check_access(make_profile(subscription_status="inactive"), now=NOW)
    assert inactive.can_access_ai is False
    assert inactive.needs_upgrade is False

    expired = check_access(make_profile(subscription_status="expired"), now=NOW)
    assert expired.can_access_ai is False
    assert expired.needs_upgrade is True


def test_past_subscription_end_blocks_access():
    result = check_access(make_profile(subscription_end=(NOW - timedelta(minutes=1)).isoformat()), now=NOW)
    assert result.can_access_ai is False
    assert result.message == account_service.MSG_SUBSCRIPTION_EXPIRED


def test_token_balance_checks():
    assert check_access(make_profile(tokens_balance=0), now=NOW).message == account_service.MSG_NO_TOKENS

    short = check_access(make_profile(tokens_balance=10), tokens_required=20, now=NOW)
    assert short.can_access_ai is False
    assert short.tokens_required == 20

    assert check_access(make_profile(tokens_balance=20), tokens_required=20, now=NOW).can_access_ai is True


def test_premium_trial_message():
    result = check_access(make_profile(role="premium", subscription_end="2026-03-08T12:00:00+00:00"), now=NOW)
    assert result.message == "Essai gratuit actif jusqu'au 08/03/2026"


def test_token_cost_scales_per_thousand_characters():
    assert calculate_token_cost("chat") == 10
    assert calculate_token_cost("analysis", 1000) == 30
    assert calculate_token_cost("analysis", 1001) == 60
    assert calculate_token_cost("unknown", 2500) == 30


def test_signup_without_trial_gets_no_tokens(temp_store):
    result = account_service.signup("new@misan.dz", "Nouveau", grant_free_trial=False, now=NOW)

    assert result["success"] is True
    assert result["trial_granted"] is False
    assert result["trial_config"] is None
    user = temp_store.get_user(result["user_id"])
    assert user.role == "premium"
    assert user.tokens_balance == 0
    assert user.subscription_end == (NOW + timedelta(days=7)).isoformat()


def test_signup_trial_disabled(temp_store):
    temp_store.upsert_settings([{"key": "trial_enabled", "value": "false"}])
    result = account_service.signup("new@misan.dz", grant_free_trial=True, now=NOW)
    assert result["trial_granted"] is False


def test_signup_rejects_bad_email(temp_store):
    assert account_service.signup("not-an-email")["success"] is False
