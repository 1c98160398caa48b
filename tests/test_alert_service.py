import json
import sqlite3
from datetime import datetime, timedelta, timezone

from db.models import AlertRule, UserProfile
from misan.services.alert_service import (
    check_user_alerts,
    compare,
    days_until_expiry,
    evaluate_alerts,
    evaluate_fallback_alerts,
    render_template,
)
from misan.services.settings_service import AlertSettings

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_profile(days=30, **overrides) -> UserProfile:
    data = {
        "id": 1,
        "email": "ali@example.dz",
        "name": "Ali",
        "role": "pro",
        "subscription_type": "pro",
        "subscription_status": "active",
        "subscription_start": None,
        "subscription_end": (NOW + timedelta(days=days, hours=1)).isoformat() if days is not None else None,
        "tokens_balance": 500000,
        "trial_used": False,
        "access_token": "tok",
        "created_at": "2026-01-01",
    }
    data.update(overrides)
    return UserProfile(**data)


def make_rule(rule_id=1, metadata=None, **overrides) -> AlertRule:
    data = {
        "id": rule_id,
        "name": f"rule-{rule_id}",
        "description": None,
        "trigger_type": "login",
        "target": "subscription",
        "comparator": "<=",
        "threshold": 7,
        "severity": "warning",
        "message_template": "Expire dans {{days}} jours",
        "applies_to_role": "any",
        "is_blocking": 0,
        "is_active": 1,
        "metadata_json": json.dumps(metadata or {}),
        "created_at": "2026-01-01",
        "updated_at": "2026-01-01",
    }
    data.update(overrides)
    return AlertRule(**data)


def test_days_until_expiry_floors_and_handles_missing():
    assert days_until_expiry((NOW + timedelta(days=5, hours=23)).isoformat(), now=NOW) == 5
    assert days_until_expiry((NOW - timedelta(hours=1)).isoformat(), now=NOW) == -1
    assert days_until_expiry("2026-03-06T12:00:00Z", now=NOW) == 5
    assert days_until_expiry(None, now=NOW) is None
    assert days_until_expiry("not a date", now=NOW) is None


def test_compare_operators():
    assert compare(5, "<", 7)
    assert compare(7, "<=", 7)
    assert compare(7, "=", 7.0)
    assert not compare(7.0001, "=", 7)
    assert compare(7, ">=", 7)
    assert compare(8, ">", 7)
    assert not compare(1, "!=", 7)


def test_pro_five_days_with_seven_day_rule_yields_one_warning():
    profile = make_profile(days=5, role="pro")
    rule = make_rule(target="subscription", comparator="<=", threshold=7, severity="warning", applies_to_role="pro")

    alerts = evaluate_alerts(profile, [rule], now=NOW)

    assert len(alerts) == 1
    assert alerts[0].level == "warning"
    assert alerts[0].type == "subscription"
    assert alerts[0].message == "Expire dans 5 jours"
    assert alerts[0].title == "rule-1"


def test_zero_tokens_matches_any_role_rule():
    rule = make_rule(target="tokens", comparator="<=", threshold=0, severity="error", applies_to_role="any")
    for role in ("pro", "premium", "admin"):
        alerts = evaluate_alerts(make_profile(role=role, tokens_balance=0), [rule], now=NOW)
        assert [a.level for a in alerts] == ["error"]


def test_output_follows_rule_order_and_emits_every_match():
    profile = make_profile(days=1, tokens_balance=100)
    r1 = make_rule(1, target="tokens", comparator="<", threshold=1000, message_template="t")
    r2 = make_rule(2, target="subscription", comparator="<=", threshold=2, message_template="s")
    r3 = make_rule(3, target="subscription", comparator="<=", threshold=7, message_template="s7")

    alerts = evaluate_alerts(profile, [r1, r2, r3], now=NOW)
    assert [a.message for a in alerts] == ["t", "s", "s7"]

    alerts = evaluate_alerts(profile, [r3, r1], now=NOW)
    assert [a.message for a in alerts] == ["s7", "t"]


def test_general_rule_filters_on_subscription_status():
    rule = make_rule(target="general", metadata={"statusFilter": ["expired"]}, message_template="Compte expiré")

    assert evaluate_alerts(make_profile(subscription_status="active"), [rule], now=NOW) == []

    alerts = evaluate_alerts(make_profile(subscription_status="expired"), [rule], now=NOW)
    assert len(alerts) == 1
    assert alerts[0].type == "general"
    assert alerts[0].metadata == {"statusFilter": ["expired"]}


def test_general_rule_without_filter_always_emits():
    rule = make_rule(target="general", threshold=999, comparator=">", message_template="Bienvenue")
    alerts = evaluate_alerts(make_profile(), [rule], now=NOW)
    assert [a.message for a in alerts] == ["Bienvenue"]


def test_template_substitution():
    profile = make_profile(name="Ali", tokens_balance=42)
    rule = make_rule(
        target="general",
        message_template="Bonjour {{user_name}}, il reste {{tokens}} jetons",
    )
    alerts = evaluate_alerts(profile, [rule], now=NOW)
    assert alerts[0].message == "Bonjour Ali, il reste 42 jetons"


def test_template_keeps_unknown_placeholders_and_clamps_tokens():
    assert render_template("{{plan}} {{tokens}} {{days}}", "Ali", None, -5) == "{{plan}} 0 0"


def test_display_name_falls_back_to_email():
    profile = make_profile(name=None)
    rule = make_rule(target="general", message_template="Salut {{user_name}}")
    assert evaluate_alerts(profile, [rule], now=NOW)[0].message == "Salut ali@example.dz"


def test_subscription_rule_skipped_without_end_date():
    rule = make_rule(target="subscription", comparator=">=", threshold=-1000)
    assert evaluate_alerts(make_profile(days=None), [rule], now=NOW) == []


def test_inactive_and_other_role_rules_skipped():
    profile = make_profile(role="premium", days=1)
    rules = [
        make_rule(1, is_active=0),
        make_rule(2, applies_to_role="pro"),
        make_rule(3, applies_to_role="premium", is_blocking=1),
    ]
    alerts = evaluate_alerts(profile, rules, now=NOW)
    assert len(alerts) == 1
    assert alerts[0].title == "rule-3"
    assert alerts[0].is_blocking is True


def test_fallback_ladder_pro_bands():
    settings = AlertSettings()
    alerts = evaluate_fallback_alerts(make_profile(role="pro", days=5, tokens_balance=60000), settings, now=NOW)
    assert [(a.type, a.level) for a in alerts] == [("subscription", "warning"), ("tokens", "info")]
    assert alerts[0].message == "Votre abonnement expire dans 5 jours"
    assert alerts[1].message == "Il vous reste 60000 jetons"

    alerts = evaluate_fallback_alerts(make_profile(role="pro", days=-3, tokens_balance=0), settings, now=NOW)
    assert [a.message for a in alerts] == ["Votre abonnement a expiré", "Votre solde de jetons est épuisé"]


def test_fallback_ladder_respects_flags():
    settings = AlertSettings(alert_pro_subscription_7d=False)
    alerts = evaluate_fallback_alerts(make_profile(role="pro", days=5, tokens_balance=60000), settings, now=NOW)
    # the 20d rung does not take over when the 7d rung is switched off
    assert [a.type for a in alerts] == ["tokens"]


def test_fallback_ladder_premium_and_admin():
    settings = AlertSettings()
    alerts = evaluate_fallback_alerts(make_profile(role="premium", days=3, tokens_balance=5000), settings, now=NOW)
    assert [(a.type, a.level) for a in alerts] == [("subscription", "warning"), ("tokens", "warning")]
    assert alerts[0].message == "Votre essai gratuit se termine dans 3 jours"

    assert evaluate_fallback_alerts(make_profile(role="admin", days=0, tokens_balance=0), settings, now=NOW) == []


def test_fallback_ladder_outside_bands_is_silent():
    alerts = evaluate_fallback_alerts(
        make_profile(role="pro", days=40, tokens_balance=500000), AlertSettings(), now=NOW
    )
    assert alerts == []


def test_check_user_alerts_uses_rule_table(temp_store):
    temp_store.create_alert_rule({
        "name": "Jetons faibles",
        "trigger_type": "login",
        "target": "tokens",
        "comparator": "<",
        "threshold": 1000,
        "severity": "warning",
        "message_template": "Il reste {{tokens}} jetons",
        "applies_to_role": "pro",
        "is_blocking": 0,
        "is_active": 1,
        "metadata_json": "{}",
    })
    alerts = check_user_alerts(make_profile(tokens_balance=10), store_obj=temp_store, now=NOW)
    assert [a.message for a in alerts] == ["Il reste 10 jetons"]


def test_check_user_alerts_falls_back_when_rule_table_missing(temp_store):
    with temp_store._conn() as conn:
        conn.execute("DROP TABLE alert_rules")
    temp_store.upsert_settings([{"key": "alert_pro_tokens_0", "value": "false"}])

    profile = make_profile(role="pro", days=1, tokens_balance=0)
    alerts = check_user_alerts(profile, store_obj=temp_store, now=NOW)

    assert [(a.type, a.level) for a in alerts] == [("subscription", "error")]


def test_check_user_alerts_defaults_when_settings_unreadable(monkeypatch, temp_store):
    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(temp_store, "list_active_alert_rules", broken)
    monkeypatch.setattr(temp_store, "get_settings", broken)

    alerts = check_user_alerts(make_profile(role="premium", days=10, tokens_balance=0), store_obj=temp_store, now=NOW)
    assert [a.message for a in alerts] == ["Votre solde de jetons est épuisé"]


def test_fallback_ladder_without_end_date_still_checks_tokens():
    alerts = evaluate_fallback_alerts(make_profile(role="pro", days=None, tokens_balance=0), AlertSettings(), now=NOW)
    assert [(a.type, a.level) for a in alerts] == [("tokens", "error")]
