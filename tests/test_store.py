import sqlite3

import pytest

from db.store import DataStore


@pytest.fixture
def store(tmp_path):
    s = DataStore(str(tmp_path / "store_test.db"))
    s.init_db()
    return s


def _rule(**overrides):
    data = {
        "name": "Abonnement bientôt expiré",
        "description": None,
        "trigger_type": "login",
        "target": "subscription",
        "comparator": "<=",
        "threshold": 7,
        "severity": "warning",
        "message_template": "Expire dans {{days}} jours",
        "applies_to_role": "pro",
        "is_blocking": 0,
        "is_active": 1,
        "metadata_json": "{}",
    }
    data.update(overrides)
    return data


def test_create_user_normalizes_email_and_issues_token(store):
    user = store.create_user(" Ali@Example.DZ ", name="Ali", role="pro", tokens_balance=500)

    assert user.email == "ali@example.dz"
    assert user.subscription_type == "pro"
    assert len(user.access_token) == 48
    assert store.get_user_by_token(user.access_token).id == user.id
    assert store.get_user_by_email("ALI@example.dz").id == user.id
    assert store.get_user(9999) is None


def test_duplicate_email_is_rejected(store):
    store.create_user("ali@example.dz")
    with pytest.raises(sqlite3.IntegrityError):
        store.create_user("ALI@example.dz")


def test_debit_tokens_never_goes_negative(store):
    user = store.create_user("ali@example.dz", tokens_balance=100)

    assert store.debit_tokens(user.id, 60) == 40
    assert store.debit_tokens(user.id, 41) is None
    assert store.get_user(user.id).tokens_balance == 40
    assert store.debit_tokens(user.id, 40) == 0


def test_set_subscription_keeps_end_when_omitted(store):
    user = store.create_user("ali@example.dz", subscription_end="2026-04-01T00:00:00+00:00")

    store.set_subscription(user.id, "expired")

    updated = store.get_user(user.id)
    assert updated.subscription_status == "expired"
    assert updated.subscription_end == "2026-04-01T00:00:00+00:00"


def test_active_rules_filtered_by_role_and_ordered(store):
    store.create_alert_rule(_rule(name="b", threshold=7))
    store.create_alert_rule(_rule(name="a", threshold=2))
    store.create_alert_rule(_rule(name="tokens", target="tokens", threshold=0, applies_to_role="any"))
    store.create_alert_rule(_rule(name="premium", applies_to_role="premium"))
    store.create_alert_rule(_rule(name="off", is_active=0))

    names = [r.name for r in store.list_active_alert_rules("pro")]
    assert names == ["a", "b", "tokens"]
    assert [r.name for r in store.list_active_alert_rules("admin")] == ["tokens"]
    assert len(store.list_alert_rules()) == 5


def test_alert_rule_update_and_delete(store):
    rule_id = store.create_alert_rule(_rule())

    assert store.update_alert_rule(rule_id, {"severity": "error", "is_blocking": 1}) is True
    rule = store.get_alert_rule(rule_id)
    assert rule.severity == "error"
    assert rule.api_dict()["isBlocking"] is True

    assert store.update_alert_rule(9999, {"severity": "info"}) is False
    assert store.delete_alert_rule(rule_id) is True
    assert store.delete_alert_rule(rule_id) is False
    assert store.get_alert_rule(rule_id) is None


def test_upsert_settings_keeps_description(store):
    store.upsert_settings([
        {"key": "site_name", "value": "Misan", "description": "Nom du site", "category": "general"},
    ])
    store.upsert_settings([{"key": "site_name", "value": "Misan DZ"}])

    assert store.get_setting("site_name") == "Misan DZ"
    (setting,) = store.list_settings("general")
    assert setting.description == "Nom du site"
    assert store.get_settings([]) == {}
    assert store.get_setting("missing") is None
