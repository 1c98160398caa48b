"""Admin CRUD for alert rules."""

import json
import logging

from db.models import (
    ALERT_COMPARATORS,
    ALERT_ROLES,
    ALERT_SEVERITIES,
    ALERT_TARGETS,
    ALERT_TRIGGER_TYPES,
)
from misan.core.state import store

LOGGER = logging.getLogger(__name__)

_REQUIRED = (
    "name",
    "triggerType",
    "target",
    "comparator",
    "threshold",
    "severity",
    "messageTemplate",
    "appliesToRole",
)


def normalize_rule_payload(rule: dict) -> tuple[bool, str, dict]:
    """Returns (True, "", row_data) or (False, reason, {})."""
    rule = rule or {}
    for key in _REQUIRED:
        value = rule.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            return False, "Champs obligatoires manquants.", {}

    checks = (
        ("triggerType", ALERT_TRIGGER_TYPES, "Type de déclenchement invalide."),
        ("target", ALERT_TARGETS, "Cible d'alerte invalide."),
        ("comparator", ALERT_COMPARATORS, "Comparateur invalide."),
        ("severity", ALERT_SEVERITIES, "Sévérité invalide."),
        ("appliesToRole", ALERT_ROLES, "Rôle ciblé invalide."),
    )
    for key, allowed, error in checks:
        if rule[key] not in allowed:
            return False, error, {}

    try:
        threshold = float(rule["threshold"])
    except (TypeError, ValueError):
        return False, "Seuil invalide.", {}

    metadata = rule.get("metadata") or {}
    if not isinstance(metadata, dict):
        return False, "Métadonnées invalides.", {}

    return True, "", {
        "name": rule["name"].strip(),
        "description": rule.get("description"),
        "trigger_type": rule["triggerType"],
        "target": rule["target"],
        "comparator": rule["comparator"],
        "threshold": threshold,
        "severity": rule["severity"],
        "message_template": rule["messageTemplate"],
        "applies_to_role": rule["appliesToRole"],
        "is_blocking": 1 if rule.get("isBlocking") else 0,
        "is_active": 1 if rule.get("isActive", True) else 0,
        "metadata_json": json.dumps(metadata, ensure_ascii=False),
    }


def list_rules(store_obj=None) -> dict:
    store_ref = store_obj or store
    return {"success": True, "rules": [r.api_dict() for r in store_ref.list_alert_rules()]}


def create_rule(rule: dict, store_obj=None) -> dict:
    store_ref = store_obj or store
    ok, error, data = normalize_rule_payload(rule)
    if not ok:
        return {"success": False, "error": error}
    rule_id = store_ref.create_alert_rule(data)
    LOGGER.info("Created alert rule %s (%s)", rule_id, data["name"])
    return {"success": True, "rule": store_ref.get_alert_rule(rule_id).api_dict()}


def update_rule(rule_id: int, rule: dict, store_obj=None) -> dict:
    store_ref = store_obj or store
    ok, error, data = normalize_rule_payload(rule)
    if not ok:
        return {"success": False, "error": error}
    if not store_ref.update_alert_rule(rule_id, data):
        return {"success": False, "error": "Règle introuvable", "not_found": True}
    LOGGER.info("Updated alert rule %s", rule_id)
    return {"success": True, "rule": store_ref.get_alert_rule(rule_id).api_dict()}


def delete_rule(rule_id: int, store_obj=None) -> dict:
    store_ref = store_obj or store
    if not store_ref.delete_alert_rule(rule_id):
        return {"success": False, "error": "Règle introuvable", "not_found": True}
    LOGGER.info("Deleted alert rule %s", rule_id)
    return {"success": True}
