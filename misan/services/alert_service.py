"""User alert evaluation against admin-configured threshold rules.

`evaluate_alerts` is the pure evaluator. `check_user_alerts` is the caller
used by the API: it loads rules from the store and drops to the hardcoded
fallback ladder when the rule table cannot be read.
"""

import logging
import math
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from db.models import AlertRule, UserProfile
from misan.core.state import store
from misan.services.settings_service import AlertSettings, load_alert_settings

LOGGER = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class RuleSourceUnavailable(Exception):
    """Raised by rule sources other than sqlite when rules cannot be read."""


@dataclass
class Alert:
    type: str
    level: str
    message: str
    title: Optional[str] = None
    is_blocking: bool = False
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "level": self.level,
            "message": self.message,
            "title": self.title,
            "isBlocking": self.is_blocking,
            "metadata": self.metadata,
        }


def parse_timestamp(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def days_until_expiry(subscription_end, now: datetime = None) -> Optional[int]:
    end = parse_timestamp(subscription_end)
    if end is None:
        return None
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.floor((end - now).total_seconds() / SECONDS_PER_DAY)


def compare(value, comparator: str, threshold) -> bool:
    if comparator == "<":
        return value < threshold
    if comparator == "<=":
        return value <= threshold
    if comparator == "=":
        return value == threshold
    if comparator == ">=":
        return value >= threshold
    if comparator == ">":
        return value > threshold
    return False


def render_template(template: str, user_name: str, days: Optional[int], tokens) -> str:
    """Fill {{user_name}}, {{days}} and {{tokens}}; other placeholders stay as-is."""
    return (
        str(template or "")
        .replace("{{user_name}}", user_name)
        .replace("{{days}}", str(days) if days is not None else "0")
        .replace("{{tokens}}", _format_number(max(tokens, 0)))
    )


def _format_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _tokens_balance(profile: UserProfile):
    try:
        return int(profile.tokens_balance or 0)
    except (TypeError, ValueError):
        return 0


def _rule_applies(rule: AlertRule, role: str) -> bool:
    return bool(rule.is_active) and rule.applies_to_role in ("any", role)


def evaluate_alerts(
    profile: UserProfile,
    rules: Iterable[AlertRule],
    now: datetime = None,
) -> list[Alert]:
    """Alerts for `profile`, one per matching rule, in rule order."""
    days = days_until_expiry(profile.subscription_end, now=now)
    tokens = _tokens_balance(profile)
    user_name = profile.display_name
    status = profile.subscription_status

    alerts: list[Alert] = []
    for rule in rules:
        if not _rule_applies(rule, profile.role):
            continue

        metadata = rule.metadata

        if rule.target == "general":
            status_filter = metadata.get("statusFilter")
            if not isinstance(status_filter, list):
                status_filter = []
            if status_filter and (not status or status not in status_filter):
                continue
        elif rule.target == "subscription":
            if days is None or not compare(days, rule.comparator, rule.threshold):
                continue
        elif rule.target == "tokens":
            if not compare(tokens, rule.comparator, rule.threshold):
                continue
        else:
            continue

        alerts.append(Alert(
            type=rule.target,
            level=rule.severity,
            message=render_template(rule.message_template, user_name, days, tokens),
            title=rule.name,
            is_blocking=bool(rule.is_blocking),
            metadata=metadata,
        ))
    return alerts


# ── Fallback ladder ────────────────────────────────────────────


@dataclass(frozen=True)
class LadderRung:
    role: str
    target: str                 # 'subscription' | 'tokens'
    upper: int                  # matches value <= upper
    lower: Optional[int]        # and value > lower (None: unbounded)
    level: str
    flag: str                   # AlertSettings field gating this rung
    message: str


_PRO_EXPIRES = "Votre abonnement expire dans {{days}} jours"
_PREMIUM_EXPIRES = "Votre essai gratuit se termine dans {{days}} jours"
_TOKENS_LEFT = "Il vous reste {{tokens}} jetons"
_TOKENS_EMPTY = "Votre solde de jetons est épuisé"

FALLBACK_LADDER: tuple[LadderRung, ...] = (
    LadderRung("pro", "subscription", 20, 7, "info", "alert_pro_subscription_20d", _PRO_EXPIRES),
    LadderRung("pro", "subscription", 7, 2, "warning", "alert_pro_subscription_7d", _PRO_EXPIRES),
    LadderRung("pro", "subscription", 2, 0, "error", "alert_pro_subscription_2d", _PRO_EXPIRES),
    LadderRung("pro", "subscription", 0, None, "error", "alert_pro_subscription_0d",
               "Votre abonnement a expiré"),
    LadderRung("pro", "tokens", 100000, 50000, "info", "alert_pro_tokens_100k", _TOKENS_LEFT),
    LadderRung("pro", "tokens", 50000, 0, "warning", "alert_pro_tokens_50k", _TOKENS_LEFT),
    LadderRung("pro", "tokens", 0, None, "error", "alert_pro_tokens_0", _TOKENS_EMPTY),
    LadderRung("premium", "subscription", 5, 3, "info", "alert_premium_subscription_5d", _PREMIUM_EXPIRES),
    LadderRung("premium", "subscription", 3, 2, "warning", "alert_premium_subscription_3d", _PREMIUM_EXPIRES),
    LadderRung("premium", "subscription", 2, 0, "error", "alert_premium_subscription_2d", _PREMIUM_EXPIRES),
    LadderRung("premium", "subscription", 0, None, "error", "alert_premium_subscription_0d",
               "Votre essai gratuit a expiré"),
    LadderRung("premium", "tokens", 50000, 25000, "info", "alert_premium_tokens_50k", _TOKENS_LEFT),
    LadderRung("premium", "tokens", 25000, 10000, "warning", "alert_premium_tokens_25k", _TOKENS_LEFT),
    LadderRung("premium", "tokens", 10000, 0, "warning", "alert_premium_tokens_10k", _TOKENS_LEFT),
    LadderRung("premium", "tokens", 0, None, "error", "alert_premium_tokens_0", _TOKENS_EMPTY),
)


def _in_band(value, rung: LadderRung) -> bool:
    return value <= rung.upper and (rung.lower is None or value > rung.lower)


def evaluate_fallback_alerts(
    profile: UserProfile,
    settings: AlertSettings,
    now: datetime = None,
) -> list[Alert]:
    """At most one subscription and one tokens alert, picked by band."""
    days = days_until_expiry(profile.subscription_end, now=now)
    tokens = _tokens_balance(profile)
    metrics = {"subscription": days, "tokens": tokens}

    alerts: list[Alert] = []
    for target in ("subscription", "tokens"):
        value = metrics[target]
        if value is None:
            continue
        rung = next(
            (
                r for r in FALLBACK_LADDER
                if r.role == profile.role and r.target == target and _in_band(value, r)
            ),
            None,
        )
        if rung is None or not settings.is_enabled(rung.flag):
            continue
        alerts.append(Alert(
            type=target,
            level=rung.level,
            message=render_template(rung.message, profile.display_name, days, tokens),
        ))
    return alerts


def check_user_alerts(profile: UserProfile, store_obj=None, now: datetime = None) -> list[Alert]:
    store_ref = store_obj or store
    try:
        rules = store_ref.list_active_alert_rules(profile.role)
    except (sqlite3.Error, RuleSourceUnavailable) as e:
        LOGGER.warning("Unable to load alert_rules, using fallback ladder: %s", e)
        try:
            settings = load_alert_settings(store_ref)
        except sqlite3.Error as settings_error:
            LOGGER.warning("Unable to load alert settings, using defaults: %s", settings_error)
            settings = AlertSettings()
        return evaluate_fallback_alerts(profile, settings, now=now)

    return evaluate_alerts(profile, rules, now=now)
