"""Account access checks, token consumption and signup."""

import logging
import math
import sqlite3
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from db.models import UserProfile
from misan.core.state import store
from misan.services.alert_service import check_user_alerts, parse_timestamp
from misan.services.settings_service import load_site_settings, load_trial_config

LOGGER = logging.getLogger(__name__)

ADMIN_UNLIMITED_BALANCE = 999_999_999

TOKEN_BASE_COSTS = {
    "chat": 10,
    "document_generation": 50,
    "analysis": 30,
    "correction": 20,
    "translation": 25,
    "creative": 40,
}
DEFAULT_TOKEN_COST = 10

STATUS_MESSAGES = {
    "inactive": "Votre compte est en cours d'approbation par un administrateur.",
    "expired": "Votre abonnement est expiré.",
}
MSG_SUBSCRIPTION_EXPIRED = "Votre abonnement a expiré. Veuillez souscrire à un abonnement pour continuer."
MSG_NO_TOKENS = "Votre solde de jetons est épuisé. Veuillez recharger vos jetons ou souscrire à un abonnement."


@dataclass
class AccessResult:
    can_access_ai: bool
    needs_upgrade: bool
    message: str
    tokens_required: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_access(profile: UserProfile, tokens_required: int = 0, now: datetime = None) -> AccessResult:
    now = now or _utcnow()

    if profile.role == "admin":
        return AccessResult(True, False, "Accès administrateur complet")

    status = profile.subscription_status
    if status and status != "active":
        return AccessResult(
            False,
            status == "expired",
            STATUS_MESSAGES.get(status, "Compte non actif"),
        )

    end = parse_timestamp(profile.subscription_end)
    if end is not None and end <= now:
        return AccessResult(False, True, MSG_SUBSCRIPTION_EXPIRED)

    balance = profile.tokens_balance or 0
    if balance <= 0 or balance < tokens_required:
        return AccessResult(
            False,
            True,
            MSG_NO_TOKENS,
            tokens_required=tokens_required or None,
        )

    if profile.role == "premium" and end is not None:
        return AccessResult(True, False, f"Essai gratuit actif jusqu'au {end.strftime('%d/%m/%Y')}")
    return AccessResult(True, False, "Accès complet à l'Assistant IA")


def calculate_token_cost(action_type: str, content_length: int = 0) -> int:
    base = TOKEN_BASE_COSTS.get(action_type, DEFAULT_TOKEN_COST)
    multiplier = max(1, math.ceil(max(content_length, 0) / 1000))
    return base * multiplier


def check_user_status(profile: UserProfile, store_obj=None, now: datetime = None) -> dict:
    access = check_access(profile, now=now)
    alerts = check_user_alerts(profile, store_obj=store_obj, now=now)
    return {
        "success": True,
        "user": profile.public_dict(),
        "access": {
            "can_access_ai": access.can_access_ai,
            "needs_upgrade": access.needs_upgrade,
            "message": access.message,
        },
        "alerts": [a.to_dict() for a in alerts],
    }


def consume_tokens(profile: UserProfile, amount: int, store_obj=None) -> dict:
    store_ref = store_obj or store

    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        return {"success": False, "error": "Montant de jetons invalide"}

    if profile.role == "admin":
        return {
            "success": True,
            "tokens_consumed": amount,
            "remaining_balance": ADMIN_UNLIMITED_BALANCE,
        }

    remaining = store_ref.debit_tokens(profile.id, amount)
    if remaining is None:
        return {
            "success": False,
            "error": "Solde de jetons insuffisant",
            "needs_upgrade": True,
        }

    return {"success": True, "tokens_consumed": amount, "remaining_balance": remaining}


def signup(
    email: str,
    name: str = None,
    grant_free_trial: bool = False,
    store_obj=None,
    now: datetime = None,
) -> dict:
    store_ref = store_obj or store
    now = now or _utcnow()

    email = (email or "").strip().lower()
    if not email or "@" not in email:
        return {"success": False, "error": "Adresse email invalide"}

    if not load_site_settings(store_ref).registration_enabled:
        return {"success": False, "error": "Les inscriptions sont fermées"}

    trial = load_trial_config(store_ref)
    trial_granted = bool(grant_free_trial) and trial.enabled
    subscription_end = now + timedelta(days=trial.duration_days)

    try:
        user = store_ref.create_user(
            email=email,
            name=name,
            role="premium",
            subscription_type="premium",
            subscription_status="active",
            subscription_start=now.isoformat(),
            subscription_end=subscription_end.isoformat(),
            tokens_balance=trial.tokens_amount if trial_granted else 0,
            trial_used=trial_granted,
        )
    except sqlite3.IntegrityError:
        return {"success": False, "error": "Un compte existe déjà avec cette adresse email"}

    LOGGER.info("Signed up %s (trial=%s)", email, trial_granted)
    return {
        "success": True,
        "message": "Compte créé avec succès",
        "user_id": user.id,
        "access_token": user.access_token,
        "trial_granted": trial_granted,
        "trial_config": {
            **asdict(trial),
            "expires_at": subscription_end.isoformat(),
        } if trial_granted else None,
    }
