"""Typed views over the system_settings key/value table."""

import json
import logging
from dataclasses import asdict, dataclass, field, fields

from misan.core.state import store
from misan.services.llm_settings_service import get_masked_llm_settings, llm_settings_record

LOGGER = logging.getLogger(__name__)

TRIAL_MIN_DAYS = 1
TRIAL_MAX_DAYS = 365
TRIAL_MAX_TOKENS = 10_000_000


def _parse_bool(value, default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value, default: int) -> int:
    if value is None:
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _parse_float(value, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _bool_str(value) -> str:
    return "true" if value else "false"


def _as_int(value):
    """Whole number from an admin payload value, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def check_trial_values(duration_days, tokens_amount) -> tuple[str, int, int]:
    """Returns (error, duration_days, tokens_amount); error is "" when both are in range."""
    days = _as_int(duration_days)
    if days is None or not TRIAL_MIN_DAYS <= days <= TRIAL_MAX_DAYS:
        return "La durée doit être entre 1 et 365 jours", 0, 0
    tokens = _as_int(tokens_amount)
    if tokens is None or not 0 <= tokens <= TRIAL_MAX_TOKENS:
        return "Le nombre de jetons doit être entre 0 et 10,000,000", 0, 0
    return "", days, tokens


@dataclass
class SiteSettings:
    site_name: str = "Misan"
    site_description: str = "Assistant IA Juridique"
    support_email: str = "support@misan.dz"
    maintenance_mode: bool = False
    registration_enabled: bool = True
    free_trial_days: int = 7
    free_trial_tokens: int = 100000

    @classmethod
    def from_settings(cls, raw: dict) -> "SiteSettings":
        base = cls()
        return cls(
            site_name=raw.get("site_name") or base.site_name,
            site_description=raw.get("site_description") or base.site_description,
            support_email=raw.get("support_email") or base.support_email,
            maintenance_mode=_parse_bool(raw.get("maintenance_mode"), base.maintenance_mode),
            registration_enabled=_parse_bool(raw.get("registration_enabled"), base.registration_enabled),
            free_trial_days=_parse_int(raw.get("trial_duration_days"), base.free_trial_days),
            free_trial_tokens=_parse_int(
                raw.get("trial_tokens", raw.get("trial_tokens_amount")), base.free_trial_tokens
            ),
        )

    def api_dict(self) -> dict:
        return {
            "siteName": self.site_name,
            "siteDescription": self.site_description,
            "supportEmail": self.support_email,
            "maintenanceMode": self.maintenance_mode,
            "registrationEnabled": self.registration_enabled,
            "freeTrialDays": self.free_trial_days,
            "freeTrialTokens": self.free_trial_tokens,
        }


@dataclass
class TrialConfig:
    duration_days: int = 7
    tokens_amount: int = 100000
    enabled: bool = True

    @classmethod
    def from_settings(cls, raw: dict) -> "TrialConfig":
        base = cls()
        return cls(
            duration_days=_parse_int(raw.get("trial_duration_days"), base.duration_days),
            tokens_amount=_parse_int(
                raw.get("trial_tokens", raw.get("trial_tokens_amount")), base.tokens_amount
            ),
            enabled=_parse_bool(raw.get("trial_enabled"), base.enabled),
        )


@dataclass
class Discount:
    threshold: float
    percentage: float


def _default_discounts() -> list:
    return [
        Discount(6, 7),
        Discount(12, 20),
        Discount(10_000_000, 10),
        Discount(20_000_000, 20),
    ]


@dataclass
class PricingSettings:
    monthly_price: float = 4000
    monthly_tokens: float = 1_000_000
    subscription_currency: str = "DA"
    price_per_million: float = 1000
    tokens_currency: str = "DA"
    discounts: list = field(default_factory=_default_discounts)
    vat_enabled: bool = True
    vat_rate: float = 20

    @classmethod
    def from_settings(cls, raw: dict) -> "PricingSettings":
        base = cls()
        discounts = base.discounts
        discounts_raw = raw.get("pricing_discounts")
        if discounts_raw:
            try:
                parsed = json.loads(discounts_raw)
            except ValueError:
                LOGGER.warning("Ignoring malformed pricing_discounts value")
                parsed = None
            if isinstance(parsed, list):
                discounts = [
                    Discount(
                        _parse_float(item.get("threshold"), 0),
                        _parse_float(item.get("percentage"), 0),
                    )
                    for item in parsed
                    if isinstance(item, dict)
                ]
        return cls(
            monthly_price=_parse_float(raw.get("pricing_subscription_monthly_price"), base.monthly_price),
            monthly_tokens=_parse_float(raw.get("pricing_subscription_monthly_tokens"), base.monthly_tokens),
            subscription_currency=raw.get("pricing_subscription_currency") or base.subscription_currency,
            price_per_million=_parse_float(raw.get("pricing_tokens_price_per_million"), base.price_per_million),
            tokens_currency=raw.get("pricing_tokens_currency") or base.tokens_currency,
            discounts=discounts,
            vat_enabled=_parse_bool(raw.get("pricing_vat_enabled"), base.vat_enabled),
            vat_rate=_parse_float(raw.get("pricing_vat_rate"), base.vat_rate),
        )

    def api_dict(self) -> dict:
        return {
            "subscription": {
                "monthlyPrice": self.monthly_price,
                "monthlyTokens": self.monthly_tokens,
                "currency": self.subscription_currency,
            },
            "tokens": {
                "pricePerMillion": self.price_per_million,
                "currency": self.tokens_currency,
            },
            "discounts": [asdict(d) for d in self.discounts],
            "vat": {"enabled": self.vat_enabled, "rate": self.vat_rate},
        }


@dataclass
class AlertSettings:
    """Switches for the hardcoded alert ladder used when alert_rules is unreadable."""

    alert_pro_subscription_20d: bool = True
    alert_pro_subscription_7d: bool = True
    alert_pro_subscription_2d: bool = True
    alert_pro_subscription_0d: bool = True
    alert_pro_tokens_100k: bool = True
    alert_pro_tokens_50k: bool = True
    alert_pro_tokens_0: bool = True
    alert_premium_subscription_5d: bool = True
    alert_premium_subscription_3d: bool = True
    alert_premium_subscription_2d: bool = True
    alert_premium_subscription_0d: bool = True
    alert_premium_tokens_50k: bool = True
    alert_premium_tokens_25k: bool = True
    alert_premium_tokens_10k: bool = True
    alert_premium_tokens_0: bool = True

    @classmethod
    def keys(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_settings(cls, raw: dict) -> "AlertSettings":
        return cls(**{
            f.name: _parse_bool(raw.get(f.name), f.default) for f in fields(cls)
        })

    def is_enabled(self, flag: str) -> bool:
        return bool(getattr(self, flag, False))


# ── Loading ────────────────────────────────────────────────────


def load_site_settings(store_obj=None) -> SiteSettings:
    store_ref = store_obj or store
    return SiteSettings.from_settings(store_ref.get_settings())


def load_trial_config(store_obj=None) -> TrialConfig:
    store_ref = store_obj or store
    return TrialConfig.from_settings(
        store_ref.get_settings(["trial_duration_days", "trial_tokens", "trial_tokens_amount", "trial_enabled"])
    )


def load_pricing_settings(store_obj=None) -> PricingSettings:
    store_ref = store_obj or store
    return PricingSettings.from_settings(store_ref.get_settings())


def load_alert_settings(store_obj=None) -> AlertSettings:
    store_ref = store_obj or store
    return AlertSettings.from_settings(store_ref.get_settings(AlertSettings.keys()))


# ── Updates ────────────────────────────────────────────────────


def _site_records(site: dict, store_obj=None) -> tuple[str, list[dict]]:
    """Returns (error, records); trial values share the trial config ranges."""
    mapping = {
        "siteName": ("site_name", str),
        "siteDescription": ("site_description", str),
        "supportEmail": ("support_email", str),
        "maintenanceMode": ("maintenance_mode", _bool_str),
        "registrationEnabled": ("registration_enabled", _bool_str),
    }
    records = []
    for api_key, (key, encode) in mapping.items():
        if api_key in site and site[api_key] is not None:
            records.append({"key": key, "value": encode(site[api_key]), "category": "general"})

    days = site.get("freeTrialDays")
    tokens = site.get("freeTrialTokens")
    if days is None and tokens is None:
        return "", records

    current = load_trial_config(store_obj)
    error, checked_days, checked_tokens = check_trial_values(
        current.duration_days if days is None else days,
        current.tokens_amount if tokens is None else tokens,
    )
    if error:
        return error, []
    if days is not None:
        records.append({"key": "trial_duration_days", "value": str(checked_days), "category": "general"})
    if tokens is not None:
        records.append({"key": "trial_tokens", "value": str(checked_tokens), "category": "general"})
    return "", records


def _pricing_records(pricing: dict) -> list[dict]:
    records = []
    subscription = pricing.get("subscription") or {}
    tokens = pricing.get("tokens") or {}
    vat = pricing.get("vat") or {}

    def add(key, value):
        records.append({"key": key, "value": value, "category": "pricing"})

    if "monthlyPrice" in subscription:
        add("pricing_subscription_monthly_price", str(subscription["monthlyPrice"]))
    if "monthlyTokens" in subscription:
        add("pricing_subscription_monthly_tokens", str(subscription["monthlyTokens"]))
    if "currency" in subscription:
        add("pricing_subscription_currency", str(subscription["currency"]))
    if "pricePerMillion" in tokens:
        add("pricing_tokens_price_per_million", str(tokens["pricePerMillion"]))
    if "currency" in tokens:
        add("pricing_tokens_currency", str(tokens["currency"]))
    if "discounts" in pricing and isinstance(pricing["discounts"], list):
        add("pricing_discounts", json.dumps(pricing["discounts"], ensure_ascii=False))
    if "enabled" in vat:
        add("pricing_vat_enabled", _bool_str(vat["enabled"]))
    if "rate" in vat:
        add("pricing_vat_rate", str(vat["rate"]))
    return records


def _alert_records(alerts: dict) -> list[dict]:
    known = set(AlertSettings.keys())
    return [
        {"key": key, "value": _bool_str(value), "category": "alerts"}
        for key, value in alerts.items()
        if key in known
    ]


def update_settings(payload: dict, store_obj=None) -> dict:
    """Upsert the known sections of an admin settings payload."""
    store_ref = store_obj or store
    payload = payload or {}

    records: list[dict] = []
    if isinstance(payload.get("settings"), dict):
        error, site_records = _site_records(payload["settings"], store_obj=store_ref)
        if error:
            return {"success": False, "error": error}
        records.extend(site_records)
    if isinstance(payload.get("pricing"), dict):
        records.extend(_pricing_records(payload["pricing"]))
    if isinstance(payload.get("alerts"), dict):
        records.extend(_alert_records(payload["alerts"]))
    if isinstance(payload.get("llm"), dict):
        records.append(llm_settings_record(payload["llm"], store_obj=store_ref))

    if not records:
        return {"success": False, "error": "Aucun paramètre fourni"}

    store_ref.upsert_settings(records)
    LOGGER.info("Updated %d system settings", len(records))
    return {"success": True, "updated": [r["key"] for r in records]}


def update_trial_config(payload: dict, store_obj=None) -> dict:
    store_ref = store_obj or store
    current = load_trial_config(store_ref)

    error, duration_days, tokens_amount = check_trial_values(
        payload.get("duration_days", current.duration_days),
        payload.get("tokens_amount", current.tokens_amount),
    )
    if error:
        return {"success": False, "error": error}
    enabled = payload.get("enabled", current.enabled)

    config = TrialConfig(duration_days=duration_days, tokens_amount=tokens_amount, enabled=bool(enabled))
    store_ref.upsert_settings([
        {"key": "trial_duration_days", "value": str(config.duration_days),
         "description": "Durée essai gratuit en jours", "category": "general"},
        {"key": "trial_tokens", "value": str(config.tokens_amount),
         "description": "Jetons inclus dans l'essai gratuit", "category": "general"},
        {"key": "trial_enabled", "value": _bool_str(config.enabled),
         "description": "Essai gratuit activé", "category": "general"},
    ])
    LOGGER.info("Free trial config updated: %s", config)
    return {"success": True, "config": asdict(config)}


def get_admin_settings(store_obj=None) -> dict:
    store_ref = store_obj or store
    raw = store_ref.get_settings()
    return {
        "success": True,
        "settings": SiteSettings.from_settings(raw).api_dict(),
        "pricing": PricingSettings.from_settings(raw).api_dict(),
        "alerts": asdict(AlertSettings.from_settings(raw)),
        "llm": get_masked_llm_settings(store_obj=store_ref),
    }
