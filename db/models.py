import json
from dataclasses import dataclass
from typing import Optional

@dataclass
class UserProfile:
    id: int
    email: str
    name: Optional[str]
    role: str                   # 'admin' | 'pro' | 'premium'
    subscription_type: Optional[str]
    subscription_status: Optional[str]  # 'active' | 'inactive' | 'expired'
    subscription_start: Optional[str]
    subscription_end: Optional[str]     # ISO timestamp
    tokens_balance: int
    trial_used: bool
    access_token: Optional[str]
    created_at: str

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Utilisateur"

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "subscription_type": self.subscription_type,
            "subscription_status": self.subscription_status,
            "subscription_end": self.subscription_end,
            "tokens_balance": self.tokens_balance,
            "trial_used": bool(self.trial_used),
            "created_at": self.created_at,
        }

@dataclass
class AlertRule:
    id: int
    name: str
    description: Optional[str]
    trigger_type: str           # 'login' | 'assistant_access' | 'scheduled'
    target: str                 # 'subscription' | 'tokens' | 'general'
    comparator: str             # '<' | '<=' | '=' | '>=' | '>'
    threshold: float
    severity: str               # 'info' | 'warning' | 'error'
    message_template: str
    applies_to_role: str        # 'pro' | 'premium' | 'any'
    is_blocking: bool
    is_active: bool
    metadata_json: Optional[str]
    created_at: str
    updated_at: str

    @property
    def metadata(self) -> dict:
        try:
            data = json.loads(self.metadata_json or "{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def api_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "triggerType": self.trigger_type,
            "target": self.target,
            "comparator": self.comparator,
            "threshold": self.threshold,
            "severity": self.severity,
            "messageTemplate": self.message_template,
            "appliesToRole": self.applies_to_role,
            "isBlocking": bool(self.is_blocking),
            "isActive": bool(self.is_active),
            "metadata": self.metadata,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

@dataclass
class SystemSetting:
    key: str
    value: Optional[str]
    description: Optional[str]
    category: Optional[str]
    updated_at: str

# Allowed values for alert rule columns
ALERT_TRIGGER_TYPES = {'login', 'assistant_access', 'scheduled'}
ALERT_TARGETS = {'subscription', 'tokens', 'general'}
ALERT_COMPARATORS = {'<', '<=', '=', '>=', '>'}
ALERT_SEVERITIES = {'info', 'warning', 'error'}
ALERT_ROLES = {'pro', 'premium', 'any'}

USER_ROLES = {'admin', 'pro', 'premium'}
