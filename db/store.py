import sqlite3
import os
import secrets
from typing import Iterable, Optional

from .models import UserProfile, AlertRule, SystemSetting

DB_PATH = os.path.expanduser("~/.misan/misan.db")
SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")

_ALERT_RULE_COLUMNS = (
    "name",
    "description",
    "trigger_type",
    "target",
    "comparator",
    "threshold",
    "severity",
    "message_template",
    "applies_to_role",
    "is_blocking",
    "is_active",
    "metadata_json",
)


class DataStore:
    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def init_db(self):
        with open(SCHEMA_PATH) as f:
            schema = f.read()
        with self._conn() as conn:
            conn.executescript(schema)

    # ── Users ────────────────────────────────────────────────

    def create_user(
        self,
        email: str,
        name: str = None,
        role: str = "premium",
        subscription_type: str = None,
        subscription_status: str = "active",
        subscription_start: str = None,
        subscription_end: str = None,
        tokens_balance: int = 0,
        trial_used: bool = False,
        access_token: str = None,
    ) -> UserProfile:
        token = access_token or secrets.token_hex(24)
        with self._conn() as conn:
            cur = conn.execute(
                """INSERT INTO users(email,name,role,subscription_type,subscription_status,
                   subscription_start,subscription_end,tokens_balance,trial_used,access_token)
                   VALUES(?,?,?,?,?,?,?,?,?,?)""",
                (
                    email.strip().lower(),
                    name,
                    role,
                    subscription_type or role,
                    subscription_status,
                    subscription_start,
                    subscription_end,
                    int(tokens_balance),
                    1 if trial_used else 0,
                    token,
                ),
            )
            row = conn.execute(
                "SELECT * FROM users WHERE id=?", (cur.lastrowid,)
            ).fetchone()
            return UserProfile(**dict(row))

    def get_user(self, user_id: int) -> Optional[UserProfile]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id=?", (user_id,)
            ).fetchone()
            return UserProfile(**dict(row)) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserProfile]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email=?", (email.strip().lower(),)
            ).fetchone()
            return UserProfile(**dict(row)) if row else None

    def get_user_by_token(self, access_token: str) -> Optional[UserProfile]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE access_token=?", (access_token,)
            ).fetchone()
            return UserProfile(**dict(row)) if row else None

    def set_tokens_balance(self, user_id: int, tokens_balance: int):
        with self._conn() as conn:
            conn.execute(
                "UPDATE users SET tokens_balance=? WHERE id=?",
                (int(tokens_balance), user_id),
            )

    def debit_tokens(self, user_id: int, amount: int) -> Optional[int]:
        """Atomically subtract `amount`; returns the new balance, or None if too low."""
        with self._conn() as conn:
            cur = conn.execute(
                "UPDATE users SET tokens_balance = tokens_balance - ? "
                "WHERE id=? AND tokens_balance >= ?",
                (int(amount), user_id, int(amount)),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT tokens_balance FROM users WHERE id=?", (user_id,)
            ).fetchone()
            return row["tokens_balance"]

    def set_subscription(
        self,
        user_id: int,
        status: str,
        subscription_end: str = None,
    ):
        with self._conn() as conn:
            conn.execute(
                "UPDATE users SET subscription_status=?, "
                "subscription_end=COALESCE(?, subscription_end) WHERE id=?",
                (status, subscription_end, user_id),
            )

    # ── Alert rules ──────────────────────────────────────────

    def list_alert_rules(self) -> list[AlertRule]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM alert_rules ORDER BY target, threshold, name"
            ).fetchall()
            return [AlertRule(**dict(r)) for r in rows]

    def list_active_alert_rules(self, role: str) -> list[AlertRule]:
        """Active rules for `role` (plus 'any'), in evaluation order."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM alert_rules "
                "WHERE is_active=1 AND applies_to_role IN ('any', ?) "
                "ORDER BY target, threshold, name",
                (role,),
            ).fetchall()
            return [AlertRule(**dict(r)) for r in rows]

    def get_alert_rule(self, rule_id: int) -> Optional[AlertRule]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM alert_rules WHERE id=?", (rule_id,)
            ).fetchone()
            return AlertRule(**dict(row)) if row else None

    def create_alert_rule(self, data: dict) -> int:
        values = [data.get(col) for col in _ALERT_RULE_COLUMNS]
        placeholders = ",".join("?" for _ in _ALERT_RULE_COLUMNS)
        with self._conn() as conn:
            cur = conn.execute(
                f"INSERT INTO alert_rules({','.join(_ALERT_RULE_COLUMNS)}) "
                f"VALUES({placeholders})",
                values,
            )
            return cur.lastrowid

    def update_alert_rule(self, rule_id: int, data: dict) -> bool:
        """Returns False when the rule does not exist."""
        cols = [col for col in _ALERT_RULE_COLUMNS if col in data]
        if not cols:
            return self.get_alert_rule(rule_id) is not None
        assignments = ", ".join(f"{col}=?" for col in cols)
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE alert_rules SET {assignments}, updated_at=datetime('now') "
                "WHERE id=?",
                [data[col] for col in cols] + [rule_id],
            )
            return cur.rowcount > 0

    def delete_alert_rule(self, rule_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM alert_rules WHERE id=?", (rule_id,))
            return cur.rowcount > 0

    # ── System settings ──────────────────────────────────────

    def get_settings(self, keys: Iterable[str] = None) -> dict[str, str]:
        """Returns {key: value}; restricted to `keys` when given."""
        with self._conn() as conn:
            if keys is None:
                rows = conn.execute("SELECT key, value FROM system_settings").fetchall()
            else:
                keys = list(keys)
                if not keys:
                    return {}
                placeholders = ",".join("?" for _ in keys)
                rows = conn.execute(
                    f"SELECT key, value FROM system_settings WHERE key IN ({placeholders})",
                    keys,
                ).fetchall()
        return {row["key"]: row["value"] for row in rows}

    def get_setting(self, key: str) -> Optional[str]:
        return self.get_settings([key]).get(key)

    def list_settings(self, category: str = None) -> list[SystemSetting]:
        with self._conn() as conn:
            if category:
                rows = conn.execute(
                    "SELECT * FROM system_settings WHERE category=? ORDER BY key",
                    (category,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM system_settings ORDER BY key"
                ).fetchall()
            return [SystemSetting(**dict(r)) for r in rows]

    def upsert_settings(self, records: list[dict]):
        """records: [{"key", "value", "description"?, "category"?}, ...]"""
        with self._conn() as conn:
            for rec in records:
                conn.execute(
                    """INSERT INTO system_settings(key,value,description,category,updated_at)
                       VALUES(?,?,?,?,datetime('now'))
                       ON CONFLICT(key) DO UPDATE SET
                         value=excluded.value,
                         description=COALESCE(excluded.description, system_settings.description),
                         category=COALESCE(excluded.category, system_settings.category),
                         updated_at=excluded.updated_at""",
                    (
                        rec["key"],
                        rec.get("value"),
                        rec.get("description"),
                        rec.get("category"),
                    ),
                )
