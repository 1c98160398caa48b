"""Operator commands for the Misan datastore.

Usage:
    python -m misan.admin_cli create-admin <email> [name]
    python -m misan.admin_cli rules
"""
import sqlite3
import sys

from misan.core.state import store

USAGE = (
    "Usage:\n"
    "  python -m misan.admin_cli create-admin <email> [name]\n"
    "  python -m misan.admin_cli rules"
)


def create_admin(email: str, name: str = None, store_obj=None) -> dict:
    store_ref = store_obj or store
    try:
        user = store_ref.create_user(email, name=name, role="admin", subscription_type="admin")
    except sqlite3.IntegrityError:
        return {"success": False, "error": f"{email} already exists"}
    return {"success": True, "user_id": user.id, "access_token": user.access_token}


def main(argv=None, store_obj=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    store_ref = store_obj or store

    if len(args) >= 2 and args[0] == "create-admin":
        result = create_admin(args[1], args[2] if len(args) > 2 else None, store_obj=store_ref)
        if not result["success"]:
            print(result["error"])
            return 1
        print(f"Admin {result['user_id']} created")
        print(f"Access token: {result['access_token']}")
        return 0

    if args and args[0] == "rules":
        rules = store_ref.list_alert_rules()
        print(f"Alert rules: {len(rules)}")
        for r in rules:
            state = "on" if r.is_active else "off"
            print(f"  - [{state}] {r.id}: {r.name} ({r.target} {r.comparator} {r.threshold:g}, {r.applies_to_role})")
        return 0

    print(USAGE)
    return 2


if __name__ == "__main__":
    sys.exit(main())
