"""
Setup Admin Account
===================
Creates (or reactivates) an admin account with a temporary password.
An existing account with the same email or username is promoted and its
password reset.

Usage (from project root, with the package installed):
    python backend/scripts/setup_admin.py --email admin@hospital.com
    python backend/scripts/setup_admin.py --email jane.doe@hospital.com --first-name Jane --last-name Doe

Flags:
    --email      EMAIL   (required) The admin's email address
    --username   NAME    (optional) Login name. Default: email local part
    --first-name NAME    (optional) First name. If omitted, derived from email.
    --last-name  NAME    (optional) Last name. If omitted, derived from email.
"""

import argparse
import secrets
import sys

from sqlalchemy.exc import SQLAlchemyError

from healthchain.core.database import SessionLocal, init_db, wait_for_database
from healthchain.core.security import hash_password
from healthchain.core.transactions import transaction
from healthchain.models.user import User, UserRole


# =============================================================================
# Helpers
# =============================================================================


def generate_temp_password() -> str:
    """Temporary password that satisfies the strength rules."""
    return f"{secrets.token_urlsafe(9)}Aa1!"


def parse_name_from_email(email: str) -> tuple:
    """
    Derive a first/last name from the email local part.
    Examples:
        admin@hospital.com       -> ("Admin", "User")
        jane.smith@hospital.com  -> ("Jane", "Smith")
    """
    local = email.split("@")[0]
    if "." in local:
        parts = local.split(".", 1)
        return parts[0].capitalize(), parts[1].capitalize()
    return local.capitalize(), "User"


# =============================================================================
# Main
# =============================================================================

def main():
    parser = argparse.ArgumentParser(description="Create an admin account for HealthChain EMR.")
    parser.add_argument("--email", required=True, help="The admin's email address (required)")
    parser.add_argument("--username", default=None, help="Login name (default: email local part)")
    parser.add_argument("--first-name", default=None, help="First name (derived from email if omitted)")
    parser.add_argument("--last-name", default=None, help="Last name (derived from email if omitted)")
    args = parser.parse_args()

    email = args.email.strip().lower()
    username = (args.username or email.split("@")[0]).strip().lower()
    derived_first, derived_last = parse_name_from_email(email)
    first_name = args.first_name.strip() if args.first_name else derived_first
    last_name = args.last_name.strip() if args.last_name else derived_last

    print("=" * 60)
    print("  SETUP ADMIN ACCOUNT")
    print("=" * 60)

    print("\n1. Connecting to database...")
    wait_for_database()
    init_db()
    print("  [OK] Connected, tables ready")

    temp_password = generate_temp_password()
    db = SessionLocal()
    try:
        existing = db.query(User).filter((User.email == email) | (User.username == username)).first()
        with transaction(db):
            if existing:
                print(f"\n2. Resetting existing account {existing.email}...")
                existing.role = UserRole.ADMIN
                existing.is_active = True
                existing.password_hash = hash_password(temp_password)
                user = existing
            else:
                print("\n2. Creating admin account...")
                user = User(
                    email=email,
                    username=username,
                    password_hash=hash_password(temp_password),
                    first_name=first_name,
                    last_name=last_name,
                    role=UserRole.ADMIN,
                    is_active=True,
                )
                db.add(user)
        print(f"  [OK] Admin ready (ID: {user.id})")
    except SQLAlchemyError as e:
        print(f"  [FAIL] Failed to write admin user: {e}")
        sys.exit(1)
    finally:
        db.close()

    print()
    print("=" * 60)
    print("  SETUP COMPLETE!")
    print("=" * 60)
    print(f"  Email:     {email}")
    print(f"  Username:  {username}")
    print(f"  Temp PW:   {temp_password}")
    print()
    print("  NEXT STEPS:")
    print("  1. Log in with POST /api/auth/login")
    print("  2. Change the password with POST /api/auth/change-password")
    print()


if __name__ == "__main__":
    main()
