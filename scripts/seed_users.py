#!/usr/bin/env python3
"""
Seed a development database with an admin, an owner with a few vault entries,
and a dependent linked to that owner. Prints the ids to use as X-User-Id.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from legacy_vault.core.config import DB_PATH
from legacy_vault.core.errors import Conflict
from legacy_vault.core.schema import Category, Role
from legacy_vault.core.services import build_services


def main():
    parser = argparse.ArgumentParser(description="Seed demo users")
    parser.add_argument("--db", default=DB_PATH, help="Database path")
    args = parser.parse_args()

    services = build_services(args.db)
    try:
        admin = services.users.create_user("Admin", "admin@example.com", Role.ADMIN)
        owner = services.users.create_user("Olivia Owner", "owner@example.com", Role.OWNER)
        dependent = services.users.create_user("Dan Dependent", "dependent@example.com", Role.DEPENDENT)
    except Conflict as e:
        print(f"Already seeded: {e.message}")
        sys.exit(1)

    services.entries.add_entry(owner.id, Category.ASSETS, "Savings account", "Bank: Example Bank")
    services.entries.add_entry(owner.id, Category.EMERGENCY, "Doctor", "Dr. Smith, 555-0100")
    services.entries.add_entry(owner.id, Category.NOTES, "Letter", "Read this first.")
    services.registry.add_dependent(owner.id, dependent.email, {"assets": True, "emergency": True})

    for user in (admin, owner, dependent):
        print(f"{user.role.value:10} {user.email:25} {user.id}")


if __name__ == "__main__":
    main()
