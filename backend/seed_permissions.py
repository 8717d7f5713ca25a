#!/usr/bin/env python3
"""
Seed default roles, the permission catalog and role-permission links.

Usage:
    python seed_permissions.py                 # uses MULTI_TENANT from .env
    python seed_permissions.py --multi-tenant  # restricted Admin permissions
    python seed_permissions.py --single-tenant # Admin gets every permission
"""

import argparse
import asyncio
import os
from pathlib import Path
from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient

from permission_seeder import PermissionSeeder
from unit_service import parse_loose_bool

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB connection
mongo_url = os.environ.get('MONGO_URL')
db_name = os.environ.get('DB_NAME')


async def seed(multi_tenant: bool):
    """Run the seeder once against the configured database"""
    client = AsyncIOMotorClient(mongo_url)
    db = client[db_name]

    print(f"Connecting to database: {db_name}")
    print(f"Mode: {'multi-tenant' if multi_tenant else 'single-tenant'}")

    counts = await PermissionSeeder(db).seed(multi_tenant=multi_tenant)
    print(f"✓ Inserted {counts['roles']} role(s)")
    print(f"✓ Inserted {counts['permissions']} permission(s)")
    print(f"✓ Inserted {counts['role_permissions']} role-permission link(s)")

    client.close()
    print("\nDone!")


def main():
    parser = argparse.ArgumentParser(description="Seed roles and permissions")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--multi-tenant", dest="multi_tenant", action="store_true", default=None)
    mode.add_argument("--single-tenant", dest="multi_tenant", action="store_false")
    parser.set_defaults(multi_tenant=None)
    args = parser.parse_args()

    if not mongo_url or not db_name:
        print("ERROR: MONGO_URL and DB_NAME must be set in .env file")
        raise SystemExit(1)

    multi_tenant = args.multi_tenant
    if multi_tenant is None:
        multi_tenant = bool(parse_loose_bool(os.environ.get('MULTI_TENANT', 'false')))

    asyncio.run(seed(multi_tenant))


if __name__ == "__main__":
    main()
