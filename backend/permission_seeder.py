"""
Permission Seeder - idempotent roles / permissions / role-permission seeding
"""

from typing import Dict, List, Optional, Any
from datetime import datetime, timezone
import uuid
import logging

from permission_definitions import (
    GUARD,
    DEFAULT_ROLES,
    all_permissions,
    admin_mappings,
    basic_mappings,
)
from permission_module_resolver import resolve

logger = logging.getLogger(__name__)


class PermissionSeeder:
    """Seeds roles, permissions and role_has_permissions. Safe to run repeatedly."""

    def __init__(self, db, guard: str = GUARD):
        self.db = db
        self.guard = guard

    async def seed_roles(self) -> int:
        """Insert the default roles when the roles collection is empty"""
        if await self.db.roles.count_documents({}) > 0:
            return 0

        now = datetime.now(timezone.utc).isoformat()
        for role in DEFAULT_ROLES:
            await self.db.roles.insert_one({
                "id": str(uuid.uuid4()),
                "guard_name": self.guard,
                "created_at": now,
                "updated_at": now,
                **role,
            })
        logger.info(f"Seeded {len(DEFAULT_ROLES)} default roles")
        return len(DEFAULT_ROLES)

    async def seed_permissions(self) -> int:
        """Upsert the canonical catalog keyed by (name, guard_name)"""
        inserted = 0
        now = datetime.now(timezone.utc).isoformat()

        for permission in all_permissions():
            result = await self.db.permissions.update_one(
                {"name": permission["name"], "guard_name": permission["guard_name"]},
                {"$setOnInsert": {
                    "id": str(uuid.uuid4()),
                    "name": permission["name"],
                    "guard_name": permission["guard_name"],
                    "module": resolve(permission["name"]),
                    "created_at": now,
                    "updated_at": now,
                }},
                upsert=True
            )
            if result.upserted_id is not None:
                inserted += 1

        logger.info(f"Seeded {inserted} new permissions")
        return inserted

    async def _id_map(self, collection) -> Dict[str, str]:
        docs = await collection.find({"guard_name": self.guard}, {"_id": 0, "id": 1, "name": 1}).to_list(None)
        return {doc["name"]: doc["id"] for doc in docs}

    async def seed_role_permissions(
        self,
        multi_tenant: bool = False,
        extra_mappings: Optional[List[Dict[str, Any]]] = None
    ) -> int:
        """
        Link permissions to roles.

        Single-tenant deployments give Admin every permission; multi-tenant
        deployments get the basic subset. extra_mappings carries tenant package
        rows, either {permission, role} names or {permission_id, role_id} ids.
        Rows whose names do not resolve are skipped.
        """
        permission_ids = await self._id_map(self.db.permissions)
        role_ids = await self._id_map(self.db.roles)

        mappings = basic_mappings() if multi_tenant else admin_mappings()
        mappings = mappings + list(extra_mappings or [])

        inserted = 0
        skipped = 0
        for row in mappings:
            if "permission_id" in row and "role_id" in row:
                permission_id = row["permission_id"]
                role_id = row["role_id"]
            else:
                permission_id = permission_ids.get(row.get("permission"))
                role_id = role_ids.get(row.get("role"))

            if permission_id is None or role_id is None:
                skipped += 1
                continue

            result = await self.db.role_has_permissions.update_one(
                {"role_id": role_id, "permission_id": permission_id},
                {"$setOnInsert": {"role_id": role_id, "permission_id": permission_id}},
                upsert=True
            )
            if result.upserted_id is not None:
                inserted += 1

        if skipped:
            logger.warning(f"Skipped {skipped} role-permission mappings with unknown role or permission")
        logger.info(f"Seeded {inserted} new role-permission links")
        return inserted

    async def seed(
        self,
        multi_tenant: bool = False,
        extra_mappings: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, int]:
        """Roles, then permissions, then role-permission links"""
        return {
            "roles": await self.seed_roles(),
            "permissions": await self.seed_permissions(),
            "role_permissions": await self.seed_role_permissions(multi_tenant, extra_mappings),
        }
