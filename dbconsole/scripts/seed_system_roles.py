"""
Seed System Roles Script
Upserts the ADMIN and VIEWER system roles and their grants from the config.
Run with: python -m dbconsole.scripts.seed_system_roles
"""

import logging

from supabase import Client

from dbconsole.config.permissions_config import get_system_role_matrix
from dbconsole.database.supabase_client import ROLE_PERMISSIONS_TABLE, ROLES_TABLE, SupabaseClient

logger = logging.getLogger(__name__)


def seed_system_roles(supabase: Client) -> int:
    """Create or update every system role; returns the number of roles processed"""
    logger.info("Seeding system roles...")
    created_count = 0
    updated_count = 0

    for role in get_system_role_matrix():
        existing = supabase.table(ROLES_TABLE)\
            .select("id")\
            .eq("name", role["name"])\
            .execute()

        if existing.data:
            role_id = existing.data[0]["id"]
            supabase.table(ROLES_TABLE)\
                .update({
                    "description": role["description"],
                    "is_system_role": True,
                    "role_class": role["role_class"]
                })\
                .eq("id", role_id)\
                .execute()
            updated_count += 1
            logger.debug(f"Updated system role: {role['name']}")
        else:
            result = supabase.table(ROLES_TABLE).insert({
                "name": role["name"],
                "description": role["description"],
                "is_system_role": True,
                "role_class": role["role_class"]
            }).execute()
            role_id = result.data[0]["id"]
            created_count += 1
            logger.debug(f"Created system role: {role['name']}")

        sync_role_permissions(supabase, role_id, role["name"], role["permissions"])

    logger.info(f"System roles seeded: {created_count} created, {updated_count} updated")
    return created_count + updated_count


def sync_role_permissions(supabase: Client, role_id: int, role_name: str, permissions: list):
    """Replace a system role's grants with the configured ones"""
    supabase.table(ROLE_PERMISSIONS_TABLE)\
        .delete()\
        .eq("role_id", role_id)\
        .execute()
    if permissions:
        supabase.table(ROLE_PERMISSIONS_TABLE)\
            .insert([dict(permission, role_id=role_id) for permission in permissions])\
            .execute()
    logger.debug(f"Synced {len(permissions)} permissions for {role_name}")


def main():
    logging.basicConfig(level=logging.INFO)
    seed_system_roles(SupabaseClient.get_service_client())


if __name__ == "__main__":
    main()
