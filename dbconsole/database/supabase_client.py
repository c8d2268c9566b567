import logging

from supabase import create_client, Client
from dbconsole.config.settings import settings

logger = logging.getLogger(__name__)

"""
Expected Supabase table structure:

users:
- id: bigint (primary key)
- auth_user_id: uuid (Supabase Auth user, unique)
- username: text (not null, unique)
- active: boolean (default: true)

roles:
- id: bigint (primary key)
- name: text (not null, unique)
- description: text (nullable)
- is_system_role: boolean (default: false)
- role_class: text (nullable) - STANDARD | SYSTEM_ADMIN | SYSTEM_VIEWER, null on legacy rows

role_permissions:
- id: bigint (primary key)
- role_id: bigint (foreign key to roles.id, not null)
- permission_type: text (not null) - READ | WRITE | CREATE | DELETE
- schema_name: text (nullable) - null means every schema
- table_name: text (nullable)
- view_name: text (nullable)
- unique constraint on (role_id, permission_type, schema_name, table_name, view_name)

user_roles:
- id: bigint (primary key)
- user_id: bigint (foreign key to users.id, not null)
- role_id: bigint (foreign key to roles.id, not null)
- unique constraint on (user_id, role_id)
"""
USERS_TABLE = "users"
ROLES_TABLE = "roles"
ROLE_PERMISSIONS_TABLE = "role_permissions"
USER_ROLES_TABLE = "user_roles"


class SupabaseClient:
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            logger.info("Creating Supabase client")
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Used when seeding system roles."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client or cls.get_client()


def get_supabase() -> Client:
    return SupabaseClient.get_client()
