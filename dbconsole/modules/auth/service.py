import hashlib
import time
from supabase import Client
from dbconsole.database.supabase_client import USERS_TABLE
from fastapi import HTTPException
from typing import Dict, Any

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


def _remember_user(cache_key: str, user_data: Dict[str, Any], now: float) -> None:
    """Cache a resolved user; when full, drop expired tokens first, then the oldest one"""
    if len(_AUTH_USER_CACHE) >= _AUTH_CACHE_MAX_SIZE:
        for key in [key for key, (_, expiry) in _AUTH_USER_CACHE.items() if expiry <= now]:
            del _AUTH_USER_CACHE[key]
    while len(_AUTH_USER_CACHE) >= _AUTH_CACHE_MAX_SIZE:
        del _AUTH_USER_CACHE[next(iter(_AUTH_USER_CACHE))]
    _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)


class AuthService:
    """Maps a Supabase Auth bearer token to the console's user row. Tokens are issued elsewhere."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get the console user for a bearer token. Uses short TTL cache to reduce auth API calls."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                user_data, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry:
                    return user_data
                del _AUTH_USER_CACHE[cache_key]

            user_response = self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise HTTPException(status_code=401, detail="Invalid or expired token")

            result = self.supabase.table(USERS_TABLE)\
                .select("id, username, active")\
                .eq("auth_user_id", user_response.user.id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=401, detail="No console account for this token")

            row = result.data[0]
            if row.get("active") is False:
                raise HTTPException(status_code=403, detail="User account is deactivated")

            user_data = {
                "id": row["id"],
                "username": row.get("username"),
                "active": row.get("active", True),
                "auth_user_id": user_response.user.id,
            }
            _remember_user(cache_key, user_data, now)
            return user_data
        except HTTPException:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")
