import time

import pytest
from fastapi import HTTPException

from dbconsole.modules.auth import service as auth_module
from dbconsole.modules.auth.service import AuthService


@pytest.fixture(autouse=True)
def clear_auth_cache():
    auth_module._AUTH_USER_CACHE.clear()
    yield
    auth_module._AUTH_USER_CACHE.clear()


def test_token_maps_to_console_user(supabase):
    user = AuthService(supabase).get_current_user("token-bob")
    assert user == {"id": 2, "username": "bob", "active": True, "auth_user_id": "auth-bob"}


def test_repeated_token_is_served_from_cache(supabase):
    service = AuthService(supabase)
    service.get_current_user("token-alice")
    service.get_current_user("token-alice")
    assert supabase.calls[("users", "select")] == 1


@pytest.mark.parametrize("token, status_code", [
    ("token-dave", 403),
    ("token-ghost", 401),
    ("not-a-token", 401),
])
def test_rejected_tokens(supabase, token, status_code):
    with pytest.raises(HTTPException) as exc_info:
        AuthService(supabase).get_current_user(token)
    assert exc_info.value.status_code == status_code


def test_full_cache_drops_expired_tokens_first(supabase, monkeypatch):
    monkeypatch.setattr(auth_module, "_AUTH_CACHE_MAX_SIZE", 2)
    fresh = time.monotonic() + 1000
    auth_module._AUTH_USER_CACHE["expired"] = ({"id": 99}, 0.0)
    auth_module._AUTH_USER_CACHE["fresh"] = ({"id": 98}, fresh)

    AuthService(supabase).get_current_user("token-bob")
    assert "expired" not in auth_module._AUTH_USER_CACHE
    assert "fresh" in auth_module._AUTH_USER_CACHE
    assert len(auth_module._AUTH_USER_CACHE) == 2


def test_full_cache_of_live_tokens_drops_the_oldest(supabase, monkeypatch):
    monkeypatch.setattr(auth_module, "_AUTH_CACHE_MAX_SIZE", 2)
    fresh = time.monotonic() + 1000
    auth_module._AUTH_USER_CACHE["oldest"] = ({"id": 99}, fresh)
    auth_module._AUTH_USER_CACHE["newer"] = ({"id": 98}, fresh)

    service = AuthService(supabase)
    service.get_current_user("token-bob")
    assert "oldest" not in auth_module._AUTH_USER_CACHE
    service.get_current_user("token-bob")
    assert supabase.calls[("users", "select")] == 1
