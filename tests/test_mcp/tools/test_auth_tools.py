"""Tests for the auth_login, auth_logout and auth_whoami tools."""

from __future__ import annotations

import pytest

from specsync.errors import NotAuthenticated, RemoteFetchError
from specsync.mcp.tools.auth import AUTH_SPECS
from specsync.mcp.tools.registry import ToolRegistry


@pytest.fixture
def registry():
    return ToolRegistry(AUTH_SPECS)


class TestAuthLogin:
    async def test_success(self, registry, server_context, mock_verifier, settings_store):
        mock_verifier.verify.return_value = {
            "userId": "u-2",
            "email": "grace@example.com",
            "name": "Grace",
        }

        result = await registry.call_tool("auth_login", {"token": " tok-new "}, server_context)

        assert not result.isError
        assert result.content[0].text == "Logged in as Grace"
        assert result.structuredContent == {
            "user_id": "u-2",
            "email": "grace@example.com",
            "name": "Grace",
        }
        mock_verifier.verify.assert_called_once_with("tok-new")
        assert settings_store.get("authToken") == "tok-new"

    @pytest.mark.parametrize("args", [{}, {"token": ""}, {"token": "   "}])
    async def test_missing_token(self, registry, server_context, mock_verifier, args):
        result = await registry.call_tool("auth_login", args, server_context)

        assert result.isError
        assert "validation_error" in result.content[0].text
        mock_verifier.verify.assert_not_called()

    async def test_rejected_token(self, registry, server_context, mock_verifier, settings_store):
        mock_verifier.verify.side_effect = NotAuthenticated("Token rejected (401)")

        result = await registry.call_tool("auth_login", {"token": "bad"}, server_context)

        assert result.isError
        assert "Login failed: Token rejected (401)" in result.content[0].text
        assert settings_store.get("authToken") == "tok-123"

    async def test_dashboard_unreachable(self, registry, server_context, mock_verifier):
        mock_verifier.verify.side_effect = RemoteFetchError("Connection refused")

        result = await registry.call_tool("auth_login", {"token": "tok"}, server_context)

        assert result.isError
        assert "Connection refused" in result.content[0].text


class TestAuthLogout:
    async def test_clears_session_and_watchers(self, registry, server_context, project_root):
        await server_context.watcher.start("proj-1", project_root)

        result = await registry.call_tool("auth_logout", {}, server_context)

        assert result.content[0].text == "Logged out"
        assert not server_context.auth.is_authenticated()
        assert server_context.watcher.watched_projects() == []


class TestAuthWhoami:
    async def test_cached_profile(self, registry, server_context, mock_verifier):
        result = await registry.call_tool("auth_whoami", {}, server_context)

        text = result.content[0].text
        assert "User: Ada" in text
        assert "Email: ada@example.com" in text
        assert "Dashboard: https://dashboard.example.com" in text
        assert result.structuredContent["authenticated"] is True
        mock_verifier.verify.assert_not_called()

    async def test_refresh_updates_profile(self, registry, server_context, mock_verifier, settings_store):
        mock_verifier.verify.return_value = {"userId": "u-1", "email": "ada@new.example.com", "name": "Ada L."}

        result = await registry.call_tool("auth_whoami", {"refresh": True}, server_context)

        assert "User: Ada L." in result.content[0].text
        assert settings_store.get("userEmail") == "ada@new.example.com"

    async def test_refresh_with_revoked_token(self, registry, server_context, mock_verifier):
        mock_verifier.verify.side_effect = NotAuthenticated("Token rejected (401)")

        result = await registry.call_tool("auth_whoami", {"refresh": True}, server_context)

        assert result.content[0].text == "Not logged in"
        assert not server_context.auth.is_authenticated()

    async def test_logged_out(self, registry, server_context):
        server_context.auth.logout()

        result = await registry.call_tool("auth_whoami", {}, server_context)

        assert result.structuredContent == {"authenticated": False}
