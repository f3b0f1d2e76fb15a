"""
Unit tests for portal gating.

Tests cover:
- Path prefix to role mapping
- Role checks per portal
- Paths outside the portals
"""

import pytest

from pubportal.middleware.session import can_access, portal_roles, required_roles
from pubportal.models.auth import Role


class TestRequiredRoles:
    """Test prefix matching."""

    def test_portal_prefixes(self):
        """Test each portal prefix maps to its roles."""
        assert required_roles("/api/admin/users") == (Role.ADMIN,)
        assert required_roles("/api/staff/reviews/3") == (Role.STAFF, Role.ADMIN)
        assert required_roles("/api/professor/notifications") == (Role.PROFESSOR, Role.ADMIN)

    def test_exact_prefix(self):
        """Test the bare prefix is gated too."""
        assert required_roles("/api/staff") == (Role.STAFF, Role.ADMIN)

    @pytest.mark.parametrize("path", [
        "/api/login",
        "/api/me",
        "/api/publications/search",
        "/api/administrator",
        "/health",
    ])
    def test_ungated_paths(self, path):
        """Test paths outside the portals (including look-alike prefixes)."""
        assert required_roles(path) is None

    def test_custom_api_prefix(self):
        """Test rules built for another API prefix."""
        rules = portal_roles("/v2")
        assert required_roles("/v2/admin/users", rules) == (Role.ADMIN,)
        assert required_roles("/api/admin/users", rules) is None


class TestCanAccess:
    """Test role checks."""

    @pytest.mark.parametrize("path,role,allowed", [
        ("/api/admin/users", Role.ADMIN, True),
        ("/api/admin/users", Role.STAFF, False),
        ("/api/admin/users", Role.PROFESSOR, False),
        ("/api/staff/publications", Role.STAFF, True),
        ("/api/staff/publications", Role.ADMIN, True),
        ("/api/staff/publications", Role.PROFESSOR, False),
        ("/api/professor/publications", Role.PROFESSOR, True),
        ("/api/professor/publications", Role.ADMIN, True),
        ("/api/professor/publications", Role.STAFF, False),
    ])
    def test_portal_roles(self, path, role, allowed):
        """Test the role matrix."""
        assert can_access(path, role) is allowed

    def test_no_session(self):
        """Test gated paths need a role; open paths do not."""
        assert can_access("/api/staff/search", None) is False
        assert can_access("/api/public/admin-contacts", None) is True
