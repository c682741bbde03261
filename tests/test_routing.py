"""Root router: which screen a visitor sees."""

import pytest

from portal.models import Identity, Profile, Role
from portal.routing import DASHBOARD_FOR_ROLE, SCREEN_TEMPLATES, Screen, choose_screen

IDENTITY = Identity(id="u1", email="u1@example.com")


def _profile(role) -> Profile:
    return Profile(id="u1", email="u1@example.com", full_name="User One", role=role)


class TestChooseScreen:
    def test_loading_shows_spinner(self):
        assert choose_screen(True, None, None) is Screen.SPINNER
        assert choose_screen(True, IDENTITY, _profile("admin")) is Screen.SPINNER

    def test_no_identity_shows_login(self):
        assert choose_screen(False, None, None) is Screen.LOGIN

    def test_identity_without_profile_shows_login(self):
        assert choose_screen(False, IDENTITY, None) is Screen.LOGIN

    def test_admin_dashboard(self):
        assert choose_screen(False, IDENTITY, _profile("admin")) is Screen.ADMIN_DASHBOARD

    def test_citizen_dashboard(self):
        assert choose_screen(False, IDENTITY, _profile("citizen")) is Screen.CITIZEN_DASHBOARD

    @pytest.mark.parametrize("role", ["superuser", "", None, "ADMIN"])
    def test_unknown_role_treated_as_citizen(self, role):
        profile = _profile(role)
        assert profile.role is Role.CITIZEN
        assert choose_screen(False, IDENTITY, profile) is Screen.CITIZEN_DASHBOARD

    def test_every_role_and_screen_mapped(self):
        assert set(DASHBOARD_FOR_ROLE) == set(Role)
        assert set(SCREEN_TEMPLATES) == set(Screen)
