# Root router: which screen to render for the current session

from enum import Enum
from typing import Optional

from .models import Identity, Profile, Role


class Screen(str, Enum):
    SPINNER = "spinner"
    LOGIN = "login"
    ADMIN_DASHBOARD = "admin_dashboard"
    CITIZEN_DASHBOARD = "citizen_dashboard"


DASHBOARD_FOR_ROLE = {
    Role.ADMIN: Screen.ADMIN_DASHBOARD,
    Role.CITIZEN: Screen.CITIZEN_DASHBOARD,
}

SCREEN_TEMPLATES = {
    Screen.SPINNER: "loading.html",
    Screen.LOGIN: "login.html",
    Screen.ADMIN_DASHBOARD: "admin_dashboard.html",
    Screen.CITIZEN_DASHBOARD: "citizen_dashboard.html",
}


def choose_screen(loading: bool, identity: Optional[Identity],
                  profile: Optional[Profile]) -> Screen:
    if loading:
        return Screen.SPINNER
    if identity is None or profile is None:
        return Screen.LOGIN
    return DASHBOARD_FOR_ROLE[profile.role]
