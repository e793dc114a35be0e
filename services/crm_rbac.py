from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


@dataclass(frozen=True)
class PagePermission:
    route: str
    admin_access: bool = True
    manager_access: bool = True
    user_access: bool = True

    def allows(self, role: Role) -> bool:
        if role is Role.ADMIN:
            return self.admin_access
        if role is Role.MANAGER:
            return self.manager_access
        return self.user_access

    def to_dict(self) -> Dict[str, Any]:
        return {
            "route": self.route,
            "admin_access": self.admin_access,
            "manager_access": self.manager_access,
            "user_access": self.user_access,
        }


@dataclass(frozen=True)
class MenuItem:
    title: str
    url: str
    route: str


@dataclass(frozen=True)
class DashboardCard:
    key: str
    title: str
    route: str


MENU_ITEMS = [
    MenuItem("Dashboard", "/", "/dashboard"),
    MenuItem("Accounts", "/accounts", "/accounts"),
    MenuItem("Contacts", "/contacts", "/contacts"),
    MenuItem("Leads", "/leads", "/leads"),
    MenuItem("Meetings", "/meetings", "/meetings"),
    MenuItem("Deals", "/deals", "/deals"),
    MenuItem("Tasks", "/tasks", "/tasks"),
    MenuItem("Settings", "/settings", "/settings"),
]

DASHBOARD_CARDS = [
    DashboardCard("leads", "My Leads", "/leads"),
    DashboardCard("contacts", "My Contacts", "/contacts"),
    DashboardCard("accounts", "My Accounts", "/accounts"),
    DashboardCard("meetings", "My Meetings", "/meetings"),
    DashboardCard("deals", "My Deals", "/deals"),
    DashboardCard("tasks", "My Tasks", "/tasks"),
]


def normalize_role(raw_role: Any) -> Role:
    # Unknown or missing roles fall back to the least privileged tier.
    if isinstance(raw_role, Role):
        return raw_role
    value = str(raw_role or "").strip().lower()
    for role in Role:
        if role.value == value:
            return role
    return Role.USER


def can_manage_permissions(role: Role) -> bool:
    return role is Role.ADMIN


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def to_page_permission(raw: Any) -> Optional[PagePermission]:
    if isinstance(raw, PagePermission):
        return raw
    if isinstance(raw, Mapping):
        route = str(raw.get("route") or "").strip()
        getter = raw.get
    else:
        route = str(getattr(raw, "route", "") or "").strip()
        getter = lambda name: getattr(raw, name, None)  # noqa: E731
    if not route:
        return None
    return PagePermission(
        route=route,
        admin_access=_as_bool(getter("admin_access")),
        manager_access=_as_bool(getter("manager_access")),
        user_access=_as_bool(getter("user_access")),
    )


def permission_map(records: Iterable[Any]) -> Dict[str, PagePermission]:
    out: Dict[str, PagePermission] = {}
    for raw in records or []:
        permission = to_page_permission(raw)
        if permission:
            out[permission.route] = permission
    return out


def has_access(role: Any, route: str, permissions: Mapping[str, PagePermission]) -> bool:
    permission = permissions.get(route)
    if permission is None:
        return True
    return permission.allows(normalize_role(role))


def visible_menu_items(role: Any, permissions: Mapping[str, PagePermission]) -> List[MenuItem]:
    return [item for item in MENU_ITEMS if has_access(role, item.route, permissions)]


def visible_dashboard_cards(role: Any, permissions: Mapping[str, PagePermission]) -> List[DashboardCard]:
    return [card for card in DASHBOARD_CARDS if has_access(role, card.route, permissions)]
