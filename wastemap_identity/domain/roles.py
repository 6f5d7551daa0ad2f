"""Role profiles: the closed, ordered role sets of each application."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Action(str, Enum):
    """Capabilities checked by the authorization policy."""

    read_own_reports = "reports:read-own"
    read_all_reports = "reports:read-all"
    update_report_status = "reports:update-status"
    assign_report = "reports:assign"
    manage_users = "users:manage"
    manage_privileged_accounts = "users:manage-privileged"
    manage_password_resets = "password-resets:manage"
    read_audit_log = "audit:read"


@dataclass(frozen=True)
class RoleProfile:
    """Ordered role tiers plus the per-action grants for one application.

    ``roles`` is ordered lowest tier first. ``privileged_from`` names the
    lowest tier whose accounts only the top tier may create or modify.
    """

    name: str
    roles: tuple[str, ...]
    privileged_from: str
    grants: dict[Action, frozenset[str]]

    @property
    def default_role(self) -> str:
        return self.roles[0]

    @property
    def top_role(self) -> str:
        return self.roles[-1]

    def tier(self, role: str) -> int:
        try:
            return self.roles.index(role)
        except ValueError as exc:
            raise ValueError(f"unknown role {role!r} for profile {self.name}") from exc

    def is_valid(self, role: str) -> bool:
        return role in self.roles

    def is_privileged(self, role: str) -> bool:
        return self.tier(role) >= self.tier(self.privileged_from)

    @property
    def unprivileged_roles(self) -> tuple[str, ...]:
        return tuple(role for role in self.roles if not self.is_privileged(role))


def _grants(table: dict[Action, tuple[str, ...]]) -> dict[Action, frozenset[str]]:
    return {action: frozenset(roles) for action, roles in table.items()}


WASTEMAP = RoleProfile(
    name="wastemap",
    roles=("citizen", "worker", "admin", "superadmin"),
    privileged_from="admin",
    grants=_grants(
        {
            Action.read_own_reports: ("citizen", "worker", "admin", "superadmin"),
            Action.read_all_reports: ("worker", "admin", "superadmin"),
            Action.update_report_status: ("worker", "admin", "superadmin"),
            Action.assign_report: ("admin", "superadmin"),
            Action.manage_users: ("admin", "superadmin"),
            Action.manage_privileged_accounts: ("superadmin",),
            Action.manage_password_resets: ("superadmin",),
            Action.read_audit_log: ("superadmin",),
        }
    ),
)

# admin is the top tier in gym-planner and takes the superadmin column.
GYM_PLANNER = RoleProfile(
    name="gym-planner",
    roles=("user", "instructor", "admin"),
    privileged_from="admin",
    grants=_grants(
        {
            Action.read_own_reports: ("user", "instructor", "admin"),
            Action.read_all_reports: ("instructor", "admin"),
            Action.update_report_status: ("instructor", "admin"),
            Action.assign_report: ("admin",),
            Action.manage_users: ("admin",),
            Action.manage_privileged_accounts: ("admin",),
            Action.manage_password_resets: ("admin",),
            Action.read_audit_log: ("admin",),
        }
    ),
)

PROFILES: dict[str, RoleProfile] = {profile.name: profile for profile in (WASTEMAP, GYM_PLANNER)}


def get_profile(name: str) -> RoleProfile:
    """Return the role profile registered under ``name``."""
    try:
        return PROFILES[name]
    except KeyError as exc:
        raise ValueError(f"unknown role profile {name!r}") from exc
