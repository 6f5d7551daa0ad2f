"""Authorization policy: pure decisions over (actor role, target, action).

Every role comparison in the service goes through this module; route
handlers and the lifecycle service never compare role names themselves.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import Forbidden, ValidationError
from .account import Account
from .contracts import Actor
from .roles import Action, RoleProfile


@dataclass(slots=True, frozen=True)
class ReportScope:
    """Visibility filter for report listings; ``None`` means unrestricted."""

    reporter_id: str | None = None


def authorize(profile: RoleProfile, role: str, action: Action) -> bool:
    """Return whether ``role`` is granted ``action`` under ``profile``."""
    return role in profile.grants.get(action, frozenset())


def allowed_actions(profile: RoleProfile, role: str) -> list[Action]:
    return [action for action in Action if authorize(profile, role, action)]


def ensure_allowed(profile: RoleProfile, actor: Actor, action: Action) -> None:
    if not authorize(profile, actor.role, action):
        raise Forbidden()


def account_scope(profile: RoleProfile, actor: Actor) -> tuple[str, ...] | None:
    """Roles whose accounts ``actor`` may list; ``None`` means every role."""
    ensure_allowed(profile, actor, Action.manage_users)
    if authorize(profile, actor.role, Action.manage_privileged_accounts):
        return None
    return profile.unprivileged_roles


def report_scope(profile: RoleProfile, actor: Actor) -> ReportScope:
    """Actors without ``reports:read-all`` only see reports they filed."""
    if authorize(profile, actor.role, Action.read_all_reports):
        return ReportScope()
    return ReportScope(reporter_id=actor.account_id)


def check_role_assignment(profile: RoleProfile, actor: Actor, role: str) -> None:
    """Raise unless ``actor`` may give an account ``role``."""
    if not profile.is_valid(role):
        raise ValidationError(f"unknown role {role!r}")
    if profile.is_privileged(role) and not authorize(
        profile, actor.role, Action.manage_privileged_accounts
    ):
        raise Forbidden(f"only {profile.top_role} can assign the {role} role")


def check_account_change(
    profile: RoleProfile,
    actor: Actor,
    target: Account,
    requested_role: str | None = None,
) -> None:
    """Raise ``Forbidden`` unless ``actor`` may modify ``target``.

    A privileged target (admin tier or above) is off limits to every actor
    below the top tier, whatever the change. Nobody changes their own role.
    """
    ensure_allowed(profile, actor, Action.manage_users)
    if profile.is_privileged(target.role) and not authorize(
        profile, actor.role, Action.manage_privileged_accounts
    ):
        raise Forbidden(f"only {profile.top_role} can modify {target.role} accounts")
    if requested_role is None or requested_role == target.role:
        return
    if target.account_id == actor.account_id:
        raise Forbidden("you cannot change your own role")
    check_role_assignment(profile, actor, requested_role)


def check_account_delete(profile: RoleProfile, actor: Actor, target: Account) -> None:
    if target.account_id == actor.account_id:
        raise Forbidden("you cannot delete your own account")
    check_account_change(profile, actor, target)
