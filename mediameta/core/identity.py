"""
Who is signed in, and what they may change.

Templates and categories are administrative data: changing them needs the ``ADMINS`` group.
Images are open to any signed-in user.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .config import Config, UserState

log = logging.getLogger(__name__)

ADMIN_GROUP = "ADMINS"
USER_GROUP = "USERS"


class PermissionDenied(Exception): ...
class NotSignedIn(PermissionDenied): ...


@dataclass(frozen=True)
class UserInfo:
    name: str
    groups: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_GROUP in self.groups


class IdentityProvider(Protocol):
    def current_user(self) -> Optional[UserInfo]: ...
    def sign_out(self) -> None: ...


class LocalIdentityProvider:
    """ Identity taken from the local settings; sign-out forgets the user until sign_in is called. """

    def __init__(self, cfg: Config):
        self.cfg = cfg
        self._user: Optional[UserInfo] = None
        if cfg.user.name:
            self._user = UserInfo(cfg.user.name, frozenset(cfg.user.groups or [USER_GROUP]))

    def current_user(self) -> Optional[UserInfo]:
        return self._user

    def sign_in(self, name: str, groups: list[str] | None = None) -> UserInfo:
        name = name.strip()
        if not name:
            raise ValueError("User name must not be empty")
        groups = list(groups) if groups else [USER_GROUP]
        self._user = UserInfo(name, frozenset(groups))
        self.cfg.user = UserState(name=name, groups=groups)
        log.info("Signed in as %s (%s)", name, ", ".join(sorted(groups)))
        return self._user

    def sign_out(self) -> None:
        if self._user is not None:
            log.info("Signed out %s", self._user.name)
        self._user = None
        self.cfg.user = UserState()


class Permissions:
    def __init__(self, identity: IdentityProvider):
        self.identity = identity

    def _user(self) -> UserInfo:
        user = self.identity.current_user()
        if user is None:
            raise NotSignedIn("Sign in first")
        return user

    def can_manage_templates(self) -> bool:
        user = self.identity.current_user()
        return user is not None and user.is_admin

    can_manage_categories = can_manage_templates

    def require_admin(self, action: str) -> UserInfo:
        user = self._user()
        if not user.is_admin:
            raise PermissionDenied(f"{user.name} may not {action}; requires group {ADMIN_GROUP}")
        return user

    def require_user(self) -> UserInfo:
        return self._user()
