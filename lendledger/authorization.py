"""
authorization.py - Capability registry

RoleRegistry answers has_capability(identity, capability) for the vault and
the liquidation agent. Capabilities are plain strings; the engine uses
ADMINISTRATOR and LIQUIDATION_OPERATOR. Only administrators grant or revoke.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Iterable, Set

from .core import ADMINISTRATOR, Unauthorized


class RoleRegistry:
    """
    In-memory capability table. Implements the Authorizer protocol.

    Example:
        roles = RoleRegistry(admins=["admin"])
        roles.grant_role("admin", "keeper", LIQUIDATION_OPERATOR)
        roles.has_capability("keeper", LIQUIDATION_OPERATOR)  # True
    """

    def __init__(self, admins: Iterable[str] = ()):
        self._members: Dict[str, Set[str]] = defaultdict(set)
        for admin in admins:
            self._members[ADMINISTRATOR].add(admin)

    def has_capability(self, identity: str, capability: str) -> bool:
        return identity in self._members.get(capability, ())

    def members(self, capability: str) -> Set[str]:
        return set(self._members.get(capability, ()))

    def grant_role(self, caller: str, identity: str, capability: str) -> None:
        """
        Raises:
            Unauthorized: If caller is not an administrator
        """
        self._require_admin(caller)
        self._members[capability].add(identity)

    def revoke_role(self, caller: str, identity: str, capability: str) -> None:
        """
        Raises:
            Unauthorized: If caller is not an administrator
        """
        self._require_admin(caller)
        self._members[capability].discard(identity)

    def _require_admin(self, caller: str) -> None:
        if not self.has_capability(caller, ADMINISTRATOR):
            raise Unauthorized(caller, ADMINISTRATOR)
