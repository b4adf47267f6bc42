"""Access policy — who may perform which operation.

Pure evaluation with no state of its own. Every service operation is
registered in OPERATION_SCOPES; anything missing from the table is denied.

Rules, evaluated in order:
1. A caller holding the deny-access flag is rejected for every operation.
2. ADMIN operations require the admin role.
3. OWNER operations require caller == resource owner, or the admin role.
4. USER operations (self-service on the caller's own identity) are allowed.
5. Everything else is denied.
"""

from dataclasses import dataclass, field
from enum import StrEnum

from cat_engine.errors import ForbiddenError


class Scope(StrEnum):
    ADMIN = "admin"
    OWNER = "owner"
    USER = "user"


OPERATION_SCOPES: dict[str, Scope] = {
    # Validations
    "validation.create": Scope.USER,
    "validation.list_mine": Scope.USER,
    "validation.list_all": Scope.ADMIN,
    "validation.get": Scope.OWNER,
    "validation.get_any": Scope.ADMIN,
    "validation.update": Scope.ADMIN,
    "validation.update_status": Scope.ADMIN,
    # Assessments
    "assessment.create": Scope.USER,
    "assessment.list_mine": Scope.USER,
    "assessment.get": Scope.OWNER,
    "assessment.update": Scope.OWNER,
    "assessment.publish": Scope.OWNER,
    "assessment.delete_private": Scope.ADMIN,
    # Users and audit
    "user.list": Scope.ADMIN,
    "user.deny_access": Scope.ADMIN,
    "audit.query": Scope.ADMIN,
}


@dataclass(frozen=True)
class CallerIdentity:
    """The resolved identity of the caller of one operation.

    Attributes:
        user_id: Stable unique identifier.
        roles: Role names from the identity provider merged with stored roles.
        deny_access: True once an administrator has restricted this identity.
        admin_role: Name of the role granting administrative operations.
    """

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    deny_access: bool = False
    admin_role: str = "admin"

    @property
    def is_admin(self) -> bool:
        return self.admin_role in self.roles


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str


class AccessPolicy:
    """Evaluates OPERATION_SCOPES against a caller and an optional resource owner."""

    def __init__(self, scopes: dict[str, Scope] | None = None) -> None:
        self._scopes = OPERATION_SCOPES if scopes is None else scopes

    def evaluate(
        self,
        caller: CallerIdentity,
        operation: str,
        resource_owner: str | None = None,
    ) -> AccessDecision:
        """Decide whether `caller` may perform `operation`.

        Args:
            caller: The resolved caller identity.
            operation: Operation name, e.g. "assessment.update".
            resource_owner: Owner of the target resource for OWNER operations.

        Returns:
            AccessDecision with the outcome and a short reason.
        """
        if caller.deny_access:
            return AccessDecision(False, "Your access to the API has been restricted.")

        scope = self._scopes.get(operation)
        if scope is Scope.ADMIN:
            if caller.is_admin:
                return AccessDecision(True, "admin")
            return AccessDecision(False, "This operation requires the admin role.")
        if scope is Scope.OWNER:
            if resource_owner is not None and resource_owner == caller.user_id:
                return AccessDecision(True, "owner")
            if caller.is_admin:
                return AccessDecision(True, "admin")
            return AccessDecision(False, "You do not have permission to access this resource.")
        if scope is Scope.USER:
            return AccessDecision(True, "user")
        return AccessDecision(False, f"Operation '{operation}' is not permitted.")

    def reject_denied(self, caller: CallerIdentity) -> None:
        """Raise ForbiddenError for a deny-access caller before any lookup happens."""
        if caller.deny_access:
            raise ForbiddenError("Your access to the API has been restricted.")

    def enforce(
        self,
        caller: CallerIdentity,
        operation: str,
        resource_owner: str | None = None,
    ) -> None:
        """Raise ForbiddenError unless `evaluate` allows the operation."""
        decision = self.evaluate(caller, operation, resource_owner)
        if not decision.allowed:
            raise ForbiddenError(decision.reason)
