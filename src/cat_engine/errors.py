"""Typed failures raised by the lifecycle engine.

Services raise these and never swallow them. The HTTP boundary
(api/handlers.py) maps each kind to a stable status code and renders
`message` only — store exceptions are always wrapped before they get here.

| Error                        | Status | Meaning                                         |
|------------------------------|--------|-------------------------------------------------|
| ValidationError              | 400    | malformed or out-of-range input                 |
| AuthenticationError          | 401    | no caller identity on the request               |
| ForbiddenError               | 403    | caller lacks permission or is access-denied     |
| NotFoundError                | 404    | referenced entity absent                        |
| ConflictError                | 409    | invariant violation or concurrent modification  |
| InvalidStateTransitionError  | 409    | illegal status change                           |
| InvalidStateError            | 409    | operation disallowed by current lifecycle state |
| UnavailableError             | 503    | store failure or timeout, retryable             |
"""


class CatError(Exception):
    """Base class for every domain failure."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CatError):
    """Malformed or out-of-range input."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class AuthenticationError(CatError):
    status_code = 401


class ForbiddenError(CatError):
    status_code = 403

    def __init__(self, message: str = "You do not have permission to access this resource.") -> None:
        super().__init__(message)


class NotFoundError(CatError):
    status_code = 404

    def __init__(self, resource: str, resource_id: object) -> None:
        super().__init__(f"There is no {resource} with the following id: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(CatError):
    status_code = 409


class InvalidStateTransitionError(CatError):
    """Raised when a requested status change is not a legal transition."""

    status_code = 409

    def __init__(self, resource: str, current: str, target: str) -> None:
        super().__init__(f"Cannot move {resource} from {current} to {target}.")
        self.resource = resource
        self.current_status = current
        self.target_status = target


class InvalidStateError(CatError):
    status_code = 409


class UnavailableError(CatError):
    """Store failure or timeout. Safe to retry."""

    status_code = 503
