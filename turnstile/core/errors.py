"""Service error classes.

Typed failures raised by the account and token services. Callers (an HTTP
layer, a CLI) map each ``code`` to a distinct client-visible outcome; no
transport framing lives here.

WHY ONE INVALID-TOKEN ERROR:
- Wrong value, wrong owner, expired, consumed and absent tokens all raise
  InvalidOrExpiredTokenError
- Revealing which check failed tells an attacker which guess was close
"""


class ServiceError(Exception):
    """Base class for service errors.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(ServiceError):
    """Required input missing or malformed."""

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            details=details,
        )


class NotFoundError(ServiceError):
    """Resource not found.

    Use when the requested resource doesn't exist.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(code="NOT_FOUND", message=message)


class ConflictError(ServiceError):
    """Duplicate or conflicting resource.

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, details=details)


class AlreadyVerifiedError(ServiceError):
    """Verification attempted on an account that is already verified.

    Raised before the supplied token is looked at, so the token is neither
    inspected nor consumed.
    """

    def __init__(self) -> None:
        super().__init__(
            code="ALREADY_VERIFIED",
            message="Account is already verified",
        )


class InvalidOrExpiredTokenError(ServiceError):
    """Token failed validation for any reason."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_OR_EXPIRED_TOKEN",
            message="Invalid or expired token",
        )


class InvalidCredentialsError(ServiceError):
    """Email/password pair or session token was rejected.

    Unknown email and wrong password share one message to prevent
    account enumeration.
    """

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(code="INVALID_CREDENTIALS", message=message)
