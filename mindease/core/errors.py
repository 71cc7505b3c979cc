"""
Error taxonomy shared by the API and the assistant services.

Every error carries a short machine-readable code and a message that is safe
to show to a client. Upstream provider text and store-level detail never go
into these messages; they are logged where the failure happens.
"""


GENERIC_MESSAGE = "An error occurred while processing your request"
UNEXPECTED_MESSAGE = "An unexpected error occurred"


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    message = GENERIC_MESSAGE

    def __init__(self, message: str | None = None, code: str | None = None, headers: dict | None = None):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        self.headers = headers or {}
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"error": self.message, "code": self.code}


class ClientError(AppError):
    status_code = 400
    code = "CLIENT_ERROR"
    message = "Invalid request data"


class AuthError(ClientError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Authorization required"


class ForbiddenError(ClientError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Unauthorized"


class NotFoundError(ClientError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class ThrottleError(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, headers: dict | None = None):
        self.retry_after = retry_after
        super().__init__(headers={"Retry-After": str(retry_after), **(headers or {})})


class UpstreamError(AppError):
    """Completion service unavailable, empty, or unusable. Always generic to the client."""

    status_code = 500
    code = "UPSTREAM_ERROR"


class PersistenceError(AppError):
    """Critical store failure (chat creation, task insertion)."""

    status_code = 500
    code = "PERSISTENCE_ERROR"
