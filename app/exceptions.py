"""
Exception Classes - Typed exception hierarchy for the dashboard.
"""


class DashboardError(Exception):
    """Base exception for all dashboard errors."""

    pass


class EntityNotFoundError(DashboardError):
    """Raised when an entity looked up by id doesn't exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class QueryError(DashboardError):
    """Raised when a read query in a batch fails."""

    def __init__(self, operation: str, cause: Exception) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Query {operation} failed: {cause}")


class ObjectStoreError(DashboardError):
    """Raised when an object storage operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Object store error: {message}")


class AuthenticationError(DashboardError):
    """Raised when authentication fails (bad credentials, bad session)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class CaptchaVerificationError(DashboardError):
    """Raised when the CAPTCHA response is missing or rejected."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"CAPTCHA verification failed: {message}")
