"""Errors raised by lobby operations.

Every public lobby operation either returns a complete result or raises
exactly one of these. Each error carries a stable machine-readable ``code``
and the HTTP status the API maps it to.
"""


class LobbyServiceError(Exception):
    """Base class for lobby operation errors."""

    code = "lobby_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AllocationExhausted(LobbyServiceError):
    """Could not allocate a unique lobby code within the retry budget."""

    code = "allocation_exhausted"
    status_code = 503

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__("Could not generate a unique lobby code. Please try again.")


class LobbyNotFound(LobbyServiceError):
    """No lobby exists for the given code."""

    code = "not_found"
    status_code = 404

    def __init__(self, code: str) -> None:
        self.lobby_code = code
        super().__init__("Lobby not found")


class StoreUnavailable(LobbyServiceError):
    """The membership store is misconfigured or unreachable."""

    code = "store_unavailable"
    status_code = 503


class ConstraintViolation(LobbyServiceError):
    """A unique or foreign-key constraint was violated."""

    code = "constraint_violation"
    status_code = 409


class InvalidRequest(LobbyServiceError):
    """The caller supplied an unusable argument."""

    code = "invalid_request"
    status_code = 400
