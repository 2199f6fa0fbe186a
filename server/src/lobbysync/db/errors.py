"""Classification of database driver errors.

Drivers report constraint failures with structured error codes; these
helpers inspect the codes rather than the message text.
"""

from sqlalchemy.exc import DBAPIError

# PostgreSQL SQLSTATE for unique_violation
PG_UNIQUE_VIOLATION = "23505"

# SQLite extended result codes
SQLITE_CONSTRAINT_PRIMARYKEY = 1555
SQLITE_CONSTRAINT_UNIQUE = 2067


class DuplicateCodeError(Exception):
    """A lobby insert collided with an existing code."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Lobby code {code} already exists")


def _driver_errors(exc: DBAPIError) -> list[BaseException]:
    # Async adapters may wrap the driver exception, so check its cause as well
    errors: list[BaseException] = []
    orig = exc.orig
    if orig is not None:
        errors.append(orig)
        if orig.__cause__ is not None:
            errors.append(orig.__cause__)
    return errors


def is_unique_violation(exc: DBAPIError) -> bool:
    """Check whether a database error is a unique-constraint violation."""
    for error in _driver_errors(exc):
        sqlstate = getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)
        if sqlstate is not None:
            return sqlstate == PG_UNIQUE_VIOLATION
        sqlite_code = getattr(error, "sqlite_errorcode", None)
        if sqlite_code is not None:
            return sqlite_code in (SQLITE_CONSTRAINT_UNIQUE, SQLITE_CONSTRAINT_PRIMARYKEY)
    return False
