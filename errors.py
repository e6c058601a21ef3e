import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

# PostgreSQL SQLSTATE codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"

logger = logging.getLogger(__name__)


class LibraryError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(LibraryError):
    status_code = 404


class UniqueConstraintViolation(LibraryError):
    status_code = 409


class ReferentialConstraintViolation(LibraryError):
    status_code = 409


class CopyUnavailable(LibraryError):
    status_code = 409


class LoanAlreadyClosed(LibraryError):
    status_code = 409


class StoreUnavailable(LibraryError):
    status_code = 503


def _sqlstate(e: IntegrityError) -> Optional[str]:
    orig = getattr(e, "orig", None)
    # psycopg 3 exposes .sqlstate, psycopg2 exposes .pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def classify_integrity_error(e: IntegrityError, unique_msg: str, referential_msg: str) -> LibraryError:
    """Map a store integrity error onto the library's error kinds."""
    code = _sqlstate(e)
    if code == UNIQUE_VIOLATION:
        return UniqueConstraintViolation(unique_msg)
    if code == FOREIGN_KEY_VIOLATION:
        return ReferentialConstraintViolation(referential_msg)

    msg = (str(e.orig) if getattr(e, "orig", None) else str(e)).lower()
    if "unique" in msg or "duplicate" in msg:
        return UniqueConstraintViolation(unique_msg)
    if "foreign key" in msg:
        return ReferentialConstraintViolation(referential_msg)
    logger.error("Unclassified integrity error: %s", msg)
    return LibraryError("Unexpected database error")
