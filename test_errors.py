from sqlalchemy.exc import IntegrityError

from errors import (
    LibraryError,
    ReferentialConstraintViolation,
    UniqueConstraintViolation,
    classify_integrity_error,
)


class DriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def integrity_error(message, sqlstate=None):
    return IntegrityError("INSERT INTO members ...", {}, DriverError(message, sqlstate))


def test_sqlstate_takes_priority_over_message():
    err = classify_integrity_error(integrity_error("boom", "23505"), "dup", "ref")
    assert isinstance(err, UniqueConstraintViolation)
    assert err.detail == "dup"

    err = classify_integrity_error(integrity_error("boom", "23503"), "dup", "ref")
    assert isinstance(err, ReferentialConstraintViolation)
    assert err.status_code == 409


def test_sqlite_messages_are_recognised():
    err = classify_integrity_error(integrity_error("UNIQUE constraint failed: members.email"), "dup", "ref")
    assert isinstance(err, UniqueConstraintViolation)
    err = classify_integrity_error(integrity_error("FOREIGN KEY constraint failed"), "dup", "ref")
    assert isinstance(err, ReferentialConstraintViolation)


def test_unclassified_error_hides_driver_text(caplog):
    err = classify_integrity_error(integrity_error("NOT NULL constraint failed: members.name"), "dup", "ref")

    assert type(err) is LibraryError
    assert err.status_code == 500
    assert err.detail == "Unexpected database error"
    assert "members.name" not in err.detail
    assert "not null constraint failed: members.name" in caplog.text
