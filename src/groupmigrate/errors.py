"""Error taxonomy shared by the export and provisioning runs."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds a run can report."""

    NOT_FOUND = "NotFound"
    AMBIGUOUS = "Ambiguous"
    MEMBER_DETAIL_UNAVAILABLE = "MemberDetailUnavailable"
    TRANSIENT_SERVICE_ERROR = "TransientServiceError"
    FATAL_PRECONDITION = "FatalPrecondition"


class GroupMigrateError(Exception):
    """Base exception carrying the failure kind and where it happened."""

    kind: ErrorKind = ErrorKind.TRANSIENT_SERVICE_ERROR

    def __init__(
        self,
        message: str,
        group_name: str | None = None,
        member_id: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.group_name = group_name
        self.member_id = member_id
        self.status_code = status_code


class DirectoryServiceError(GroupMigrateError):
    """A call to the directory or mail service failed."""

    kind = ErrorKind.TRANSIENT_SERVICE_ERROR


class MemberDetailUnavailableError(GroupMigrateError):
    """Detail attributes for a single member could not be read."""

    kind = ErrorKind.MEMBER_DETAIL_UNAVAILABLE


class FatalPreconditionError(GroupMigrateError):
    """The run cannot start (e.g. no usable input)."""

    kind = ErrorKind.FATAL_PRECONDITION


class ConfigError(Exception):
    """Raised when a configuration or input file is invalid."""
