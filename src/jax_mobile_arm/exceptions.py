"""Error kinds raised by the kinematics routines.

Both kinds are usage errors: they are reported before any computation runs
and are never retried.
"""

import enum


class ErrorKind(enum.Enum):
    """Why a forward-kinematics request was refused."""

    INVALID_REQUEST = "invalid_request"
    UNIMPLEMENTED_PATH = "unimplemented_path"


class KinematicsError(Exception):
    """Base class for refused kinematics requests."""

    kind: ErrorKind


class InvalidRequestError(KinematicsError, ValueError):
    """Workspace velocity outputs were requested without a velocity input."""

    kind = ErrorKind.INVALID_REQUEST


class UnimplementedPathError(KinematicsError, NotImplementedError):
    """The request needs a computation this library does not provide."""

    kind = ErrorKind.UNIMPLEMENTED_PATH


_ERRORS = {
    ErrorKind.INVALID_REQUEST: InvalidRequestError,
    ErrorKind.UNIMPLEMENTED_PATH: UnimplementedPathError,
}


def error_for(kind: ErrorKind, message: str) -> KinematicsError:
    """Build the exception that corresponds to an error kind."""
    return _ERRORS[kind](message)
