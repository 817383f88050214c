"""
core/errors.py -- Application error taxonomy.

Every failure that reaches a client is one of four kinds:

  BadRequest          400  malformed identifier, validation failure
  Unauthorized        401  bad credentials, invalid/expired session, missing
                           permission, bad refresh token. The message is
                           always the same generic string so the client cannot
                           tell which check failed.
  Forbidden           403  TOTP required but not supplied. Kept distinct so a
                           client knows to prompt for a second factor.
  InternalServerError 500  datastore inconsistency. The detail is logged
                           server-side; the client gets an opaque message.

api/main.py registers one exception handler for ApplicationError that renders
{"error": exc.message} with exc.status_code.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations


class ApplicationError(Exception):
    """Base class for errors that map onto an HTTP status and a public message."""

    status_code: int = 500
    message: str = "Error occurred while processing the request"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class BadRequest(ApplicationError):
    status_code = 400
    message = "Bad request"


class Unauthorized(ApplicationError):
    status_code = 401
    message = "Unauthorized"

    def __init__(self) -> None:
        # The public message is fixed; callers cannot attach a reason.
        super().__init__()


class Forbidden(ApplicationError):
    status_code = 403
    message = "Forbidden"


class InternalServerError(ApplicationError):
    """Backing-store inconsistency.

    detail is kept on the instance for server-side logging only. The public
    message never changes.
    """

    status_code = 500

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__()
