"""Error kinds raised by stores and services.

Services never translate these into transport responses themselves; the HTTP
layer maps each kind to a status code through ``status_code``.
"""


class LibraryError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFound(LibraryError):
    status_code = 404


class Conflict(LibraryError):
    status_code = 409


class AlreadyReturned(LibraryError):
    status_code = 409


class InvalidArgument(LibraryError):
    status_code = 400


class Timeout(LibraryError):
    status_code = 504


class Internal(LibraryError):
    status_code = 500
    retryable = True


class Unauthenticated(LibraryError):
    status_code = 401


class Forbidden(LibraryError):
    status_code = 403
