"""Errors raised by directory clients."""

NOT_FOUND_CODE = "ResourceNotFound"


class DirectoryError(Exception):
    """Error reported by the remote directory service."""

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def __str__(self) -> str:
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message


class NotFoundError(DirectoryError):
    """The requested object does not exist (or was soft-deleted)."""


def is_not_found(code: str | None, status_code: int | None = None) -> bool:
    """Graph reports missing objects as Request_ResourceNotFound / ResourceNotFound or a bare 404."""
    if code and NOT_FOUND_CODE.lower() in code.lower():
        return True
    return status_code == 404


def directory_error(message: str, code: str | None = None, status_code: int | None = None) -> DirectoryError:
    """Build NotFoundError or DirectoryError from a service error code/status."""
    cls = NotFoundError if is_not_found(code, status_code) else DirectoryError
    return cls(message, code=code, status_code=status_code)
