"""
Upload error taxonomy.

Every failure that reaches an upload item is one of these classes. The
``status_code`` class attribute is the machine-readable reason stored on a
failed item.

Aborting is not an error: the item's task is cancelled and the item is
removed, so no status code is ever stored for it.
"""


class UploadError(Exception):
    """Generic upload failure."""

    status_code = "GENERIC_ERROR"

    def __init__(self, message: str = "", http_status: int | None = None):
        super().__init__(message or self.__class__.__name__)
        self.http_status = http_status


class NetworkError(UploadError):
    """Transport failure; eligible for manual retry."""

    status_code = "NETWORK_ERROR"


class QuotaExceeded(UploadError):
    """The account has no space left."""

    status_code = "OVER_QUOTA_REACHED"


class NameConflict(UploadError):
    """A node with the same name already exists in the destination."""

    status_code = "NODE_ALREADY_EXISTS"


class PayloadTooLarge(UploadError):
    """The remote refused the request body size."""

    status_code = "PAYLOAD_TOO_LARGE"


class VersionLimitReached(UploadError):
    """The remote node cannot hold another version."""

    status_code = "VERSION_LIMIT_REACHED"


# GraphQL extensions.errorCode -> error class
GRAPHQL_ERROR_CODES: dict[str, type[UploadError]] = {
    "OVER_QUOTA_REACHED": QuotaExceeded,
    "NODE_ALREADY_EXISTS": NameConflict,
    "NODE_WRITE_ERROR": UploadError,
}

# HTTP status -> error class for the REST upload endpoints
HTTP_STATUS_ERRORS: dict[int, type[UploadError]] = {
    405: VersionLimitReached,
    413: PayloadTooLarge,
    500: NameConflict,
    507: QuotaExceeded,
}
