"""Exception types shared across the client, retry wrapper and sync engine."""


class NotionAPIError(Exception):
    """An HTTP error response from the Notion API.

    Attributes:
        status: HTTP status code (0 when no response was received).
        code: Notion error code from the response body, e.g.
            ``"rate_limited"`` or ``"object_not_found"``.
        message: Human-readable message from the response body.
    """

    def __init__(self, status: int, code: str = "", message: str = ""):
        self.status = status
        self.code = code
        self.message = message
        super().__init__(f"Notion API error {status} ({code}): {message}")


class PathCollisionError(Exception):
    """Two source records resolved to the same output path in one run."""

    def __init__(self, path: str, record_id: str, other_id: str):
        self.path = path
        self.record_id = record_id
        self.other_id = other_id
        super().__init__(
            f"Output path {path} for record {record_id} is already "
            f"claimed by record {other_id}"
        )
