"""
Error taxonomy for the ingestion path.

Every error carries the HTTP status it maps to so the API layer can render it
without knowing which component raised it. Unknown event types have no error
class: they land in the unclassified bucket.
"""


class WebhookError(Exception):
    """Base class for errors surfaced to the webhook caller."""

    status_code: int = 500
    reason: str = "Failed to process webhook"

    def __init__(self, details: str | None = None) -> None:
        super().__init__(details or self.reason)
        self.details = details or self.reason


class AuthenticationError(WebhookError):
    """Missing or invalid signature while a shared secret is configured."""

    status_code = 401
    reason = "Invalid signature"


class PayloadValidationError(WebhookError):
    """Malformed JSON, missing subject id or a payload violating its event schema."""

    status_code = 400
    reason = "Invalid webhook payload"


class StorageError(WebhookError):
    """Reading or writing one of the on-disk JSON documents failed."""

    status_code = 500
    reason = "Failed to persist webhook data"
