# stashbox/app/core/errors.py
"""
Domain errors raised by the services layer.

Each error carries the HTTP status and the stable ``error`` code that the
frontend branches on. They are rendered by the handler registered in
``stashbox.app.main``.
"""


class StashboxError(Exception):
    status_code = 500
    error = "server_error"
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(StashboxError):
    status_code = 404
    error = "not_found"
    default_message = "Not found"


class GoneError(StashboxError):
    status_code = 410
    error = "gone"
    default_message = "This link has already been used"


class ExpiredError(GoneError):
    error = "expired"
    default_message = "Secret expired"


class PermissionDeniedError(StashboxError):
    status_code = 403
    error = "forbidden"
    default_message = "Permission denied"


class ValidationError(StashboxError):
    status_code = 400
    error = "bad_request"
    default_message = "Invalid request"


class ConflictError(StashboxError):
    status_code = 409
    error = "conflict"
    default_message = "The collection was modified concurrently"


class DecryptionError(StashboxError):
    """Stored ciphertext is malformed, tampered, or was written with another key."""

    error = "decryption_failed"
    default_message = "Stored data could not be decrypted"


class DeliveryError(StashboxError):
    error = "delivery_failed"
    default_message = "Failed to deliver drop"


class TokenGenerationError(StashboxError):
    error = "token_generation_failed"
    default_message = "Failed to generate a unique token"
