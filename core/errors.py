class NostrIdError(Exception):
    """Base for every error that may cross the HTTP boundary.

    ``message`` is safe to show to the caller; ``code`` is a stable
    identifier clients can branch on.
    """

    status_code = 500
    default_code = "Error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(NostrIdError):
    status_code = 400
    default_code = "ValidationError"


class ConflictError(NostrIdError):
    status_code = 409
    default_code = "Conflict"


class NotFoundError(NostrIdError):
    status_code = 404
    default_code = "NotFound"


class UpstreamError(NostrIdError):
    status_code = 502
    default_code = "UpstreamError"


class AuthError(NostrIdError):
    status_code = 401
    default_code = "NotAuthenticated"


class RateLimitError(NostrIdError):
    status_code = 429
    default_code = "RateLimitExceeded"

    def __init__(self, message: str, retry_after: int, code: str | None = None):
        super().__init__(message, code)
        self.retry_after = max(0, int(retry_after))

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class StorageError(NostrIdError):
    status_code = 500
    default_code = "StorageError"

    def __init__(self, message: str = "Internal server error", code: str | None = None):
        super().__init__(message, code)


_FIELD_ERRORS = {
    "publicKey": ("Invalid public key format", "InvalidKeyFormat"),
    "amount": ("Amount must be a positive whole number of sats", "InvalidAmount"),
    "relays": ("Relay URL must start with wss:// or ws://", "InvalidRelay"),
    "lightning_address": ("Invalid lightning address", "InvalidLightningAddress"),
    "status": ("Status must be one of: open, in_progress, resolved", "InvalidStatus"),
}


def from_request_errors(errors: list[dict]) -> ValidationError:
    """Turn FastAPI request-validation errors into a single ``ValidationError``.

    Only the first error is reported.
    """
    if not errors:
        return ValidationError("Invalid request", "InvalidRequest")
    error = errors[0]
    loc = [part for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    field = str(loc[0]) if loc else None
    if error.get("type") == "missing":
        if field is None:
            return ValidationError("Request body is required", "MissingField")
        return ValidationError(f"{field} is required", "MissingField")
    if field in _FIELD_ERRORS:
        return ValidationError(*_FIELD_ERRORS[field])
    if field is None:
        return ValidationError("Invalid request body", "InvalidRequest")
    return ValidationError(f"Invalid {field}: {error.get('msg', 'invalid value')}", "InvalidRequest")
