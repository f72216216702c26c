"""Domain exception hierarchy for pushpilot.

Services raise these instead of bare ``ValueError`` so that the global
exception handlers in ``middleware.exception_handler`` can map them to the
correct HTTP status code without fragile string matching.
"""


class PilotError(Exception):
    """Base for all domain exceptions."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers


class ClientError(PilotError):
    """Caller sent something we cannot act on (400). Never retried by us."""

    def __init__(self, message: str = "Bad request", *, status_code: int = 400):
        super().__init__(message, status_code=status_code)


class InvalidRepositoryURL(ClientError):
    """Repository URL does not contain an owner and a name."""

    def __init__(self, url: str):
        super().__init__(f"Invalid repository URL: {url!r}")
        self.url = url


class NotConfiguredError(ClientError):
    """A push arrived before any repository was configured."""

    def __init__(
        self,
        message: str = (
            "No repository configured. POST {\"repo_url\": ...} to /config "
            "(or run `pushpilot configure <repo_url>`) before pushing."
        ),
    ):
        super().__init__(message)


class InvalidPayloadError(ClientError):
    """Webhook body could not be decoded into a push event."""


class SignatureError(ClientError):
    """Webhook signature missing or wrong (401)."""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, status_code=401)


class RateLimitedError(PilotError):
    """Visitor exhausted its token bucket (429)."""

    def __init__(self, message: str = "Rate limit exceeded", *, headers: dict[str, str] | None = None):
        super().__init__(message, status_code=429, headers=headers)


class UpstreamUnavailable(PilotError):
    """A code-host or model call failed. ``step`` names the pipeline stage."""

    def __init__(self, message: str, *, step: str, status_code: int = 502):
        super().__init__(message, status_code=status_code)
        self.step = step


class GenerationError(UpstreamUnavailable):
    """The content generator failed or returned unusable output."""

    def __init__(self, message: str):
        super().__init__(message, step="generate_content")


class PullRequestCreationError(UpstreamUnavailable):
    """The code host refused or failed to create the pull request."""

    def __init__(self, message: str):
        super().__init__(message, step="create_pull_request")


class UpstreamTimeout(PilotError):
    """The push deadline elapsed before the pipeline finished (504)."""

    def __init__(self, message: str = "Timed out waiting for upstream services"):
        super().__init__(message, status_code=504)


class ServiceBusyError(PilotError):
    """Background worker queue is full (503)."""

    def __init__(self, message: str = "Push queue is full, try again later"):
        super().__init__(message, status_code=503)


def format_error_response(
    *,
    error: str,
    detail: object = None,
    request_id: str = "",
) -> dict:
    """Build a structured error response dict.

    Returns
    -------
    dict
        ``{"error": ..., "detail": ..., "request_id": ...}``
    """
    return {
        "error": error,
        "detail": detail if detail is not None else error,
        "request_id": request_id,
    }
