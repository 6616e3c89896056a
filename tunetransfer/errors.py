"""Error taxonomy for provider calls and transfer runs."""

from typing import Optional


class TransferError(Exception):
    """Base class for every error raised by tunetransfer."""
    pass


class ProviderError(TransferError):
    """A provider call failed. Carries the HTTP status when one is known."""

    def __init__(self, message: str, provider: str = None, status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class AuthExpired(ProviderError):
    """Credential rejected (401 or an expired-token signal). Never retried."""

    def __init__(self, message: str, provider: str = None, status: Optional[int] = 401):
        super().__init__(message, provider, status)
        self.report = None


class RateLimited(ProviderError):
    """HTTP 429. ``retry_after`` is the server hint in seconds, if any."""

    def __init__(
        self,
        message: str,
        provider: str = None,
        status: Optional[int] = 429,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, provider, status)
        self.retry_after = retry_after


class NotFoundOrForbidden(ProviderError):
    """HTTP 403/404."""
    pass


class TransientNetwork(ProviderError):
    """Any other transport failure or unexpected status."""
    pass


class NoMatch(TransferError):
    """No search candidate cleared the acceptance threshold."""
    pass


class UserCancelled(TransferError):
    """The run was stopped cooperatively."""
    pass
