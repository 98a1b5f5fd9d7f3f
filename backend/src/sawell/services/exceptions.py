"""Service error hierarchy for upstream calls and credit ledger operations.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, configuration)
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Configuration errors
    """

    pass


# HeyGen status polling errors
class UpstreamStatusError(TransientError):
    """No usable status from HeyGen this attempt.

    Covers non-2xx responses, transport errors, timeouts and malformed
    payloads alike; callers fall back to stored data.
    """

    pass


class UpstreamNotConfiguredError(PermanentError):
    """HeyGen API key is not configured."""

    pass


# Credit ledger errors
class LedgerError(ServiceError):
    """Base exception for credit ledger errors."""

    pass


class UnknownProductError(LedgerError):
    """Purchase references a product with no credit mapping."""

    pass


class AccountNotFoundError(LedgerError):
    """Credit account vanished between read and update."""

    pass
