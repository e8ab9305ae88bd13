"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is kept as an attribute so handlers can read it without
    # parsing str(exc). Never raise DomainException itself - always a subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when a local entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when input or entity validation fails."""

    pass


class AuthorizationError(DomainException):
    """Caller is not allowed to act on the target resource.

    Example:
        raise AuthorizationError("Collection not found or access denied")
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration (missing credentials, bad URLs)."""

    pass


# =============================================================================
# External fetch failures
# Hey future me - callers MUST be able to tell "doesn't exist anywhere" apart from
# "couldn't reach the source right now". Never collapse these two into one!
# =============================================================================


class ExternalServiceError(DomainException):
    """An external metadata source returned an error."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class NotFoundUpstreamError(ExternalServiceError):
    """External source has no such entity. Not retryable."""

    def __init__(self, source: str, external_id: str) -> None:
        super().__init__(source, f"no entity with id {external_id}")
        self.external_id = external_id

    @property
    def retryable(self) -> bool:
        return False


class TransientFetchError(ExternalServiceError):
    """Network error, timeout, rate limit or upstream 5xx. Retryable by the caller."""

    def __init__(
        self,
        source: str,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(source, message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return True


# =============================================================================
# Resolution
# =============================================================================


class UnresolvedRaceError(DomainException):
    """Insert lost a uniqueness race but the winning row could not be re-read.

    Means the INSERT collided on a DIFFERENT unique column than the one the lookup
    reads by (e.g. two albums racing for one curated sequence). Retryable.
    """

    def __init__(self, key: str) -> None:
        super().__init__(f"Create race unresolved for {key}")
        self.key = key


# =============================================================================
# Daily selection (operator must seed or repair curated data)
# =============================================================================


class DailySelectionError(DomainException):
    """Base for daily selection configuration errors."""

    pass


class NoCuratedCandidatesError(DailySelectionError):
    """The curated candidate list is empty."""

    def __init__(self) -> None:
        super().__init__("No curated albums available for the daily challenge")


class SequenceGapError(DailySelectionError):
    """No curated candidate sits at the computed sequence position."""

    def __init__(self, sequence: int, total: int) -> None:
        super().__init__(
            f"No curated album at sequence {sequence} (curated total: {total})"
        )
        self.sequence = sequence
        self.total = total


__all__ = [
    "AuthorizationError",
    "ConfigurationError",
    "DailySelectionError",
    "DomainException",
    "EntityNotFoundException",
    "ExternalServiceError",
    "NoCuratedCandidatesError",
    "NotFoundUpstreamError",
    "SequenceGapError",
    "TransientFetchError",
    "UnresolvedRaceError",
    "ValidationException",
]
