"""Error taxonomy for profile resolution.

Internal helpers raise specific ``ValueError`` subclasses. The orchestration layer
collapses them into a ``ProfileLookupException`` with kind ``invalid_response`` while
keeping the original exception as ``__cause__`` and its message as ``reason``.
"""

from enum import Enum
from typing import Optional


class BsidException(Exception):
    """Base class for all resolver errors."""


class BsidValueError(BsidException, ValueError):
    """Base class for structural failures after a successful transport round trip."""


class MalformedToken(BsidValueError):
    """Token string does not conform to the three-segment signed token structure."""

    @staticmethod
    def segment_count(count: int) -> "MalformedToken":
        return MalformedToken(
            f"error-bsid-token-1000 Expected 3 token segments, found {count}"
        )

    @staticmethod
    def undecodable(segment: str) -> "MalformedToken":
        return MalformedToken(
            f"error-bsid-token-1001 Token {segment} is not base64url encoded JSON"
        )

    @staticmethod
    def missing_field(field: str) -> "MalformedToken":
        return MalformedToken(f"error-bsid-token-1002 Token is missing {field}")

    @staticmethod
    def empty_token_file() -> "MalformedToken":
        return MalformedToken("error-bsid-token-1003 Token file contains no tokens")


class UnparsableZoneFile(BsidValueError):
    """The zone file grammar parser could not produce a structural document."""

    @staticmethod
    def unparsable() -> "UnparsableZoneFile":
        return UnparsableZoneFile("error-bsid-zonefile-1000 Zone file is not parsable")


class NoURIRecord(BsidValueError):
    """The zone file has no usable URI record to locate the token file."""

    @staticmethod
    def missing() -> "NoURIRecord":
        return NoURIRecord("error-bsid-zonefile-1001 Zone file has no URI record")

    @staticmethod
    def missing_target() -> "NoURIRecord":
        return NoURIRecord(
            "error-bsid-zonefile-1002 First URI record has no usable target"
        )

    @staticmethod
    def invalid_url(url: str) -> "NoURIRecord":
        return NoURIRecord(
            f"error-bsid-zonefile-1003 Token file URL is not valid: {url}"
        )


class TokenFileUnavailable(BsidValueError):
    """The token file could not be fetched."""

    @staticmethod
    def status(url: str, status: int) -> "TokenFileUnavailable":
        return TokenFileUnavailable(
            f"error-bsid-tokenfile-1000 Token file {url} returned status {status}"
        )

    @staticmethod
    def transport(url: str) -> "TokenFileUnavailable":
        return TokenFileUnavailable(
            f"error-bsid-tokenfile-1001 Token file {url} could not be fetched"
        )


class ProfileVerificationFailed(BsidValueError):
    """The profile token was not signed by the expected identity."""

    @staticmethod
    def rejected(identity: str) -> "ProfileVerificationFailed":
        return ProfileVerificationFailed(
            f"error-bsid-verify-1000 Profile token is not signed by {identity}"
        )

    @staticmethod
    def missing_claim() -> "ProfileVerificationFailed":
        return ProfileVerificationFailed(
            "error-bsid-verify-1001 Verified profile token has no claim"
        )


class ProfileLookupErrorKind(str, Enum):
    request_error = "request_error"
    invalid_response = "invalid_response"
    configuration_error = "configuration_error"


class ProfileLookupException(BsidException):
    """
    Error reported by a profile lookup.

    The ``kind`` is the coarse category callers branch on. The ``reason`` carries the
    message of the internal failure that produced it, so a bad zone file can still be
    told apart from a bad token file when logging or debugging.
    """

    def __init__(
        self, kind: ProfileLookupErrorKind, message: str, reason: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.reason = reason

    @staticmethod
    def request_error(reason: Optional[str] = None) -> "ProfileLookupException":
        """The name lookup service could not be reached."""
        return ProfileLookupException(
            ProfileLookupErrorKind.request_error,
            "error-bsid-lookup-1000 Name lookup request failed",
            reason,
        )

    @staticmethod
    def invalid_response(reason: Optional[str] = None) -> "ProfileLookupException":
        """Anything after a successful name lookup round trip went wrong."""
        return ProfileLookupException(
            ProfileLookupErrorKind.invalid_response,
            "error-bsid-lookup-1001 Invalid response while resolving profile",
            reason,
        )

    @staticmethod
    def configuration_error(reason: Optional[str] = None) -> "ProfileLookupException":
        """A required configuration value, such as the app origin, is missing."""
        return ProfileLookupException(
            ProfileLookupErrorKind.configuration_error,
            "error-bsid-lookup-1002 Resolver is not configured",
            reason,
        )
