"""
Unit tests for social.graze.bsid.resolve.profile

Tests cover the full lookup pipeline against mocked HTTP responses: the happy path,
request errors from the name lookup, and every failure after it collapsing into an
invalid_response with the underlying cause kept.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import ClientConnectionError, ClientSession

from social.graze.bsid.errors import (
    MalformedToken,
    NoURIRecord,
    ProfileLookupErrorKind,
    ProfileLookupException,
    ProfileVerificationFailed,
    TokenFileUnavailable,
    UnparsableZoneFile,
)
from social.graze.bsid.identity.keys import address_from_public_key
from social.graze.bsid.resolve.profile import (
    DEFAULT_NAME_LOOKUP_URL,
    fetch_token_file,
    lookup_app_bucket_url,
    lookup_profile,
    name_lookup_url,
    resolve_zone_file_to_profile,
)
from social.graze.bsid.token.profile import sign_profile_token
from tests.test_helpers import (
    APP_BUCKET_URL,
    APP_ORIGIN,
    OTHER_PRIVATE_KEY,
    PRIVATE_KEY,
    TOKEN_FILE_URL,
    make_name_info,
    make_response_context,
    make_token_file,
    make_zone_file,
)


@pytest.fixture
def session():
    return AsyncMock(spec=ClientSession)


@pytest.fixture
def owner_address(public_key):
    return address_from_public_key(public_key)


def _respond(session, *contexts):
    session.get.side_effect = list(contexts)


class TestNameLookupUrl:
    """Test suite for name_lookup_url."""

    def test_default(self):
        """Test the username is appended to the lookup endpoint."""
        assert (
            name_lookup_url(DEFAULT_NAME_LOOKUP_URL, "alice.id")
            == "https://core.blockstack.org/v1/names/alice.id"
        )

    def test_without_trailing_slash(self):
        """Test a lookup endpoint without trailing slash."""
        assert (
            name_lookup_url("http://localhost:6270/v1/names", "alice.id")
            == "http://localhost:6270/v1/names/alice.id"
        )

    def test_username_is_quoted(self):
        """Test path separators in a username cannot escape the endpoint."""
        assert name_lookup_url("https://x/v1/names/", "a/../b") == (
            "https://x/v1/names/a%2F..%2Fb"
        )


class TestLookupProfile:
    """Test suite for lookup_profile."""

    @pytest.mark.asyncio
    async def test_success(self, session, profile, profile_token, owner_address):
        """Test a lookup returns the verified profile."""
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            make_response_context(text=make_token_file([profile_token])),
        )

        result = await lookup_profile(session, "alice.id")

        assert result.ok
        assert result.error is None
        assert result.profile == profile
        assert [call.args[0] for call in session.get.call_args_list] == [
            "https://core.blockstack.org/v1/names/alice.id",
            TOKEN_FILE_URL,
        ]

    @pytest.mark.asyncio
    async def test_success_with_public_key_owner(
        self, session, profile, profile_token, public_key
    ):
        """Test the owner may be given as a public key instead of an address."""
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), public_key)),
            make_response_context(text=make_token_file([profile_token])),
        )

        result = await lookup_profile(session, "alice.id")
        assert result.profile == profile

    @pytest.mark.asyncio
    async def test_custom_lookup_url(self, session, profile_token, owner_address):
        """Test the configured lookup endpoint is used."""
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            make_response_context(text=make_token_file([profile_token])),
        )

        await lookup_profile(session, "alice.id", "http://localhost:6270/v1/names")
        assert (
            session.get.call_args_list[0].args[0]
            == "http://localhost:6270/v1/names/alice.id"
        )

    @pytest.mark.asyncio
    async def test_transport_error(self, session):
        """Test a transport failure of the name lookup is a request_error."""
        failure = ClientConnectionError("connection refused")
        session.get.side_effect = failure

        with patch("social.graze.bsid.resolve.profile.sentry_sdk") as mock_sentry:
            result = await lookup_profile(session, "alice.id")

        assert result.profile is None
        assert result.error.kind == ProfileLookupErrorKind.request_error
        assert result.error.__cause__ is failure
        mock_sentry.capture_exception.assert_called_once_with(failure)
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout(self, session):
        """Test a name lookup timeout is a request_error."""
        session.get.side_effect = asyncio.TimeoutError()

        with patch("social.graze.bsid.resolve.profile.sentry_sdk"):
            result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.request_error

    @pytest.mark.asyncio
    async def test_name_not_found(self, session):
        """Test a non-200 name lookup is a request_error."""
        _respond(session, make_response_context(status=404, text="{}"))

        result = await lookup_profile(session, "nobody.id")

        assert result.error.kind == ProfileLookupErrorKind.request_error
        assert "404" in result.error.reason
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_empty_body(self, session):
        """Test an empty name lookup response is a request_error."""
        _respond(session, make_response_context(text=""))

        result = await lookup_profile(session, "alice.id")
        assert result.error.kind == ProfileLookupErrorKind.request_error

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            "{not json",
            json.dumps({"address": "1abc"}),
            json.dumps({"zonefile": 12, "address": "1abc"}),
            json.dumps([1, 2, 3]),
        ],
    )
    async def test_malformed_name_info(self, session, body):
        """Test a malformed name record is an invalid_response."""
        _respond(session, make_response_context(text=body))

        result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert result.error.__cause__ is not None
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_zone_file_without_uri(self, session, owner_address):
        """Test a zone file without URI record stops before any token file fetch."""
        _respond(
            session,
            make_response_context(
                text=make_name_info(make_zone_file(target=None), owner_address)
            ),
        )

        result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert isinstance(result.error.__cause__, NoURIRecord)
        assert "error-bsid-zonefile-1001" in result.error.reason
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_unparsable_zone_file(self, session, owner_address):
        """Test an unparsable zone file is an invalid_response."""
        _respond(
            session,
            make_response_context(
                text=make_name_info('@ IN TXT "unterminated', owner_address)
            ),
        )

        result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert isinstance(result.error.__cause__, UnparsableZoneFile)
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", ["[bad/profile.json", "https://[::1/p.json"])
    async def test_unusable_token_file_url(self, session, owner_address, target):
        """Test a zone file target that is not a URL is an invalid_response."""
        _respond(
            session,
            make_response_context(
                text=make_name_info(make_zone_file(target), owner_address)
            ),
        )

        result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert isinstance(result.error.__cause__, NoURIRecord)
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_token_file_not_utf8(self, session, owner_address):
        """Test a token file body that is not UTF-8 is an invalid_response."""
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            make_response_context(body=b"\xff\xfe\xfa[]"),
        )

        result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert isinstance(result.error.__cause__, MalformedToken)
        assert isinstance(result.error.__cause__.__cause__, UnicodeDecodeError)

    @pytest.mark.asyncio
    async def test_owner_is_compressed_key_address(
        self, session, profile, compressed_public_key
    ):
        """Test a name owned by the address of the compressed signing key."""
        token = sign_profile_token(profile, PRIVATE_KEY)
        _respond(
            session,
            make_response_context(
                text=make_name_info(
                    make_zone_file(), address_from_public_key(compressed_public_key)
                )
            ),
            make_response_context(text=make_token_file([token])),
        )

        result = await lookup_profile(session, "alice.id")
        assert result.profile == profile

    @pytest.mark.asyncio
    async def test_token_file_not_found(self, session, owner_address):
        """Test a missing token file is an invalid_response."""
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            make_response_context(status=404, text="Not Found"),
        )

        result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert isinstance(result.error.__cause__, TokenFileUnavailable)

    @pytest.mark.asyncio
    async def test_token_file_transport_error(self, session, owner_address):
        """Test a token file transport failure is an invalid_response."""
        failure = ClientConnectionError("reset")
        session.get.side_effect = [
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            failure,
        ]

        with patch("social.graze.bsid.resolve.profile.sentry_sdk") as mock_sentry:
            result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert isinstance(result.error.__cause__, TokenFileUnavailable)
        mock_sentry.capture_exception.assert_called_once_with(failure)

    @pytest.mark.asyncio
    async def test_malformed_token(self, session, owner_address):
        """Test a token file with a malformed token is an invalid_response."""
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            make_response_context(text=json.dumps([{"token": "not-a-token"}])),
        )

        result = await lookup_profile(session, "alice.id")

        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert isinstance(result.error.__cause__, MalformedToken)

    @pytest.mark.asyncio
    async def test_signer_mismatch(self, session, profile):
        """Test a token signed by someone other than the owner is rejected."""
        other_token = sign_profile_token(profile, OTHER_PRIVATE_KEY)
        _respond(
            session,
            make_response_context(
                text=make_name_info(make_zone_file(), "1BoatSLRHtKNngkdXEeobR76b53LETtpyT")
            ),
            make_response_context(text=make_token_file([other_token])),
        )

        result = await lookup_profile(session, "alice.id")

        assert result.profile is None
        assert result.error.kind == ProfileLookupErrorKind.invalid_response
        assert isinstance(result.error.__cause__, ProfileVerificationFailed)

    @pytest.mark.asyncio
    async def test_only_first_token_is_verified(
        self, session, profile, profile_token, owner_address
    ):
        """Test a valid second token does not rescue an invalid first one."""
        other_token = sign_profile_token(profile, OTHER_PRIVATE_KEY)
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            make_response_context(text=make_token_file([other_token, profile_token])),
        )

        result = await lookup_profile(session, "alice.id")
        assert result.error.kind == ProfileLookupErrorKind.invalid_response


class TestFetchTokenFile:
    """Test suite for fetch_token_file."""

    @pytest.mark.asyncio
    async def test_token_file_array(self, session, profile_token):
        """Test the usual array of token entries."""
        _respond(session, make_response_context(text=make_token_file([profile_token])))

        token_files = await fetch_token_file(session, TOKEN_FILE_URL)

        assert [token_file.token for token_file in token_files] == [profile_token]
        session.get.assert_called_once_with(TOKEN_FILE_URL)

    @pytest.mark.asyncio
    async def test_single_entry_object(self, session, profile_token):
        """Test a single entry object is accepted."""
        _respond(session, make_response_context(text=json.dumps({"token": profile_token})))

        token_files = await fetch_token_file(session, TOKEN_FILE_URL)
        assert token_files[0].token == profile_token

    @pytest.mark.asyncio
    async def test_bare_token(self, session, profile_token):
        """Test a bare compact token body is accepted."""
        _respond(session, make_response_context(text=profile_token + "\n"))

        token_files = await fetch_token_file(session, TOKEN_FILE_URL)
        assert token_files[0].token == profile_token

    @pytest.mark.asyncio
    async def test_decoded_token_is_recomputed(self, session, profile_token, profile):
        """Test a forged decodedToken sent by the server is ignored."""
        body = json.dumps(
            [
                {
                    "token": profile_token,
                    "decodedToken": {"payload": {"claim": {"name": "Mallory"}}},
                }
            ]
        )
        _respond(session, make_response_context(text=body))

        token_files = await fetch_token_file(session, TOKEN_FILE_URL)
        assert token_files[0].decoded_token.claim == profile

    @pytest.mark.asyncio
    async def test_empty_token_file(self, session):
        """Test an empty token file raises MalformedToken."""
        _respond(session, make_response_context(text="[]"))

        with pytest.raises(MalformedToken):
            await fetch_token_file(session, TOKEN_FILE_URL)

    @pytest.mark.asyncio
    async def test_unexpected_json(self, session):
        """Test a JSON value that holds no tokens raises MalformedToken."""
        _respond(session, make_response_context(text="42"))

        with pytest.raises(MalformedToken):
            await fetch_token_file(session, TOKEN_FILE_URL)

    @pytest.mark.asyncio
    async def test_not_utf8(self, session):
        """Test a body that is not UTF-8 raises MalformedToken."""
        _respond(session, make_response_context(body=b"\xff\xfe\xfa[]"))

        with pytest.raises(MalformedToken):
            await fetch_token_file(session, TOKEN_FILE_URL)

    @pytest.mark.asyncio
    async def test_status(self, session):
        """Test a non-200 response raises TokenFileUnavailable."""
        _respond(session, make_response_context(status=500, text=""))

        with pytest.raises(TokenFileUnavailable):
            await fetch_token_file(session, TOKEN_FILE_URL)


class TestResolveZoneFileToProfile:
    """Test suite for resolve_zone_file_to_profile."""

    @pytest.mark.asyncio
    async def test_resolve(self, session, profile, profile_token, public_key):
        """Test resolving zone file text straight to a profile."""
        _respond(session, make_response_context(text=make_token_file([profile_token])))

        claim = await resolve_zone_file_to_profile(
            session, make_zone_file(), public_key
        )
        assert claim == profile

    @pytest.mark.asyncio
    async def test_rejected(self, session, profile_token):
        """Test a signer mismatch raises ProfileVerificationFailed."""
        _respond(session, make_response_context(text=make_token_file([profile_token])))

        with pytest.raises(ProfileVerificationFailed):
            await resolve_zone_file_to_profile(
                session, make_zone_file(), "1BoatSLRHtKNngkdXEeobR76b53LETtpyT"
            )


class TestLookupAppBucketUrl:
    """Test suite for lookup_app_bucket_url."""

    @pytest.mark.asyncio
    async def test_bucket_url(self, session, profile_token, owner_address):
        """Test the app bucket is read from the verified profile."""
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            make_response_context(text=make_token_file([profile_token])),
        )

        bucket_url = await lookup_app_bucket_url(session, "alice.id", APP_ORIGIN)
        assert bucket_url == APP_BUCKET_URL

    @pytest.mark.asyncio
    async def test_unknown_app(self, session, profile_token, owner_address):
        """Test an app missing from the profile has no bucket."""
        _respond(
            session,
            make_response_context(text=make_name_info(make_zone_file(), owner_address)),
            make_response_context(text=make_token_file([profile_token])),
        )

        bucket_url = await lookup_app_bucket_url(
            session, "alice.id", "https://other.example.com"
        )
        assert bucket_url is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("app_origin", [None, ""])
    async def test_missing_app_origin(self, session, app_origin):
        """Test a missing app origin is a configuration_error before any request."""
        with pytest.raises(ProfileLookupException) as excinfo:
            await lookup_app_bucket_url(session, "alice.id", app_origin)

        assert excinfo.value.kind == ProfileLookupErrorKind.configuration_error
        session.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_lookup_error_is_raised(self, session):
        """Test a failed profile lookup propagates its error."""
        _respond(session, make_response_context(status=503, text=""))

        with pytest.raises(ProfileLookupException) as excinfo:
            await lookup_app_bucket_url(session, "alice.id", APP_ORIGIN)

        assert excinfo.value.kind == ProfileLookupErrorKind.request_error
