"""Blockstack ID profile resolution.

Resolves a username to its verified profile claim:

1. Fetch the name record (zone file and owner address) from the name lookup service
2. Parse the zone file and pick the token file URL from its first URI record
3. Fetch the token file and take its first profile token
4. Verify the token against the owner address and return the claim

Steps run strictly in order and nothing is retried. Expected failures are reported
through ProfileLookupResult rather than raised; a failure after the name lookup
round trip is reported as ``invalid_response`` with the underlying cause attached.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import sentry_sdk
from aiohttp import ClientError, ClientSession
from pydantic import BaseModel, ConfigDict, ValidationError

from social.graze.bsid.errors import (
    BsidValueError,
    MalformedToken,
    ProfileLookupException,
    ProfileVerificationFailed,
    TokenFileUnavailable,
)
from social.graze.bsid.identity.keys import MAINNET_ADDRESS_VERSION
from social.graze.bsid.token.profile import (
    ProfileTokenFile,
    verify_profile_token,
    wrap_profile_token,
)
from social.graze.bsid.zonefile.resolve import pick_token_file_url, resolve_zone_file

logger = logging.getLogger(__name__)

DEFAULT_NAME_LOOKUP_URL = "https://core.blockstack.org/v1/names/"


class NameInfo(BaseModel):
    """Name record returned by the name lookup service.

    Other fields in the response (status, blockchain, last_txid, ...) are ignored.
    """

    model_config = ConfigDict(frozen=True)

    zonefile: str
    address: str


@dataclass(frozen=True)
class ProfileLookupResult:
    """Outcome of a profile lookup: exactly one of profile and error is set."""

    profile: Optional[Dict[str, Any]] = None
    error: Optional[ProfileLookupException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def name_lookup_url(lookup_url: str, username: str) -> str:
    return f"{lookup_url.rstrip('/')}/{quote(username, safe='')}"


def _tokens_from_body(body: str) -> List[str]:
    try:
        document = json.loads(body)
    except ValueError:
        document = body.strip()

    if isinstance(document, str):
        return [document]
    if isinstance(document, dict):
        document = [document]
    if not isinstance(document, list):
        raise MalformedToken.empty_token_file()

    tokens = []
    for entry in document:
        if isinstance(entry, dict) and isinstance(entry.get("token"), str):
            tokens.append(entry["token"])
        elif isinstance(entry, str):
            tokens.append(entry)
    return tokens


async def fetch_token_file(session: ClientSession, url: str) -> List[ProfileTokenFile]:
    """Fetch and decode a profile token file.

    The token file is normally a JSON array of ``{"token", "decodedToken"}``
    entries. A single entry object or a bare compact token is accepted too. The
    ``decodedToken`` sent by the server is ignored; every token is decoded locally.

    Raises:
        TokenFileUnavailable: If the token file cannot be fetched
        MalformedToken: If the token file is not UTF-8, has no tokens or a token does
            not decode
    """
    try:
        async with session.get(url) as resp:
            if resp.status != 200:
                raise TokenFileUnavailable.status(url, resp.status)
            content = await resp.read()
    except (ClientError, asyncio.TimeoutError) as e:
        sentry_sdk.capture_exception(e)
        raise TokenFileUnavailable.transport(url) from e

    try:
        body = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedToken.undecodable("file") from e

    token_files = []
    for token in _tokens_from_body(body):
        token_file = wrap_profile_token(token)
        if token_file is None:
            raise MalformedToken.undecodable("file entry")
        token_files.append(token_file)

    if len(token_files) == 0:
        raise MalformedToken.empty_token_file()
    return token_files


async def resolve_zone_file_to_profile(
    session: ClientSession,
    zone_file: str,
    public_key_or_address: str,
    address_version: int = MAINNET_ADDRESS_VERSION,
) -> Dict[str, Any]:
    """Resolve zone file text to the verified profile it points at.

    Args:
        session: HTTP client session
        zone_file: Zone file text
        public_key_or_address: Identity the profile token must be signed by
        address_version: Address version byte used to compare addresses

    Returns:
        The profile claim

    Raises:
        UnparsableZoneFile: If the zone file does not parse
        NoURIRecord: If the zone file has no usable URI record
        TokenFileUnavailable: If the token file cannot be fetched
        MalformedToken: If the token file holds no decodable token
        ProfileVerificationFailed: If the token is not signed by the identity
    """
    token_file_url = pick_token_file_url(resolve_zone_file(zone_file))
    logger.debug("Fetching token file %s", token_file_url)

    token_files = await fetch_token_file(session, token_file_url)

    verified = verify_profile_token(
        token_files[0].token, public_key_or_address, address_version
    )
    if verified is None:
        raise ProfileVerificationFailed.rejected(public_key_or_address)

    claim = verified.claim
    if claim is None:
        raise ProfileVerificationFailed.missing_claim()
    return claim


def _invalid_response(cause: Exception) -> ProfileLookupResult:
    error = ProfileLookupException.invalid_response(str(cause))
    error.__cause__ = cause
    return ProfileLookupResult(error=error)


async def lookup_profile(
    session: ClientSession,
    username: str,
    lookup_url: str = DEFAULT_NAME_LOOKUP_URL,
    address_version: int = MAINNET_ADDRESS_VERSION,
) -> ProfileLookupResult:
    """Look up the verified profile of a Blockstack ID.

    Args:
        session: HTTP client session
        username: Blockstack ID, e.g. ``alice.id``
        lookup_url: Name lookup endpoint the username is appended to
        address_version: Address version byte used to compare addresses

    Returns:
        ProfileLookupResult with the claim, or with a ``request_error`` when the name
        lookup fails and an ``invalid_response`` for anything after it
    """
    url = name_lookup_url(lookup_url, username)
    try:
        async with session.get(url) as resp:
            if resp.status != 200:
                return ProfileLookupResult(
                    error=ProfileLookupException.request_error(
                        f"Name lookup returned status {resp.status}"
                    )
                )
            body = await resp.read()
    except (ClientError, asyncio.TimeoutError) as e:
        sentry_sdk.capture_exception(e)
        error = ProfileLookupException.request_error(str(e) or type(e).__name__)
        error.__cause__ = e
        return ProfileLookupResult(error=error)

    if not body:
        return ProfileLookupResult(
            error=ProfileLookupException.request_error("Name lookup returned no data")
        )

    try:
        name_info = NameInfo.model_validate_json(body)
    except ValidationError as e:
        return _invalid_response(e)

    try:
        profile = await resolve_zone_file_to_profile(
            session, name_info.zonefile, name_info.address, address_version
        )
    except BsidValueError as e:
        logger.info("Profile of %s did not resolve: %s", username, e)
        return _invalid_response(e)

    return ProfileLookupResult(profile=profile)


async def lookup_app_bucket_url(
    session: ClientSession,
    username: str,
    app_origin: Optional[str],
    lookup_url: str = DEFAULT_NAME_LOOKUP_URL,
    address_version: int = MAINNET_ADDRESS_VERSION,
) -> Optional[str]:
    """Find where a user stores data for an app, from the ``apps`` map of their profile.

    Args:
        session: HTTP client session
        username: Blockstack ID whose storage is read
        app_origin: Origin of the app, e.g. ``https://app.example.com``
        lookup_url: Name lookup endpoint
        address_version: Address version byte used to compare addresses

    Returns:
        The app bucket URL, or None if the profile lists no bucket for the app

    Raises:
        ProfileLookupException: If no app origin is configured or the lookup fails
    """
    if not app_origin:
        raise ProfileLookupException.configuration_error("No app origin configured")

    result = await lookup_profile(session, username, lookup_url, address_version)
    if result.error is not None:
        raise result.error

    apps = (result.profile or {}).get("apps")
    if not isinstance(apps, dict):
        return None
    bucket_url = apps.get(app_origin)
    return bucket_url if isinstance(bucket_url, str) else None
