"""Profile token signing, wrapping and signer verification.

Verifies that a profile token was signed by the key behind an expected identity.
The expected identity may be the issuer public key, its compressed form, or the
address of either, since names, zone files and token files across the ecosystem do
not agree on one encoding.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from social.graze.bsid.errors import MalformedToken
from social.graze.bsid.identity.keys import (
    MAINNET_ADDRESS_VERSION,
    address_from_public_key,
    encode_compressed,
    public_key_from_private_key,
)
from social.graze.bsid.token.codec import (
    ES256K,
    TokenEnvelope,
    decode_token,
    sign_token,
    verify_signature,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = timedelta(days=365)


class ProfileTokenFile(BaseModel):
    """One entry of a profile token file.

    Serialized as ``{"token": ..., "decodedToken": {...}}`` when dumped by alias.
    """

    model_config = ConfigDict(populate_by_name=True)

    token: str
    decoded_token: TokenEnvelope = Field(alias="decodedToken")


def _isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def sign_profile_token(
    profile: Dict[str, Any],
    private_key_hex: str,
    subject: Optional[Dict[str, Any]] = None,
    issuer: Optional[Dict[str, Any]] = None,
    issued_at: Optional[datetime] = None,
    expires_at: Optional[datetime] = None,
) -> str:
    """Sign a profile into a compact ES256K profile token.

    Args:
        profile: Profile claim to sign
        private_key_hex: Hex secp256k1 private key of the issuer
        subject: Subject entity, defaults to ``{"publicKey": <issuer public key>}``
        issuer: Issuer entity, defaults to ``{"publicKey": <issuer public key>}``
        issued_at: Issuance time (defaults to current UTC time)
        expires_at: Expiry time (defaults to one year after issuance)

    Returns:
        str: Compact signed token

    Raises:
        ValueError: If the private key is not a valid secp256k1 key
    """
    public_key = public_key_from_private_key(private_key_hex)
    if subject is None:
        subject = {"publicKey": public_key}
    if issuer is None:
        issuer = {"publicKey": public_key}
    if issued_at is None:
        issued_at = datetime.now(timezone.utc)
    if expires_at is None:
        expires_at = issued_at + DEFAULT_TOKEN_LIFETIME

    header = {"typ": "JWT", "alg": ES256K}
    payload = {
        "jti": str(ULID()),
        "iat": _isoformat(issued_at),
        "exp": _isoformat(expires_at),
        "subject": subject,
        "issuer": issuer,
        "claim": profile,
    }
    return sign_token(header, payload, private_key_hex)


def wrap_profile_token(token: str) -> Optional[ProfileTokenFile]:
    """Wrap a token into a token file entry, or None if it does not decode."""
    try:
        decoded = decode_token(token)
    except MalformedToken as e:
        logger.debug("Not wrapping malformed profile token: %s", e)
        return None
    return ProfileTokenFile(token=token, decoded_token=decoded)


def _identity_matches(
    public_key_or_address: str, issuer_public_key: str, address_version: int
) -> bool:
    if public_key_or_address == issuer_public_key:
        return True

    if public_key_or_address == address_from_public_key(
        issuer_public_key, address_version
    ):
        return True

    compressed_key = encode_compressed(issuer_public_key)
    if compressed_key is None:
        return False
    if public_key_or_address == compressed_key:
        return True
    return public_key_or_address == address_from_public_key(
        compressed_key, address_version
    )


def verify_profile_token(
    token: str,
    public_key_or_address: str,
    address_version: int = MAINNET_ADDRESS_VERSION,
) -> Optional[TokenEnvelope]:
    """Verify that a profile token was signed by an expected identity.

    The identity is compared against the issuer public key, then the address of the
    issuer key, then the compressed issuer key and its address. The first match
    wins. The signature is only checked once an identity form matched.

    Args:
        token: Compact profile token
        public_key_or_address: Public key or address thought to have signed the token
        address_version: Address version byte used to derive addresses

    Returns:
        The decoded token if identity and signature both check out, otherwise None
    """
    try:
        decoded = decode_token(token)
    except MalformedToken as e:
        logger.debug("Rejecting malformed profile token: %s", e)
        return None

    if decoded.subject_public_key is None or decoded.claim is None:
        return None

    issuer_public_key = decoded.issuer_public_key
    if issuer_public_key is None:
        return None

    if not _identity_matches(public_key_or_address, issuer_public_key, address_version):
        logger.info(
            "Profile token issuer %s does not match %s",
            issuer_public_key,
            public_key_or_address,
        )
        return None

    algorithm = decoded.algorithm
    if algorithm is None:
        return None

    if not verify_signature(token, algorithm, issuer_public_key):
        logger.info("Profile token signature does not verify for %s", issuer_public_key)
        return None

    return decoded


def extract_profile(
    token: str,
    public_key_or_address: Optional[str] = None,
    address_version: int = MAINNET_ADDRESS_VERSION,
) -> Optional[Dict[str, Any]]:
    """Extract the profile claim from a token.

    When ``public_key_or_address`` is given the token is verified first and None is
    returned if it was not signed by that identity. Without it the token is only
    decoded.
    """
    if public_key_or_address is not None:
        decoded = verify_profile_token(token, public_key_or_address, address_version)
    else:
        try:
            decoded = decode_token(token)
        except MalformedToken:
            return None
    if decoded is None:
        return None
    return decoded.claim
