"""
Compact signed token codec.

Decodes the three-segment ``header.payload.signature`` token used for Blockstack
profiles and verifies or produces its ES256K signature with jwcrypto.

The raw token string is the canonical form. A TokenEnvelope is a view recomputed on
every decode and never re-encoded in place; its signature segment is kept verbatim.
Header and payload segments are produced as compact JSON encoded with unpadded
base64url, so decoding a token produced here and re-encoding the header and payload
yields the original segments.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from jwcrypto import jwk, jws
from jwcrypto.common import JWException, base64url_decode, base64url_encode
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from social.graze.bsid.errors import MalformedToken
from social.graze.bsid.identity.keys import load_private_key, load_public_key

logger = logging.getLogger(__name__)

ES256K = "ES256K"

SUPPORTED_ALGORITHMS: List[str] = [ES256K]

SEGMENT_NAMES = ("header", "payload", "signature")


class KeyReference(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    public_key: str = Field(alias="publicKey")


class TokenHeader(BaseModel):
    model_config = ConfigDict(extra="allow")

    alg: str
    typ: Optional[str] = None


class TokenPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    issuer: KeyReference
    subject: KeyReference
    claim: Dict[str, Any]


class TokenEnvelope(BaseModel):
    """Decoded view of a compact signed token.

    ``header`` and ``payload`` hold the decoded JSON objects exactly as they appear in
    the token, key order included.
    """

    model_config = ConfigDict(frozen=True)

    header: Dict[str, Any]
    payload: Dict[str, Any]
    signature: str

    @property
    def algorithm(self) -> Optional[str]:
        return self.header.get("alg")

    @property
    def issuer_public_key(self) -> Optional[str]:
        return _public_key_of(self.payload.get("issuer"))

    @property
    def subject_public_key(self) -> Optional[str]:
        return _public_key_of(self.payload.get("subject"))

    @property
    def claim(self) -> Optional[Dict[str, Any]]:
        claim = self.payload.get("claim")
        return claim if isinstance(claim, dict) else None


def _public_key_of(value: Any) -> Optional[str]:
    if not isinstance(value, dict):
        return None
    public_key = value.get("publicKey")
    return public_key if isinstance(public_key, str) else None


def _json_text(value: Dict[str, Any]) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def encode_segment(value: Dict[str, Any]) -> str:
    """Encode a header or payload object as a token segment."""
    return base64url_encode(_json_text(value).encode("utf-8"))


def decode_segment(segment: str, name: str) -> Dict[str, Any]:
    """Decode a base64url JSON object segment.

    Raises:
        MalformedToken: If the segment is not base64url encoded JSON object
    """
    try:
        value = json.loads(base64url_decode(segment).decode("utf-8"))
    except ValueError as e:
        raise MalformedToken.undecodable(name) from e
    if not isinstance(value, dict):
        raise MalformedToken.undecodable(name)
    return value


def _missing_field(error: ValidationError, prefix: str) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{prefix}.{location}" if location else prefix


def decode_token(token: str) -> TokenEnvelope:
    """Decode a compact token into its header, payload and signature.

    Decoding is pure deserialization and never checks the signature.

    Args:
        token: Compact ``header.payload.signature`` token

    Returns:
        TokenEnvelope with the decoded header and payload

    Raises:
        MalformedToken: If the token does not have three segments, a segment cannot be
            decoded, or header.alg, payload.issuer.publicKey,
            payload.subject.publicKey or payload.claim is missing
    """
    if not isinstance(token, str):
        raise MalformedToken.segment_count(0)

    segments = token.split(".")
    if len(segments) != len(SEGMENT_NAMES):
        raise MalformedToken.segment_count(len(segments))

    header = decode_segment(segments[0], "header")
    payload = decode_segment(segments[1], "payload")

    try:
        TokenHeader.model_validate(header)
    except ValidationError as e:
        raise MalformedToken.missing_field(_missing_field(e, "header")) from e

    try:
        TokenPayload.model_validate(payload)
    except ValidationError as e:
        raise MalformedToken.missing_field(_missing_field(e, "payload")) from e

    return TokenEnvelope(header=header, payload=payload, signature=segments[2])


def public_jwk(public_key_hex: str) -> Optional[jwk.JWK]:
    public_key = load_public_key(public_key_hex)
    if public_key is None:
        return None
    return jwk.JWK.from_pyca(public_key)


def verify_signature(token: str, algorithm: str, public_key_hex: str) -> bool:
    """Verify the signature segment of a token.

    The signing input is recomputed from the first two segments of ``token``.

    Args:
        token: Compact token
        algorithm: Algorithm name from the token header
        public_key_hex: Hex SEC1 public key that should have signed the token

    Returns:
        True if the signature is valid, False on any mismatch, unsupported algorithm,
        malformed signature or unusable public key
    """
    if algorithm not in SUPPORTED_ALGORITHMS:
        logger.debug("Unsupported token algorithm %r", algorithm)
        return False

    key = public_jwk(public_key_hex)
    if key is None:
        logger.debug("Token verification key is not a secp256k1 public key")
        return False

    verifier = jws.JWS()
    verifier.allowed_algs = [algorithm]
    try:
        verifier.deserialize(token)
        verifier.verify(key, alg=algorithm)
    except (JWException, ValueError, TypeError) as e:
        logger.debug("Token signature verification failed: %s", e)
        return False
    return True


def sign_token(
    header: Dict[str, Any], payload: Dict[str, Any], private_key_hex: str
) -> str:
    """Produce a compact token signed with a secp256k1 private key.

    Raises:
        ValueError: If the algorithm is not supported or the private key is invalid
    """
    algorithm = header.get("alg")
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported token algorithm {algorithm!r}")

    private_key = load_private_key(private_key_hex)
    if private_key is None:
        raise ValueError("Not a valid secp256k1 private key")

    signer = jws.JWS(_json_text(payload).encode("utf-8"))
    signer.allowed_algs = [algorithm]
    signer.add_signature(
        jwk.JWK.from_pyca(private_key), alg=algorithm, protected=_json_text(header)
    )
    return signer.serialize(compact=True)
