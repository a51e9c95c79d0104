"""secp256k1 public key encodings and address derivation.

Every function here is pure: no network or disk access, and the same input always
yields the same output. Signer verification relies on exact string equality against
these values, so hex output is always lowercase.
"""

import hashlib
import logging
from typing import Optional

import base58
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

MAINNET_ADDRESS_VERSION = 0x00
TESTNET_ADDRESS_VERSION = 0x6F

COMPRESSED_KEY_LENGTH = 33
UNCOMPRESSED_KEY_LENGTH = 65
PRIVATE_KEY_LENGTH = 32

# Private keys may carry a trailing 0x01 marker meaning "use the compressed public key".
COMPRESSED_PRIVATE_KEY_SUFFIX = "01"


class IdentityForms(BaseModel):
    """The strings that may legitimately stand for one public key.

    Forms that cannot be derived (because the input is not a valid public key) are
    None. Instances are derived on demand and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    raw_public_key: str
    compressed_public_key: Optional[str] = None
    address_from_raw: Optional[str] = None
    address_from_compressed: Optional[str] = None

    def matches(self, identity: str) -> bool:
        return identity in (
            self.raw_public_key,
            self.compressed_public_key,
            self.address_from_raw,
            self.address_from_compressed,
        )


def _public_key_bytes(public_key_hex: str) -> Optional[bytes]:
    try:
        data = bytes.fromhex(public_key_hex)
    except (TypeError, ValueError):
        return None
    if len(data) not in (COMPRESSED_KEY_LENGTH, UNCOMPRESSED_KEY_LENGTH):
        return None
    return data


def load_public_key(public_key_hex: str) -> Optional[ec.EllipticCurvePublicKey]:
    """Load a hex SEC1 encoded secp256k1 public key.

    Returns:
        The public key, or None if the input is not a point on the curve
    """
    data = _public_key_bytes(public_key_hex)
    if data is None:
        return None
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), data)
    except ValueError:
        return None


def load_private_key(private_key_hex: str) -> Optional[ec.EllipticCurvePrivateKey]:
    """Load a hex secp256k1 private key, with or without the compression marker."""
    if (
        isinstance(private_key_hex, str)
        and len(private_key_hex) == 2 * PRIVATE_KEY_LENGTH + 2
        and private_key_hex.endswith(COMPRESSED_PRIVATE_KEY_SUFFIX)
    ):
        private_key_hex = private_key_hex[: 2 * PRIVATE_KEY_LENGTH]
    try:
        data = bytes.fromhex(private_key_hex)
    except (TypeError, ValueError):
        return None
    if len(data) != PRIVATE_KEY_LENGTH:
        return None
    try:
        return ec.derive_private_key(int.from_bytes(data, "big"), ec.SECP256K1())
    except ValueError:
        return None


def _encode_point(public_key: ec.EllipticCurvePublicKey, compressed: bool) -> str:
    point_format = (
        serialization.PublicFormat.CompressedPoint
        if compressed
        else serialization.PublicFormat.UncompressedPoint
    )
    return public_key.public_bytes(serialization.Encoding.X962, point_format).hex()


def encode_compressed(public_key_hex: str) -> Optional[str]:
    """Return the SEC1 compressed encoding of a public key, or None if invalid."""
    public_key = load_public_key(public_key_hex)
    if public_key is None:
        return None
    return _encode_point(public_key, compressed=True)


def hash160(data: bytes) -> bytes:
    """RIPEMD-160 of SHA-256, the digest behind P2PKH addresses."""
    return hashlib.new("ripemd160", hashlib.sha256(data).digest()).digest()


def address_from_public_key(
    public_key_hex: str, version: int = MAINNET_ADDRESS_VERSION
) -> Optional[str]:
    """Derive the base58check address of a public key.

    The key bytes are hashed exactly as given, so the compressed and uncompressed
    encodings of one key have different addresses.

    Args:
        public_key_hex: Hex SEC1 encoded public key
        version: Address version byte (0x00 mainnet, 0x6f testnet)

    Returns:
        Address string, or None if the input is not a valid public key
    """
    if load_public_key(public_key_hex) is None:
        return None
    data = bytes.fromhex(public_key_hex)
    return base58.b58encode_check(bytes([version]) + hash160(data)).decode("ascii")


def public_key_from_private_key(private_key_hex: str, compressed: bool = True) -> str:
    """Derive the hex public key of a hex private key.

    Raises:
        ValueError: If the private key is not a valid secp256k1 scalar
    """
    private_key = load_private_key(private_key_hex)
    if private_key is None:
        raise ValueError("Not a valid secp256k1 private key")
    return _encode_point(private_key.public_key(), compressed=compressed)


def derive_forms(
    public_key_hex: str, version: int = MAINNET_ADDRESS_VERSION
) -> IdentityForms:
    """Derive every identity form of a public key.

    Never raises. When the input is not a valid public key only ``raw_public_key`` is
    set and the derived forms are None.
    """
    compressed = encode_compressed(public_key_hex)
    if compressed is None:
        logger.debug("Not deriving identity forms of invalid key %r", public_key_hex)
        return IdentityForms(raw_public_key=str(public_key_hex))

    return IdentityForms(
        raw_public_key=public_key_hex,
        compressed_public_key=compressed,
        address_from_raw=address_from_public_key(public_key_hex, version),
        address_from_compressed=address_from_public_key(compressed, version),
    )
