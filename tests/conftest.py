"""
Shared test configuration and fixtures for BSID tests.

Provides signing keys, public key encodings and signed profile tokens used across
the token, resolver and service tests.
"""

import json
from typing import Any, Dict

import pytest

from social.graze.bsid.identity.keys import public_key_from_private_key
from social.graze.bsid.token.profile import sign_profile_token
from tests.test_helpers import OTHER_PRIVATE_KEY, PRIVATE_KEY, PROFILE


@pytest.fixture
def private_key() -> str:
    return PRIVATE_KEY


@pytest.fixture
def other_private_key() -> str:
    return OTHER_PRIVATE_KEY


@pytest.fixture
def public_key() -> str:
    """Uncompressed public key of PRIVATE_KEY."""
    return public_key_from_private_key(PRIVATE_KEY, compressed=False)


@pytest.fixture
def compressed_public_key() -> str:
    return public_key_from_private_key(PRIVATE_KEY)


@pytest.fixture
def profile() -> Dict[str, Any]:
    return json.loads(json.dumps(PROFILE))


@pytest.fixture
def profile_token(profile, public_key) -> str:
    """Profile token whose issuer and subject are the uncompressed public key."""
    entity = {"publicKey": public_key}
    return sign_profile_token(profile, PRIVATE_KEY, subject=entity, issuer=entity)
