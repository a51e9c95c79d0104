"""
Profile Tokens

This package handles the compact signed tokens Blockstack profiles are published in.

Key Components:
- codec.py: Decoding, segment encoding and ES256K signature checks
- profile.py: Profile token signing, wrapping and signer verification

A profile token payload names an issuer (the signing key), a subject (the key the
claim is about) and the claim itself. Verification first checks that the expected
identity is one of the issuer key's identity forms and only then checks the
signature.
"""
