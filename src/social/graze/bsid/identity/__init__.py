"""
Identity Encodings

This package derives the equivalent string encodings of a secp256k1 public key.
A Blockstack name owner may be referred to by any of them, so signer verification
compares against the whole set.

Key Components:
- keys.py: Point compression, address derivation and IdentityForms

Identity Forms:
1. The public key as given (usually uncompressed, 65 bytes)
2. The SEC1 compressed public key (33 bytes)
3. The base58check address of the key as given
4. The base58check address of the compressed key
"""
