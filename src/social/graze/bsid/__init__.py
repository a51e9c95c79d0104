"""
BSID - Blockstack ID Profile Resolver

This package resolves Blockstack IDs to verified profile claims. Starting from an
untrusted username it follows the trust chain from the on-chain name record to the
off-chain profile token and verifies that the token was signed by the key that owns
the name.

Key Components:
- identity: Derivation of the equivalent identity forms of a secp256k1 public key
- token: Decoding, signing and signer verification of compact ES256K profile tokens
- zonefile: Zone file parsing and token file URL selection
- resolve: End-to-end profile lookup against a name lookup service
- app: HTTP service exposing profile lookup and verification

Resolution Flow:
1. Look up the name record (zone file and owner address) for a username
2. Parse the zone file and pick the token file URL from its first URI record
3. Fetch the token file and decode its first profile token
4. Verify the token signer against the owner address and return the claim

A token signer is accepted when the expected identity equals the issuer public key,
its compressed form, or the address of either form.
"""
