"""
Profile Resolution

This package resolves Blockstack IDs to their verified profile claims.

Key Components:
- profile.py: Name lookup, token file fetch and profile verification
- __main__.py: CLI interface for resolution

The resolution flow follows these steps:
1. Fetch the name record for the username from the name lookup service
2. Parse its zone file and select the token file URL from the first URI record
3. Fetch the token file and decode its first profile token
4. Verify the token was signed by the name owner and return the claim

Failures are reported, not raised: a failed name lookup is a request error and
anything that goes wrong after it is an invalid response carrying its cause.
"""
