"""
Zone Files

This package interprets the zone file attached to a Blockstack name.

Key Components:
- parser.py: Grammar parser for the DNS master file subset zone files use
- resolve.py: Typed zone file view and token file URL selection

The token file is located through the first URI record of the zone file. A target
without a scheme is assumed to be served over HTTPS.
"""
