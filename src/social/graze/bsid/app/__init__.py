"""
BSID Application Layer

This package implements the HTTP service for BSID using the aiohttp framework. It
exposes profile lookup and profile token verification to other services.

Key Components:
- cli.py: Entry point for running the application
- server.py: Web server configuration and middleware setup
- config.py: Configuration management using Pydantic settings
- handlers/: Request handlers for the profile and internal endpoints

It provides the following endpoints:
- Internal liveness endpoint (/internal/alive)
- Profile lookup endpoints (/v1/profiles, /v1/profiles/{username})
- App storage bucket lookup (/v1/profiles/{username}/bucket)
- Profile token verification (/v1/profiles/verify)
"""
