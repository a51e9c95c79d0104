"""
Configuration Module for the BSID Service

This module defines the configuration of the BSID (Blockstack ID) profile service,
using Pydantic for settings validation and dependency injection through AppKeys.

The Settings class is loaded from environment variables with defaults suitable for
development. Handlers reach settings and shared resources through typed AppKeys
rather than module globals, so the resolver never reads process-wide state.

Key configuration areas include:
- Service networking
- Name lookup endpoint and address network
- App origin used for multiplayer storage lookups
- Error reporting and metrics
"""

from typing import Final, Optional
import logging

from aio_statsd import TelegrafStatsdClient
from aiohttp import ClientSession, web
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

from social.graze.bsid.identity.keys import (
    MAINNET_ADDRESS_VERSION,
    TESTNET_ADDRESS_VERSION,
)
from social.graze.bsid.resolve.profile import DEFAULT_NAME_LOOKUP_URL


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings for the BSID service.

    Environment variables are mapped to settings fields automatically, with aliases
    where an older name is still accepted. For example the name lookup endpoint can
    be set with either NAME_LOOKUP_URL or ZONE_FILE_LOOKUP_URL.
    """

    debug: bool = False
    """
    Enable debug mode for verbose logging and request tracing.
    Set with DEBUG=true environment variable.
    """

    http_port: int = Field(alias="port", default=5200)
    """
    HTTP port for the service to listen on.
    Set with PORT environment variable.
    """

    name_lookup_url: str = Field(
        DEFAULT_NAME_LOOKUP_URL,
        validation_alias=AliasChoices("name_lookup_url", "zone_file_lookup_url"),
    )
    """
    Name lookup endpoint; the username is appended as the last path component.
    Set with NAME_LOOKUP_URL or ZONE_FILE_LOOKUP_URL environment variables.
    Default: https://core.blockstack.org/v1/names/
    """

    address_version: int = MAINNET_ADDRESS_VERSION
    """
    Version byte used when deriving addresses from public keys.
    0 for mainnet, 111 for testnet.
    Set with ADDRESS_VERSION environment variable.
    """

    app_origin: Optional[str] = None
    """
    Origin of the app whose storage buckets are looked up in user profiles.
    Set with APP_ORIGIN environment variable.
    """

    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """
    StatsD/Telegraf host for request and lookup metrics.
    Set with TELEGRAF_HOST environment variable.
    """

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """
    StatsD/Telegraf port for request and lookup metrics.
    Set with TELEGRAF_PORT environment variable.
    """

    logging_config_file: Optional[str] = None
    """
    Path to a JSON logging dictConfig. When unset, logs go to stderr at DEBUG
    level in debug mode and INFO level otherwise.
    Set with LOGGING_CONFIG_FILE environment variable.
    """

    @field_validator("address_version")
    @classmethod
    def validate_address_version(cls, v: int) -> int:
        """
        Only mainnet and testnet single-signature address versions are supported.

        Raises:
            ValueError: If the version is not 0 or 111
        """
        if v not in (MAINNET_ADDRESS_VERSION, TESTNET_ADDRESS_VERSION):
            raise ValueError("address_version must be 0 (mainnet) or 111 (testnet)")
        return v


# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

SessionAppKey: Final = web.AppKey("http_session", ClientSession)
"""AppKey for accessing the shared aiohttp client session"""

TelegrafStatsdClientAppKey: Final = web.AppKey(
    "telegraf_statsd_client", TelegrafStatsdClient
)
"""AppKey for the Telegraf/StatsD metrics client"""
