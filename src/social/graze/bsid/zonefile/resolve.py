"""Zone file interpretation and token file URL selection.

Turns the parser's document into typed records and picks the token file URL a
profile lookup should fetch.
"""

import logging
from typing import List, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from social.graze.bsid.errors import NoURIRecord, UnparsableZoneFile
from social.graze.bsid.zonefile.parser import parse_zone_file

logger = logging.getLogger(__name__)

HTTP_SCHEME_PREFIX = "http"
DEFAULT_SCHEME_PREFIX = "https://"


class UriRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    priority: int
    weight: int
    target: str
    ttl: Optional[int] = None


class TxtRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    txt: Union[str, List[str]]
    ttl: Optional[int] = None


class ZoneFile(BaseModel):
    """Structural view of a zone file.

    URI records keep the order they appear in the zone file.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    origin: Optional[str] = Field(default=None, alias="$origin")
    ttl: Optional[int] = Field(default=None, alias="$ttl")
    uri_records: List[UriRecord] = Field(default_factory=list, alias="uri")
    txt_records: List[TxtRecord] = Field(default_factory=list, alias="txt")


def resolve_zone_file(zone_file_text: str) -> ZoneFile:
    """Parse zone file text into a ZoneFile.

    Raises:
        UnparsableZoneFile: If the parser cannot produce a structural document
    """
    document = parse_zone_file(zone_file_text)
    if document is None:
        raise UnparsableZoneFile.unparsable()
    try:
        return ZoneFile.model_validate(document)
    except ValidationError as e:
        raise UnparsableZoneFile.unparsable() from e


def normalize_token_file_url(target: str) -> str:
    """Prefix ``https://`` onto a target that does not start with ``http``.

    Targets already using ``http://`` or ``https://`` are returned unchanged.
    """
    if target.startswith(HTTP_SCHEME_PREFIX):
        return target
    return f"{DEFAULT_SCHEME_PREFIX}{target}"


def pick_token_file_url(zone_file: ZoneFile) -> str:
    """Select the token file URL from the first URI record.

    Only the first record is considered; priority and weight are not used to break
    ties.

    Raises:
        NoURIRecord: If there is no URI record, the first one has an empty target,
            or the normalized target is not an absolute http(s) URL
    """
    first_record = next(iter(zone_file.uri_records), None)
    if first_record is None:
        raise NoURIRecord.missing()

    target = first_record.target.strip()
    if len(target) == 0:
        raise NoURIRecord.missing_target()

    url = normalize_token_file_url(target)
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise NoURIRecord.invalid_url(url) from e
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise NoURIRecord.invalid_url(url)
    return url
