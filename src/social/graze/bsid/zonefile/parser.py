"""Zone file grammar parser.

Parses the DNS master file subset that Blockstack zone files are written in:

    zone      = { line }
    line      = directive | record | blank
    directive = "$ORIGIN" name | "$TTL" ttl
    record    = [ owner ] [ ttl ] [ class ] type rdata
    rdata     = { word | quoted-string }

A ``;`` starts a comment that runs to the end of the line, parentheses join physical
lines into one logical line, and a record line starting with whitespace reuses the
owner of the previous record.

The result is a plain dict keyed by lower-case record type, for example::

    {
        "$origin": "alice.id",
        "$ttl": 3600,
        "uri": [{"name": "_http._tcp", "priority": 10, "weight": 1,
                 "target": "https://gaia.blockstack.org/hub/.../profile.json"}],
    }

Failure is total: any syntax error yields None, never a partial document.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

RECORD_CLASSES = {"IN", "CH", "HS", "CS"}

_TYPE_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*$")
_TTL_PATTERN = re.compile(r"^(?:\d+[SMHDW]?)+$", re.IGNORECASE)
_TTL_PART_PATTERN = re.compile(r"(\d+)([SMHDW]?)", re.IGNORECASE)
_TTL_UNITS = {"": 1, "S": 1, "M": 60, "H": 3600, "D": 86400, "W": 604800}

_BARE_WORD_TERMINATORS = ' \t;()"'


class ZoneFileSyntaxError(ValueError):
    pass


@dataclass(frozen=True)
class _Token:
    text: str
    quoted: bool = False


def _tokenize(line: str) -> Tuple[List[_Token], int]:
    """Split one physical line into tokens and its change in parenthesis depth."""
    tokens: List[_Token] = []
    depth_change = 0
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch in " \t\r":
            i += 1
        elif ch == ";":
            break
        elif ch == "(":
            depth_change += 1
            i += 1
        elif ch == ")":
            depth_change -= 1
            i += 1
        elif ch == '"':
            i += 1
            chars = []
            while True:
                if i >= n:
                    raise ZoneFileSyntaxError("Unterminated quoted string")
                c = line[i]
                if c == "\\" and i + 1 < n:
                    chars.append(line[i + 1])
                    i += 2
                    continue
                i += 1
                if c == '"':
                    break
                chars.append(c)
            tokens.append(_Token("".join(chars), quoted=True))
        else:
            start = i
            while i < n and line[i] not in _BARE_WORD_TERMINATORS:
                i += 1
            tokens.append(_Token(line[start:i]))
    return tokens, depth_change


def _logical_lines(text: str) -> List[Tuple[bool, List[_Token]]]:
    """Join physical lines into logical lines.

    Returns (blank_owner, tokens) pairs, where blank_owner is True when the line
    started with whitespace.
    """
    logical: List[Tuple[bool, List[_Token]]] = []
    current: List[_Token] = []
    blank_owner = False
    depth = 0

    for line in text.splitlines():
        tokens, depth_change = _tokenize(line)
        if depth == 0:
            if not tokens and depth_change == 0:
                continue
            blank_owner = line[:1] in (" ", "\t")
            current = []
        current.extend(tokens)
        depth += depth_change
        if depth < 0:
            raise ZoneFileSyntaxError("Unbalanced closing parenthesis")
        if depth == 0 and current:
            logical.append((blank_owner, current))

    if depth != 0:
        raise ZoneFileSyntaxError("Unbalanced opening parenthesis")
    return logical


def _parse_ttl(token: _Token) -> int:
    if token.quoted or not _TTL_PATTERN.match(token.text):
        raise ZoneFileSyntaxError(f"Invalid TTL {token.text!r}")
    return sum(
        int(value) * _TTL_UNITS[unit.upper()]
        for value, unit in _TTL_PART_PATTERN.findall(token.text)
    )


def _integer(token: _Token, field: str) -> int:
    if token.quoted or not token.text.isdigit():
        raise ZoneFileSyntaxError(f"Invalid {field} {token.text!r}")
    return int(token.text)


def _expect(rtype: str, rdata: List[_Token], count: int) -> None:
    if len(rdata) != count:
        raise ZoneFileSyntaxError(
            f"{rtype} record expects {count} fields, found {len(rdata)}"
        )


def _uri(rdata: List[_Token]) -> Dict[str, Any]:
    _expect("URI", rdata, 3)
    return {
        "priority": _integer(rdata[0], "priority"),
        "weight": _integer(rdata[1], "weight"),
        "target": rdata[2].text,
    }


def _txt(rdata: List[_Token]) -> Dict[str, Any]:
    if len(rdata) == 0:
        raise ZoneFileSyntaxError("TXT record has no strings")
    if len(rdata) == 1:
        return {"txt": rdata[0].text}
    return {"txt": [token.text for token in rdata]}


def _address(rdata: List[_Token]) -> Dict[str, Any]:
    _expect("address", rdata, 1)
    return {"ip": rdata[0].text}


def _cname(rdata: List[_Token]) -> Dict[str, Any]:
    _expect("CNAME", rdata, 1)
    return {"alias": rdata[0].text}


def _host(rdata: List[_Token]) -> Dict[str, Any]:
    _expect("host", rdata, 1)
    return {"host": rdata[0].text}


def _mx(rdata: List[_Token]) -> Dict[str, Any]:
    _expect("MX", rdata, 2)
    return {"preference": _integer(rdata[0], "preference"), "host": rdata[1].text}


def _srv(rdata: List[_Token]) -> Dict[str, Any]:
    _expect("SRV", rdata, 4)
    return {
        "priority": _integer(rdata[0], "priority"),
        "weight": _integer(rdata[1], "weight"),
        "port": _integer(rdata[2], "port"),
        "target": rdata[3].text,
    }


def _soa(rdata: List[_Token]) -> Dict[str, Any]:
    _expect("SOA", rdata, 7)
    return {
        "mname": rdata[0].text,
        "rname": rdata[1].text,
        "serial": _integer(rdata[2], "serial"),
        "refresh": _parse_ttl(rdata[3]),
        "retry": _parse_ttl(rdata[4]),
        "expire": _parse_ttl(rdata[5]),
        "minimum": _parse_ttl(rdata[6]),
    }


_RDATA_PARSERS: Dict[str, Callable[[List[_Token]], Dict[str, Any]]] = {
    "URI": _uri,
    "TXT": _txt,
    "SPF": _txt,
    "A": _address,
    "AAAA": _address,
    "CNAME": _cname,
    "NS": _host,
    "PTR": _host,
    "MX": _mx,
    "SRV": _srv,
    "SOA": _soa,
}


def _generic(rdata: List[_Token]) -> Dict[str, Any]:
    return {"rdata": " ".join(token.text for token in rdata)}


def _parse(text: str) -> Dict[str, Any]:
    zone: Dict[str, Any] = {}
    last_name: Optional[str] = None

    for blank_owner, tokens in _logical_lines(text):
        first = tokens[0]

        if not first.quoted and first.text.startswith("$"):
            directive = first.text.upper()
            if len(tokens) != 2:
                raise ZoneFileSyntaxError(f"{directive} expects one argument")
            if directive == "$ORIGIN":
                zone["$origin"] = tokens[1].text
            elif directive == "$TTL":
                zone["$ttl"] = _parse_ttl(tokens[1])
            else:
                raise ZoneFileSyntaxError(f"Unsupported directive {directive}")
            continue

        if blank_owner:
            if last_name is None:
                raise ZoneFileSyntaxError("Record without owner name")
            name = last_name
            rest = tokens
        else:
            if first.quoted:
                raise ZoneFileSyntaxError("Owner name cannot be quoted")
            name = first.text
            rest = tokens[1:]
        last_name = name

        record_ttl: Optional[int] = None
        seen_class = False
        while rest and not rest[0].quoted:
            word = rest[0].text
            if record_ttl is None and _TTL_PATTERN.match(word):
                record_ttl = _parse_ttl(rest[0])
            elif not seen_class and word.upper() in RECORD_CLASSES:
                seen_class = True
            else:
                break
            rest = rest[1:]

        if not rest or rest[0].quoted:
            raise ZoneFileSyntaxError(f"Record {name!r} has no type")
        rtype = rest[0].text.upper()
        if not _TYPE_PATTERN.match(rtype):
            raise ZoneFileSyntaxError(f"Invalid record type {rest[0].text!r}")

        record: Dict[str, Any] = {"name": name}
        if record_ttl is not None:
            record["ttl"] = record_ttl
        record.update(_RDATA_PARSERS.get(rtype, _generic)(rest[1:]))
        zone.setdefault(rtype.lower(), []).append(record)

    return zone


def parse_zone_file(text: str) -> Optional[Dict[str, Any]]:
    """Parse zone file text into a structural document.

    Args:
        text: Zone file text

    Returns:
        Dict keyed by ``$origin``, ``$ttl`` and lower-case record types, or None if
        the text is not a zone file
    """
    if not isinstance(text, str):
        return None
    try:
        return _parse(text)
    except ZoneFileSyntaxError as e:
        logger.debug("Zone file does not parse: %s", e)
        return None
