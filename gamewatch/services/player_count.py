"""
Player count extraction from raw server responses.

Different games answer a "who is online" query in completely different
shapes. Each shape has its own matcher below; matchers are tried in order and
the first one returning a number wins. A matcher never raises, it returns
None when the response is not its shape.
"""

import logging
import re
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

# "5/20"
_STANDARD_PATTERN = re.compile(r"(\d+)/(\d+)")
# Ark ListPlayers: "0. Alice, 0002d1b5b7b64b6e8a3b5c7d9e1f2a3b"
_NUMBERED_LIST_PATTERN = re.compile(r"^\s*(\d+)\.\s*([^,]+),\s*(.+)$", re.MULTILINE)
# Palworld ShowPlayers: CSV with this header
_CSV_HEADER = "name,playeruid,steamid"
# Factorio /players online: "Online players (3):"
_ONLINE_PLAYERS_PATTERN = re.compile(r"Online players \((\d+)\):")

Matcher = Callable[[str], Optional[int]]


def _match_standard(response: str) -> Optional[int]:
    match = _STANDARD_PATTERN.fullmatch(response.strip())
    if match:
        return int(match.group(1))
    return None


def _match_numbered_list(response: str) -> Optional[int]:
    matches = _NUMBERED_LIST_PATTERN.findall(response)
    return len(matches) or None


def _match_csv(response: str) -> Optional[int]:
    if _CSV_HEADER not in response:
        return None
    rows = [
        line
        for line in response.splitlines()
        if line.strip() and not line.strip().startswith("name,")
    ]
    return len(rows) or None


def _match_online_players(response: str) -> Optional[int]:
    match = _ONLINE_PLAYERS_PATTERN.search(response)
    if match:
        return int(match.group(1))
    return None


_MATCHERS: Tuple[Matcher, ...] = (
    _match_standard,
    _match_numbered_list,
    _match_csv,
    _match_online_players,
)


def _match_custom(response: str, pattern: str) -> Optional[int]:
    try:
        match = re.search(pattern, response)
    except re.error as exc:
        logger.warning("Ignoring invalid player count pattern %r: %s", pattern, exc)
        return None
    if not match:
        return None
    try:
        return int(match.group(0))
    except ValueError:
        return None


def extract_player_count(response: Optional[str], custom_pattern: Optional[str] = None) -> int:
    """
    Return the number of online players contained in ``response``.

    0 is returned both for an empty server and for a response that could not
    be understood; callers that need to tell the two apart look at the raw
    response as well.
    """
    if not response or not response.strip():
        logger.debug("Empty server response for player count")
        return 0
    if not any(char.isdigit() for char in response):
        return 0

    for matcher in _MATCHERS:
        count = matcher(response)
        if count is not None:
            return count

    if custom_pattern:
        count = _match_custom(response, custom_pattern)
        if count is not None:
            return count

    return 0
