"""Object pattern matching and specificity ranking."""

import logging
import re

logger = logging.getLogger(__name__)

DELIMITER = "."
WILDCARD = "*"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def normalize(value: str) -> str:
    """Trim, strip control characters and upper-case an object name or pattern."""
    return _CONTROL_CHARS.sub("", value).strip().upper()


def _glob_to_regex(pattern: str) -> re.Pattern:
    # Only '*' is special; everything else is literal.
    parts = (re.escape(p) for p in pattern.split(WILDCARD))
    return re.compile(".*".join(parts), re.DOTALL)


def matches(object_name: str, pattern: str) -> bool:
    """
    True when object_name matches pattern, case-insensitively.
    '*' matches zero or more characters and the match spans the whole name.
    Malformed input never raises; it is simply not a match.
    """
    try:
        name = normalize(object_name)
        pat = normalize(pattern)
        if not pat:
            return False
        if name == pat:
            return True
        if WILDCARD not in pat:
            return False
        return _glob_to_regex(pat).fullmatch(name) is not None
    except Exception:
        logger.debug("Pattern match failed for %r / %r", object_name, pattern, exc_info=True)
        return False


def specificity(pattern: str) -> int:
    """
    Rank a pattern that already matched; higher wins.

    segments * 100 - wildcards * 50 + 1000 (exact patterns only) + length.
    The exact bonus outweighs anything a wildcarded pattern can score.
    """
    pat = normalize(pattern)
    segments = pat.count(DELIMITER)
    wildcards = pat.count(WILDCARD)
    score = segments * 100 - wildcards * 50 + len(pat)
    if wildcards == 0:
        score += 1000
    return score
