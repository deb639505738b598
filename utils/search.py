from __future__ import annotations

import re
from typing import List, Optional

_TOKEN_RE = re.compile(r"[\w']+")


def tokenize_query(raw: Optional[str]) -> Optional[List[str]]:
    """Split user input into lower-cased search tokens.

    Returns:
        None if raw is empty/None,
        [] if raw contains no searchable tokens,
        otherwise the tokens in order.
    """
    if raw is None:
        return None
    cleaned = raw.strip()
    if not cleaned:
        return None
    return [token.lower() for token in _TOKEN_RE.findall(cleaned)]


def like_pattern(token: str) -> str:
    """Wrap a token for a LIKE match, escaping LIKE wildcards."""
    escaped = token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
