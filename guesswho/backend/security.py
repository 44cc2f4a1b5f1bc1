"""Input hygiene helpers applied at the registry boundary."""

from __future__ import annotations

import re
import secrets


TOKEN_BYTES = 24
MAX_NAME_LENGTH = 20
DEFAULT_PLAYER_NAME = "Player"

_TAG_PATTERN = re.compile(r"<[^>]*>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def generate_token() -> str:
    """Generate a URL-safe player token for clients that do not bring their own."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def sanitize_player_name(name: str) -> str:
    """Strip markup, collapse whitespace and cap the display name at 20 characters."""
    without_tags = _TAG_PATTERN.sub("", name).replace("<", "").replace(">", "")
    collapsed = _WHITESPACE_PATTERN.sub(" ", without_tags).strip()
    capped = collapsed[:MAX_NAME_LENGTH].rstrip()
    return capped or DEFAULT_PLAYER_NAME


def normalize_code(code: str) -> str:
    return code.strip().upper()
