"""Normalization of free text scraped from ad creatives."""

from __future__ import annotations

import re

MIN_NAME_LENGTH = 2
NAME_DELIMITER = "!@~!@~"

_INVISIBLE_RE = re.compile("[\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]")
# Class tokens such as ".short-app-name" captured along with innerText.
_CLASS_TOKEN_RE = re.compile(r"\.[a-zA-Z][\w-]*")
# Inline style fragments such as "color: #fff;".
_STYLE_FRAGMENT_RE = re.compile(r"[a-zA-Z-]+\s*:\s*[^;]+;")
_WHITESPACE_RE = re.compile(r"\s+")
_DEGENERATE_RE = re.compile(r"^[\d\s\W]+$")


def strip_invisible(text: str) -> str:
    return _INVISIBLE_RE.sub("", text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_app_name(text: str | None) -> str | None:
    """Return a cleaned app name, or ``None`` when nothing usable is left.

    Idempotent: ``clean_app_name(clean_app_name(x)) == clean_app_name(x)``.
    """

    if not text or not isinstance(text, str):
        return None
    clean = strip_invisible(text.strip())
    # Removing one fragment can expose another (".-a:b;c" -> ".c"), so run to a fixpoint.
    previous = None
    while previous != clean:
        previous = clean
        clean = _STYLE_FRAGMENT_RE.sub(" ", _CLASS_TOKEN_RE.sub(" ", clean))
    clean = clean.split(NAME_DELIMITER)[0]
    if "|" in clean:
        parts = [p.strip() for p in clean.split("|") if len(p.strip()) > 2]
        if parts:
            clean = parts[0]
    clean = collapse_whitespace(clean)
    if len(clean) < MIN_NAME_LENGTH:
        return None
    if _DEGENERATE_RE.match(clean):
        return None
    return clean


def normalize_label(text: str | None) -> str:
    """Casefolded, whitespace-collapsed form used to compare names against the advertiser."""

    if not text:
        return ""
    return collapse_whitespace(strip_invisible(text)).casefold()


def is_blacklisted(name: str | None, blacklist: str | None) -> bool:
    """True when ``name`` merely echoes the page-level advertiser label."""

    if not name or not blacklist:
        return False
    return normalize_label(name) == normalize_label(blacklist)


__all__ = [
    "MIN_NAME_LENGTH",
    "NAME_DELIMITER",
    "clean_app_name",
    "collapse_whitespace",
    "is_blacklisted",
    "normalize_label",
    "strip_invisible",
]
