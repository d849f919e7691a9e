"""URL pattern matchers: media identifiers, store links and ad redirect wrappers."""

from __future__ import annotations

import re
import urllib.parse

VIDEO_ID_RE = re.compile(r"^[a-f0-9]{16}$")
MEDIA_HOST_SUFFIX = "googlevideo.com"
# Matches an identifier inside serialized HTML/JS, where '&' may be entity- or unicode-escaped.
_HTML_VIDEO_URL_RE = re.compile(
    r"googlevideo\.com/[^\s\"'<>]*?(?:[?&]|&amp;|\\u0026)id=([a-f0-9]{16})(?![a-f0-9])",
)

PLAY_STORE_MARKER = "play.google.com/store/apps"
APP_STORE_HOSTS = ("apps.apple.com", "itunes.apple.com")
REDIRECT_PARAMS = ("adurl", "dest", "url")
_REDIRECT_HOSTS = ("googleadservices.com", "googleads.g.doubleclick.net")
_MAX_UNWRAP_DEPTH = 3

_PLAY_ID_RE = re.compile(r"[?&]id=[^&\s]+")
_EMBEDDED_PLAY_RE = re.compile(r"(https?://play\.google\.com/store/apps/details\?id=[a-zA-Z0-9._]+)")
_EMBEDDED_APPLE_RE = re.compile(r"(https?://(?:apps|itunes)\.apple\.com/[^\s&\"']+/app/[^\s&\"']+)")


def is_video_id(value: str | None) -> bool:
    return bool(value) and VIDEO_ID_RE.fullmatch(value) is not None  # type: ignore[arg-type]


def is_media_host(host: str) -> bool:
    host = (host or "").lower().split(":", 1)[0]
    return host == MEDIA_HOST_SUFFIX or host.endswith("." + MEDIA_HOST_SUFFIX)


def video_id_from_url(url: str | None) -> str | None:
    """Return the media identifier carried by a media-host request URL, if any."""

    if not url:
        return None
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError:
        return None
    if not is_media_host(parsed.netloc):
        return None
    for value in urllib.parse.parse_qs(parsed.query).get("id", []):
        if is_video_id(value):
            return value
    return None


def video_id_from_html(html: str | None) -> str | None:
    """Find the first media-host URL with an identifier inside serialized page content."""

    if not html:
        return None
    match = _HTML_VIDEO_URL_RE.search(html)
    return match.group(1) if match else None


def is_valid_store_link(url: str | None) -> bool:
    """True for a Play Store listing with an ``id=`` parameter or an App Store ``/app/`` URL."""

    if not url or not isinstance(url, str):
        return False
    if PLAY_STORE_MARKER in url and _PLAY_ID_RE.search(url):
        return True
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError:
        return False
    host = (parsed.netloc or "").lower()
    return any(host == h or host.endswith("." + h) for h in APP_STORE_HOSTS) and "/app/" in (parsed.path or "")


def is_redirect_wrapper(url: str | None) -> bool:
    if not url:
        return False
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError:
        return False
    host = (parsed.netloc or "").lower()
    if any(host == h or host.endswith("." + h) for h in _REDIRECT_HOSTS):
        return True
    return "/pagead/aclk" in (parsed.path or "")


def unwrap_redirect(url: str | None, *, _depth: int = 0) -> str | None:
    """Return the store link behind a redirect wrapper.

    A direct store link is returned unchanged. A wrapper is unwrapped through its
    ``adurl``/``dest``/``url`` parameter and the decoded value must itself be a
    valid store link; otherwise ``None``.
    """

    if not url:
        return None
    # Checked before validity: an unencoded wrapper can contain a store URL verbatim.
    if not is_redirect_wrapper(url):
        return url if is_valid_store_link(url) else None
    if _depth >= _MAX_UNWRAP_DEPTH:
        return None
    try:
        qs = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)
    except ValueError:
        return None
    for param in REDIRECT_PARAMS:
        for candidate in qs.get(param, []):
            unwrapped = unwrap_redirect(candidate, _depth=_depth + 1)
            if unwrapped:
                return unwrapped
    return None


def extract_store_link(href: str | None) -> str | None:
    """Turn an anchor ``href`` into a validated store link, or ``None``."""

    if not href or not isinstance(href, str):
        return None
    href = href.strip()
    if not href or href == "#" or href.lower().startswith("javascript:"):
        return None
    unwrapped = unwrap_redirect(href)
    if unwrapped:
        return unwrapped
    for pattern in (_EMBEDDED_PLAY_RE, _EMBEDDED_APPLE_RE):
        match = pattern.search(href)
        if match and is_valid_store_link(match.group(1)):
            return match.group(1)
    return None


def normalize_store_link(link: str | None) -> str | None:
    """Final pass on a chosen link: unwrap a lingering ``adurl=`` wrapper when it decodes to http(s)."""

    if not link or "adurl=" not in link:
        return link
    try:
        adurl = urllib.parse.parse_qs(urllib.parse.urlparse(link).query).get("adurl", [None])[0]
    except ValueError:
        return link
    if adurl and adurl.startswith("http") and is_valid_store_link(adurl):
        return adurl
    return link


__all__ = [
    "APP_STORE_HOSTS",
    "MEDIA_HOST_SUFFIX",
    "PLAY_STORE_MARKER",
    "REDIRECT_PARAMS",
    "VIDEO_ID_RE",
    "extract_store_link",
    "is_media_host",
    "is_redirect_wrapper",
    "is_valid_store_link",
    "is_video_id",
    "normalize_store_link",
    "unwrap_redirect",
    "video_id_from_html",
    "video_id_from_url",
]
