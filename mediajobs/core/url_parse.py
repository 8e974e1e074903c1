"""
Remote source URL parsing and validation (YouTube).
"""

import re
from urllib.parse import urlparse, parse_qs

from mediajobs.core.constants import YOUTUBE_URL_PATTERNS
from mediajobs.core.error_codes import InvalidSourceError

_VIDEO_ID_RE = re.compile(r'^[a-zA-Z0-9_-]{11}$')


def extract_video_id(url: str) -> str | None:
    """
    Extract the 11-character video_id from a YouTube URL.
    Returns None if the URL is not a valid YouTube URL.
    """
    if not url:
        return None
    url = url.strip()
    if not url:
        return None

    for pattern in YOUTUBE_URL_PATTERNS:
        m = re.search(pattern, url)
        if m:
            return m.group(1)

    # Fallback: parse query string for 'v' (or API-style 'id') parameter
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    host = parsed.netloc.lower()
    if 'youtube.com' in host or 'youtu.be' in host or 'googleapis.com' in host:
        qs = parse_qs(parsed.query)
        for key in ('v', 'id'):
            v = qs.get(key, [None])[0]
            if v and _VIDEO_ID_RE.match(v):
                return v

    return None


def validate_source_url(url: str) -> str:
    """
    Validate a remote source URL and return the video_id.
    Raises InvalidSourceError if unsupported.
    """
    video_id = extract_video_id(url)
    if not video_id:
        raise InvalidSourceError(f"Not a supported source URL: {url}")
    return video_id


def canonical_url(video_id: str) -> str:
    """Build the URL handed to the downloader, dropping tracking parameters."""
    return f"https://www.youtube.com/watch?v={video_id}"


def is_youtube_url(url: str) -> bool:
    """Quick check if a string looks like a YouTube URL."""
    return extract_video_id(url) is not None
