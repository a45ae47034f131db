"""
URL helpers shared by the sitemap parser and the batch crawler.

The fallback title derivation is a pure function of the URL so that a page
that could not be extracted still gets a stable, readable title.
"""

import re
from urllib.parse import unquote, urlsplit
from uuid import uuid4

# Trailing file extension such as ".html" or ".php"
FILE_EXTENSION_PATTERN = re.compile(r"\.[^.]*$")

# Word separators commonly used in URL slugs
SEPARATOR_PATTERN = re.compile(r"[-_]")

# First character of every word
WORD_START_PATTERN = re.compile(r"\b\w")

ALLOWED_SCHEMES = {"http", "https"}

UNTITLED_PAGE = "Untitled Page"
DEFAULT_DESCRIPTION = "No description available"
MAX_DESCRIPTION_LENGTH = 200


def is_valid_url(url: str) -> bool:
    """
    Check that a string is an absolute http(s) URL.

    Examples:
        >>> is_valid_url("https://example.com/sitemap.xml")
        True

        >>> is_valid_url("ftp://example.com/file")
        False

        >>> is_valid_url("not a url")
        False
    """
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme.lower() in ALLOWED_SCHEMES and bool(parts.netloc)


def title_from_url(url: str) -> str:
    """
    Derive a readable title from the last path segment of a URL.

    Removes the file extension, turns hyphens and underscores into spaces
    and capitalises the first letter of each word. Falls back to the
    hostname when the path is empty.

    Examples:
        >>> title_from_url("https://x.com/foo-bar")
        'Foo Bar'

        >>> title_from_url("https://example.com/blog/my_first-post.html")
        'My First Post'

        >>> title_from_url("https://example.com/")
        'example.com'
    """
    try:
        parts = urlsplit(url)
    except (ValueError, TypeError, AttributeError):
        return UNTITLED_PAGE

    segments = [segment for segment in parts.path.split("/") if segment]
    if not segments:
        return parts.hostname or UNTITLED_PAGE

    last_segment = unquote(segments[-1])
    title = FILE_EXTENSION_PATTERN.sub("", last_segment)
    title = SEPARATOR_PATTERN.sub(" ", title)
    title = WORD_START_PATTERN.sub(lambda match: match.group(0).upper(), title)
    return title.strip() or parts.hostname or UNTITLED_PAGE


def truncate_description(description: str, max_length: int = MAX_DESCRIPTION_LENGTH) -> str:
    """Shorten a description to max_length characters, marking the cut with an ellipsis."""
    if len(description) > max_length:
        return description[:max_length] + "..."
    return description


def generate_url_id() -> str:
    """Return a unique identifier for a result entry."""
    return f"url-{uuid4().hex[:16]}"
