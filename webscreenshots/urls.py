import datetime
import os
import re
from urllib.parse import urlparse

SCHEME_PREFIX = re.compile(r"^[a-zA-Z][a-zA-Z\d+\-.]*://")


def normalize_url(value: str) -> str:
    """
    Make 'value' an absolute URL, defaulting the scheme to https.
    A host-only URL gains a trailing slash: 'example.com' -> 'https://example.com/'.
    """
    candidate = value if SCHEME_PREFIX.match(value) else f"https://{value}"
    try:
        parsed = urlparse(candidate)
        # accessing .port validates it
        parsed.port
    except ValueError:
        raise ValueError(f'Invalid URL: "{value}"')
    if not parsed.netloc or not re.match(r"^[\w.\-\[\]:@]+$", parsed.netloc):
        raise ValueError(f'Invalid URL: "{value}"')
    if not parsed.path:
        parsed = parsed._replace(path="/")
    return parsed.geturl()


def normalize_route(route: str) -> str:
    """
    Strip every trailing slash: '/about/' -> '/about', '/contact///' -> '/contact'.
    The root route '/' becomes the empty suffix ''.
    """
    return re.sub(r"/+$", "", route)


def with_root_path(url: str) -> str:
    """'https://example.com' -> 'https://example.com/', as a browser resolves it."""
    parsed = urlparse(url)
    if parsed.netloc and not parsed.path:
        return parsed._replace(path="/").geturl()
    return url


def is_same_origin(base: str, link: str) -> bool:
    """
    Return True if 'link' has the same scheme and host (including port) as 'base'.
    Example: base='https://example.com', link='https://example.com/faq' -> True
    """
    if not link:
        return False
    parsed_link = urlparse(link)
    parsed_base = urlparse(base)
    return (parsed_link.scheme, parsed_link.netloc) == (
        parsed_base.scheme,
        parsed_base.netloc,
    )


def format_timestamp(timestamp: datetime.datetime) -> str:
    """ISO-8601 UTC with milliseconds, made filesystem-safe: 2025-08-05T12-34-56-789Z"""
    iso = (
        timestamp.astimezone(datetime.timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )
    return re.sub(r"[:.]", "-", iso)


def generate_file_path(
    url: str,
    viewport: str,
    extension: str,
    pattern: str,
    output_dir: str,
    timestamp: datetime.datetime,
) -> str:
    """
    Resolve the output pattern for one capture and join it under 'output_dir'.

    Placeholders:
      {host}      hostname with dots replaced by dashes (example-com)
      {route}     path with slashes replaced by dashes, 'home' for the root
      {viewport}  viewport name, lower-cased, whitespace replaced by dashes
      {ext}       image extension
      {timestamp} run timestamp, see format_timestamp()
    """
    parsed = urlparse(url)
    host = (parsed.hostname or "").replace(".", "-")
    route = parsed.path.replace("/", "-").strip("-") or "home"
    safe_viewport = re.sub(r"\s+", "-", viewport.lower())

    resolved = (
        pattern.replace("{host}", host)
        .replace("{viewport}", safe_viewport)
        .replace("{route}", route)
        .replace("{ext}", extension)
        .replace("{timestamp}", format_timestamp(timestamp))
    )
    return os.path.join(output_dir, resolved)
