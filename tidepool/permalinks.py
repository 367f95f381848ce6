"""Permalink and URL resolution for Tidepool.

Posts get their URL from the configured permalink pattern, pages from their
location in the source tree, and either can be overridden by a `permalink`
front matter field.

Key functions:
- parse_date_from_filename: Extract a YYYY-MM-DD prefix from a post filename.
- resolve_post_date: Pick the publication date of a post.
- resolve_post_url: Expand the permalink pattern for a post.
- resolve_page_url: Derive a page URL from its source path.
- output_path: Map a URL to the file written under the destination.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path

from .frontmatter import FrontMatter

PERMALINK_TOKEN_RE = re.compile(r":(year|month|day|title)")

_FRONTMATTER_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")


def parse_date_from_filename(name: str) -> datetime | None:
    """Extract the date from a `YYYY-MM-DD-title.md` style filename.

    Args:
        name: File name (with or without extension).

    Returns:
        datetime at midnight, or None when there are fewer than four dash-separated
        segments or the first three do not form a valid calendar date.

    Examples:
        >>> parse_date_from_filename("2024-01-15-hello-world.md")
        datetime(2024, 1, 15, 0, 0)

        >>> parse_date_from_filename("2024-01-15.md")
        None
    """
    parts = name.split("-")
    if len(parts) < 4:
        return None
    try:
        return datetime(int(parts[0]), int(parts[1]), int(parts[2]))
    except ValueError:
        return None


def title_from_filename(name: str) -> str:
    """Return the `:title` token for a post filename.

    The date prefix (first three segments) is dropped when the filename carries a
    parsable date; otherwise the whole stem is used.
    """
    stem = Path(name).stem
    if parse_date_from_filename(name) is None:
        return stem
    return "-".join(stem.split("-")[3:])


def parse_frontmatter_date(value: object) -> datetime | None:
    """Convert a front matter `date` value into a datetime, if possible."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        for fmt in _FRONTMATTER_DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    return None


def resolve_post_date(
    path: Path, front_matter: FrontMatter, now: datetime
) -> tuple[datetime, bool]:
    """Resolve the publication date of a post.

    Args:
        path: Source path of the post.
        front_matter: Parsed front matter of the post.
        now: Build time used when no date can be found.

    Returns:
        Tuple of (date, is_fallback). is_fallback is True when `now` was used.
    """
    resolved = parse_date_from_filename(path.name)
    if resolved is None:
        resolved = parse_frontmatter_date(front_matter.date)
    if resolved is None:
        return now, True
    return resolved, False


def resolve_post_url(
    path: Path, post_date: datetime, front_matter: FrontMatter, pattern: str
) -> str:
    """Expand the permalink pattern for a post.

    All tokens are replaced in a single pass, so a substituted value that happens to
    contain a token (e.g. a title with `:year` in it) is left alone.

    Args:
        path: Source path of the post.
        post_date: Resolved publication date.
        front_matter: Parsed front matter; its permalink wins when set.
        pattern: Permalink pattern from the configuration.

    Returns:
        Site-relative URL.

    Examples:
        >>> resolve_post_url(Path("2024-01-15-hi.md"), datetime(2024, 1, 15), FrontMatter(),
        ...                  "/:year/:month/:day/:title/")
        '/2024/01/15/hi/'
    """
    if front_matter.permalink:
        return front_matter.permalink
    values = {
        "year": f"{post_date.year:04d}",
        "month": f"{post_date.month:02d}",
        "day": f"{post_date.day:02d}",
        "title": title_from_filename(path.name),
    }
    return PERMALINK_TOKEN_RE.sub(lambda match: values[match.group(1)], pattern)


def resolve_page_url(path: Path, source: Path, front_matter: FrontMatter) -> str:
    """Derive the URL for a page.

    Args:
        path: Source path of the page.
        source: Root directory of the site sources.
        front_matter: Parsed front matter; its permalink wins when set.

    Returns:
        Source-relative path with an .html extension, e.g. `docs/intro.html`.
    """
    if front_matter.permalink:
        return front_matter.permalink
    try:
        rel = path.relative_to(source)
    except ValueError:
        rel = path
    return rel.with_suffix(".html").as_posix().replace("\\", "/").lstrip("/")


def output_path(destination: Path, url: str) -> Path:
    """Return the file under destination that serves the given URL.

    Args:
        destination: Build output directory.
        url: Site-relative URL.

    Returns:
        Output file path; URLs ending in a slash map to index.html.
    """
    relative = url.lstrip("/")
    if not relative or relative.endswith("/"):
        relative = f"{relative}index.html"
    return destination / relative
