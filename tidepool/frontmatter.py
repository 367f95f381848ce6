"""Front matter extraction for Tidepool.

Content files may start with a YAML block delimited by `---` lines. This module
splits that block from the body and parses it into a FrontMatter value.

Key items:
- FrontMatter: Dataclass holding the known metadata fields plus custom keys.
- extract_frontmatter: Split raw text into (FrontMatter, body).
- FrontMatterError: Raised when a metadata block exists but is malformed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import yaml

DELIMITER = "---"

_LEADING_BLANK_LINES_RE = re.compile(r"\A(?:[ \t]*\r?\n)+")


class FrontMatterError(ValueError):
    """The metadata block is present but structurally invalid."""


@dataclass
class FrontMatter:
    """Metadata block parsed from the top of a content file.

    Attributes:
        title: Optional title.
        layout: Layout name; None means the default layout.
        date: Raw date value (string, date or datetime) as written.
        author: Optional author name.
        categories: List of category names.
        tags: List of tag names.
        permalink: Explicit URL override, used verbatim.
        published: False keeps a post out of the site.
        custom: Every key not listed above.
    """

    title: str | None = None
    layout: str | None = None
    date: Any = None
    author: str | None = None
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    permalink: str | None = None
    published: bool = True
    custom: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> FrontMatter:
        """Build a FrontMatter from a parsed YAML mapping.

        Raises:
            FrontMatterError: If a known field has an unusable type.
        """
        values = dict(data)
        published = values.pop("published", True)
        if published is None:
            published = True
        if not isinstance(published, bool):
            raise FrontMatterError("'published' must be true or false")
        return cls(
            title=_optional_str(values.pop("title", None)),
            layout=_optional_str(values.pop("layout", None)),
            date=values.pop("date", None),
            author=_optional_str(values.pop("author", None)),
            categories=_string_list("categories", values.pop("categories", None)),
            tags=_string_list("tags", values.pop("tags", None)),
            permalink=_optional_str(values.pop("permalink", None)),
            published=published,
            custom={str(key): value for key, value in values.items()},
        )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _string_list(name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    if isinstance(value, list):
        return [str(item) for item in value]
    raise FrontMatterError(f"'{name}' must be a list or a space-separated string")


def extract_frontmatter(text: str) -> tuple[FrontMatter, str]:
    """Split raw file text into front matter and body.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (FrontMatter, body). Without an opening delimiter, or with an
        opening delimiter that is never closed, the metadata is the default and
        the body is the original text.

    Raises:
        FrontMatterError: If the metadata block is not valid YAML or not a mapping.

    Examples:
        >>> extract_frontmatter("---\\ntitle: Hi\\n---\\n\\nBody")
        (FrontMatter(title='Hi', ...), 'Body')

        >>> extract_frontmatter("No metadata")
        (FrontMatter(...), 'No metadata')
    """
    lines = text.lstrip().splitlines(keepends=True)
    if not lines or lines[0].rstrip() != DELIMITER:
        return FrontMatter(), text

    for index in range(1, len(lines)):
        if lines[index].rstrip() == DELIMITER:
            block = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            break
    else:
        return FrontMatter(), text

    # safe_load raises ValueError for date-shaped values that are not real dates.
    try:
        data = yaml.safe_load(block)
    except (yaml.YAMLError, ValueError) as exc:
        raise FrontMatterError(f"Invalid YAML front matter: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterError("Front matter must be a mapping of keys to values")
    return FrontMatter.from_mapping(data), _LEADING_BLANK_LINES_RE.sub("", body)
