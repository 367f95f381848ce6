"""Content discovery and the site data model for Tidepool.

This module walks the source tree, classifies each file, and defines the values
a build produces from them.

Key classes:
- Page: A non-post content file.
- Post: A dated content file from _posts (or _drafts).
- Site: Aggregate of all posts, pages and static files for one build.
- ContentScanner: Walks and classifies the source tree.
"""

from __future__ import annotations

import enum
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import Config
from .frontmatter import FrontMatter

POSTS_DIR = "_posts"
DRAFTS_DIR = "_drafts"
LAYOUTS_DIR = "_layouts"
INCLUDES_DIR = "_includes"
DATA_DIR = "_data"
ASSETS_DIR = "assets"

MARKDOWN_EXTENSIONS = (".md", ".markdown")
PAGE_EXTENSIONS = MARKDOWN_EXTENSIONS + (".html",)

RESERVED_DIRS = frozenset(
    {
        "_site",
        LAYOUTS_DIR,
        INCLUDES_DIR,
        DATA_DIR,
        POSTS_DIR,
        DRAFTS_DIR,
        "node_modules",
        ".git",
    }
)


class ContentKind(enum.Enum):
    POST = "post"
    DRAFT = "draft"
    PAGE = "page"
    STATIC = "static"
    IGNORED = "ignored"


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file (.md or .markdown, case-insensitive)."""
    return path.suffix.lower() in MARKDOWN_EXTENSIONS


@dataclass
class Page:
    """A non-post content file.

    Attributes:
        path: Path to the source file.
        url: Resolved site-relative URL.
        front_matter: Parsed metadata block.
        body: Raw body text after the front matter.
        html: Rendered HTML, filled in during the render phase.
    """

    path: Path
    url: str
    front_matter: FrontMatter
    body: str
    html: str = ""

    @property
    def title(self) -> str | None:
        return self.front_matter.title

    @property
    def layout(self) -> str:
        return self.front_matter.layout or "default"

    def to_context(self) -> dict[str, Any]:
        """Return template variables describing this page."""
        context = dict(self.front_matter.custom)
        context.update(
            title=self.front_matter.title,
            url=self.url,
            layout=self.front_matter.layout,
            author=self.front_matter.author,
            categories=list(self.front_matter.categories),
            tags=list(self.front_matter.tags),
            path=self.path.as_posix(),
            content=self.html,
        )
        return context


@dataclass
class Post(Page):
    """A post from _posts (or _drafts).

    Attributes:
        date: Resolved publication date.
        excerpt: Short preview derived from the rendered HTML.
        draft: Whether the post came from _drafts.
    """

    date: datetime = field(kw_only=True)
    excerpt: str = ""
    draft: bool = False

    def to_context(self) -> dict[str, Any]:
        context = super().to_context()
        context.update(date=self.date, excerpt=self.excerpt, draft=self.draft)
        return context


@dataclass
class Site:
    """Everything one build knows about the site.

    Constructed fresh by every build and never updated in place.

    Attributes:
        config: Configuration the site was built with.
        posts: Posts sorted by date, newest first.
        pages: Non-post pages.
        static_files: Source-relative paths of files copied verbatim.
        data: Values loaded from _data.
        time: Build timestamp.
    """

    config: Config
    posts: list[Post] = field(default_factory=list)
    pages: list[Page] = field(default_factory=list)
    static_files: list[Path] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    time: datetime = field(default_factory=datetime.now)

    def to_context(self) -> dict[str, Any]:
        """Return the `site` template variable."""
        context = self.config.to_context()
        context.update(
            posts=[post.to_context() for post in self.posts],
            pages=[page.to_context() for page in self.pages],
            static_files=[path.as_posix() for path in self.static_files],
            data=self.data,
            time=self.time,
        )
        return context


class ContentScanner:
    """Walks the source tree and classifies files.

    Reserved directories (layouts, includes, data, posts, drafts, the destination
    and tooling folders) are pruned from the walk so that they are never read as
    pages, and generated output is never read back as input.

    Attributes:
        source: Root directory of the site sources.
        config: Site configuration, used for exclude/include patterns.
        destination: Build output directory.
    """

    def __init__(self, source: Path, config: Config, destination: Path | None = None):
        self.source = source
        self.config = config
        self.destination = destination
        self._destination_resolved = destination.resolve() if destination else None

    def classify(self, path: Path) -> ContentKind:
        """Classify a file under the source root.

        Args:
            path: File path, absolute or relative to the source root.

        Returns:
            The kind of content the file represents.
        """
        full = path if path.is_absolute() else self.source / path
        try:
            rel = full.relative_to(self.source)
        except ValueError:
            return ContentKind.IGNORED
        if self._is_under_destination(full):
            return ContentKind.IGNORED
        parts = rel.parts
        if len(parts) > 1 and parts[0] in (POSTS_DIR, DRAFTS_DIR):
            if not is_markdown(full):
                return ContentKind.IGNORED
            return ContentKind.POST if parts[0] == POSTS_DIR else ContentKind.DRAFT
        if any(_is_reserved_dir(part) for part in parts[:-1]):
            return ContentKind.IGNORED
        if parts[-1].startswith(("_", ".")):
            return ContentKind.IGNORED
        if parts[0] == ASSETS_DIR:
            return ContentKind.STATIC
        if full.suffix.lower() in PAGE_EXTENSIONS:
            return ContentKind.PAGE
        return ContentKind.STATIC

    def iter_posts(self, drafts: bool = False) -> list[Path]:
        """List post files directly inside _posts (or _drafts), sorted by name.

        Args:
            drafts: Read _drafts instead of _posts.

        Returns:
            Sorted list of Markdown files.
        """
        directory = self.source / (DRAFTS_DIR if drafts else POSTS_DIR)
        if not directory.is_dir():
            return []
        return sorted(
            path for path in directory.iterdir() if path.is_file() and is_markdown(path)
        )

    def iter_pages(self) -> list[Path]:
        """List page files outside reserved directories, excluding configured patterns."""
        return [path for path, kind in self._walk() if kind is ContentKind.PAGE]

    def iter_static(self) -> list[Path]:
        """List static files outside reserved directories, excluding configured patterns."""
        return [path for path, kind in self._walk() if kind is ContentKind.STATIC]

    def _walk(self) -> Iterator[tuple[Path, ContentKind]]:
        for root, dirs, files in os.walk(self.source, followlinks=True):
            root_path = Path(root)
            # Prune in place so reserved trees are never descended into.
            dirs[:] = sorted(
                name
                for name in dirs
                if not _is_reserved_dir(name)
                and not self._is_under_destination(root_path / name)
            )
            for name in sorted(files):
                path = root_path / name
                kind = self.classify(path)
                if kind not in (ContentKind.PAGE, ContentKind.STATIC):
                    continue
                if self.config.is_excluded(path.relative_to(self.source)):
                    continue
                yield path, kind

    def _is_under_destination(self, path: Path) -> bool:
        if self._destination_resolved is None:
            return False
        try:
            path.resolve().relative_to(self._destination_resolved)
        except ValueError:
            return False
        return True


def _is_reserved_dir(name: str) -> bool:
    return name in RESERVED_DIRS or name.startswith(("_", "."))
