"""Site building functionality for Tidepool.

This module contains the core logic for building a static site from source files.
It loads configuration, scans and parses content, assembles a Site, copies static
files, renders every post and page through its layouts, and writes the output.

Key items:
- SiteBuilder: Runs one build against a fixed configuration.
- build_site: Loads configuration from disk and runs one SiteBuilder.
- BuildError: Error during site build with file context.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import Config, load_config, load_data
from .content import ContentScanner, Page, Post, Site, is_markdown
from .frontmatter import FrontMatterError, extract_frontmatter
from .permalinks import output_path, resolve_page_url, resolve_post_date, resolve_post_url
from .renderers import Highlighter, MarkdownRenderer, extract_excerpt
from .templates import LayoutCycleError, TemplateEngine, TemplateRenderError

logger = logging.getLogger(__name__)

DEFAULT_DESTINATION = "_site"


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class UrlCollisionError(BuildError):
    """Two content items resolve to the same output file."""


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        site: The assembled site.
        destination: Directory where the site was built.
    """

    site: Site
    destination: Path

    @property
    def pages(self) -> list[Page]:
        """All rendered content items, posts first."""
        return [*self.site.posts, *self.site.pages]


class SiteBuilder:
    """Builds one site from a source tree into a destination directory.

    Attributes:
        source: Root directory of the site sources.
        destination: Build output directory.
        config: Configuration for this build.
        include_drafts: Whether posts from _drafts are included.
        highlighter: Syntax highlighter shared by every render in the build.
    """

    def __init__(
        self,
        source: Path,
        destination: Path,
        config: Config,
        include_drafts: bool = False,
        highlighter: Highlighter | None = None,
    ):
        self.source = source.resolve()
        self.destination = destination.resolve()
        self.config = config
        self.include_drafts = include_drafts
        self.highlighter = highlighter or Highlighter()
        self.markdown = MarkdownRenderer(config.markdown_plugins, self.highlighter)
        self.templates = TemplateEngine(self.source, config)
        self.scanner = ContentScanner(self.source, config, self.destination)

    def build(self) -> Site:
        """Build the entire site.

        Returns:
            The assembled Site.

        Raises:
            BuildError: On the first unrecoverable error. Output written before the
                failure is left on disk.
        """
        logger.info("Building %s -> %s", self.source, self.destination)
        try:
            self.destination.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BuildError(self.destination, f"Cannot create destination: {exc}", exc) from exc

        now = datetime.now()
        posts = self._load_posts(self.scanner.iter_posts(), now, draft=False)
        if self.include_drafts:
            posts.extend(self._load_posts(self.scanner.iter_posts(drafts=True), now, draft=True))
        posts.sort(key=lambda post: post.date, reverse=True)

        pages = [self._load_page(path) for path in self.scanner.iter_pages()]
        static_files = self._copy_static_files()

        site = Site(
            config=self.config,
            posts=posts,
            pages=pages,
            static_files=static_files,
            data=self._load_data(),
            time=now,
        )
        self._check_collisions(site)
        self._render_site(site)
        logger.info(
            "Built %d posts and %d pages into %s", len(posts), len(pages), self.destination
        )
        return site

    def _load_posts(self, paths: list[Path], now: datetime, draft: bool) -> list[Post]:
        posts: list[Post] = []
        for path in paths:
            front_matter, body = self._read_source(path)
            if not front_matter.published:
                logger.debug("Skipping unpublished post: %s", path)
                continue
            post_date, fallback = resolve_post_date(path, front_matter, now)
            if fallback and not draft:
                logger.warning("No date in filename or front matter for %s; using build time", path)
            post = Post(
                path=path,
                url=resolve_post_url(path, post_date, front_matter, self.config.permalink),
                front_matter=front_matter,
                body=body,
                date=post_date,
                draft=draft,
            )
            self._require_url(post)
            try:
                post.html = self.markdown.render(body)
            except Exception as exc:
                raise BuildError(path, _format_error_message(exc), exc) from exc
            explicit = front_matter.custom.get("excerpt")
            post.excerpt = str(explicit) if explicit is not None else extract_excerpt(post.html)
            posts.append(post)
        return posts

    def _load_page(self, path: Path) -> Page:
        front_matter, body = self._read_source(path)
        page = Page(
            path=path,
            url=resolve_page_url(path, self.source, front_matter),
            front_matter=front_matter,
            body=body,
        )
        self._require_url(page)
        return page

    def _read_source(self, path: Path):
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise BuildError(path, f"Cannot read file: {exc}", exc) from exc
        except UnicodeDecodeError as exc:
            raise BuildError(path, f"File is not valid UTF-8: {exc}", exc) from exc
        try:
            return extract_frontmatter(text)
        except FrontMatterError as exc:
            raise BuildError(path, str(exc), exc) from exc

    def _require_url(self, item: Page) -> None:
        if not item.url:
            raise BuildError(item.path, "Resolved URL is empty")

    def _load_data(self) -> dict[str, Any]:
        try:
            return load_data(self.source)
        except Exception as exc:
            raise BuildError(self.source / "_data", _format_error_message(exc), exc) from exc

    def _copy_static_files(self) -> list[Path]:
        copied: list[Path] = []
        for path in self.scanner.iter_static():
            rel = path.relative_to(self.source)
            target = self.destination / rel
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, target)
            except OSError as exc:
                raise BuildError(path, f"Cannot copy static file: {exc}", exc) from exc
            logger.debug("Copied %s -> %s", path, target)
            copied.append(rel)
        return copied

    def _check_collisions(self, site: Site) -> None:
        owners: dict[Path, Path] = {}
        for item in [*site.posts, *site.pages]:
            target = output_path(self.destination, item.url)
            if target in owners:
                raise UrlCollisionError(
                    item.path,
                    f"URL '{item.url}' is also produced by {owners[target]}",
                )
            owners[target] = item.path
        for rel in site.static_files:
            target = self.destination / rel
            if target in owners:
                raise UrlCollisionError(
                    owners[target],
                    f"Output {rel.as_posix()} collides with a static file",
                )

    def _render_site(self, site: Site) -> None:
        site_context = site.to_context()
        for post in site.posts:
            self._render_item(post, post.html, site_context)
        for page in site.pages:
            context = self._context(page, site_context)
            try:
                html = self.templates.render_string(page.body, context, name=str(page.path))
                if is_markdown(page.path):
                    html = self.markdown.render(html)
            except TemplateRenderError as exc:
                raise BuildError(page.path, exc.message, exc) from exc
            except Exception as exc:
                raise BuildError(page.path, _format_error_message(exc), exc) from exc
            page.html = html
            self._render_item(page, html, site_context)

    def _render_item(self, item: Page, html: str, site_context: dict[str, Any]) -> None:
        context = self._context(item, site_context)
        try:
            rendered = self.templates.render_with_layouts(html, item.front_matter.layout, context)
        except (TemplateRenderError, LayoutCycleError) as exc:
            raise BuildError(item.path, str(exc), exc) from exc
        except UnicodeDecodeError as exc:
            raise BuildError(item.path, f"Layout is not valid UTF-8: {exc}", exc) from exc
        except FrontMatterError as exc:
            raise BuildError(item.path, f"Invalid layout front matter: {exc}", exc) from exc
        except OSError as exc:
            raise BuildError(item.path, f"Cannot read layout: {exc}", exc) from exc
        self._write(item, rendered)

    def _context(self, item: Page, site_context: dict[str, Any]) -> dict[str, Any]:
        return {
            "site": site_context,
            "page": item.to_context(),
            "content": item.html,
            "paginator": None,
        }

    def _write(self, item: Page, rendered: str) -> None:
        target = output_path(self.destination, item.url)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(rendered, encoding="utf-8")
        except OSError as exc:
            raise BuildError(item.path, f"Cannot write {target}: {exc}", exc) from exc
        logger.debug("Rendered %s -> %s", item.path, target)


def build_site(
    source: Path,
    destination: Path | None = None,
    include_drafts: bool = False,
) -> BuildResult:
    """Build the entire static site.

    Configuration is read fresh from disk on every call, so edits to _config.yml
    take effect on the next build.

    Args:
        source: Root directory of the site sources.
        destination: Output directory; defaults to `<source>/_site`.
        include_drafts: Whether to include posts from _drafts.

    Returns:
        BuildResult containing the assembled site and output directory.

    Raises:
        ConfigError: If _config.yml exists but cannot be loaded.
        BuildError: On the first error during the build.
    """
    config = load_config(source)
    target = destination if destination is not None else source / DEFAULT_DESTINATION
    builder = SiteBuilder(source, target, config, include_drafts=include_drafts)
    site = builder.build()
    return BuildResult(site=site, destination=builder.destination)


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"
