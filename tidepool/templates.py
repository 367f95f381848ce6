"""Template rendering engine for Tidepool.

This module uses Jinja2 to render page bodies and to wrap rendered content in
layouts from `_layouts/`. Layouts may name a parent layout in their own front
matter; the chain is followed until a layout has no parent or is missing.

Key items:
- TemplateEngine: Renders template strings and layout chains.
- LayoutCycleError: Raised when parent layouts refer back to each other.
- TemplateRenderError: Raised when Jinja2 fails to parse or render a template.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape
from markupsafe import Markup

from .config import Config
from .content import INCLUDES_DIR, LAYOUTS_DIR
from .frontmatter import extract_frontmatter
from .html_utils import join_root_url

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT = "default"


class TemplateRenderError(Exception):
    """A template could not be parsed or rendered.

    Attributes:
        name: Template or layout name.
        message: Human-readable error message.
    """

    def __init__(self, name: str, message: str):
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}")


class LayoutCycleError(Exception):
    """Parent layout references form a cycle.

    Attributes:
        chain: Layout names in the order they were visited, ending with the repeat.
    """

    def __init__(self, chain: list[str]):
        self.chain = chain
        super().__init__(f"Layout cycle detected: {' -> '.join(chain)}")


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        source: Root directory of the site sources.
        config: Site configuration.
        layouts_dir: Directory holding layout files.
        env: Jinja2 environment; its loader serves `_includes/`.
    """

    def __init__(self, source: Path, config: Config):
        """Initialize the template engine.

        Args:
            source: Root directory of the site sources.
            config: Site configuration used for URL filters.
        """
        self.source = source
        self.config = config
        self.layouts_dir = source / LAYOUTS_DIR
        self.env = Environment(
            loader=FileSystemLoader([source / INCLUDES_DIR]),
            autoescape=select_autoescape(["xml"], default_for_string=False),
        )
        self._install_filters()

    def _install_filters(self) -> None:
        """Install URL filters in the Jinja environment."""
        self.env.filters["relative_url"] = self._relative_url
        self.env.filters["absolute_url"] = self._absolute_url

    def _relative_url(self, path: str) -> str:
        """Prefix a site path with the configured baseurl."""
        return join_root_url(self.config.baseurl, str(path))

    def _absolute_url(self, path: str) -> str:
        """Prefix a site path with the configured url and baseurl."""
        if str(path).startswith(("http://", "https://", "//")):
            return str(path)
        return join_root_url(self.config.url, self._relative_url(path))

    def render_string(self, template: str, context: dict[str, Any], name: str = "<string>") -> str:
        """Render a template string.

        Args:
            template: Template source.
            context: Variables to make available in the template.
            name: Name used in error messages.

        Returns:
            Rendered string.

        Raises:
            TemplateRenderError: If the template fails to parse or render.
        """
        try:
            return self.env.from_string(template).render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(name, _format_template_error(exc)) from exc

    def render_with_layouts(
        self, content: str, layout: str | None, context: dict[str, Any]
    ) -> str:
        """Wrap rendered content in its layout chain.

        Args:
            content: Rendered HTML of the page body.
            layout: Layout name from the page's front matter (None for the default).
            context: Template variables; `content` is set for each layout.

        Returns:
            Output of the outermost layout, or the content produced so far when a
            layout in the chain is missing.

        Raises:
            LayoutCycleError: If a layout's parent chain revisits a layout.
            TemplateRenderError: If a layout fails to render.
        """
        name = layout or DEFAULT_LAYOUT
        visited: list[str] = []
        while name:
            if name in visited:
                raise LayoutCycleError(visited + [name])
            visited.append(name)
            layout_path = self.layouts_dir / f"{name}.html"
            if not layout_path.is_file():
                logger.warning("Layout not found: %s", name)
                return content
            layout_front_matter, template = extract_frontmatter(
                layout_path.read_text(encoding="utf-8")
            )
            variables = dict(context)
            variables["content"] = Markup(content)
            content = self.render_string(template, variables, name=f"layout '{name}'")
            name = layout_front_matter.layout
        return content


def _format_template_error(exc: TemplateError) -> str:
    lineno = getattr(exc, "lineno", None)
    message = getattr(exc, "message", None) or str(exc)
    if lineno:
        return f"{type(exc).__name__} on line {lineno}: {message}"
    return f"{type(exc).__name__}: {message}"
