"""Markdown rendering for Tidepool.

Markdown is rendered with mistune; fenced code blocks are highlighted with
Pygments through a Highlighter owned by the build.

Key classes:
- Highlighter: Read-only syntax highlighting resource shared across one build.
- MarkdownRenderer: Renders Markdown to HTML with configurable plugins.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexer import Lexer
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .html_utils import escape_html

PARAGRAPH_RE = re.compile(r"<p>(.*?)</p>", re.DOTALL)

EXCERPT_FALLBACK_LENGTH = 200


class Highlighter:
    """Syntax highlighter built once per build and injected into renderers.

    Lexers are looked up lazily and cached on the instance, so the cost of
    resolving a language is paid once per build instead of once per code block.

    Attributes:
        formatter: Pygments HTML formatter.
    """

    def __init__(self, css_class: str = "highlight"):
        self.formatter = HtmlFormatter(nowrap=False, cssclass=css_class)
        self._lexers: dict[str, Lexer | None] = {}

    def highlight(self, code: str, language: str | None) -> str | None:
        """Highlight a code block.

        Args:
            code: Source code.
            language: Language identifier from the fence info string.

        Returns:
            Highlighted HTML fragment, or None when the language is unknown.
        """
        if not language:
            return None
        lexer = self._lexer_for(language)
        if lexer is None:
            return None
        return highlight(code, lexer, self.formatter)

    def css(self) -> str:
        """Return CSS rules for the highlight class."""
        return self.formatter.get_style_defs(f".{self.formatter.cssclass}")

    def _lexer_for(self, language: str) -> Lexer | None:
        key = language.strip().lower()
        if key not in self._lexers:
            try:
                self._lexers[key] = get_lexer_by_name(key, stripall=True)
            except ClassNotFound:
                self._lexers[key] = None
        return self._lexers[key]


class _HighlightRenderer(mistune.HTMLRenderer):
    """mistune renderer that delegates fenced code blocks to a Highlighter."""

    def __init__(self, highlighter: Highlighter | None):
        super().__init__(escape=False)
        self.highlighter = highlighter

    def block_code(self, code: str, info: str | None = None) -> str:
        language = info.split()[0] if info and info.strip() else None
        if self.highlighter is not None:
            highlighted = self.highlighter.highlight(code, language)
            if highlighted is not None:
                return highlighted
        lang_class = f' class="language-{escape_html(language)}"' if language else ""
        return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown content to HTML.

    Attributes:
        plugins: mistune plugin names enabled for every render.
        highlighter: Optional highlighter for fenced code blocks.
    """

    def __init__(
        self,
        plugins: Iterable[str] = (),
        highlighter: Highlighter | None = None,
    ):
        self.plugins = list(plugins)
        self.highlighter = highlighter
        self._markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(highlighter), plugins=self.plugins
        )

    def render(self, markdown: str) -> str:
        """Render Markdown source to HTML."""
        return self._markdown(markdown)


def extract_excerpt(html: str) -> str:
    """Derive a post excerpt from rendered HTML.

    Args:
        html: Rendered HTML of the post.

    Returns:
        Inner HTML of the first paragraph, or the first 200 characters followed by
        an ellipsis when there is no paragraph.
    """
    match = PARAGRAPH_RE.search(html)
    if match:
        return match.group(1)
    if not html.strip():
        return ""
    return html[:EXCERPT_FALLBACK_LENGTH] + "..."
