import mistune

from tidepool.config import DEFAULT_MARKDOWN_PLUGINS
from tidepool.renderers import Highlighter, MarkdownRenderer, extract_excerpt


def test_markdown_renders_basic_html():
    html = MarkdownRenderer().render("# Title\n\nSome *text*.")
    assert "<h1>Title</h1>" in html
    assert "<p>Some <em>text</em>.</p>" in html


def test_markdown_keeps_raw_html():
    html = MarkdownRenderer().render('<div class="note">kept</div>\n')
    assert '<div class="note">kept</div>' in html


def test_markdown_plugins_enable_tables_and_strikethrough():
    source = "| a | b |\n|---|---|\n| 1 | 2 |\n\n~~gone~~\n"
    html = MarkdownRenderer(plugins=DEFAULT_MARKDOWN_PLUGINS).render(source)
    assert "<table>" in html
    assert "<del>gone</del>" in html


def test_code_block_is_highlighted():
    renderer = MarkdownRenderer(highlighter=Highlighter())
    html = renderer.render("```python\nprint('hi')\n```\n")
    assert '<div class="highlight">' in html
    assert "print" in html


def test_code_block_with_unknown_language_falls_back():
    renderer = MarkdownRenderer(highlighter=Highlighter())
    html = renderer.render("```not-a-language\n<b>x</b>\n```\n")
    assert '<pre><code class="language-not-a-language">' in html
    assert "&lt;b&gt;x&lt;/b&gt;" in html


def test_code_block_without_highlighter():
    html = MarkdownRenderer().render("```\nplain\n```\n")
    assert "<pre><code>plain\n</code></pre>" in html


def test_highlighter_caches_lexers():
    highlighter = Highlighter()
    assert highlighter.highlight("x = 1", "Python") is not None
    assert highlighter.highlight("x = 1", "unknown-lang") is None
    assert highlighter.highlight("x = 1", None) is None
    assert set(highlighter._lexers) == {"python", "unknown-lang"}


def test_highlighter_css():
    css = Highlighter(css_class="code").css()
    assert ".code" in css


def test_excerpt_is_first_paragraph():
    html = "<h1>Head</h1>\n<p>First <em>one</em>.</p>\n<p>Second.</p>"
    assert extract_excerpt(html) == "First <em>one</em>."


def test_excerpt_falls_back_to_truncated_html():
    html = "<h2>" + "x" * 300 + "</h2>"
    excerpt = extract_excerpt(html)
    assert excerpt == html[:200] + "..."


def test_excerpt_of_empty_html():
    assert extract_excerpt("") == ""


def test_parser_is_built_once(monkeypatch):
    created = []
    original = mistune.create_markdown

    def counting_create_markdown(*args, **kwargs):
        created.append(1)
        return original(*args, **kwargs)

    monkeypatch.setattr(mistune, "create_markdown", counting_create_markdown)
    renderer = MarkdownRenderer(plugins=DEFAULT_MARKDOWN_PLUGINS)
    assert renderer.render("one") == "<p>one</p>\n"
    assert renderer.render("two[^1]\n\n[^1]: note\n").count("note") >= 1
    assert renderer.render("three") == "<p>three</p>\n"
    assert created == [1]
