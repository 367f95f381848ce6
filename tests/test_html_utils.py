from tidepool.html_utils import (
    RELOAD_PATH,
    RELOAD_SCRIPT,
    escape_html,
    inject_reload_script,
    join_root_url,
)


def test_escape_html():
    assert escape_html('<a href="x">&</a>') == "&lt;a href=&quot;x&quot;&gt;&amp;&lt;/a&gt;"


def test_join_root_url():
    assert join_root_url("https://example.com/", "/about") == "https://example.com/about"
    assert join_root_url("https://example.com", "about") == "https://example.com/about"
    assert join_root_url("", "about") == "/about"
    assert join_root_url("", "/about") == "/about"


def test_reload_script_polls_reload_endpoint():
    assert RELOAD_PATH in RELOAD_SCRIPT
    assert "location.reload()" in RELOAD_SCRIPT


def test_inject_before_last_closing_body():
    html = "<html><body><pre></body></pre></body></html>"
    result = inject_reload_script(html, script="<script></script>")
    assert result == "<html><body><pre></body></pre><script></script></body></html>"


def test_inject_appends_without_body_tag():
    assert inject_reload_script("<p>hi</p>", script="<s>") == "<p>hi</p><s>"


def test_inject_uses_default_script():
    result = inject_reload_script("<body></body>")
    assert result == "<body>" + RELOAD_SCRIPT + "</body>"
