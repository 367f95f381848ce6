"""HTML utility functions for Tidepool.

Functions:
    escape_html: Escape special HTML characters in a string.
    join_root_url: Join a base URL with a path.
    inject_reload_script: Add the live reload polling script to an HTML page.
"""

from __future__ import annotations

RELOAD_PATH = "/__reload__"

RELOAD_INTERVAL_MS = 1000

RELOAD_SCRIPT = f"""
<script>
(() => {{
  const check = () => {{
    fetch('{RELOAD_PATH}', {{ cache: 'no-store' }})
      .then((res) => res.text())
      .then((data) => {{
        if (data === 'reload') location.reload();
      }})
      .catch(() => {{}});
  }};
  setInterval(check, {RELOAD_INTERVAL_MS});
}})();
</script>
"""


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Examples:
        >>> escape_html('<script>alert("XSS")</script>')
        '&lt;script&gt;alert(&quot;XSS&quot;)&lt;/script&gt;'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL with proper slash handling.

    Examples:
        >>> join_root_url('https://example.com', '/about')
        'https://example.com/about'

        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path if path.startswith("/") else f"/{path}"
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def inject_reload_script(html: str, script: str = RELOAD_SCRIPT) -> str:
    """Insert the reload script before the last closing body tag.

    Args:
        html: HTML page content.
        script: Script markup to insert.

    Returns:
        HTML with the script placed before `</body>`, or appended at the end when
        the page has no closing body tag.
    """
    position = html.rfind("</body>")
    if position == -1:
        return html + script
    return html[:position] + script + html[position:]
