"""Project scaffolding for `tidepool new`.

Creates the directory convention (_posts, _drafts, _layouts, _includes, _data,
assets) and a small working site.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path

logger = logging.getLogger(__name__)

SITE_DIRECTORIES = (
    "_layouts",
    "_includes",
    "_posts",
    "_drafts",
    "_data",
    "assets/css",
    "assets/js",
    "assets/images",
)

CONFIG_TEMPLATE = """\
# Site settings
title: {title}
description: A blog about technology and life
url: ""
baseurl: ""

# Build settings
markdown: mistune
permalink: /:year/:month/:day/:title/

# Pagination
paginate: 10
paginate_path: "/blog/page:num/"

# Exclude from processing
exclude:
  - Gemfile
  - Gemfile.lock
  - node_modules
  - vendor
  - README.md
"""

INDEX_PAGE = """\
---
layout: default
title: Home
---

# Welcome to {{ site.title }}!

Edit `index.md` to customize this page.

## Recent Posts

{% for post in site.posts[:5] %}
- [{{ post.title }}]({{ post.url | relative_url }}) - {{ post.date.strftime("%B %d, %Y") }}
{% endfor %}
"""

ABOUT_PAGE = """\
---
layout: default
title: About
permalink: /about/
---

# About

This is the about page. Edit `about.md` to tell people about yourself!
"""

DEFAULT_LAYOUT = """\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{% if page.title %}{{ page.title }} | {% endif %}{{ site.title }}</title>
    <link rel="stylesheet" href="{{ '/assets/css/style.css' | relative_url }}">
</head>
<body>
    {% include "header.html" %}
    <main class="container">
        {{ content }}
    </main>
    {% include "footer.html" %}
</body>
</html>
"""

POST_LAYOUT = """\
---
layout: default
---
<article class="post">
    <header>
        <h1>{{ page.title }}</h1>
        <time datetime="{{ page.date.isoformat() }}">{{ page.date.strftime("%B %d, %Y") }}</time>
        {% if page.author %}<span class="author">by {{ page.author }}</span>{% endif %}
    </header>
    {{ content }}
</article>
"""

HEADER_INCLUDE = """\
<header class="site-header">
    <a class="site-title" href="{{ '/' | relative_url }}">{{ site.title }}</a>
    <nav>
        <a href="{{ '/about/' | relative_url }}">About</a>
    </nav>
</header>
"""

FOOTER_INCLUDE = """\
<footer class="site-footer">
    <p>&copy; {{ site.time.year }} {{ site.title }}</p>
</footer>
"""

WELCOME_POST = """\
---
layout: post
title: {post_title}
categories: general
---

This is your first post. Posts live in `_posts/` and are named
`YYYY-MM-DD-title.md`.

```python
print("Hello from {title}")
```
"""

STYLESHEET = """\
body {
    font-family: system-ui, sans-serif;
    line-height: 1.6;
    margin: 0;
}

.container {
    max-width: 48rem;
    margin: 0 auto;
    padding: 1rem;
}

.site-header, .site-footer {
    padding: 1rem;
    background: #f5f5f5;
}
"""


def scaffold(root: Path, title: str, today: date | None = None) -> list[Path]:
    """Create a new site skeleton under root.

    Args:
        root: Directory to create the site in.
        title: Site title written to _config.yml.
        today: Date used for the welcome post filename.

    Returns:
        Paths of the files written.
    """
    today = today or date.today()
    for directory in SITE_DIRECTORIES:
        (root / directory).mkdir(parents=True, exist_ok=True)
        logger.debug("Created directory: %s", root / directory)

    files = {
        "_config.yml": CONFIG_TEMPLATE.format(title=json.dumps(title)),
        "index.md": INDEX_PAGE,
        "about.md": ABOUT_PAGE,
        "_layouts/default.html": DEFAULT_LAYOUT,
        "_layouts/post.html": POST_LAYOUT,
        "_includes/header.html": HEADER_INCLUDE,
        "_includes/footer.html": FOOTER_INCLUDE,
        f"_posts/{today.isoformat()}-welcome.md": WELCOME_POST.replace(
            "{post_title}", json.dumps(f"Welcome to {title}!")
        ).replace("{title}", title),
        "assets/css/style.css": STYLESHEET,
    }
    written: list[Path] = []
    for rel, text in files.items():
        target = root / rel
        target.write_text(text, encoding="utf-8")
        written.append(target)
    return written
