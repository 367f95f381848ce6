"""Tidepool static site generator.

Tidepool turns a directory of Markdown and HTML sources plus Jinja2 layouts into a
static HTML site, and serves the output with rebuild-on-change and live reload.

The main entry point is the CLI module, which provides commands for scaffolding
new sites, building them, serving them locally, and checking them for problems.

Build pipeline:
- frontmatter: splits the YAML block from each content file.
- permalinks: resolves post and page URLs.
- content: scans and classifies the source tree.
- templates: renders bodies and layout chains.
- build: assembles the Site and writes the output.
- server: watch/debounce/rebuild loop and the live reload HTTP server.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
