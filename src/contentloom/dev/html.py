"""The HTML entry point written into the public folder during development."""

from __future__ import annotations

GITIGNORE = "index.html\nassets/"


def dev_html(port: int) -> str:
    """Page that boots the editing app against the local dev server on *port*."""
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>contentloom</title>
    <script>
      window.__CONTENTLOOM_API_URL__ = "http://localhost:{port}/graphql";
    </script>
  </head>
  <body>
    <div id="root"></div>
    <script type="module" src="http://localhost:{port}/@contentloom/app/main.js"></script>
  </body>
</html>
"""
