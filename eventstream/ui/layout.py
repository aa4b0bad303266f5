from __future__ import annotations

from typing import Optional

# (key, href, label) in display order
NAV_LINKS = (
    ("stream", "/", "Stream"),
    ("history", "/api/events", "History (JSON)"),
)

# Dark theme shared by every page; page-specific rules go in `extra_css`.
THEME_CSS = """
    body { font-family: system-ui, sans-serif; max-width: 980px; margin: 24px auto; padding: 0 16px; background:#0f0f0f; color:#e4e4e7; }
    a { color:#60a5fa; text-decoration:none; }
    code { background:#27272a; padding:2px 6px; border-radius:8px; }
    .nav { margin-bottom: 16px; }
    .nav .dot { margin: 0 6px; color:#52525b; }
    .navlink { padding: 4px 8px; border-radius: 10px; }
    .navlink:hover { background:#27272a; }
    .navlink.active { background:#2563eb; color:white; }
    .card { border:1px solid #27272a; border-radius:12px; padding:14px; margin:12px 0; background:#1a1a1a; }
    .muted { color:#71717a; font-size: 12px; }
"""


def _esc(s: str) -> str:
    return (s or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def nav_html(active: Optional[str] = None) -> str:
    """active: a NAV_LINKS key to highlight."""
    active = (active or "").lower().strip()
    links = []
    for key, href, label in NAV_LINKS:
        cls = "navlink active" if key == active else "navlink"
        links.append(f"<a class='{cls}' href='{_esc(href)}'>{_esc(label)}</a>")
    return "<div class=\"nav\">" + "<span class=\"dot\">•</span>".join(links) + "</div>"


def page_html(title: str, body_html: str, *, active: Optional[str] = None, extra_css: str = "") -> str:
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>{_esc(title)}</title>
  <style>{THEME_CSS}{extra_css}</style>
</head>
<body>
  {nav_html(active=active)}
  {body_html}
</body>
</html>
"""
