"""
Coaching page shown to users whose request was logged by a Gateway policy.
"""

from html import escape
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit

LINKABLE_SCHEMES = ("http", "https")

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Coaching page</title>
    <style>
        *, *::before, *::after {{ box-sizing: border-box; margin: 0; padding: 0; }}
        body {{
            font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
            line-height: 1.6;
            background-color: #f8f9fa;
            color: #333;
            display: flex;
            align-items: center;
            justify-content: center;
            min-height: 100vh;
            padding: 20px;
        }}
        #container {{
            background-color: #fff;
            border-radius: 8px;
            box-shadow: 0 4px 8px rgba(0, 0, 0, 0.05);
            padding: 2rem;
            width: 100%;
            max-width: 600px;
        }}
        header {{ text-align: center; margin-bottom: 2rem; }}
        .title {{ font-size: 2rem; font-weight: 600; color: #2c3e50; margin-bottom: 1rem; }}
        .subtitle {{ font-size: 1.1rem; color: #555; }}
        .subtitle a {{ color: #007bff; text-decoration: none; font-weight: 500; }}
        details {{ font-size: 0.9rem; color: #666; word-break: break-all; }}
        footer {{ text-align: center; font-size: 0.8rem; color: #999; }}
    </style>
</head>
<body>
    <div id="container">
        <header>
            <h1 class="title">Hello {user},</h1>
            <p class="subtitle">
                Access to your requested resource has been logged by your organization's filtering policy.
                If you have a legitimate reason, you may continue. Please use this tool responsibly and in accordance with the organization's policies.
            </p>
            <p class="subtitle">{proceed_link}</p>
        </header>
        <main>
            <details>
                <summary>Debug Information</summary>
                <p><strong>Request URL:</strong> {request_url}</p>
                {debug_rows}
            </details>
        </main>
        <footer>
            <p>Generated by the Access Exceptions service</p>
        </footer>
    </div>
</body>
</html>
"""


def display_name(email: Optional[str]) -> str:
    """Greeting name derived from the local part of an email address.

    The first character is upper-cased and the second lower-cased; the rest
    is kept as written. Without an email the greeting falls back to "there".
    """
    if not email:
        return "there"
    raw = email.split("@")[0]
    return raw[:1].upper() + raw[1:2].lower() + raw[2:]


def is_linkable(uri: Optional[str]) -> bool:
    """Only absolute http(s) URIs are rendered as links."""
    if not uri:
        return False
    try:
        parts = urlsplit(uri.strip())
    except ValueError:
        return False
    return parts.scheme.lower() in LINKABLE_SCHEMES and bool(parts.netloc)


def render_coaching_page(
    *,
    user_email: Optional[str],
    site_uri: Optional[str],
    request_url: str,
    query_params: Iterable[Tuple[str, str]],
    rule_id: Optional[str] = None,
    rule_update_status: Optional[str] = None,
    tracking_status: Optional[str] = None,
) -> str:
    """Render the coaching page HTML."""
    proceed_link = ""
    if is_linkable(site_uri):
        proceed_link = f'<a href="{escape(site_uri)}">Proceed to site</a>'

    rows = [
        f"<p><strong>{escape(key)}:</strong> {escape(value)}</p>"
        for key, value in query_params
    ]
    if rule_id:
        rows.append(f"<p><strong>Gateway Rule Update Status:</strong> {escape(rule_update_status or '')}</p>")
        rows.append(f"<p><strong>Tracking Store Status:</strong> {escape(tracking_status or '')}</p>")

    return PAGE_TEMPLATE.format(
        user=escape(display_name(user_email)),
        proceed_link=proceed_link,
        request_url=escape(request_url),
        debug_rows="\n                ".join(rows),
    )
