"""
Paste routes.
Handles create, fetch (API), and view (HTML) operations.
"""
import html
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Request, Header
from fastapi.responses import HTMLResponse
from pastevault.engine import PasteStore
from pastevault.errors import PasteNotFound
from pastevault.models import FetchedPaste, PasteCreate, PasteResponse, PasteView

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_store(request: Request) -> PasteStore:
    return request.app.state.store


def _get_test_time(request: Request, x_test_now_ms: Optional[str]) -> Optional[datetime]:
    """
    Simulated current time from the x-test-now-ms header, TEST_MODE only.

    Returns None when the store's own clock should be used.
    """
    if not request.app.state.settings.TEST_MODE or not x_test_now_ms:
        return None
    try:
        timestamp_ms = int(x_test_now_ms)
        return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    except (ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Invalid x-test-now-ms header: {e}")
        return None


def _format_expires_at(expires_at: Optional[datetime]) -> Optional[str]:
    if expires_at is None:
        return None
    return expires_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@router.post("/api/pastes", response_model=PasteResponse, status_code=201)
def create_paste(paste: PasteCreate, request: Request) -> PasteResponse:
    """
    Create a new paste.

    Returns:
        Paste ID and shareable URL

    Raises:
        ValidationError: If content is blank (400)
        StorageError: If the paste could not be saved (500)
    """
    paste_id = _get_store(request).create(
        content=paste.content,
        ttl_seconds=paste.ttl_seconds,
        max_views=paste.max_views,
    )

    base_url = request.app.state.settings.APP_DOMAIN.rstrip("/")
    return PasteResponse(id=paste_id, url=f"{base_url}/p/{paste_id}")


@router.get("/api/pastes/{paste_id}", response_model=PasteView)
def fetch_paste(
    paste_id: str,
    request: Request,
    x_test_now_ms: Optional[str] = Header(None),
) -> PasteView:
    """
    Fetch a paste (API endpoint).
    Each fetch consumes one view.

    Raises:
        PasteNotFound: If paste not found, expired, or view limit exceeded (404)
    """
    fetched = _get_store(request).fetch_and_consume(
        paste_id, now=_get_test_time(request, x_test_now_ms)
    )
    return PasteView(
        content=fetched.content,
        remaining_views=fetched.remaining_views,
        expires_at=_format_expires_at(fetched.expires_at),
    )


@router.get("/p/{paste_id}", response_class=HTMLResponse)
def view_paste(
    paste_id: str,
    request: Request,
    x_test_now_ms: Optional[str] = Header(None),
) -> HTMLResponse:
    """
    View a paste as HTML.
    Each view consumes one view, same as the API endpoint.
    """
    try:
        fetched = _get_store(request).fetch_and_consume(
            paste_id, now=_get_test_time(request, x_test_now_ms)
        )
    except PasteNotFound:
        return HTMLResponse(_render_404_page(), status_code=404)
    return HTMLResponse(_render_paste_page(paste_id, fetched))


_PAGE_STYLE = """
        body {
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Arial, sans-serif;
            max-width: 800px;
            margin: 0 auto;
            padding: 2rem;
            color: #333;
        }
        .meta { color: #666; font-size: 0.9rem; margin-bottom: 1rem; }
        .meta span { margin-right: 1rem; }
        pre {
            background: #f5f5f5;
            padding: 1rem;
            border-radius: 4px;
            white-space: pre-wrap;
            word-wrap: break-word;
            font-size: 0.9rem;
            line-height: 1.5;
        }
        a { color: #0070f3; }
"""


def _render_paste_page(paste_id: str, fetched: FetchedPaste) -> str:
    """Render a paste; content is HTML-escaped."""
    meta = []
    if fetched.remaining_views is not None:
        meta.append(f"<span><strong>Remaining Views:</strong> {fetched.remaining_views}</span>")
    if fetched.expires_at is not None:
        expires = html.escape(_format_expires_at(fetched.expires_at))
        meta.append(f"<span><strong>Expires At:</strong> {expires}</span>")

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Paste - Paste Vault</title>
    <style>{_PAGE_STYLE}</style>
</head>
<body>
    <h1>Paste View</h1>
    <div class="meta">ID: {html.escape(paste_id)} {"".join(meta)}</div>
    <pre>{html.escape(fetched.content)}</pre>
    <p><a href="/">Create a new paste</a></p>
</body>
</html>"""


def _render_404_page() -> str:
    """Render a 404 error page."""
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Not Found - Paste Vault</title>
    <style>{_PAGE_STYLE}</style>
</head>
<body>
    <h1>Paste Not Found</h1>
    <p>This paste was not found, has expired, or its view limit has been exceeded.</p>
    <p><a href="/">Create a new paste</a></p>
</body>
</html>"""
