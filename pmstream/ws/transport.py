"""
Socket dialing for the feed: TLS policy, proxy settings and handshake.
"""

import ssl
from typing import Any, Optional
from urllib.parse import unquote, urlparse
import logging

import websocket
from websocket import WebSocketException

from ..exceptions import WebSocketConnectionError

logger = logging.getLogger(__name__)

# websocket-client proxy_type per URL scheme
_PROXY_TYPES = {
    "http": "http",
    "https": "http",
    "socks4": "socks4",
    "socks4a": "socks4a",
    "socks5": "socks5",
    "socks5h": "socks5h",
}
_DEFAULT_PROXY_PORTS = {"http": 80, "https": 443}
_DEFAULT_SOCKS_PORT = 1080


def build_ssl_context() -> ssl.SSLContext:
    """Verified client context: TLS 1.2 minimum, ALPN http/1.1 only."""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.set_alpn_protocols(["http/1.1"])
    return context


def proxy_options(proxy_url: Optional[str]) -> dict[str, Any]:
    """
    Translate a proxy URL into websocket-client connect options.

    Raises:
        WebSocketConnectionError: Malformed URL or unsupported scheme
    """
    if not proxy_url:
        return {}

    # SECURITY: proxy URLs may embed credentials, never echo them
    try:
        parsed = urlparse(proxy_url)
        port = parsed.port
    except ValueError:
        raise WebSocketConnectionError("Malformed proxy URL: invalid port") from None

    scheme = parsed.scheme.lower()
    if scheme not in _PROXY_TYPES:
        raise WebSocketConnectionError(
            f"Unsupported proxy scheme: {scheme or '(missing)'}"
        )
    if not parsed.hostname:
        raise WebSocketConnectionError("Malformed proxy URL: missing host")

    options: dict[str, Any] = {
        "http_proxy_host": parsed.hostname,
        "http_proxy_port": port or _DEFAULT_PROXY_PORTS.get(scheme, _DEFAULT_SOCKS_PORT),
        "proxy_type": _PROXY_TYPES[scheme],
    }
    if parsed.username:
        options["http_proxy_auth"] = (unquote(parsed.username), unquote(parsed.password or ""))
    return options


def dial(
    url: str,
    proxy_url: Optional[str] = None,
    timeout: float = 10.0,
    ssl_context: Optional[ssl.SSLContext] = None
) -> websocket.WebSocket:
    """
    Open a WebSocket and complete the handshake.

    The returned socket has no read timeout: the reader blocks until a
    frame arrives or the socket is aborted.

    Raises:
        WebSocketConnectionError: Proxy, TCP, TLS or handshake failure
    """
    options = proxy_options(proxy_url)
    sslopt = {"context": ssl_context or build_ssl_context()}

    logger.debug(f"Dialing {url}" + (" via proxy" if options else ""))
    try:
        ws = websocket.create_connection(
            url,
            timeout=timeout,
            sslopt=sslopt,
            enable_multithread=True,
            **options
        )
    except (WebSocketException, OSError, ValueError) as e:
        raise WebSocketConnectionError(f"Failed to connect to {url}: {e}") from e

    ws.settimeout(None)
    return ws
