#!/usr/bin/env python3
"""
CDP Target Manager - Discovers page targets on a running browser's debugging
port and opens a CDPSession to one of them.
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .cdp_client import DEFAULT_COMMAND_TIMEOUT, CDPSession
from .i18n import _

logger = logging.getLogger(__name__)

INVALID_URL_PREFIXES = ("devtools://", "chrome://", "edge://", "about:", "chrome-extension://")
VALID_URL_PREFIXES = ("http://", "https://", "file://")


def is_valid_web_page(url: str) -> bool:
    """Check if a URL is a web page, filtering out internal/DevTools pages."""
    url = url.lower()
    return not url.startswith(INVALID_URL_PREFIXES) and url.startswith(VALID_URL_PREFIXES)


async def get_targets_info(port: int = 9222, host: str = "localhost") -> List[Dict[str, Any]]:
    """Read the target list a browser publishes on its debugging port."""
    async with aiohttp.ClientSession() as session:
        try:
            async with session.get(f"http://{host}:{port}/json") as response:
                if response.status == 200:
                    return await response.json()
                logger.warning("DevTools target list returned HTTP %s", response.status)
                return []
        except aiohttp.ClientConnectorError:
            # Expected when no browser is listening on the port.
            logger.info(_("No browser DevTools endpoint on port {port}.", port=port))
            return []


async def find_page_targets(port: int = 9222, url_pattern: Optional[str] = None) -> List[Dict[str, Any]]:
    """Page targets that are real web pages, optionally filtered by a URL substring."""
    targets = await get_targets_info(port)
    pages = [
        t
        for t in targets
        if t.get("type") == "page" and t.get("webSocketDebuggerUrl") and is_valid_web_page(t.get("url", ""))
    ]
    if url_pattern:
        pages = [t for t in pages if url_pattern in t["url"]]
    return pages


async def connect_to_page(
    port: int = 9222, url_pattern: Optional[str] = None, command_timeout: float = DEFAULT_COMMAND_TIMEOUT
) -> CDPSession:
    """
    Connect to the first page target matching `url_pattern`.

    Raises:
        ConnectionError: If no matching page target exists.
    """
    pages = await find_page_targets(port, url_pattern)
    if not pages:
        if url_pattern:
            raise ConnectionError(_("No tab found matching '{url_pattern}'.", url_pattern=url_pattern))
        raise ConnectionError(_("No valid web page tabs found on port {port}.", port=port))

    target = pages[0]
    logger.info(_("Found matching tab: {url}", url=target["url"]))
    session = CDPSession(target["webSocketDebuggerUrl"], command_timeout=command_timeout)
    await session.connect()
    return session
