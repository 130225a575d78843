# ==============================================================================
# Page Context
# ==============================================================================
"""
Session-start context extracted from the page beacon.

Built once when a session becomes active and attached to the session record
and the ``session_start`` timeline event:

- traffic: UTM parameters and referrer
- device: device type, platform, user agent, screen size
- storefront: page path, product tags, collection, currency, language, cart status
- user_history: returning-visitor data carried over from the previous session
"""

import re
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, Field

MOBILE_USER_AGENT = re.compile(r"Mobi|Android", re.IGNORECASE)
UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term")


class TrafficContext(BaseModel):
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    referrer: Optional[str] = None


class DeviceContext(BaseModel):
    device_type: str = "desktop"
    os: Optional[str] = None
    browser: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None


class StorefrontContext(BaseModel):
    page_path: Optional[str] = None
    product_tags: list[str] = Field(default_factory=list)
    collection_viewed: Optional[str] = None
    currency: str = "GBP"
    language: Optional[str] = None
    cart_status: Optional[str] = None


class VisitorHistory(BaseModel):
    """What the previous session left in durable storage."""

    is_returning: bool = False
    last_seen: Optional[int] = None
    pages_viewed_last_session: list[str] = Field(default_factory=list)
    last_session_cart_status: Optional[str] = None


class PageContext(BaseModel):
    traffic: TrafficContext = Field(default_factory=TrafficContext)
    device: DeviceContext = Field(default_factory=DeviceContext)
    storefront: StorefrontContext = Field(default_factory=StorefrontContext)
    user_history: VisitorHistory = Field(default_factory=VisitorHistory)


def _first(query: dict[str, list[str]], key: str) -> Optional[str]:
    values = query.get(key)
    return values[0] if values else None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def build_page_context(
    page: dict,
    history: Optional[VisitorHistory] = None,
    default_currency: str = "GBP",
    cart_status: Optional[str] = None,
) -> PageContext:
    """
    Build a PageContext from a page beacon.

    Expected beacon keys (all optional): ``url``, ``path``, ``referrer``,
    ``user_agent``, ``platform``, ``screen_width``, ``screen_height``,
    ``language``, ``currency``, ``product_tags``, ``collection_title``.

    Args:
        page: Page beacon dict
        history: Visitor history loaded from durable storage
        default_currency: Currency used when the page reports none
        cart_status: Status from the first cart poll, when known

    Returns:
        Populated PageContext
    """
    url = str(page.get("url") or "")
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    user_agent = page.get("user_agent")

    tags = page.get("product_tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",") if t.strip()]

    return PageContext(
        traffic=TrafficContext(
            **{key: _first(query, key) for key in UTM_KEYS},
            referrer=page.get("referrer") or None,
        ),
        device=DeviceContext(
            device_type="mobile" if user_agent and MOBILE_USER_AGENT.search(user_agent) else "desktop",
            os=page.get("platform"),
            browser=user_agent,
            screen_width=_as_int(page.get("screen_width")),
            screen_height=_as_int(page.get("screen_height")),
        ),
        storefront=StorefrontContext(
            page_path=page.get("path") or parsed.path or None,
            product_tags=[str(t) for t in tags],
            collection_viewed=page.get("collection_title"),
            currency=page.get("currency") or default_currency,
            language=page.get("language"),
            cart_status=cart_status,
        ),
        user_history=history or VisitorHistory(),
    )
