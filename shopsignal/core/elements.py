# ==============================================================================
# Element Classification
# ==============================================================================
"""
Classify click/hover targets reported by the page.

Targets arrive as plain dicts describing the element and its ancestors::

    {
        "tag": "button",
        "id": "AddToCart",
        "classes": ["btn", "product-form__submit"],
        "attributes": {"name": "add", "type": "submit"},
        "text": "Add to cart",
        "ancestors": [{"tag": "form", "attributes": {"action": "/cart/add"}}],
    }

Missing or malformed targets classify as nothing; these helpers never raise.
"""

from collections.abc import Callable
from typing import Any, Optional

INTERACTIVE_TAGS = {"a", "button", "input", "select", "textarea", "label", "summary", "option"}
INTERACTIVE_ROLES = {"button", "link", "menuitem", "tab", "checkbox", "radio", "switch", "option"}


def _tag(el: dict) -> str:
    return str(el.get("tag") or "").lower()


def _attrs(el: dict) -> dict:
    attrs = el.get("attributes")
    return attrs if isinstance(attrs, dict) else {}


def _classes(el: dict) -> str:
    classes = el.get("classes") or []
    if isinstance(classes, str):
        return classes.lower()
    return " ".join(str(c) for c in classes).lower()


def _text(el: dict) -> str:
    return str(el.get("text") or "").strip().lower()


def _haystack(el: dict) -> str:
    """Id and class names, lowercased, for substring matching."""
    return f"{str(el.get('id') or '').lower()} {_classes(el)}"


def _chain(target: Any) -> list[dict]:
    """The element followed by its ancestors, nearest first."""
    if not isinstance(target, dict):
        return []
    ancestors = target.get("ancestors") or []
    return [target] + [a for a in ancestors if isinstance(a, dict)]


# ==============================================================================
# Category Rules
# ==============================================================================


def _is_add_to_cart(el: dict) -> bool:
    attrs = _attrs(el)
    hay = _haystack(el)
    return (
        attrs.get("name") == "add"
        or "/cart/add" in str(attrs.get("action") or "")
        or "add-to-cart" in hay
        or "addtocart" in hay
        or "product-form__submit" in hay
        or _text(el) in ("add to cart", "add to bag", "add to basket")
    )


def _is_checkout(el: dict) -> bool:
    attrs = _attrs(el)
    return (
        attrs.get("name") == "checkout"
        or "checkout" in _haystack(el)
        or "/checkout" in str(el.get("href") or attrs.get("href") or "")
    )


def _is_size_guide(el: dict) -> bool:
    hay = _haystack(el)
    return (
        "size-guide" in hay
        or "size-chart" in hay
        or "sizeguide" in hay
        or _text(el) in ("size guide", "size chart")
    )


def _is_price(el: dict) -> bool:
    return "price" in _haystack(el) or _attrs(el).get("itemprop") == "price"


def _is_product_image(el: dict) -> bool:
    hay = _haystack(el)
    if "product__media" in hay or "product-image" in hay or "product-gallery" in hay:
        return True
    return _tag(el) == "img" and "product" in hay


def _is_link(el: dict) -> bool:
    return _tag(el) == "a" and bool(el.get("href") or _attrs(el).get("href"))


def _is_button(el: dict) -> bool:
    tag = _tag(el)
    if tag == "button":
        return True
    if _attrs(el).get("role") == "button" or el.get("role") == "button":
        return True
    return tag == "input" and _attrs(el).get("type") in ("submit", "button")


CATEGORY_RULES: list[tuple[str, Callable[[dict], bool]]] = [
    ("add_to_cart", _is_add_to_cart),
    ("checkout", _is_checkout),
    ("size_guide", _is_size_guide),
    ("price", _is_price),
    ("product_image", _is_product_image),
]

# Only applied when no specific category matched anywhere in the chain.
GENERIC_RULES: list[tuple[str, Callable[[dict], bool]]] = [
    ("links", _is_link),
    ("buttons", _is_button),
]


def classify_element(target: Any) -> Optional[str]:
    """
    Return the tracked category of ``target``, or None.

    The nearest element matching a specific category wins, so a price
    ``<span>`` inside an add-to-cart form is a price, while a bare ``<span>``
    inside an add-to-cart button still counts as add-to-cart. Plain links and
    buttons are only reported when nothing more specific matched.
    """
    chain = _chain(target)
    if not chain:
        return None
    for rules in (CATEGORY_RULES, GENERIC_RULES):
        for el in chain:
            for category, rule in rules:
                if rule(el):
                    return category
    return None


def is_interactive(target: Any) -> Optional[bool]:
    """
    True if the element or an ancestor is navigable or clickable.

    Returns None when there is no target to judge.
    """
    chain = _chain(target)
    if not chain:
        return None
    for el in chain:
        attrs = _attrs(el)
        if _tag(el) in INTERACTIVE_TAGS:
            return True
        if (attrs.get("role") or el.get("role")) in INTERACTIVE_ROLES:
            return True
        if el.get("href") or attrs.get("href") or "onclick" in attrs:
            return True
        if el.get("clickable"):
            return True
    return False


def element_key(target: Any) -> Optional[str]:
    """Stable-enough key pairing hover enter/leave for one element."""
    if not isinstance(target, dict):
        return None
    if target.get("key"):
        return str(target["key"])
    tag = _tag(target) or "node"
    if target.get("id"):
        return f"{tag}#{target['id']}"
    classes = _classes(target).replace(" ", ".")
    path = target.get("path") or ""
    return f"{tag}.{classes}{path}" if classes or path else tag
