"""
Route gating

Allow-list patterns:
    "/about"      exact path
    "*"           every route
    "/blog/*"     anything strictly beneath /blog (not /blog itself)
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum


class RouteType(str, Enum):
    HOME = "home"
    ARTICLE = "article"
    CATEGORY = "category"
    TAG = "tag"
    PAGE = "page"
    ADMIN = "admin"
    OTHER = "other"


def normalize_path(path: str) -> str:
    path = (path or "/").split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = f"/{path}"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def _matches(pattern: str, path: str) -> bool:
    if pattern == "*":
        return True
    if pattern.endswith("/*"):
        prefix = pattern[:-1]
        return path.startswith(prefix) and len(path) > len(prefix)
    return normalize_path(pattern) == path


def route_allowed(patterns: Sequence[str] | None, path: str) -> bool:
    """No allow-list means always visible."""
    if patterns is None:
        return True
    path = normalize_path(path)
    return any(_matches(pattern, path) for pattern in patterns)


def classify_route(path: str) -> RouteType:
    path = normalize_path(path)
    if path == "/":
        return RouteType.HOME
    segments = path.strip("/").split("/")
    head = segments[0]
    if head == "blog" and len(segments) > 1:
        return RouteType.ARTICLE
    if head == "categories":
        return RouteType.CATEGORY
    if head == "tags":
        return RouteType.TAG
    if head == "admin":
        return RouteType.ADMIN
    if head in ("about", "p", "archives", "search", "blog"):
        return RouteType.PAGE
    return RouteType.OTHER


def is_content_route(path: str) -> bool:
    return classify_route(path) is RouteType.ARTICLE
