"""Post-login redirect target normalization.

Redirect targets arrive in query strings (``?returnUrl=...``) and are
attacker-influenceable. ``PathNormalizer.normalize`` turns any such string into
a same-origin, deployment-relative route:

* scheme/host prefixes are stripped, so the result can never leave the origin;
* targets inside the authentication section fall back to the default route,
  so a failed login can never redirect back into the login flow;
* repeated main-section markers produced by nested round-trips collapse;
* the deployment base path is re-attached unless the router runs in
  fragment (``#/``) mode.

The function is pure and idempotent.
"""

import enum
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlencode

from stellar.core.config import settings

_SCHEME_HOST = re.compile(r"^[a-z][a-z0-9+.\-]*://[^/?#]*", re.IGNORECASE)
_PROTOCOL_RELATIVE = re.compile(r"^//[^/?#]*")


class RoutingMode(str, enum.Enum):
    path = "path"
    hash = "hash"


def _split_segments(path: str) -> List[str]:
    segments = (segment.strip() for segment in path.split("/"))
    return [segment for segment in segments if segment and segment != "."]


@dataclass(frozen=True)
class PathNormalizer:
    """Canonicalizes redirect targets for the console's front-end router."""

    main_section: Tuple[str, ...] = ("pages", "starrocks")
    auth_section: str = "auth"
    default_route: Tuple[str, ...] = ("pages", "starrocks", "dashboard")
    redirect_params: frozenset = frozenset({"returnUrl", "redirect"})

    @classmethod
    def from_settings(cls) -> "PathNormalizer":
        return cls(
            main_section=tuple(_split_segments(settings.MAIN_SECTION)),
            auth_section=settings.AUTH_SECTION.strip("/"),
            default_route=tuple(_split_segments(settings.DEFAULT_ROUTE)),
        )

    @property
    def _section_roots(self) -> Tuple[str, str]:
        return self.main_section[0], self.auth_section

    def normalize(
        self,
        raw: Optional[str],
        current_path: Optional[str] = "",
        mode: RoutingMode = RoutingMode.path,
    ) -> str:
        """Return the canonical route for ``raw``.

        ``current_path`` is the path currently served by the browser; the
        deployment base path is everything in it before the routable section.
        """
        mode = RoutingMode(mode)
        fallback = self.default_route_for(current_path, mode)

        path, query = self._strip_origin(raw)
        segments = _split_segments(path)
        if not segments or ".." in segments:
            return fallback

        route = segments[self._section_start(segments):]
        if not route or route[0] == self.auth_section:
            return fallback
        route = self._collapse_main_section(route)

        base = [] if mode is RoutingMode.hash else self.base_segments(current_path)
        result = "/" + "/".join(base + route)
        if query:
            result = f"{result}?{query}"
        return result

    def base_segments(self, current_path: Optional[str]) -> List[str]:
        """Deployment prefix of the currently served path."""
        path, _ = self._strip_origin(current_path, keep_fragment_route=False)
        segments = [s for s in _split_segments(path) if s != ".."]
        return segments[:self._section_start(segments)]

    def default_route_for(self, current_path: Optional[str], mode: RoutingMode) -> str:
        base = [] if RoutingMode(mode) is RoutingMode.hash else self.base_segments(current_path)
        return "/" + "/".join(base + list(self.default_route))

    def login_path(self, current_path: Optional[str], mode: RoutingMode) -> str:
        base = [] if RoutingMode(mode) is RoutingMode.hash else self.base_segments(current_path)
        return "/" + "/".join(base + [self.auth_section, "login"])

    @staticmethod
    def detect_mode(current_url: Optional[str]) -> RoutingMode:
        """Fragment routing is in use when the served URL carries ``#/``."""
        if current_url and "#/" in current_url:
            return RoutingMode.hash
        return RoutingMode.path

    def _strip_origin(self, raw: Optional[str], keep_fragment_route: bool = True) -> Tuple[str, str]:
        if not raw:
            return "", ""
        text = raw.strip().replace("\\", "/")
        text = _SCHEME_HOST.sub("", text, count=1)
        text = _PROTOCOL_RELATIVE.sub("", text, count=1)

        if "#" in text:
            before, fragment = text.split("#", 1)
            # A fragment route is resolved against the document root.
            text = fragment if keep_fragment_route and fragment.startswith("/") else before

        path, _, query = text.partition("?")
        return path, self._clean_query(query)

    def _clean_query(self, query: str) -> str:
        if not query:
            return ""
        pairs = parse_qsl(query, keep_blank_values=True)
        return urlencode([(k, v) for k, v in pairs if k not in self.redirect_params])

    def _section_start(self, segments: Sequence[str]) -> int:
        roots = self._section_roots
        for index, segment in enumerate(segments):
            if segment in roots:
                return index
        return len(segments)

    def _collapse_main_section(self, route: List[str]) -> List[str]:
        marker = list(self.main_section)
        width = len(marker)
        collapsed: List[str] = []
        index = 0
        while index < len(route):
            if route[index:index + width] == marker and collapsed[-width:] == marker:
                index += width
                continue
            collapsed.append(route[index])
            index += 1
        return collapsed


path_normalizer = PathNormalizer.from_settings()
