"""Navigation menu pruning against an authorization index."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stellar.services.authorization_index import AuthorizationIndex


@dataclass(frozen=True)
class MenuNode:
    """One entry of the navigation tree, optionally guarded by a `menu:` code."""

    id: str
    title: str
    link: Optional[str] = None
    icon: Optional[str] = None
    permission: Optional[str] = None
    children: Tuple["MenuNode", ...] = field(default_factory=tuple)
    # False for groupings kept only because a descendant is visible
    activatable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "link": self.link,
            "icon": self.icon,
            "permission": self.permission,
            "activatable": self.activatable,
            "children": [child.to_dict() for child in self.children],
        }


class MenuAuthorizer:
    """Prunes a menu tree to what the index allows.

    A node survives when it has no guard, when its guard is granted, or when
    at least one of its children survives. Sibling order is preserved and the
    result is stable under repeated filtering with the same index.
    """

    def __init__(self, index: AuthorizationIndex):
        self.index = index

    def filter(self, tree: Sequence[MenuNode]) -> List[MenuNode]:
        kept = []
        for node in tree:
            filtered = self._filter_node(node)
            if filtered is not None:
                kept.append(filtered)
        return kept

    def _filter_node(self, node: MenuNode) -> Optional[MenuNode]:
        children = tuple(self.filter(node.children))
        if node.permission is None or self.index.has_menu(node.permission):
            return replace(node, children=children)
        if children:
            return replace(node, children=children, activatable=False)
        return None


def _leaf(node_id: str, title: str, link: str, permission: str, icon: Optional[str] = None) -> MenuNode:
    return MenuNode(id=node_id, title=title, link=link, icon=icon, permission=permission)


MENU_TREE: Tuple[MenuNode, ...] = (
    _leaf("dashboard", "Clusters", "/pages/starrocks/dashboard", "menu:dashboard", "list-outline"),
    _leaf("overview", "Cluster Overview", "/pages/starrocks/overview", "menu:overview", "activity-outline"),
    MenuNode(
        id="nodes",
        title="Nodes",
        icon="hard-drive-outline",
        permission="menu:nodes",
        children=(
            _leaf("nodes-frontends", "Frontend Nodes", "/pages/starrocks/frontends", "menu:nodes:frontends"),
            _leaf("nodes-backends", "Backend Nodes", "/pages/starrocks/backends", "menu:nodes:backends"),
        ),
    ),
    MenuNode(
        id="queries",
        title="Queries",
        icon="search-outline",
        permission="menu:queries",
        children=(
            _leaf("queries-execution", "Running Queries", "/pages/starrocks/queries/execution",
                  "menu:queries:execution"),
            _leaf("queries-profiles", "Profiles", "/pages/starrocks/queries/profiles", "menu:queries:profiles"),
            _leaf("queries-audit-logs", "Audit Logs", "/pages/starrocks/queries/audit-logs",
                  "menu:queries:audit-logs"),
            _leaf("queries-blacklist", "SQL Blacklist", "/pages/starrocks/queries/blacklist",
                  "menu:queries:blacklist"),
        ),
    ),
    _leaf("materialized-views", "Materialized Views", "/pages/starrocks/materialized-views",
          "menu:materialized-views", "cube-outline"),
    _leaf("system-functions", "System Functions", "/pages/starrocks/system", "menu:system-functions", "grid-outline"),
    _leaf("sessions", "Sessions", "/pages/starrocks/sessions", "menu:sessions", "person-outline"),
    _leaf("variables", "Variables", "/pages/starrocks/variables", "menu:variables", "settings-2-outline"),
    MenuNode(
        id="cluster-ops",
        title="Cluster Operations",
        icon="settings-outline",
        permission="menu:cluster-ops",
        children=(
            _leaf("cluster-ops-permissions", "Permission Management", "/pages/cluster-ops/permission-management",
                  "menu:cluster-ops:auth"),
        ),
    ),
    MenuNode(
        id="system",
        title="System Administration",
        icon="settings-outline",
        permission="menu:system",
        children=(
            _leaf("system-users", "Users", "/pages/system/users", "menu:system:users"),
            _leaf("system-roles", "Roles", "/pages/system/roles", "menu:system:roles"),
            _leaf("system-organizations", "Organizations", "/pages/system/organizations",
                  "menu:system:organizations"),
        ),
    ),
)


def iter_menu_codes(tree: Sequence[MenuNode] = MENU_TREE):
    """Yield (code, title, parent_code) for every guarded node, parents first."""

    def walk(nodes, parent_code):
        for node in nodes:
            if node.permission:
                yield node.permission, node.title, parent_code
            yield from walk(node.children, node.permission or parent_code)

    yield from walk(tree, None)
