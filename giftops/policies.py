from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Set

from giftops.errors import PermissionError as AppPermissionError


ADMIN = "Admin"
CUSTOMER = "Customer"
RIDER = "Rider"
SUPPLIER = "Supplier"
FINANCE_MANAGER = "FinanceManager"
SERVICE_MANAGER = "ServiceManager"
INVENTORY_MANAGER = "InventoryManager"
DISPATCH_MANAGER = "DispatchManager"

TECHNICIAN_ROLES: FrozenSet[str] = frozenset({"Engraving", "Printing", "Assembly", "Quality Check", "Packaging"})

VALID_ROLES: FrozenSet[str] = frozenset(
    {
        ADMIN,
        CUSTOMER,
        RIDER,
        SUPPLIER,
        FINANCE_MANAGER,
        SERVICE_MANAGER,
        INVENTORY_MANAGER,
        DISPATCH_MANAGER,
    }
    | TECHNICIAN_ROLES
)

CUSTOMER_BROADCAST = "Customer Broadcast"

_ROLE_LOOKUP: Dict[str, str] = {role.lower().replace(" ", ""): role for role in VALID_ROLES}


def normalize_role(role: str | None, default: str = "") -> str:
    """Map any casing/spacing of a role name onto its canonical spelling."""
    key = str(role or "").strip().lower().replace(" ", "").replace("_", "")
    canonical = _ROLE_LOOKUP.get(key)
    if canonical:
        return canonical
    return default if default in VALID_ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role)
        if normalized:
            allowed.add(normalized)
    return allowed


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    normalized_role = normalize_role(role)
    allowed = normalize_allowed_roles(allowed_roles)
    return bool(normalized_role) and normalized_role in allowed


def require_roles(role: str | None, *allowed_roles: str) -> str:
    normalized_role = normalize_role(role)
    if has_any_role(normalized_role, allowed_roles):
        return normalized_role
    raise AppPermissionError(payload={"required_roles": sorted(normalize_allowed_roles(allowed_roles))})


ANY_AUTHENTICATED = "*"

# Longest matching prefix wins. Paths that match nothing here are public.
ROUTE_ACCESS: Dict[str, FrozenSet[str]] = {
    "/dashboard": frozenset({ANY_AUTHENTICATED}),
    "/feedback": frozenset({ANY_AUTHENTICATED}),
    "/orders": frozenset({CUSTOMER, ADMIN}),
    "/admin": frozenset({ADMIN}),
    "/finance": frozenset({FINANCE_MANAGER, ADMIN}),
    "/dispatch": frozenset({DISPATCH_MANAGER, ADMIN}),
    "/rider": frozenset({RIDER}),
    "/inventory": frozenset({INVENTORY_MANAGER, ADMIN}),
    "/supplier": frozenset({SUPPLIER}),
    "/service": frozenset({SERVICE_MANAGER, ADMIN}),
    "/tasks": TECHNICIAN_ROLES | {SERVICE_MANAGER, ADMIN},
    "/api": frozenset({ANY_AUTHENTICATED}),
    "/api/auth": frozenset(),
    "/api/catalog": frozenset(),
    "/api/shipping/quote": frozenset(),
    "/api/track": frozenset(),
}


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def resolve_route_roles(path: str) -> FrozenSet[str] | None:
    """Allowed roles for ``path``; ``None`` or an empty set means public."""
    best: str | None = None
    for prefix in ROUTE_ACCESS:
        if _matches(path, prefix) and (best is None or len(prefix) > len(best)):
            best = prefix
    if best is None:
        return None
    return ROUTE_ACCESS[best]


def route_allows(path: str, role: str | None) -> bool:
    allowed = resolve_route_roles(path)
    if not allowed:
        return True
    if not role:
        return False
    if ANY_AUTHENTICATED in allowed:
        return True
    return normalize_role(role) in allowed


def route_requires_login(path: str) -> bool:
    return bool(resolve_route_roles(path))
