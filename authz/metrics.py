# authz/metrics.py: in-process counters and audit logging for authorization

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

LabelSet = Tuple[Tuple[str, str], ...]


def _label_set(labels: Optional[Dict[str, str]]) -> LabelSet:
    return tuple(sorted((labels or {}).items()))


class CounterStore:
    """Thread-safe monotonic counters keyed by name and label set."""

    def __init__(self):
        self._lock = threading.RLock()
        self._counts: Dict[Tuple[str, LabelSet], int] = {}
        self._started_at = time.time()

    def increment(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
        key = (name, _label_set(labels))
        with self._lock:
            self._counts[key] = self._counts.get(key, 0) + value

    def get(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self._counts.get((name, _label_set(labels)), 0)

    def snapshot(self) -> Dict[str, Any]:
        """
        Copy of every counter.

        Returns:
            ``{"counters": {name: [{"value", "labels"}, ...]}, "uptime_seconds", "timestamp"}``
        """
        with self._lock:
            counters: Dict[str, List[Dict[str, Any]]] = {}
            for (name, label_set), value in self._counts.items():
                counters.setdefault(name, []).append({"value": value, "labels": dict(label_set)})
            now = time.time()
            return {
                "counters": counters,
                "uptime_seconds": now - self._started_at,
                "timestamp": now,
            }

    def reset(self):
        with self._lock:
            self._counts.clear()
            self._started_at = time.time()


_counters = CounterStore()

# Structured audit trail for denied checks; storage is left to log handlers
audit_logger = logging.getLogger("authz.audit")


def increment_counter(name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
    """Increment a counter."""
    _counters.increment(name, value, labels)


def get_counter(name: str, labels: Optional[Dict[str, str]] = None) -> int:
    """Current value of a counter; 0 if it was never incremented."""
    return _counters.get(name, labels)


def get_all_metrics() -> Dict[str, Any]:
    """Snapshot of every counter."""
    return _counters.snapshot()


# ============================================================================
# Authorization Metrics and Auditing
# ============================================================================

def record_permission_check(allowed: bool, permission: str, role: Optional[str], reason: str = "", route: str = ""):
    """
    Record a permission check.

    Args:
        allowed: Whether access was granted
        permission: Permission key checked
        role: Actor role
        reason: Decision reason (direct, inherited, owner, denied)
        route: Route being accessed
    """
    if allowed:
        increment_counter("authz.allowed")
        increment_counter("authz.allowed.by_reason", labels={"reason": reason or "unknown"})
    else:
        increment_counter("authz.denied")
        increment_counter("authz.denied.by_permission", labels={"permission": permission})
        if route:
            increment_counter("authz.denied.by_route", labels={"route": route})
    increment_counter("authz.role_distribution", labels={"role": role or "anonymous"})


def record_unknown_permission(permission: str):
    """Record a check against a permission key missing from the table."""
    increment_counter("authz.unknown_permission")
    increment_counter("authz.unknown_permission.by_key", labels={"permission": permission})


def record_masking_applied(record_count: int, role: Optional[str], kind: Optional[str] = None):
    """
    Record records passed through field masking.

    Args:
        record_count: Number of records masked
        role: Actor role the masking was computed for
        kind: Record kind, if known
    """
    increment_counter("authz.masking.records", value=record_count)
    increment_counter(
        "authz.masking.records.by_role",
        value=record_count,
        labels={"role": role or "unknown", "kind": kind or "generic"},
    )


def audit_permission_denial(
    permission: str,
    actor_id: Optional[str],
    role: Optional[str],
    route: str,
    method: str = "unknown",
    reason: str = "denied",
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Emit audit log entry for a denied permission check.

    Args:
        permission: Permission that was denied
        actor_id: Actor who was denied (None for anonymous)
        role: Actor role
        route: Route/endpoint being accessed
        method: HTTP method
        reason: Decision reason
        metadata: Additional context (resource id, owner id, client address)
    """
    audit_entry = {
        "event": "permission_denied",
        "permission": permission,
        "actor_id": actor_id or "anonymous",
        "role": role,
        "route": route,
        "method": method,
        "reason": reason,
        "timestamp": time.time(),
    }

    if metadata:
        audit_entry["metadata"] = metadata

    audit_logger.warning(
        f"PERMISSION_DENIED permission={permission} actor={actor_id or 'anonymous'} "
        f"role={role} route={method} {route}",
        extra={"audit": audit_entry}
    )

    increment_counter("authz.audit.denials")
    increment_counter("authz.audit.denials.by_permission", labels={"permission": permission})


def audit_permission_check(
    permission: str,
    actor_id: Optional[str],
    role: Optional[str],
    route: str,
    method: str,
    reason: str,
    metadata: Optional[Dict[str, Any]] = None
):
    """Emit an informational audit entry for an allowed check."""
    audit_entry = {
        "event": "permission_allowed",
        "permission": permission,
        "actor_id": actor_id,
        "role": role,
        "route": route,
        "method": method,
        "reason": reason,
        "timestamp": time.time(),
    }
    if metadata:
        audit_entry["metadata"] = metadata

    audit_logger.info(
        f"PERMISSION_ALLOWED permission={permission} actor={actor_id} reason={reason}",
        extra={"audit": audit_entry}
    )


def get_authz_metrics() -> Dict[str, Any]:
    """
    Get all authorization metrics grouped by category.

    Returns:
        Dictionary with decision, unknown-permission, masking and audit counters
    """
    all_metrics = _counters.snapshot()

    grouped: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
        "allowed": {},
        "denied": {},
        "unknown_permission": {},
        "masking": {},
        "audit": {},
    }

    for metric_name, metric_data in all_metrics.get("counters", {}).items():
        if not metric_name.startswith("authz."):
            continue
        category = metric_name.split(".")[1]
        grouped.setdefault(category, {})[metric_name] = metric_data

    return grouped


def reset_authz_metrics():
    """Reset all authorization metrics (useful for testing)."""
    _counters.reset()
