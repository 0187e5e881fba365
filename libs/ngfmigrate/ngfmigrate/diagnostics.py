"""
Troubleshooting checks for a migrated cluster.

Covers the usual failure modes after moving to NGINX Gateway Fabric:
requests returning 404, no response at all, HTTPRoutes that were not
accepted, and where to find the NGINX logs. Checks read the status that
the Gateway API controller writes; they never change cluster state.
"""

import fnmatch
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .runner import kubectl_json
from .types import MigrationConfig, PathMatchType, RouteConfig

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"
INFO = "info"

ROUTE_HINTS = {
    "NotAllowedByListeners": (
        "The listener's allowedRoutes does not admit this route's namespace. "
        "Use allowedRoutes.namespaces.from: All or label the namespace."
    ),
    "NoMatchingListenerHostname": (
        "None of the route hostnames match a listener hostname on the Gateway."
    ),
    "NoMatchingParent": (
        "parentRefs sectionName or port does not match any listener."
    ),
    "UnsupportedValue": (
        "The route uses a field NGINX Gateway Fabric does not support."
    ),
    "RefNotPermitted": (
        "The backend is in another namespace. Create a ReferenceGrant in the "
        "backend namespace allowing HTTPRoutes from the route namespace."
    ),
    "BackendNotFound": (
        "The backend Service does not exist or the port is wrong."
    ),
    "InvalidKind": (
        "backendRefs must point at a core Service."
    ),
}


@dataclass
class Finding:
    """A single diagnostic result."""
    severity: str
    message: str
    hint: Optional[str] = None

    def __str__(self) -> str:
        text = f"[{self.severity}] {self.message}"
        if self.hint:
            text += f"\n    hint: {self.hint}"
        return text


def _false_conditions(conditions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [c for c in conditions or [] if c.get("status") == "False"]


def route_conditions(httproute: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Flatten status.parents[].conditions of an HTTPRoute.

    Each returned condition carries an extra "parent" key naming the
    parentRef it belongs to.
    """
    conditions = []
    for parent in (httproute.get("status") or {}).get("parents") or []:
        parent_name = (parent.get("parentRef") or {}).get("name", "?")
        for condition in parent.get("conditions") or []:
            conditions.append(dict(condition, parent=parent_name))
    return conditions


def diagnose_route(httproute: Dict[str, Any]) -> List[Finding]:
    """Explain why an HTTPRoute is not serving traffic, from its status."""
    metadata = httproute.get("metadata") or {}
    name = f"{metadata.get('namespace', 'default')}/{metadata.get('name', '?')}"

    conditions = route_conditions(httproute)
    if not conditions:
        return [Finding(
            ERROR,
            f"HTTPRoute {name} has no status from any Gateway controller",
            "Check that parentRefs names an existing Gateway (with namespace if it "
            "lives elsewhere) whose gatewayClassName is served by NGINX Gateway Fabric.",
        )]

    findings = []
    for condition in _false_conditions(conditions):
        reason = condition.get("reason", "")
        kind = condition.get("type")
        if kind == "Accepted":
            message = f"HTTPRoute {name} not accepted by {condition['parent']}: {reason}"
        elif kind == "ResolvedRefs":
            message = f"HTTPRoute {name} has unresolved references: {reason}"
        else:
            message = f"HTTPRoute {name} condition {kind} is False: {reason}"
        if condition.get("message"):
            message += f" ({condition['message']})"
        findings.append(Finding(ERROR, message, ROUTE_HINTS.get(reason)))

    if not findings:
        findings.append(Finding(INFO, f"HTTPRoute {name} is accepted and all references resolve"))
    return findings


def diagnose_gateway(gateway: Dict[str, Any]) -> List[Finding]:
    """Explain why a Gateway is not reachable, from its status."""
    metadata = gateway.get("metadata") or {}
    name = f"{metadata.get('namespace', 'default')}/{metadata.get('name', '?')}"
    status = gateway.get("status") or {}
    findings = []

    if not status.get("conditions"):
        findings.append(Finding(
            ERROR,
            f"Gateway {name} has no status",
            "NGINX Gateway Fabric is not running or the gatewayClassName is wrong.",
        ))

    for condition in _false_conditions(status.get("conditions")):
        findings.append(Finding(
            ERROR,
            f"Gateway {name} {condition.get('type')}=False: {condition.get('reason', '')}",
            condition.get("message"),
        ))

    for listener in status.get("listeners") or []:
        for condition in _false_conditions(listener.get("conditions")):
            hint = None
            if condition.get("type") == "ResolvedRefs":
                hint = (
                    "The certificate Secret is missing, not of type kubernetes.io/tls, "
                    "or lives in another namespace without a ReferenceGrant."
                )
            findings.append(Finding(
                ERROR,
                f"Listener {listener.get('name')} {condition.get('type')}=False: "
                f"{condition.get('reason', '')}",
                hint,
            ))

    if status.get("conditions") and not status.get("addresses"):
        findings.append(Finding(
            WARNING,
            f"Gateway {name} has no address",
            "The data plane LoadBalancer Service has not been provisioned yet. "
            "Check the Service in the gateway namespace and the AWS load balancer events.",
        ))

    if not findings:
        addresses = ", ".join(a.get("value", "") for a in status.get("addresses", []))
        findings.append(Finding(INFO, f"Gateway {name} is programmed at {addresses}"))
    return findings


def _host_matches(hostnames: List[str], host: str) -> bool:
    if not hostnames:
        return True
    return any(fnmatch.fnmatch(host, h) if h.startswith("*.") else h == host for h in hostnames)


def _path_matches(route: RouteConfig, path: str) -> bool:
    if route.path_type == PathMatchType.EXACT:
        return path == route.path
    if route.path_type == PathMatchType.REGULAR_EXPRESSION:
        return re.match(route.path, path) is not None
    prefix = route.path.rstrip("/")
    return prefix == "" or path == prefix or path.startswith(prefix + "/")


def diagnose_not_found(config: MigrationConfig, host: str, path: str) -> List[Finding]:
    """
    Explain which configured route, if any, should serve host + path.

    A 404 from NGINX Gateway Fabric means no HTTPRoute matched the request,
    so this walks the configured routes the same way.
    """
    host_routes = [r for r in config.routes if _host_matches(r.hostnames, host)]
    if not host_routes:
        known = sorted({h for r in config.routes for h in r.hostnames})
        return [Finding(
            ERROR,
            f"No route matches host '{host}'",
            f"Configured hostnames: {', '.join(known) or '(none)'}. "
            "Send the right Host header, e.g. curl -H 'Host: <hostname>'.",
        )]

    matches = [r for r in host_routes if _path_matches(r, path)]
    if not matches:
        paths = ", ".join(f"{r.path} ({r.path_type.value})" for r in host_routes)
        return [Finding(
            ERROR,
            f"No route for host '{host}' matches path '{path}'",
            f"Paths configured for this host: {paths}",
        )]

    findings = []
    for route in matches:
        if route.https_redirect:
            findings.append(Finding(
                INFO,
                f"Route {route.namespace}/{route.name} redirects {host}{path} to https",
            ))
            continue
        message = (
            f"Route {route.namespace}/{route.name} sends {host}{path} to "
            f"{route.backend_namespace}/{route.service}:{route.port}"
        )
        hint = None
        if route.rewrite_target is not None:
            hint = (
                f"The path is rewritten to '{route.rewrite_target}'; a 404 may come "
                "from the backend itself."
            )
        findings.append(Finding(INFO, message, hint))
    return findings


def log_commands(config: MigrationConfig) -> List[List[str]]:
    """kubectl invocations that show the control plane and data plane logs."""
    fabric = config.fabric
    gateway = config.gateway
    return [
        [
            "kubectl", "logs", "-n", fabric.namespace,
            f"deployment/{fabric.release}-nginx-gateway-fabric",
            "-c", "nginx-gateway",
        ],
        [
            "kubectl", "logs", "-n", gateway.namespace,
            "-l", f"gateway.networking.k8s.io/gateway-name={gateway.name}",
            "-c", "nginx", "--tail=100",
        ],
    ]


def fetch_resource(kind: str, name: str, namespace: str) -> Dict[str, Any]:
    """
    Fetch a resource with kubectl.

    Raises:
        CommandError: If kubectl fails (e.g. not found)
    """
    logger.debug(f"Fetching {kind} {namespace}/{name}")
    return json.loads(kubectl_json(["get", kind, name, "-n", namespace]))
