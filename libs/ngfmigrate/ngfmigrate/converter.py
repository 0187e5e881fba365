"""
Translate NGINX Ingress Controller Ingress objects into Gateway API config.

Each Ingress path becomes one HTTPRoute, Ingress TLS entries become HTTPS
listeners on the shared Gateway, and the handful of nginx.ingress annotations
with a Gateway API or NGINX Gateway Fabric equivalent are carried over.
Anything else is reported as a warning for the operator to handle by hand.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .generators import (
    generate_client_settings_policy,
    generate_gateway,
    generate_httproute,
    generate_reference_grants,
)
from .types import (
    ClientSettingsConfig,
    GatewayConfig,
    ListenerConfig,
    MigrationConfig,
    PathMatchType,
    Protocol,
    RouteConfig,
    RouteTimeouts,
)

logger = logging.getLogger(__name__)

NGINX_PREFIX = "nginx.ingress.kubernetes.io/"
INGRESS_CLASS_ANNOTATION = "kubernetes.io/ingress.class"

PATH_TYPES = {
    "Prefix": PathMatchType.PATH_PREFIX,
    "Exact": PathMatchType.EXACT,
    "ImplementationSpecific": PathMatchType.PATH_PREFIX,
}

# Annotations translated below; everything else under NGINX_PREFIX is reported
HANDLED_ANNOTATIONS = {
    "rewrite-target",
    "ssl-redirect",
    "force-ssl-redirect",
    "proxy-read-timeout",
    "proxy-send-timeout",
    "proxy-body-size",
    "use-regex",
}


@dataclass
class ConversionResult:
    """Gateway API configuration derived from a set of Ingresses."""
    routes: List[RouteConfig] = field(default_factory=list)
    listeners: List[ListenerConfig] = field(default_factory=list)
    client_settings: List[ClientSettingsConfig] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def add_listener(self, listener: ListenerConfig) -> None:
        if all(existing.name != listener.name for existing in self.listeners):
            self.listeners.append(listener)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def apply_to(self, config: MigrationConfig) -> MigrationConfig:
        """Return a copy of config with the converted listeners, routes and policies."""
        listeners = list(config.gateway.listeners)
        names = {lst.name for lst in listeners}
        for listener in self.listeners:
            if listener.name not in names:
                listeners.append(listener)
                names.add(listener.name)

        gateway = GatewayConfig(
            name=config.gateway.name,
            namespace=config.gateway.namespace,
            gateway_class=config.gateway.gateway_class,
            listeners=listeners,
        )
        return MigrationConfig(
            cluster=config.cluster,
            fabric=config.fabric,
            gateway=gateway,
            tls=config.tls,
            apps=list(config.apps),
            routes=list(config.routes) + self.routes,
            client_settings=list(config.client_settings) + self.client_settings,
        )


def _dns_label(value: str) -> str:
    """Turn a hostname or path into a DNS-1123 label fragment."""
    label = re.sub(r"[^a-z0-9-]+", "-", value.lower()).strip("-")
    return label or "root"


def _seconds(value: str) -> Optional[int]:
    """Parse an nginx timeout annotation, which is a number of seconds."""
    value = str(value).strip()
    if value.endswith("s"):
        value = value[:-1]
    return int(value) if value.isdigit() else None


def _is_true(value: Optional[str]) -> bool:
    return str(value).lower() == "true"


def ingress_class(ingress: Dict[str, Any]) -> Optional[str]:
    """Ingress class from spec.ingressClassName or the legacy annotation."""
    spec = ingress.get("spec") or {}
    annotations = (ingress.get("metadata") or {}).get("annotations") or {}
    return spec.get("ingressClassName") or annotations.get(INGRESS_CLASS_ANNOTATION)


def load_ingresses(path: str) -> List[Dict[str, Any]]:
    """
    Load Ingress documents from a YAML file.

    Accepts multi-document files and `kind: List` output from
    `kubectl get ingress -o yaml`. Non-Ingress documents are ignored.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    ingress_path = Path(path)
    if not ingress_path.exists():
        raise FileNotFoundError(f"Ingress file not found at {path}")

    with open(ingress_path) as f:
        docs = [d for d in yaml.safe_load_all(f) if d]

    ingresses = []
    for index, doc in enumerate(docs):
        if not isinstance(doc, dict):
            logger.warning(f"{path}: document {index} is not a mapping, skipping")
            continue
        items = (doc.get("items") or []) if doc.get("kind") == "List" else [doc]
        for item in items:
            if isinstance(item, dict) and item.get("kind") == "Ingress":
                ingresses.append(item)
    logger.debug(f"Loaded {len(ingresses)} Ingress objects from {path}")
    return ingresses


def _backend_service(
    backend: Dict[str, Any],
    where: str,
    result: ConversionResult,
) -> Optional[tuple]:
    service = backend.get("service")
    if not service:
        result.warn(f"{where}: resource backends are not supported, skipping")
        return None
    port = service.get("port") or {}
    if "number" in port:
        return service["name"], port["number"]
    result.warn(
        f"{where}: named port '{port.get('name')}' cannot be resolved offline, using 80"
    )
    return service["name"], 80


def _tls_listeners(
    ingress: Dict[str, Any],
    namespace: str,
    result: ConversionResult,
) -> Dict[Optional[str], str]:
    """Add HTTPS listeners for the Ingress TLS entries. Returns host -> listener name."""
    by_host: Dict[Optional[str], str] = {}
    for tls in (ingress.get("spec") or {}).get("tls") or []:
        secret = tls.get("secretName")
        if not secret:
            result.warn(
                f"Ingress {namespace}/{ingress['metadata']['name']}: TLS entry without "
                "secretName relies on the controller default certificate, skipping"
            )
            continue
        hosts = tls.get("hosts") or [None]
        for host in hosts:
            name = f"https-{_dns_label(host)}" if host else "https"
            result.add_listener(ListenerConfig(
                name=name,
                protocol=Protocol.HTTPS,
                port=443,
                hostname=host,
                tls_secret=secret,
                tls_secret_namespace=namespace,
            ))
            by_host[host] = name
    return by_host


def convert_ingress(
    ingress: Dict[str, Any],
    result: ConversionResult,
    http_listener: str = "http",
) -> None:
    """
    Convert one Ingress into routes, listeners and policies on result.

    Args:
        ingress: Ingress manifest dict
        result: Accumulated conversion result
        http_listener: Name of the plain HTTP listener used for redirects
    """
    metadata = ingress.get("metadata") or {}
    name = metadata.get("name")
    namespace = metadata.get("namespace", "default")
    if not name:
        result.warn(f"Ingress in namespace {namespace} has no metadata.name, skipping")
        result.skipped.append(f"{namespace}/<unnamed>")
        return
    annotations = metadata.get("annotations") or {}
    spec = ingress.get("spec") or {}
    where = f"Ingress {namespace}/{name}"

    cls = ingress_class(ingress)
    if cls and cls != "nginx":
        result.warn(f"{where}: ingress class '{cls}' is not nginx, skipping")
        result.skipped.append(f"{namespace}/{name}")
        return

    def annotation(key: str) -> Optional[str]:
        return annotations.get(NGINX_PREFIX + key)

    for key in annotations:
        if key.startswith(NGINX_PREFIX) and key[len(NGINX_PREFIX):] not in HANDLED_ANNOTATIONS:
            result.warn(f"{where}: annotation '{key}' has no Gateway API equivalent")

    rewrite = annotation("rewrite-target")
    if rewrite and "$" in rewrite:
        result.warn(f"{where}: rewrite-target '{rewrite}' uses capture groups, not converted")
        rewrite = None

    timeout = None
    for key in ("proxy-read-timeout", "proxy-send-timeout"):
        raw = annotation(key)
        if raw is None:
            continue
        converted = _seconds(raw)
        if converted is None:
            result.warn(f"{where}: cannot parse {key} '{raw}'")
        elif timeout is None or converted > timeout:
            timeout = converted

    use_regex = _is_true(annotation("use-regex"))
    force_redirect = _is_true(annotation("force-ssl-redirect"))
    ssl_redirect = annotation("ssl-redirect")

    tls_by_host = _tls_listeners(ingress, namespace, result)

    entries = []
    for rule in spec.get("rules") or []:
        host = rule.get("host")
        for path in (rule.get("http") or {}).get("paths") or []:
            entries.append((host, path))
    if spec.get("defaultBackend"):
        entries.append((None, {"path": "/", "pathType": "Prefix", "backend": spec["defaultBackend"]}))

    route_names = []
    for index, (host, path) in enumerate(entries):
        backend = _backend_service(path.get("backend") or {}, where, result)
        if backend is None:
            continue
        service, port = backend

        path_type = PATH_TYPES.get(path.get("pathType", "Prefix"), PathMatchType.PATH_PREFIX)
        if use_regex:
            path_type = PathMatchType.REGULAR_EXPRESSION

        route_name = name if len(entries) == 1 else f"{name}-{index}"
        hostnames = [host] if host else []

        https_listener = tls_by_host.get(host)
        has_tls = https_listener is not None
        redirect = force_redirect or (has_tls and ssl_redirect != "false")

        section_name = None
        if redirect and has_tls:
            section_name = https_listener
            result.routes.append(RouteConfig(
                name=f"{route_name}-redirect",
                service=service,
                namespace=namespace,
                hostnames=hostnames,
                path=path.get("path", "/"),
                path_type=path_type,
                port=port,
                https_redirect=True,
                section_name=http_listener,
            ))
        elif redirect:
            result.warn(f"{where}: ssl redirect requested for host '{host}' without TLS")

        result.routes.append(RouteConfig(
            name=route_name,
            service=service,
            namespace=namespace,
            hostnames=hostnames,
            path=path.get("path", "/"),
            path_type=path_type,
            port=port,
            rewrite_full_path=rewrite,
            section_name=section_name,
            timeouts=RouteTimeouts(backend_request=f"{timeout}s" if timeout else None),
        ))
        route_names.append(route_name)

    body_size = annotation("proxy-body-size")
    if body_size:
        for route_name in route_names:
            result.client_settings.append(ClientSettingsConfig(
                name=f"{route_name}-client-settings",
                target_name=route_name,
                target_kind="HTTPRoute",
                namespace=namespace,
                body_max_size=body_size,
            ))


def convert_ingresses(ingresses: List[Dict[str, Any]], http_listener: str = "http") -> ConversionResult:
    """Convert a list of Ingress manifests."""
    result = ConversionResult()
    for ingress in ingresses:
        convert_ingress(ingress, result, http_listener=http_listener)
    logger.info(
        f"Converted {len(ingresses) - len(result.skipped)} Ingresses into "
        f"{len(result.routes)} HTTPRoutes"
    )
    return result


def conversion_manifests(config: MigrationConfig) -> List[Dict[str, Any]]:
    """
    Gateway API manifests for a converted config.

    Backends and namespaces already exist in a cluster that is being
    migrated, so only the Gateway side is rendered.
    """
    manifests: List[Dict[str, Any]] = []
    manifests.extend(generate_reference_grants(config))
    manifests.append(generate_gateway(config.gateway, config.gateway_class))
    for route in config.routes:
        manifests.append(generate_httproute(route, config.gateway))
    for settings in config.client_settings:
        manifests.append(generate_client_settings_policy(settings))
    return manifests
