"""
Type definitions for ngfmigrate configuration.

These dataclasses represent migration.yaml: the EKS cluster, the NGINX
Gateway Fabric install, and the Gateway API resources that replace the
NGINX Ingress Controller objects.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Protocol(str, Enum):
    """Gateway listener protocol."""
    HTTP = "HTTP"
    HTTPS = "HTTPS"


class PathMatchType(str, Enum):
    """HTTPRoute path match type."""
    PATH_PREFIX = "PathPrefix"
    EXACT = "Exact"
    REGULAR_EXPRESSION = "RegularExpression"


class DataPlaneKind(str, Enum):
    """How NGINX Gateway Fabric runs its NGINX data plane."""
    DAEMON_SET = "daemonSet"
    DEPLOYMENT = "deployment"


class AllowedRoutes(str, Enum):
    """Namespaces from which a listener accepts routes."""
    ALL = "All"
    SAME = "Same"
    SELECTOR = "Selector"


@dataclass
class ClusterConfig:
    """EKS cluster created with eksctl."""
    name: str = "ngf-demo"
    region: str = "us-east-1"
    version: str = "1.31"
    nodegroup: str = "ng-1"
    instance_type: str = "t3.medium"
    nodes: int = 2
    nodes_min: int = 1
    nodes_max: int = 3

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ClusterConfig":
        if not data:
            return cls()
        return cls(
            name=data.get("name", "ngf-demo"),
            region=data.get("region", "us-east-1"),
            version=str(data.get("version", "1.31")),
            nodegroup=data.get("nodegroup", "ng-1"),
            instance_type=data.get("instance_type", "t3.medium"),
            nodes=data.get("nodes", 2),
            nodes_min=data.get("nodes_min", 1),
            nodes_max=data.get("nodes_max", 3),
        )


@dataclass
class FabricConfig:
    """NGINX Gateway Fabric Helm release."""
    release: str = "ngf"
    namespace: str = "nginx-gateway"
    chart: str = "oci://ghcr.io/nginx/charts/nginx-gateway-fabric"
    chart_version: Optional[str] = None
    crd_version: str = "v1.3.0"
    kind: DataPlaneKind = DataPlaneKind.DAEMON_SET
    service_type: str = "LoadBalancer"
    gateway_class: str = "nginx"
    set_values: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "FabricConfig":
        if not data:
            return cls()
        kind = data.get("kind", "daemonSet")
        return cls(
            release=data.get("release", "ngf"),
            namespace=data.get("namespace", "nginx-gateway"),
            chart=data.get("chart", "oci://ghcr.io/nginx/charts/nginx-gateway-fabric"),
            chart_version=data.get("chart_version"),
            crd_version=data.get("crd_version", "v1.3.0"),
            kind=DataPlaneKind(kind) if kind else DataPlaneKind.DAEMON_SET,
            service_type=data.get("service_type", "LoadBalancer"),
            gateway_class=data.get("gateway_class", "nginx"),
            set_values={k: str(v) for k, v in data.get("set", {}).items()},
        )

    @property
    def crd_url(self) -> str:
        """Standard-channel Gateway API CRD bundle for crd_version."""
        return (
            "https://github.com/kubernetes-sigs/gateway-api/releases/download/"
            f"{self.crd_version}/standard-install.yaml"
        )


@dataclass
class TlsConfig:
    """Self-signed certificate generated with openssl and stored as a Secret."""
    secret_name: Optional[str] = None  # None applies to every listener secret
    namespace: Optional[str] = None  # None applies to every namespace
    common_name: Optional[str] = None
    days: int = 365
    key_size: int = 2048
    cert_file: Optional[str] = None  # Defaults to <secret_name>.crt
    key_file: Optional[str] = None  # Defaults to <secret_name>.key

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["TlsConfig"]:
        if not data:
            return None
        return cls(
            secret_name=data.get("secret_name"),
            namespace=data.get("namespace"),
            common_name=data.get("common_name"),
            days=data.get("days", 365),
            key_size=data.get("key_size", 2048),
            cert_file=data.get("cert_file"),
            key_file=data.get("key_file"),
        )

    def applies_to(self, namespace: str, secret_name: str) -> bool:
        """Whether these settings cover the Secret namespace/secret_name."""
        return (
            self.secret_name in (None, secret_name)
            and self.namespace in (None, namespace)
        )


@dataclass
class ListenerConfig:
    """A Gateway listener."""
    name: str
    protocol: Protocol = Protocol.HTTP
    port: int = 80
    hostname: Optional[str] = None
    tls_secret: Optional[str] = None
    tls_secret_namespace: Optional[str] = None
    allowed_routes: AllowedRoutes = AllowedRoutes.ALL
    route_selector: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.protocol == Protocol.HTTPS and not self.tls_secret:
            raise ValueError(f"HTTPS listener '{self.name}' requires tls_secret")

    @classmethod
    def from_dict(cls, data: Dict) -> "ListenerConfig":
        protocol = Protocol(data.get("protocol", "HTTP"))
        default_port = 443 if protocol == Protocol.HTTPS else 80
        return cls(
            name=data["name"],
            protocol=protocol,
            port=data.get("port", default_port),
            hostname=data.get("hostname"),
            tls_secret=data.get("tls_secret"),
            tls_secret_namespace=data.get("tls_secret_namespace"),
            allowed_routes=AllowedRoutes(data.get("allowed_routes", "All")),
            route_selector=data.get("route_selector", {}),
        )


@dataclass
class GatewayConfig:
    """The Gateway that replaces the ingress controller entrypoint."""
    name: str = "gateway"
    namespace: str = "default"
    gateway_class: Optional[str] = None  # Falls back to FabricConfig.gateway_class
    listeners: List[ListenerConfig] = field(
        default_factory=lambda: [ListenerConfig(name="http")]
    )

    def __post_init__(self):
        seen = set()
        for listener in self.listeners:
            if listener.name in seen:
                raise ValueError(
                    f"Duplicate listener name '{listener.name}' on gateway '{self.name}'"
                )
            seen.add(listener.name)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "GatewayConfig":
        if not data:
            return cls()
        listeners = data.get("listeners")
        return cls(
            name=data.get("name", "gateway"),
            namespace=data.get("namespace", "default"),
            gateway_class=data.get("gateway_class"),
            listeners=(
                [ListenerConfig.from_dict(lst) for lst in listeners]
                if listeners else [ListenerConfig(name="http")]
            ),
        )

    def get_listener(self, name: str) -> Optional[ListenerConfig]:
        for listener in self.listeners:
            if listener.name == name:
                return listener
        return None

    @property
    def tls_listeners(self) -> List[ListenerConfig]:
        return [lst for lst in self.listeners if lst.protocol == Protocol.HTTPS]

    def secret_namespace(self, listener: ListenerConfig) -> str:
        """Namespace of a listener's certificate Secret."""
        return listener.tls_secret_namespace or self.namespace


@dataclass
class RouteTimeouts:
    """HTTPRoute rule timeouts (Gateway API duration strings)."""
    request: Optional[str] = None
    backend_request: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "RouteTimeouts":
        if not data:
            return cls()
        return cls(
            request=data.get("request"),
            backend_request=data.get("backend_request"),
        )

    def is_empty(self) -> bool:
        return self.request is None and self.backend_request is None


@dataclass
class RouteConfig:
    """An HTTPRoute sending a host/path to a backend Service."""
    name: str
    service: str
    namespace: str = "default"
    hostnames: List[str] = field(default_factory=list)
    path: str = "/"
    path_type: PathMatchType = PathMatchType.PATH_PREFIX
    port: int = 80
    service_namespace: Optional[str] = None
    rewrite_prefix: Optional[str] = None
    rewrite_full_path: Optional[str] = None
    https_redirect: bool = False
    section_name: Optional[str] = None
    timeouts: RouteTimeouts = field(default_factory=RouteTimeouts)

    def __post_init__(self):
        if not self.path.startswith("/"):
            raise ValueError(f"Route '{self.name}' path must start with '/': {self.path}")
        if self.rewrite_prefix is not None and self.rewrite_full_path is not None:
            raise ValueError(
                f"Route '{self.name}' sets both rewrite_prefix and rewrite_full_path"
            )

    @classmethod
    def from_dict(cls, data: Dict) -> "RouteConfig":
        return cls(
            name=data["name"],
            service=data["service"],
            namespace=data.get("namespace", "default"),
            hostnames=data.get("hostnames", []),
            path=data.get("path", "/"),
            path_type=PathMatchType(data.get("path_type", "PathPrefix")),
            port=data.get("port", 80),
            service_namespace=data.get("service_namespace"),
            rewrite_prefix=data.get("rewrite_prefix"),
            rewrite_full_path=data.get("rewrite_full_path"),
            https_redirect=data.get("https_redirect", False),
            section_name=data.get("section_name"),
            timeouts=RouteTimeouts.from_dict(data.get("timeouts")),
        )

    @property
    def backend_namespace(self) -> str:
        """Namespace of the backend Service (defaults to the route namespace)."""
        return self.service_namespace or self.namespace

    @property
    def rewrite_target(self) -> Optional[str]:
        """Path the request is rewritten to, whichever rewrite kind is set."""
        return self.rewrite_full_path if self.rewrite_full_path is not None else self.rewrite_prefix


@dataclass
class BackendApp:
    """Demo application deployed behind the Gateway."""
    name: str
    namespace: str = "default"
    image: str = "nginxdemos/hello:plain-text"
    replicas: int = 2
    container_port: int = 80
    service_port: int = 80

    @classmethod
    def from_dict(cls, data: Dict) -> "BackendApp":
        return cls(
            name=data["name"],
            namespace=data.get("namespace", "default"),
            image=data.get("image", "nginxdemos/hello:plain-text"),
            replicas=data.get("replicas", 2),
            container_port=data.get("container_port", 80),
            service_port=data.get("service_port", 80),
        )


@dataclass
class ClientSettingsConfig:
    """NGINX Gateway Fabric ClientSettingsPolicy attached to a Gateway or HTTPRoute."""
    name: str
    target_name: str
    target_kind: str = "Gateway"
    namespace: str = "default"
    body_max_size: Optional[str] = None
    body_timeout: Optional[str] = None
    keepalive_requests: Optional[int] = None
    keepalive_time: Optional[str] = None
    keepalive_timeout: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "ClientSettingsConfig":
        body = data.get("body", {})
        keepalive = data.get("keepalive", {})
        return cls(
            name=data["name"],
            target_name=data["target_name"],
            target_kind=data.get("target_kind", "Gateway"),
            namespace=data.get("namespace", "default"),
            body_max_size=body.get("max_size"),
            body_timeout=body.get("timeout"),
            keepalive_requests=keepalive.get("requests"),
            keepalive_time=keepalive.get("time"),
            keepalive_timeout=keepalive.get("timeout"),
        )


@dataclass
class MigrationConfig:
    """Complete migration configuration from migration.yaml."""
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    fabric: FabricConfig = field(default_factory=FabricConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    tls: Optional[TlsConfig] = None
    apps: List[BackendApp] = field(default_factory=list)
    routes: List[RouteConfig] = field(default_factory=list)
    client_settings: List[ClientSettingsConfig] = field(default_factory=list)

    def __post_init__(self):
        if self.tls is None:
            return
        secrets = [
            (self.gateway.secret_namespace(lst), lst.tls_secret)
            for lst in self.gateway.tls_listeners
        ]
        if not secrets:
            raise ValueError("tls is set but the gateway has no HTTPS listener")
        if not any(self.tls.applies_to(ns, name) for ns, name in secrets):
            raise ValueError(
                f"tls secret {self.tls.namespace or '*'}/{self.tls.secret_name or '*'} "
                "is not referenced by any HTTPS listener"
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MigrationConfig":
        if not data:
            return cls()
        return cls(
            cluster=ClusterConfig.from_dict(data.get("cluster")),
            fabric=FabricConfig.from_dict(data.get("fabric")),
            gateway=GatewayConfig.from_dict(data.get("gateway")),
            tls=TlsConfig.from_dict(data.get("tls")),
            apps=[BackendApp.from_dict(a) for a in data.get("apps", [])],
            routes=[RouteConfig.from_dict(r) for r in data.get("routes", [])],
            client_settings=[
                ClientSettingsConfig.from_dict(c)
                for c in data.get("client_settings", [])
            ],
        )

    @property
    def gateway_class(self) -> str:
        return self.gateway.gateway_class or self.fabric.gateway_class

    def get_route(self, name: str) -> Optional[RouteConfig]:
        for route in self.routes:
            if route.name == name:
                return route
        return None

    def get_app(self, name: str) -> Optional[BackendApp]:
        for app in self.apps:
            if app.name == name:
                return app
        return None

    def cross_namespace_routes(self) -> List[RouteConfig]:
        """Routes that live outside the Gateway namespace or reference a backend elsewhere."""
        return [
            r for r in self.routes
            if r.backend_namespace != r.namespace or r.namespace != self.gateway.namespace
        ]

    def cross_namespace_backends(self) -> List[RouteConfig]:
        """Routes whose backend Service is in another namespace than the route."""
        return [r for r in self.routes if r.backend_namespace != r.namespace]

    def namespaces(self) -> List[str]:
        """All namespaces the generated resources live in, in first-seen order."""
        seen: List[str] = []
        candidates = [self.gateway.namespace]
        candidates += [a.namespace for a in self.apps]
        candidates += [r.namespace for r in self.routes]
        candidates += [r.backend_namespace for r in self.routes]
        candidates += [
            lst.tls_secret_namespace
            for lst in self.gateway.tls_listeners
            if lst.tls_secret_namespace
        ]
        if self.tls and self.tls.namespace:
            candidates.append(self.tls.namespace)
        for ns in candidates:
            if ns not in seen:
                seen.append(ns)
        return seen
