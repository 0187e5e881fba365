"""
Kubernetes manifest generators for the NGINX Gateway Fabric migration.

Generates the Gateway API resources (Gateway, HTTPRoute, ReferenceGrant),
the NGINX Gateway Fabric ClientSettingsPolicy, demo backend Deployments and
Services, TLS Secrets, plus the eksctl cluster config and Helm values that
feed the external tools.
"""

import base64
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .types import (
    BackendApp,
    ClientSettingsConfig,
    ClusterConfig,
    FabricConfig,
    GatewayConfig,
    ListenerConfig,
    MigrationConfig,
    PathMatchType,
    Protocol,
    RouteConfig,
)

logger = logging.getLogger(__name__)

GATEWAY_API_GROUP = "gateway.networking.k8s.io"
GATEWAY_API_VERSION = f"{GATEWAY_API_GROUP}/v1"
REFERENCE_GRANT_VERSION = f"{GATEWAY_API_GROUP}/v1beta1"
NGF_POLICY_VERSION = "gateway.nginx.org/v1alpha1"
COMPONENT_LABEL = "ngfmigrate.io/component"


def _labels(component: str, **extra: str) -> Dict[str, str]:
    labels = {COMPONENT_LABEL: component}
    labels.update(extra)
    return labels


def _set_dotted(values: Dict[str, Any], key: str, value: Any) -> None:
    """Set a Helm-style dotted key (e.g. nginx.service.type) in a nested dict."""
    parts = key.split(".")
    node = values
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


def generate_namespace(name: str) -> Dict[str, Any]:
    """Generate a Namespace manifest."""
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {
            "name": name,
            "labels": _labels("namespace"),
        },
    }


def generate_deployment(app: BackendApp) -> Dict[str, Any]:
    """
    Generate Deployment manifest for a backend app.

    Args:
        app: Backend app configuration

    Returns:
        Deployment manifest dict
    """
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": app.name,
            "namespace": app.namespace,
            "labels": _labels("backend", app=app.name),
        },
        "spec": {
            "replicas": app.replicas,
            "selector": {
                "matchLabels": {
                    "app": app.name,
                },
            },
            "template": {
                "metadata": {
                    "labels": {
                        "app": app.name,
                    },
                },
                "spec": {
                    "containers": [
                        {
                            "name": app.name,
                            "image": app.image,
                            "ports": [
                                {
                                    "containerPort": app.container_port,
                                    "protocol": "TCP",
                                }
                            ],
                        }
                    ],
                },
            },
        },
    }


def generate_service(app: BackendApp) -> Dict[str, Any]:
    """Generate ClusterIP Service manifest for a backend app."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": app.name,
            "namespace": app.namespace,
            "labels": _labels("backend", app=app.name),
        },
        "spec": {
            "selector": {
                "app": app.name,
            },
            "ports": [
                {
                    "name": "http",
                    "port": app.service_port,
                    "targetPort": app.container_port,
                    "protocol": "TCP",
                }
            ],
        },
    }


def _build_listener(listener: ListenerConfig, gateway_namespace: str) -> Dict[str, Any]:
    """Build a Gateway listener spec."""
    result: Dict[str, Any] = {
        "name": listener.name,
        "port": listener.port,
        "protocol": listener.protocol.value,
    }

    if listener.hostname:
        result["hostname"] = listener.hostname

    if listener.protocol == Protocol.HTTPS:
        cert_ref: Dict[str, Any] = {
            "kind": "Secret",
            "name": listener.tls_secret,
        }
        if listener.tls_secret_namespace and listener.tls_secret_namespace != gateway_namespace:
            cert_ref["namespace"] = listener.tls_secret_namespace
        result["tls"] = {
            "mode": "Terminate",
            "certificateRefs": [cert_ref],
        }

    namespaces: Dict[str, Any] = {"from": listener.allowed_routes.value}
    if listener.route_selector:
        namespaces["selector"] = {"matchLabels": listener.route_selector}
    result["allowedRoutes"] = {"namespaces": namespaces}

    return result


def generate_gateway(gateway: GatewayConfig, gateway_class: str) -> Dict[str, Any]:
    """
    Generate Gateway manifest.

    HTTPS listeners terminate TLS with the referenced Secret. A Secret in
    another namespace needs a ReferenceGrant (see generate_reference_grants).

    Args:
        gateway: Gateway configuration
        gateway_class: GatewayClass installed by NGINX Gateway Fabric

    Returns:
        Gateway manifest dict
    """
    return {
        "apiVersion": GATEWAY_API_VERSION,
        "kind": "Gateway",
        "metadata": {
            "name": gateway.name,
            "namespace": gateway.namespace,
            "labels": _labels("gateway"),
        },
        "spec": {
            "gatewayClassName": gateway_class,
            "listeners": [
                _build_listener(listener, gateway.namespace)
                for listener in gateway.listeners
            ],
        },
    }


def _build_rewrite_filter(route: RouteConfig) -> Dict[str, Any]:
    """Build URLRewrite filter. Prefix replacement only applies to PathPrefix matches."""
    if route.rewrite_full_path is not None:
        path = {"type": "ReplaceFullPath", "replaceFullPath": route.rewrite_full_path}
    elif route.path_type == PathMatchType.PATH_PREFIX:
        path = {"type": "ReplacePrefixMatch", "replacePrefixMatch": route.rewrite_prefix}
    else:
        path = {"type": "ReplaceFullPath", "replaceFullPath": route.rewrite_prefix}
    return {
        "type": "URLRewrite",
        "urlRewrite": {"path": path},
    }


def generate_httproute(route: RouteConfig, gateway: GatewayConfig) -> Dict[str, Any]:
    """
    Generate HTTPRoute manifest.

    Args:
        route: Route configuration
        gateway: Parent Gateway configuration

    Returns:
        HTTPRoute manifest dict
    """
    parent_ref: Dict[str, Any] = {"name": gateway.name}
    if gateway.namespace != route.namespace:
        parent_ref["namespace"] = gateway.namespace
    if route.section_name:
        parent_ref["sectionName"] = route.section_name

    rule: Dict[str, Any] = {
        "matches": [
            {
                "path": {
                    "type": route.path_type.value,
                    "value": route.path,
                },
            }
        ],
    }

    if route.https_redirect:
        # Redirect rules must not carry backends
        rule["filters"] = [
            {
                "type": "RequestRedirect",
                "requestRedirect": {
                    "scheme": "https",
                    "statusCode": 301,
                },
            }
        ]
    else:
        if route.rewrite_target is not None:
            rule["filters"] = [_build_rewrite_filter(route)]

        backend_ref: Dict[str, Any] = {
            "name": route.service,
            "port": route.port,
        }
        if route.backend_namespace != route.namespace:
            backend_ref["namespace"] = route.backend_namespace
        rule["backendRefs"] = [backend_ref]

        if not route.timeouts.is_empty():
            timeouts: Dict[str, str] = {}
            if route.timeouts.request:
                timeouts["request"] = route.timeouts.request
            if route.timeouts.backend_request:
                timeouts["backendRequest"] = route.timeouts.backend_request
            rule["timeouts"] = timeouts

    spec: Dict[str, Any] = {"parentRefs": [parent_ref]}
    if route.hostnames:
        spec["hostnames"] = list(route.hostnames)
    spec["rules"] = [rule]

    return {
        "apiVersion": GATEWAY_API_VERSION,
        "kind": "HTTPRoute",
        "metadata": {
            "name": route.name,
            "namespace": route.namespace,
            "labels": _labels("route"),
        },
        "spec": spec,
    }


def generate_reference_grant(
    namespace: str,
    from_kind: str,
    from_namespace: str,
    to_kind: str,
    to_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Generate ReferenceGrant manifest.

    The grant lives in the namespace that owns the referenced object and
    lets objects of from_kind in from_namespace reference it.

    Args:
        namespace: Namespace of the referenced object
        from_kind: Referencing kind (HTTPRoute, Gateway)
        from_namespace: Namespace of the referencing object
        to_kind: Referenced kind (Service, Secret)
        to_name: Optional name restricting the grant to one object

    Returns:
        ReferenceGrant manifest dict
    """
    to: Dict[str, Any] = {
        "group": "",
        "kind": to_kind,
    }
    if to_name:
        to["name"] = to_name

    return {
        "apiVersion": REFERENCE_GRANT_VERSION,
        "kind": "ReferenceGrant",
        "metadata": {
            "name": f"allow-{from_namespace}-{from_kind.lower()}-to-{to_kind.lower()}",
            "namespace": namespace,
            "labels": _labels("reference-grant"),
        },
        "spec": {
            "from": [
                {
                    "group": GATEWAY_API_GROUP,
                    "kind": from_kind,
                    "namespace": from_namespace,
                }
            ],
            "to": [to],
        },
    }


def generate_reference_grants(config: MigrationConfig) -> List[Dict[str, Any]]:
    """
    Generate the ReferenceGrants needed by cross-namespace references.

    Covers HTTPRoute -> Service backends in other namespaces and
    Gateway -> Secret certificate refs outside the Gateway namespace.
    """
    wanted: List[Tuple[str, str, str, str]] = []

    for route in config.cross_namespace_backends():
        if route.https_redirect:
            continue
        wanted.append((route.backend_namespace, "HTTPRoute", route.namespace, "Service"))

    for listener in config.gateway.tls_listeners:
        secret_ns = listener.tls_secret_namespace
        if secret_ns and secret_ns != config.gateway.namespace:
            wanted.append((secret_ns, "Gateway", config.gateway.namespace, "Secret"))

    grants = []
    seen = set()
    for key in wanted:
        if key in seen:
            continue
        seen.add(key)
        namespace, from_kind, from_namespace, to_kind = key
        grants.append(generate_reference_grant(namespace, from_kind, from_namespace, to_kind))
    return grants


def generate_client_settings_policy(settings: ClientSettingsConfig) -> Dict[str, Any]:
    """Generate NGINX Gateway Fabric ClientSettingsPolicy manifest."""
    spec: Dict[str, Any] = {
        "targetRef": {
            "group": GATEWAY_API_GROUP,
            "kind": settings.target_kind,
            "name": settings.target_name,
        },
    }

    body: Dict[str, Any] = {}
    if settings.body_max_size:
        body["maxSize"] = settings.body_max_size
    if settings.body_timeout:
        body["timeout"] = settings.body_timeout
    if body:
        spec["body"] = body

    keepalive: Dict[str, Any] = {}
    if settings.keepalive_requests is not None:
        keepalive["requests"] = settings.keepalive_requests
    if settings.keepalive_time:
        keepalive["time"] = settings.keepalive_time
    if settings.keepalive_timeout:
        keepalive["timeout"] = {"server": settings.keepalive_timeout}
    if keepalive:
        spec["keepAlive"] = keepalive

    return {
        "apiVersion": NGF_POLICY_VERSION,
        "kind": "ClientSettingsPolicy",
        "metadata": {
            "name": settings.name,
            "namespace": settings.namespace,
            "labels": _labels("client-settings"),
        },
        "spec": spec,
    }


def generate_tls_secret(
    name: str,
    namespace: str,
    cert_pem: bytes,
    key_pem: bytes,
) -> Dict[str, Any]:
    """Generate kubernetes.io/tls Secret from PEM certificate and key."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/tls",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": _labels("tls"),
        },
        "data": {
            "tls.crt": base64.b64encode(cert_pem).decode("ascii"),
            "tls.key": base64.b64encode(key_pem).decode("ascii"),
        },
    }


def generate_eksctl_cluster_config(cluster: ClusterConfig) -> Dict[str, Any]:
    """Generate eksctl ClusterConfig (https://schema.eksctl.io/)."""
    return {
        "apiVersion": "eksctl.io/v1alpha5",
        "kind": "ClusterConfig",
        "metadata": {
            "name": cluster.name,
            "region": cluster.region,
            "version": cluster.version,
        },
        "managedNodeGroups": [
            {
                "name": cluster.nodegroup,
                "instanceType": cluster.instance_type,
                "desiredCapacity": cluster.nodes,
                "minSize": cluster.nodes_min,
                "maxSize": cluster.nodes_max,
            }
        ],
    }


def generate_helm_values(fabric: FabricConfig) -> Dict[str, Any]:
    """
    Generate values for the nginx-gateway-fabric chart.

    Extra `set` entries use Helm's dotted key syntax and override the
    defaults.
    """
    values: Dict[str, Any] = {
        "nginxGateway": {
            "gatewayClassName": fabric.gateway_class,
        },
        "nginx": {
            "kind": fabric.kind.value,
            "service": {
                "type": fabric.service_type,
            },
        },
    }
    for key, value in fabric.set_values.items():
        _set_dotted(values, key, value)
    return values


def generate_all_manifests(config: MigrationConfig) -> List[Dict[str, Any]]:
    """
    Generate all in-cluster manifests in apply order.

    Namespaces come first, then backends, ReferenceGrants, the Gateway,
    HTTPRoutes and finally ClientSettingsPolicies that target them.
    """
    manifests: List[Dict[str, Any]] = []

    for namespace in config.namespaces():
        if namespace != "default":
            manifests.append(generate_namespace(namespace))

    for app in config.apps:
        manifests.append(generate_deployment(app))
        manifests.append(generate_service(app))

    manifests.extend(generate_reference_grants(config))
    manifests.append(generate_gateway(config.gateway, config.gateway_class))

    for route in config.routes:
        manifests.append(generate_httproute(route, config.gateway))

    for settings in config.client_settings:
        manifests.append(generate_client_settings_policy(settings))

    logger.debug(f"Generated {len(manifests)} manifests")
    return manifests


def dump_manifests(manifests: List[Dict[str, Any]]) -> str:
    """Render manifests as a multi-document YAML string."""
    docs = [yaml.dump(m, default_flow_style=False, sort_keys=False) for m in manifests]
    return "---\n" + "---\n".join(docs)


def write_manifests(
    manifests: List[Dict[str, Any]],
    output_dir: str,
    filename: str = "manifests.yaml",
) -> Path:
    """Write manifests to output_dir/filename and return the file path."""
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    out_file = output_path / filename
    out_file.write_text(dump_manifests(manifests))
    logger.info(f"Wrote {len(manifests)} manifests to {out_file}")
    return out_file


def write_yaml(data: Dict[str, Any], output_dir: str, filename: str) -> Path:
    """Write a single YAML document to output_dir/filename."""
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    out_file = output_path / filename
    out_file.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    logger.info(f"Wrote {out_file}")
    return out_file
