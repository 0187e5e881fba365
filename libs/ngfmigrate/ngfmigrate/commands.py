"""
The ordered sequence of external tool invocations that performs the migration.

Nothing here talks to AWS or Kubernetes directly: every step is an argv for
eksctl, kubectl, helm or openssl, in the order the migration runs them.
"""

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from .types import MigrationConfig, TlsConfig


class Phase(str, Enum):
    """Migration phases, in execution order."""
    CLUSTER = "cluster"
    CRDS = "crds"
    FABRIC = "fabric"
    TLS = "tls"
    RESOURCES = "resources"
    VERIFY = "verify"


PHASE_ORDER = list(Phase)


@dataclass
class Step:
    """A single external command."""
    phase: Phase
    description: str
    argv: List[str]
    check: bool = True  # Non-zero exit aborts the plan

    @property
    def tool(self) -> str:
        return self.argv[0]

    def render(self) -> str:
        """Shell-ish rendering for display."""
        parts = []
        for arg in self.argv:
            if not arg or any(c in arg for c in " \"'$*?"):
                parts.append("'" + arg.replace("'", "'\\''") + "'")
            else:
                parts.append(arg)
        return " ".join(parts)


def tls_secrets(config: MigrationConfig) -> List[TlsConfig]:
    """
    Self-signed certificate settings, one per distinct listener Secret.

    Each HTTPS listener's (namespace, secret) is created once. The tls
    section of migration.yaml supplies validity, key size, common name and
    file names for the secrets it applies to; other secrets use defaults
    with the listener hostname as common name.
    """
    secrets: List[TlsConfig] = []
    seen = set()
    for listener in config.gateway.tls_listeners:
        namespace = config.gateway.secret_namespace(listener)
        key = (namespace, listener.tls_secret)
        if key in seen:
            continue
        seen.add(key)

        base = config.tls if config.tls and config.tls.applies_to(*key) else TlsConfig()
        secrets.append(replace(
            base,
            secret_name=listener.tls_secret,
            namespace=namespace,
            common_name=base.common_name or listener.hostname or "*",
            cert_file=base.cert_file or f"{listener.tls_secret}.crt",
            key_file=base.key_file or f"{listener.tls_secret}.key",
        ))
    return secrets


def cluster_steps(config: MigrationConfig, cluster_file: str) -> List[Step]:
    return [
        Step(
            phase=Phase.CLUSTER,
            description=f"Create EKS cluster {config.cluster.name} in {config.cluster.region}",
            argv=["eksctl", "create", "cluster", "-f", cluster_file],
        ),
        Step(
            phase=Phase.CLUSTER,
            description="Point kubectl at the new cluster",
            argv=[
                "eksctl", "utils", "write-kubeconfig",
                "--cluster", config.cluster.name,
                "--region", config.cluster.region,
            ],
        ),
    ]


def crd_steps(config: MigrationConfig) -> List[Step]:
    return [
        Step(
            phase=Phase.CRDS,
            description=f"Install Gateway API {config.fabric.crd_version} standard CRDs",
            argv=["kubectl", "apply", "-f", config.fabric.crd_url],
        ),
    ]


def fabric_steps(config: MigrationConfig, values_file: str) -> List[Step]:
    """
    Helm install of NGINX Gateway Fabric, then wait for the control plane.

    Values come from values_file (see generators.generate_helm_values); the
    data plane kind and service type are also passed with --set so the
    command line shows them.
    """
    fabric = config.fabric
    install = [
        "helm", "install", fabric.release, fabric.chart,
        "--create-namespace",
        "-n", fabric.namespace,
        "-f", values_file,
        "--set", f"nginx.kind={fabric.kind.value}",
        "--set", f"nginx.service.type={fabric.service_type}",
    ]
    if fabric.chart_version:
        install += ["--version", fabric.chart_version]

    return [
        Step(
            phase=Phase.FABRIC,
            description=f"Install NGINX Gateway Fabric ({fabric.kind.value}) into {fabric.namespace}",
            argv=install,
        ),
        Step(
            phase=Phase.FABRIC,
            description="Wait for the NGINX Gateway Fabric control plane",
            argv=[
                "kubectl", "wait", "--timeout=5m",
                "-n", fabric.namespace,
                f"deployment/{fabric.release}-nginx-gateway-fabric",
                "--for=condition=Available",
            ],
        ),
    ]


def tls_steps(config: MigrationConfig, work_dir: str = ".") -> List[Step]:
    """Self-signed certificates and TLS secrets. Empty when no HTTPS listener exists."""
    secrets = tls_secrets(config)
    steps = []
    # Runs before the resources phase that would otherwise create them
    for namespace in dict.fromkeys(tls.namespace for tls in secrets):
        if namespace == "default":
            continue
        steps.append(Step(
            phase=Phase.TLS,
            description=f"Create namespace {namespace} for TLS secrets",
            argv=["kubectl", "create", "namespace", namespace],
            check=False,
        ))

    for tls in secrets:
        cert_file = str(Path(work_dir) / tls.cert_file)
        key_file = str(Path(work_dir) / tls.key_file)
        steps += [
            Step(
                phase=Phase.TLS,
                description=f"Generate self-signed certificate for {tls.common_name}",
                argv=[
                    "openssl", "req", "-x509", "-nodes",
                    "-days", str(tls.days),
                    "-newkey", f"rsa:{tls.key_size}",
                    "-keyout", key_file,
                    "-out", cert_file,
                    "-subj", f"/CN={tls.common_name}",
                ],
            ),
            Step(
                phase=Phase.TLS,
                description=f"Create TLS secret {tls.namespace}/{tls.secret_name}",
                argv=[
                    "kubectl", "create", "secret", "tls", tls.secret_name,
                    "-n", tls.namespace,
                    "--cert", cert_file,
                    "--key", key_file,
                ],
            ),
        ]
    return steps


def resource_steps(config: MigrationConfig, manifests_file: str) -> List[Step]:
    return [
        Step(
            phase=Phase.RESOURCES,
            description="Apply Gateway, HTTPRoutes, ReferenceGrants and backends",
            argv=["kubectl", "apply", "-f", manifests_file],
        ),
    ]


def verify_steps(config: MigrationConfig) -> List[Step]:
    gateway = config.gateway
    steps = [
        Step(
            phase=Phase.VERIFY,
            description=f"Wait for gateway {gateway.name} to be programmed",
            argv=[
                "kubectl", "wait", "--timeout=5m",
                "-n", gateway.namespace,
                f"gateway/{gateway.name}",
                "--for=condition=Programmed",
            ],
        ),
        Step(
            phase=Phase.VERIFY,
            description="Show the data plane load balancer",
            argv=["kubectl", "get", "svc", "-n", gateway.namespace, "-o", "wide"],
            check=False,
        ),
    ]
    for namespace in sorted({r.namespace for r in config.routes}):
        steps.append(Step(
            phase=Phase.VERIFY,
            description=f"Show HTTPRoutes in {namespace}",
            argv=["kubectl", "get", "httproute", "-n", namespace],
            check=False,
        ))
    return steps


def build_plan(
    config: MigrationConfig,
    manifests_dir: str,
    phases: Optional[Iterable[str]] = None,
) -> List[Step]:
    """
    Build the ordered list of steps.

    Args:
        config: Migration configuration
        manifests_dir: Directory holding cluster.yaml, values.yaml and manifests.yaml
        phases: Optional phase names to keep (default: all)

    Returns:
        Steps in execution order

    Raises:
        ValueError: If an unknown phase is requested
    """
    selected = set(PHASE_ORDER)
    if phases:
        try:
            selected = {Phase(p) for p in phases}
        except ValueError as e:
            raise ValueError(
                f"{e}; choose from {', '.join(p.value for p in PHASE_ORDER)}"
            ) from e

    out = Path(manifests_dir)
    steps: List[Step] = []
    steps += cluster_steps(config, str(out / "cluster.yaml"))
    steps += crd_steps(config)
    steps += fabric_steps(config, str(out / "values.yaml"))
    steps += tls_steps(config, str(out))
    steps += resource_steps(config, str(out / "manifests.yaml"))
    steps += verify_steps(config)

    return [s for s in steps if s.phase in selected]


def build_teardown_plan(config: MigrationConfig, manifests_dir: str) -> List[Step]:
    """Steps that undo build_plan, in reverse order."""
    out = Path(manifests_dir)
    steps = [
        Step(
            phase=Phase.RESOURCES,
            description="Delete Gateway API resources and backends",
            argv=["kubectl", "delete", "--ignore-not-found", "-f", str(out / "manifests.yaml")],
            check=False,
        ),
    ]
    for tls in tls_secrets(config):
        steps.append(Step(
            phase=Phase.TLS,
            description=f"Delete TLS secret {tls.namespace}/{tls.secret_name}",
            argv=[
                "kubectl", "delete", "secret", tls.secret_name,
                "-n", tls.namespace, "--ignore-not-found",
            ],
            check=False,
        ))
    steps += [
        Step(
            phase=Phase.FABRIC,
            description="Uninstall NGINX Gateway Fabric",
            argv=["helm", "uninstall", config.fabric.release, "-n", config.fabric.namespace],
            check=False,
        ),
        Step(
            phase=Phase.CRDS,
            description="Remove Gateway API CRDs",
            argv=["kubectl", "delete", "--ignore-not-found", "-f", config.fabric.crd_url],
            check=False,
        ),
        Step(
            phase=Phase.CLUSTER,
            description=f"Delete EKS cluster {config.cluster.name}",
            argv=[
                "eksctl", "delete", "cluster",
                "--name", config.cluster.name,
                "--region", config.cluster.region,
                "--wait",
            ],
        ),
    ]
    return steps


def required_tools(steps: Iterable[Step]) -> List[str]:
    """Executables needed by steps, in first-use order."""
    tools: List[str] = []
    for step in steps:
        if step.tool not in tools:
            tools.append(step.tool)
    return tools
