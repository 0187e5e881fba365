"""
ngfmigrate - Migrate from NGINX Ingress Controller to the Gateway API.

Generates Gateway API manifests for NGINX Gateway Fabric from migration.yaml
and runs the eksctl, helm, kubectl and openssl commands that install it on EKS.
"""

__version__ = "0.1.0"

from .types import (
    Protocol,
    PathMatchType,
    DataPlaneKind,
    AllowedRoutes,
    ClusterConfig,
    FabricConfig,
    TlsConfig,
    ListenerConfig,
    GatewayConfig,
    RouteTimeouts,
    RouteConfig,
    BackendApp,
    ClientSettingsConfig,
    MigrationConfig,
)

from .schema import (
    load_migration_yaml,
    validate_migration_yaml,
    find_migration_yaml,
)

from .generators import (
    generate_gateway,
    generate_httproute,
    generate_reference_grant,
    generate_reference_grants,
    generate_client_settings_policy,
    generate_tls_secret,
    generate_deployment,
    generate_service,
    generate_eksctl_cluster_config,
    generate_helm_values,
    generate_all_manifests,
)

from .converter import (
    ConversionResult,
    convert_ingresses,
    load_ingresses,
)

from .commands import (
    Phase,
    Step,
    build_plan,
    build_teardown_plan,
)

from .runner import (
    CommandError,
    run_plan,
)

__all__ = [
    # Types
    "Protocol",
    "PathMatchType",
    "DataPlaneKind",
    "AllowedRoutes",
    "ClusterConfig",
    "FabricConfig",
    "TlsConfig",
    "ListenerConfig",
    "GatewayConfig",
    "RouteTimeouts",
    "RouteConfig",
    "BackendApp",
    "ClientSettingsConfig",
    "MigrationConfig",
    # Schema
    "load_migration_yaml",
    "validate_migration_yaml",
    "find_migration_yaml",
    # Generators
    "generate_gateway",
    "generate_httproute",
    "generate_reference_grant",
    "generate_reference_grants",
    "generate_client_settings_policy",
    "generate_tls_secret",
    "generate_deployment",
    "generate_service",
    "generate_eksctl_cluster_config",
    "generate_helm_values",
    "generate_all_manifests",
    # Conversion
    "ConversionResult",
    "convert_ingresses",
    "load_ingresses",
    # Plan
    "Phase",
    "Step",
    "build_plan",
    "build_teardown_plan",
    "CommandError",
    "run_plan",
]
