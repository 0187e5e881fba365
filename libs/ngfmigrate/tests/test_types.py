"""Tests for ngfmigrate types."""

import pytest

from ngfmigrate.types import (
    AllowedRoutes,
    ClientSettingsConfig,
    ClusterConfig,
    DataPlaneKind,
    FabricConfig,
    GatewayConfig,
    ListenerConfig,
    MigrationConfig,
    PathMatchType,
    Protocol,
    RouteConfig,
    TlsConfig,
)


class TestClusterConfig:
    def test_default_values(self):
        config = ClusterConfig()
        assert config.name == "ngf-demo"
        assert config.region == "us-east-1"
        assert config.nodes == 2

    def test_from_dict_keeps_quoted_version(self):
        config = ClusterConfig.from_dict({"name": "prod", "version": "1.30"})
        assert config.name == "prod"
        assert config.version == "1.30"

    def test_from_dict_empty(self):
        assert ClusterConfig.from_dict(None) == ClusterConfig()


class TestFabricConfig:
    def test_defaults(self):
        config = FabricConfig()
        assert config.kind == DataPlaneKind.DAEMON_SET
        assert config.service_type == "LoadBalancer"
        assert config.gateway_class == "nginx"

    def test_crd_url(self):
        config = FabricConfig.from_dict({"crd_version": "v1.2.1"})
        assert config.crd_url == (
            "https://github.com/kubernetes-sigs/gateway-api/releases/download/"
            "v1.2.1/standard-install.yaml"
        )

    def test_set_values_are_strings(self):
        config = FabricConfig.from_dict({"set": {"nginx.replicas": 2}})
        assert config.set_values == {"nginx.replicas": "2"}

    def test_invalid_kind(self):
        with pytest.raises(ValueError):
            FabricConfig.from_dict({"kind": "statefulSet"})


class TestListenerConfig:
    def test_https_default_port(self):
        listener = ListenerConfig.from_dict({
            "name": "https",
            "protocol": "HTTPS",
            "tls_secret": "cert",
        })
        assert listener.port == 443
        assert listener.protocol == Protocol.HTTPS

    def test_http_default_port(self):
        listener = ListenerConfig.from_dict({"name": "http"})
        assert listener.port == 80
        assert listener.allowed_routes == AllowedRoutes.ALL

    def test_https_requires_secret(self):
        with pytest.raises(ValueError, match="tls_secret"):
            ListenerConfig(name="https", protocol=Protocol.HTTPS)


class TestGatewayConfig:
    def test_default_has_http_listener(self):
        gateway = GatewayConfig.from_dict(None)
        assert [lst.name for lst in gateway.listeners] == ["http"]

    def test_duplicate_listener_names(self):
        with pytest.raises(ValueError, match="Duplicate listener"):
            GatewayConfig.from_dict({
                "listeners": [{"name": "http"}, {"name": "http", "port": 8080}],
            })

    def test_tls_listeners(self):
        gateway = GatewayConfig.from_dict({
            "listeners": [
                {"name": "http"},
                {"name": "https", "protocol": "HTTPS", "tls_secret": "cert"},
            ],
        })
        assert [lst.name for lst in gateway.tls_listeners] == ["https"]
        assert gateway.get_listener("https").tls_secret == "cert"
        assert gateway.get_listener("missing") is None


class TestRouteConfig:
    def test_from_dict(self):
        route = RouteConfig.from_dict({
            "name": "coffee",
            "service": "coffee",
            "path": "/coffee",
            "path_type": "Exact",
            "timeouts": {"request": "10s"},
        })
        assert route.path_type == PathMatchType.EXACT
        assert route.timeouts.request == "10s"
        assert route.timeouts.backend_request is None

    def test_backend_namespace_defaults_to_route_namespace(self):
        route = RouteConfig(name="r", service="svc", namespace="apps")
        assert route.backend_namespace == "apps"

    def test_backend_namespace_override(self):
        route = RouteConfig(name="r", service="svc", namespace="apps", service_namespace="backend")
        assert route.backend_namespace == "backend"

    def test_path_must_be_absolute(self):
        with pytest.raises(ValueError, match="must start with"):
            RouteConfig(name="r", service="svc", path="coffee")

    def test_rewrite_target(self):
        assert RouteConfig(name="r", service="s", rewrite_prefix="/v2").rewrite_target == "/v2"
        assert RouteConfig(name="r", service="s", rewrite_full_path="/").rewrite_target == "/"
        assert RouteConfig(name="r", service="s").rewrite_target is None

    def test_only_one_rewrite_kind(self):
        with pytest.raises(ValueError, match="both rewrite_prefix and rewrite_full_path"):
            RouteConfig(name="r", service="s", rewrite_prefix="/a", rewrite_full_path="/b")


class TestClientSettingsConfig:
    def test_from_dict(self):
        settings = ClientSettingsConfig.from_dict({
            "name": "cs",
            "target_name": "gw",
            "body": {"max_size": "10m"},
            "keepalive": {"requests": 10},
        })
        assert settings.target_kind == "Gateway"
        assert settings.body_max_size == "10m"
        assert settings.body_timeout is None
        assert settings.keepalive_requests == 10


class TestMigrationConfig:
    @pytest.fixture
    def config(self):
        return MigrationConfig.from_dict({
            "gateway": {
                "name": "gw",
                "namespace": "gateway",
                "listeners": [
                    {"name": "http"},
                    {
                        "name": "https",
                        "protocol": "HTTPS",
                        "tls_secret": "cert",
                        "tls_secret_namespace": "certs",
                    },
                ],
            },
            "apps": [{"name": "coffee", "namespace": "cafe"}],
            "routes": [
                {"name": "coffee", "namespace": "cafe", "service": "coffee"},
                {
                    "name": "tea",
                    "namespace": "cafe",
                    "service": "tea",
                    "service_namespace": "tea-ns",
                },
            ],
            "tls": {"secret_name": "cert", "namespace": "certs"},
        })

    def test_empty(self):
        config = MigrationConfig.from_dict(None)
        assert config.routes == []
        assert config.tls is None

    def test_gateway_class_falls_back_to_fabric(self, config):
        assert config.gateway_class == "nginx"

    def test_gateway_class_override(self):
        config = MigrationConfig.from_dict({"gateway": {"gateway_class": "custom"}})
        assert config.gateway_class == "custom"

    def test_get_route_and_app(self, config):
        assert config.get_route("tea").service == "tea"
        assert config.get_route("missing") is None
        assert config.get_app("coffee").namespace == "cafe"
        assert config.get_app("missing") is None

    def test_cross_namespace_routes(self, config):
        # Both routes live outside the gateway namespace
        assert [r.name for r in config.cross_namespace_routes()] == ["coffee", "tea"]

    def test_cross_namespace_backends(self, config):
        assert [r.name for r in config.cross_namespace_backends()] == ["tea"]

    def test_route_in_gateway_namespace_is_not_cross(self):
        config = MigrationConfig.from_dict({
            "gateway": {"namespace": "web"},
            "routes": [{"name": "r", "namespace": "web", "service": "s"}],
        })
        assert config.cross_namespace_routes() == []

    def test_route_outside_gateway_namespace_is_cross(self):
        config = MigrationConfig.from_dict({
            "gateway": {"namespace": "gateway"},
            "routes": [{"name": "r", "namespace": "cafe", "service": "s"}],
        })
        assert [r.name for r in config.cross_namespace_routes()] == ["r"]
        assert config.cross_namespace_backends() == []

    def test_namespaces_in_first_seen_order(self, config):
        assert config.namespaces() == ["gateway", "cafe", "tea-ns", "certs"]

    def test_tls_config(self, config):
        assert isinstance(config.tls, TlsConfig)
        assert config.tls.days == 365


class TestTlsSection:
    @staticmethod
    def gateway(**listener):
        https = {"name": "https", "protocol": "HTTPS", "tls_secret": "cafe-secret"}
        https.update(listener)
        return {"name": "gw", "namespace": "gw", "listeners": [{"name": "http"}, https]}

    def test_matching_secret(self):
        config = MigrationConfig.from_dict({
            "gateway": self.gateway(),
            "tls": {"secret_name": "cafe-secret", "namespace": "gw", "days": 30},
        })
        assert config.tls.days == 30

    def test_without_secret_name_applies_to_all(self):
        config = MigrationConfig.from_dict({
            "gateway": self.gateway(),
            "tls": {"common_name": "cafe.example.com"},
        })
        assert config.tls.applies_to("gw", "cafe-secret")

    def test_unknown_secret_rejected(self):
        with pytest.raises(ValueError, match="not referenced by any HTTPS listener"):
            MigrationConfig.from_dict({
                "gateway": self.gateway(),
                "tls": {"secret_name": "other", "namespace": "certs"},
            })

    def test_wrong_namespace_rejected(self):
        with pytest.raises(ValueError, match="certs/cafe-secret"):
            MigrationConfig.from_dict({
                "gateway": self.gateway(),
                "tls": {"secret_name": "cafe-secret", "namespace": "certs"},
            })

    def test_listener_secret_namespace_matches(self):
        config = MigrationConfig.from_dict({
            "gateway": self.gateway(tls_secret_namespace="certs"),
            "tls": {"secret_name": "cafe-secret", "namespace": "certs"},
        })
        assert config.tls.namespace == "certs"

    def test_tls_without_https_listener_rejected(self):
        with pytest.raises(ValueError, match="no HTTPS listener"):
            MigrationConfig.from_dict({"tls": {"secret_name": "cafe-secret"}})
