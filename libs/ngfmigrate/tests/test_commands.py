"""Tests for the migration command plan."""

import pytest

from ngfmigrate.commands import (
    Phase,
    Step,
    build_plan,
    build_teardown_plan,
    required_tools,
    tls_secrets,
)
from ngfmigrate.types import MigrationConfig, TlsConfig


@pytest.fixture
def http_config():
    return MigrationConfig.from_dict({
        "cluster": {"name": "demo", "region": "eu-west-1"},
        "routes": [
            {"name": "coffee", "namespace": "cafe", "service": "coffee"},
            {"name": "tea", "namespace": "cafe", "service": "tea"},
        ],
    })


@pytest.fixture
def tls_config():
    return MigrationConfig.from_dict({
        "gateway": {
            "name": "gw",
            "namespace": "gateway",
            "listeners": [
                {"name": "http"},
                {
                    "name": "https",
                    "protocol": "HTTPS",
                    "hostname": "cafe.example.com",
                    "tls_secret": "cafe-secret",
                },
            ],
        },
    })


class TestStep:
    def test_render_quotes_spaces(self):
        step = Step(Phase.TLS, "x", ["openssl", "req", "-subj", "/CN=my host"])
        assert step.render() == "openssl req -subj '/CN=my host'"

    def test_render_quotes_wildcards(self):
        step = Step(Phase.TLS, "x", ["openssl", "-subj", "/CN=*"])
        assert step.render() == "openssl -subj '/CN=*'"

    def test_tool(self):
        assert Step(Phase.CRDS, "x", ["kubectl", "apply"]).tool == "kubectl"


class TestBuildPlan:
    def test_phase_order(self, tls_config):
        steps = build_plan(tls_config, "out")
        phases = []
        for step in steps:
            if step.phase not in phases:
                phases.append(step.phase)
        assert phases == [
            Phase.CLUSTER, Phase.CRDS, Phase.FABRIC, Phase.TLS, Phase.RESOURCES, Phase.VERIFY,
        ]

    def test_cluster_steps(self, http_config):
        steps = build_plan(http_config, "out", ["cluster"])
        assert steps[0].argv == ["eksctl", "create", "cluster", "-f", "out/cluster.yaml"]
        assert steps[1].argv == [
            "eksctl", "utils", "write-kubeconfig", "--cluster", "demo", "--region", "eu-west-1",
        ]

    def test_crd_step(self, http_config):
        (step,) = build_plan(http_config, "out", ["crds"])
        assert step.argv[:3] == ["kubectl", "apply", "-f"]
        assert step.argv[3].endswith("/v1.3.0/standard-install.yaml")

    def test_helm_install(self, http_config):
        install, wait = build_plan(http_config, "out", ["fabric"])
        assert install.argv[:4] == [
            "helm", "install", "ngf", "oci://ghcr.io/nginx/charts/nginx-gateway-fabric",
        ]
        assert "--create-namespace" in install.argv
        assert install.argv[install.argv.index("-n") + 1] == "nginx-gateway"
        assert "nginx.kind=daemonSet" in install.argv
        assert "nginx.service.type=LoadBalancer" in install.argv
        assert "--version" not in install.argv
        assert "deployment/ngf-nginx-gateway-fabric" in wait.argv

    def test_helm_chart_version(self):
        config = MigrationConfig.from_dict({"fabric": {"chart_version": "2.1.0"}})
        install = build_plan(config, "out", ["fabric"])[0]
        assert install.argv[-2:] == ["--version", "2.1.0"]

    def test_no_tls_steps_without_https(self, http_config):
        assert build_plan(http_config, "out", ["tls"]) == []

    def test_tls_steps(self, tls_config):
        namespace, openssl, secret = build_plan(tls_config, "out", ["tls"])

        assert namespace.argv == ["kubectl", "create", "namespace", "gateway"]
        assert namespace.check is False
        assert openssl.argv[:4] == ["openssl", "req", "-x509", "-nodes"]
        assert "rsa:2048" in openssl.argv
        assert openssl.argv[-1] == "/CN=cafe.example.com"
        assert secret.argv == [
            "kubectl", "create", "secret", "tls", "cafe-secret",
            "-n", "gateway",
            "--cert", "out/cafe-secret.crt",
            "--key", "out/cafe-secret.key",
        ]

    def test_tls_default_namespace_not_created(self):
        config = MigrationConfig.from_dict({
            "gateway": {"listeners": [
                {"name": "https", "protocol": "HTTPS", "tls_secret": "s"},
            ]},
        })
        steps = build_plan(config, "out", ["tls"])
        assert [s.tool for s in steps] == ["openssl", "kubectl"]

    def test_tls_steps_per_listener_secret(self):
        config = MigrationConfig.from_dict({
            "gateway": {"name": "gw", "namespace": "gw", "listeners": [
                {"name": "a", "protocol": "HTTPS", "hostname": "a.com", "tls_secret": "a-cert"},
                {"name": "b", "protocol": "HTTPS", "hostname": "b.com", "tls_secret": "b-cert"},
                {"name": "a-alt", "protocol": "HTTPS", "port": 8443, "tls_secret": "a-cert"},
            ]},
        })
        steps = build_plan(config, "out", ["tls"])

        secrets = [s.argv[4] for s in steps if s.argv[:4] == ["kubectl", "create", "secret", "tls"]]
        assert secrets == ["a-cert", "b-cert"]
        subjects = [s.argv[-1] for s in steps if s.tool == "openssl"]
        assert subjects == ["/CN=a.com", "/CN=b.com"]
        # One namespace step, separate cert files per secret
        assert [s.argv for s in steps].count(["kubectl", "create", "namespace", "gw"]) == 1
        assert "out/b-cert.crt" in steps[-1].argv

    def test_tls_section_tunes_matching_secret(self):
        config = MigrationConfig.from_dict({
            "gateway": {"name": "gw", "namespace": "gw", "listeners": [
                {"name": "a", "protocol": "HTTPS", "tls_secret": "cafe-secret"},
                {"name": "b", "protocol": "HTTPS", "tls_secret": "other"},
            ]},
            "tls": {"secret_name": "cafe-secret", "days": 30, "common_name": "cafe.example.com"},
        })
        cafe, other = tls_secrets(config)
        assert (cafe.secret_name, cafe.namespace, cafe.days) == ("cafe-secret", "gw", 30)
        assert cafe.common_name == "cafe.example.com"
        assert (other.secret_name, other.namespace, other.days) == ("other", "gw", 365)
        assert other.common_name == "*"

    def test_resources_step(self, http_config):
        (step,) = build_plan(http_config, "out", ["resources"])
        assert step.argv == ["kubectl", "apply", "-f", "out/manifests.yaml"]

    def test_verify_steps(self, http_config):
        steps = build_plan(http_config, "out", ["verify"])
        assert "--for=condition=Programmed" in steps[0].argv
        assert steps[0].check is True
        # The data plane Service lives in the gateway namespace
        assert steps[1].argv == ["kubectl", "get", "svc", "-n", "default", "-o", "wide"]
        # One route listing per route namespace
        assert steps[-1].argv == ["kubectl", "get", "httproute", "-n", "cafe"]
        assert all(s.check is False for s in steps[1:])

    def test_multiple_phases(self, http_config):
        steps = build_plan(http_config, "out", ["resources", "crds"])
        assert [s.phase for s in steps] == [Phase.CRDS, Phase.RESOURCES]

    def test_unknown_phase(self, http_config):
        with pytest.raises(ValueError, match="choose from"):
            build_plan(http_config, "out", ["bogus"])


class TestTlsSecrets:
    def test_empty_without_https(self, http_config):
        assert tls_secrets(http_config) == []

    def test_defaults_from_listener(self, tls_config):
        (tls,) = tls_secrets(tls_config)
        assert tls.secret_name == "cafe-secret"
        assert tls.common_name == "cafe.example.com"
        assert tls.namespace == "gateway"
        assert (tls.cert_file, tls.key_file) == ("cafe-secret.crt", "cafe-secret.key")

    def test_explicit_config_not_mutated(self, tls_config):
        tls_config.tls = TlsConfig(secret_name="cafe-secret", days=30)
        (tls,) = tls_secrets(tls_config)
        assert tls.days == 30
        assert tls.namespace == "gateway"
        assert tls_config.tls.namespace is None

    def test_listener_secret_namespace(self):
        config = MigrationConfig.from_dict({
            "gateway": {"name": "gw", "namespace": "gw", "listeners": [
                {"name": "https", "protocol": "HTTPS", "tls_secret": "s", "tls_secret_namespace": "certs"},
            ]},
        })
        assert [(t.namespace, t.secret_name) for t in tls_secrets(config)] == [("certs", "s")]


class TestTeardown:
    def test_reverse_order(self, tls_config):
        steps = build_teardown_plan(tls_config, "out")
        assert [s.phase for s in steps] == [
            Phase.RESOURCES, Phase.TLS, Phase.FABRIC, Phase.CRDS, Phase.CLUSTER,
        ]
        assert steps[-1].argv[:3] == ["eksctl", "delete", "cluster"]
        assert steps[-1].check is True

    def test_without_tls(self, http_config):
        phases = [s.phase for s in build_teardown_plan(http_config, "out")]
        assert Phase.TLS not in phases

    def test_deletes_every_listener_secret(self):
        config = MigrationConfig.from_dict({
            "gateway": {"name": "gw", "namespace": "gw", "listeners": [
                {"name": "a", "protocol": "HTTPS", "tls_secret": "a-cert"},
                {"name": "b", "protocol": "HTTPS", "tls_secret": "b-cert", "tls_secret_namespace": "certs"},
            ]},
        })
        deletes = [s.argv[3:6] for s in build_teardown_plan(config, "out") if s.phase == Phase.TLS]
        assert deletes == [["a-cert", "-n", "gw"], ["b-cert", "-n", "certs"]]


def test_required_tools(tls_config):
    assert required_tools(build_plan(tls_config, "out")) == ["eksctl", "kubectl", "helm", "openssl"]
