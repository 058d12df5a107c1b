from pathlib import Path
from types import SimpleNamespace

import pytest

from torrent_search.config import DEFAULT_URL_TEMPLATE
from torrent_search.services.index.endpoints import (
    EndpointResolver,
    KubernetesServiceLister,
    StaticEndpointLister,
    build_resolver,
    compile_url_template,
    describe_service,
    load_core_api,
    render_endpoint_url,
)
from torrent_search.services.index.errors import DiscoveryError
from torrent_search.services.index.types import ServiceDescriptor


def _service(
    name: str,
    namespace: str,
    *,
    cluster_ip: str = "10.0.0.5",
    port: int = 9999,
    target_port: object = 9999,
    node_port: int | None = None,
    ingress: list[SimpleNamespace] | None = None,
    external_ips: list[str] | None = None,
) -> SimpleNamespace:
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, namespace=namespace),
        spec=SimpleNamespace(
            cluster_ip=cluster_ip,
            external_i_ps=external_ips,
            ports=[SimpleNamespace(port=port, target_port=target_port, node_port=node_port)],
            type="ClusterIP",
        ),
        status=SimpleNamespace(load_balancer=SimpleNamespace(ingress=ingress)),
    )


class FakeCoreApi:
    def __init__(self, services: list[SimpleNamespace]) -> None:
        self.services = services
        self.selectors: list[str] = []

    def list_service_for_all_namespaces(self, *, label_selector: str) -> SimpleNamespace:
        self.selectors.append(label_selector)
        return SimpleNamespace(items=self.services)


class BrokenCoreApi:
    def list_service_for_all_namespaces(self, *, label_selector: str) -> SimpleNamespace:
        raise ConnectionError("api server unreachable")


class FailingLister:
    def list_endpoints(self) -> list[str]:
        raise DiscoveryError("discovery backend down")


def test_render_endpoint_url_uses_descriptor_fields() -> None:
    descriptor = ServiceDescriptor(name="zurg", namespace="alice", cluster_ip="10.1.2.3", port="9999")

    assert render_endpoint_url(DEFAULT_URL_TEMPLATE, descriptor) == "http://zurg.alice:9999/debug/torrents"
    assert (
        render_endpoint_url("http://{cluster_ip}:{port}/debug/torrents", descriptor)
        == "http://10.1.2.3:9999/debug/torrents"
    )


@pytest.mark.parametrize("template", ["http://{unknown}/torrents", "http://{namespace/torrents", "", "{0}"])
def test_compile_url_template_falls_back_to_default(template: str) -> None:
    assert compile_url_template(template) == DEFAULT_URL_TEMPLATE


def test_compile_url_template_keeps_valid_template() -> None:
    template = "http://{name}.{namespace}.svc:{port}/debug/torrents"

    assert compile_url_template(template) == template


def test_static_lister_drops_blank_urls() -> None:
    lister = StaticEndpointLister(["http://a/t", "  ", "", " http://b/t "])

    assert lister.list_endpoints() == ["http://a/t", "http://b/t"]


def test_describe_service_reads_first_port_and_ingress() -> None:
    service = _service(
        "zurg",
        "bob",
        target_port="http",
        node_port=30999,
        ingress=[SimpleNamespace(ip=None, hostname="lb.example.com")],
        external_ips=["203.0.113.7", "203.0.113.8"],
    )

    descriptor = describe_service(service)

    assert descriptor == ServiceDescriptor(
        name="zurg",
        namespace="bob",
        cluster_ip="10.0.0.5",
        external_ip="203.0.113.7",
        port="9999",
        target_port="",
        node_port="30999",
        load_balancer="lb.example.com",
        service_type="ClusterIP",
    )


def test_kubernetes_lister_renders_one_url_per_service() -> None:
    core_api = FakeCoreApi([_service("zurg", "alice"), _service("zurg", "bob")])
    lister = KubernetesServiceLister(
        core_api,
        label_selector="app.elfhosted.com/name=zurg",
        url_template=DEFAULT_URL_TEMPLATE,
    )

    assert lister.list_endpoints() == [
        "http://zurg.alice:9999/debug/torrents",
        "http://zurg.bob:9999/debug/torrents",
    ]
    assert core_api.selectors == ["app.elfhosted.com/name=zurg"]


def test_kubernetes_lister_with_bad_template_uses_default() -> None:
    lister = KubernetesServiceLister(
        FakeCoreApi([_service("zurg", "carol")]),
        label_selector="app=zurg",
        url_template="http://{nope}/torrents",
    )

    assert lister.list_endpoints() == ["http://zurg.carol:9999/debug/torrents"]


def test_kubernetes_lister_wraps_api_failures() -> None:
    lister = KubernetesServiceLister(BrokenCoreApi(), label_selector="app=zurg", url_template=DEFAULT_URL_TEMPLATE)

    with pytest.raises(DiscoveryError, match="api server unreachable"):
        lister.list_endpoints()


def test_resolver_continues_after_lister_failure() -> None:
    resolver = EndpointResolver([FailingLister(), StaticEndpointLister(["http://static/torrents"])])

    resolution = resolver.resolve()

    assert resolution.endpoints == ["http://static/torrents"]
    assert resolution.errors == ["discovery backend down"]


def test_resolver_keeps_first_occurrence_of_duplicate_urls() -> None:
    resolver = EndpointResolver(
        [
            StaticEndpointLister(["http://a/t", "http://b/t"]),
            StaticEndpointLister(["http://b/t", "http://c/t"]),
        ]
    )

    assert resolver.resolve().endpoints == ["http://a/t", "http://b/t", "http://c/t"]


def test_build_resolver_combines_discovery_and_static_endpoints() -> None:
    resolver = build_resolver(
        core_api=FakeCoreApi([_service("zurg", "alice")]),
        label_selector="app=zurg",
        url_template=DEFAULT_URL_TEMPLATE,
        external_endpoints=["http://external/torrents"],
    )

    assert resolver.resolve().endpoints == [
        "http://zurg.alice:9999/debug/torrents",
        "http://external/torrents",
    ]


def test_build_resolver_without_core_api_uses_static_endpoints_only() -> None:
    resolver = build_resolver(
        core_api=None,
        label_selector="app=zurg",
        url_template=DEFAULT_URL_TEMPLATE,
        external_endpoints=[],
    )

    resolution = resolver.resolve()

    assert resolution.endpoints == []
    assert resolution.errors == []


def test_load_core_api_returns_none_outside_a_cluster(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)

    assert load_core_api(None) is None


def test_kubernetes_lister_skips_services_the_template_cannot_render() -> None:
    core_api = FakeCoreApi(
        [
            _service("zurg", "alice"),
            _service("zurg", "bob", external_ips=["1.2.3.4"]),
        ]
    )
    lister = KubernetesServiceLister(
        core_api,
        label_selector="app=zurg",
        url_template="http://{external_ip[0]}.{namespace}/torrents",
    )

    resolution = EndpointResolver([lister, StaticEndpointLister(["http://static/torrents"])]).resolve()

    assert resolution.endpoints == ["http://1.bob/torrents", "http://static/torrents"]
    assert resolution.errors == []


def test_load_core_api_ignores_unparseable_kubeconfig(tmp_path: Path) -> None:
    kubeconfig = tmp_path / "config"
    kubeconfig.write_text("clusters: [\n  - : :\n", encoding="utf-8")

    assert load_core_api(str(kubeconfig)) is None
