from __future__ import annotations

from dataclasses import asdict
import logging
import os
from typing import Any, Protocol, Sequence

from torrent_search.config import DEFAULT_URL_TEMPLATE
from torrent_search.services.index.errors import DiscoveryError
from torrent_search.services.index.types import Resolution, ServiceDescriptor

logger = logging.getLogger(__name__)

_SAMPLE_DESCRIPTOR = ServiceDescriptor(
    name="zurg",
    namespace="default",
    cluster_ip="10.0.0.1",
    external_ip="203.0.113.1",
    port="9999",
    target_port="9999",
    node_port="30999",
    load_balancer="lb.example.com",
    service_type="ClusterIP",
)


class EndpointLister(Protocol):
    def list_endpoints(self) -> list[str]: ...


def render_endpoint_url(template: str, descriptor: ServiceDescriptor) -> str:
    return template.format(**asdict(descriptor))


def compile_url_template(template: str) -> str:
    """Return ``template`` if it renders against a service, else the default."""
    if not template.strip():
        return DEFAULT_URL_TEMPLATE
    try:
        render_endpoint_url(template, _SAMPLE_DESCRIPTOR)
    except (KeyError, IndexError, ValueError, AttributeError) as exc:
        logger.warning(
            "invalid url template=%r error=%r; using default=%r",
            template,
            exc,
            DEFAULT_URL_TEMPLATE,
        )
        return DEFAULT_URL_TEMPLATE
    return template


class StaticEndpointLister:
    def __init__(self, urls: Sequence[str]) -> None:
        self._urls = [url.strip() for url in urls if url and url.strip()]

    def list_endpoints(self) -> list[str]:
        return list(self._urls)


def _first(values: Sequence[Any] | None) -> Any:
    if not values:
        return None
    return values[0]


def _port_value(value: Any) -> str:
    # IntOrString target ports: named ports have no numeric value
    if isinstance(value, bool) or not isinstance(value, int) or value == 0:
        return ""
    return str(value)


def describe_service(service: Any) -> ServiceDescriptor:
    """Flatten a Kubernetes ``V1Service`` into the fields a URL template may use."""
    metadata = service.metadata
    spec = service.spec
    status = service.status

    port = _first(spec.ports)
    ingress = _first(status.load_balancer.ingress) if status and status.load_balancer else None
    load_balancer = ""
    if ingress is not None:
        load_balancer = ingress.ip or ingress.hostname or ""

    return ServiceDescriptor(
        name=metadata.name or "",
        namespace=metadata.namespace or "",
        cluster_ip=spec.cluster_ip or "",
        external_ip=_first(spec.external_i_ps) or "",
        port=_port_value(port.port) if port is not None else "",
        target_port=_port_value(port.target_port) if port is not None else "",
        node_port=_port_value(port.node_port) if port is not None else "",
        load_balancer=load_balancer,
        service_type=spec.type or "",
    )


class KubernetesServiceLister:
    def __init__(self, core_api: Any, *, label_selector: str, url_template: str) -> None:
        self._core_api = core_api
        self._label_selector = label_selector
        self._url_template = compile_url_template(url_template)

    def list_endpoints(self) -> list[str]:
        try:
            services = self._core_api.list_service_for_all_namespaces(
                label_selector=self._label_selector,
            )
        except Exception as exc:
            raise DiscoveryError(
                f"Failed to list services with label {self._label_selector}: {exc}"
            ) from exc

        items = list(services.items or [])
        logger.info(
            "discovered services count=%d label=%s", len(items), self._label_selector
        )

        urls: list[str] = []
        for service in items:
            descriptor = describe_service(service)
            try:
                url = render_endpoint_url(self._url_template, descriptor)
            except (KeyError, IndexError, ValueError, AttributeError) as exc:
                logger.error(
                    "failed to render url template service=%s namespace=%s error=%r",
                    descriptor.name,
                    descriptor.namespace,
                    exc,
                )
                continue
            logger.debug(
                "discovered endpoint service=%s namespace=%s url=%s",
                descriptor.name,
                descriptor.namespace,
                url,
            )
            urls.append(url)
        return urls


class EndpointResolver:
    def __init__(self, listers: Sequence[EndpointLister]) -> None:
        self._listers = list(listers)

    def resolve(self) -> Resolution:
        endpoints: list[str] = []
        errors: list[str] = []

        for lister in self._listers:
            try:
                urls = lister.list_endpoints()
            except DiscoveryError as exc:
                logger.error("endpoint discovery failed lister=%s error=%s", type(lister).__name__, exc)
                errors.append(str(exc))
                continue

            for url in urls:
                if url not in endpoints:
                    endpoints.append(url)

        logger.info("resolved endpoints count=%d errors=%d", len(endpoints), len(errors))
        return Resolution(endpoints=endpoints, errors=errors)


def load_core_api(kubeconfig_path: str | None) -> Any | None:
    """Build a ``CoreV1Api`` from a kubeconfig file or the in-cluster service account.

    Returns ``None`` when neither is available or the config cannot be loaded.
    """
    if kubeconfig_path:
        from kubernetes import client, config

        try:
            config.load_kube_config(config_file=kubeconfig_path)
        except Exception as exc:
            logger.warning(
                "failed to load kubeconfig path=%s error=%s; continuing without discovery",
                kubeconfig_path,
                exc,
            )
            return None
        return client.CoreV1Api()

    if os.getenv("KUBERNETES_SERVICE_HOST"):
        from kubernetes import client, config

        try:
            config.load_incluster_config()
        except Exception as exc:
            logger.warning("failed to load in-cluster config error=%s; continuing without discovery", exc)
            return None
        return client.CoreV1Api()

    logger.info("no kubeconfig found, running without service discovery")
    return None


def build_resolver(
    *,
    core_api: Any | None,
    label_selector: str,
    url_template: str,
    external_endpoints: Sequence[str],
) -> EndpointResolver:
    listers: list[EndpointLister] = []
    if core_api is not None:
        listers.append(
            KubernetesServiceLister(
                core_api,
                label_selector=label_selector,
                url_template=url_template,
            )
        )
    listers.append(StaticEndpointLister(external_endpoints))
    return EndpointResolver(listers)
