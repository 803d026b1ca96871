"""
Cluster Discovery — Find certificate sources and read TLS secrets.

Two independent origins are queried on every tick:

1. Ingress resources with a ``spec.tls`` block: one source per TLS entry,
   using the entry's ``secretName`` and its first host.
2. cert-manager Certificate resources: one source per Certificate, using
   ``spec.secretName`` and the first ``spec.dnsNames`` entry.

No deduplication is performed. If a query against one origin fails, it
contributes zero sources for that tick and the other origin is still
queried.

## Usage

    from cert_sync.discovery.cluster import ClusterClient

    cluster = ClusterClient.from_environment()
    for source in cluster.discover():
        cert_b64, key_b64 = cluster.read_tls_secret(source)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from ..errors import OrchestrationUnreachable, SourceDataError
from ..models.certificate import CertificateSource

logger = logging.getLogger(__name__)

CERT_MANAGER_GROUP = "cert-manager.io"
CERT_MANAGER_VERSION = "v1"
CERT_MANAGER_PLURAL = "certificates"

TLS_CERT_KEY = "tls.crt"
TLS_KEY_KEY = "tls.key"


def load_client_config() -> None:
    """
    Load Kubernetes client configuration.

    Tries the in-cluster service account first, then the local kubeconfig.

    Raises:
        OrchestrationUnreachable: If neither is available
    """
    try:
        k8s_config.load_incluster_config()
        logger.debug("Using in-cluster Kubernetes configuration")
        return
    except ConfigException as incluster_error:
        try:
            k8s_config.load_kube_config()
            logger.debug("Using kubeconfig Kubernetes configuration")
        except (ConfigException, OSError) as kubeconfig_error:
            raise OrchestrationUnreachable(
                "Kubernetes config not available",
                details={
                    "in_cluster": str(incluster_error),
                    "kubeconfig": str(kubeconfig_error),
                },
            )


class ClusterClient:
    """
    Read-only view of the cluster for the controller.

    API objects are injectable so tests can pass mocks.
    """

    def __init__(
        self,
        core_api: Any,
        networking_api: Any,
        custom_api: Any,
    ):
        self.core_api = core_api
        self.networking_api = networking_api
        self.custom_api = custom_api

    @classmethod
    def from_environment(cls) -> "ClusterClient":
        """Build a client from in-cluster or kubeconfig credentials."""
        load_client_config()
        return cls(
            core_api=client.CoreV1Api(),
            networking_api=client.NetworkingV1Api(),
            custom_api=client.CustomObjectsApi(),
        )

    def probe(self) -> None:
        """
        Check that the API answers.

        Raises:
            OrchestrationUnreachable: If listing nodes fails
        """
        try:
            self.core_api.list_node(limit=1)
        except Exception as e:
            raise OrchestrationUnreachable(f"Cannot access Kubernetes API: {e}")

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self) -> List[CertificateSource]:
        """
        Collect the current set of certificate sources from both origins.

        Each call queries the API afresh.
        """
        sources = self._collect("ingress", self._from_ingresses)
        sources.extend(self._collect("certificate", self._from_certificates))
        return sources

    def _collect(self, origin: str, query) -> List[CertificateSource]:
        try:
            return list(query())
        except Exception as e:
            logger.error(f"Discovery of {origin} resources failed, skipping this tick: {e}")
            return []

    def _from_ingresses(self) -> Iterator[CertificateSource]:
        ingresses = self.networking_api.list_ingress_for_all_namespaces()
        for ingress in ingresses.items or []:
            namespace = ingress.metadata.namespace
            spec = ingress.spec
            if spec is None or not spec.tls:
                continue
            for tls in spec.tls:
                hosts = tls.hosts or []
                source = _make_source(
                    namespace,
                    tls.secret_name,
                    hosts[0] if hosts else None,
                    "ingress",
                )
                if source is not None:
                    yield source

    def _from_certificates(self) -> Iterator[CertificateSource]:
        response: Dict[str, Any] = self.custom_api.list_cluster_custom_object(
            group=CERT_MANAGER_GROUP,
            version=CERT_MANAGER_VERSION,
            plural=CERT_MANAGER_PLURAL,
        )
        for item in response.get("items", []):
            metadata = item.get("metadata") or {}
            spec = item.get("spec") or {}
            dns_names = spec.get("dnsNames") or []
            source = _make_source(
                metadata.get("namespace"),
                spec.get("secretName"),
                dns_names[0] if dns_names else None,
                "certificate",
            )
            if source is not None:
                yield source

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def read_tls_secret(self, source: CertificateSource) -> Tuple[str, str]:
        """
        Read the base64 certificate and key from a source's secret.

        Returns:
            (cert_b64, key_b64) exactly as stored in the secret

        Raises:
            SourceDataError: If the secret is unreadable or either field
                is missing or empty
        """
        try:
            secret = self.core_api.read_namespaced_secret(
                name=source.secret_name,
                namespace=source.namespace,
            )
        except ApiException as e:
            raise SourceDataError(
                f"Cannot read secret {source.secret_ref} ({e.status} {e.reason})",
                domain=source.domain,
            )
        except Exception as e:
            raise SourceDataError(
                f"Cannot read secret {source.secret_ref}: {e}",
                domain=source.domain,
            )

        data = secret.data or {}
        cert_b64 = data.get(TLS_CERT_KEY) or ""
        key_b64 = data.get(TLS_KEY_KEY) or ""
        missing = [k for k, v in ((TLS_CERT_KEY, cert_b64), (TLS_KEY_KEY, key_b64)) if not v]
        if missing:
            raise SourceDataError(
                f"No certificate data found in {source.secret_ref}",
                domain=source.domain,
                details={"missing": missing},
            )
        return cert_b64, key_b64


def _make_source(
    namespace: Optional[str],
    secret_name: Optional[str],
    domain: Optional[str],
    origin: str,
) -> Optional[CertificateSource]:
    if not (namespace and secret_name and domain):
        logger.debug(
            f"Skipping incomplete {origin} entry: "
            f"namespace={namespace}, secret={secret_name}, domain={domain}"
        )
        return None
    return CertificateSource(
        namespace=namespace,
        secret_name=secret_name,
        domain=domain,
        origin=origin,
    )
