#!/usr/bin/env python3
"""
KUBEFORGE ENGINE - The High Orchestrator
----------------------------------------
The NewAppEngine wires the outside world into a generation run: it builds
the docker, registry and cluster clients, the searchers over them and the
source detector, runs the GenerationPipeline, and then exports, writes or
submits the resulting object graph.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
import os
import time
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

from kubeforge.clients.cluster import ClusterClient
from kubeforge.clients.docker import LocalDockerClient
from kubeforge.clients.registry import RegistryClient
from kubeforge.core.errors import ClientError, KubeForgeError, aggregate
from kubeforge.generate.config import DEFAULT_MAX_WORKERS, DEFAULT_NAMESPACE, AppConfig
from kubeforge.generate.exporter import ManifestExporter
from kubeforge.generate.objects import object_kind
from kubeforge.generate.pipeline import AppResult, GenerationPipeline
from kubeforge.search.credentials import NoCredentials, SecretCredentialStore
from kubeforge.search.searchers import (
    DockerClientSearcher,
    DockerRegistrySearcher,
    ImageStreamByAnnotationSearcher,
    ImageStreamSearcher,
    TemplateFileSearcher,
    TemplateSearcher,
)
from kubeforge.source.detector import SourceRepositoryEnumerator
from kubeforge.source.inspector import SourceInspector
from kubeforge.utils.subprocess import check_tool_available

logger = logging.getLogger("kubeforge.engine")

SHARED_NAMESPACE = "openshift"


class NewAppEngine:
    """
    Principal orchestrator for new-app and new-build runs.

    Backends that are disabled, or whose command line tool is not
    installed, are simply left out; their searchers never run.
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, search_namespaces: Optional[List[str]] = None,
                 kube_context: Optional[str] = None, use_docker: bool = True, use_registry: bool = True,
                 use_cluster: bool = True, insecure_registry: bool = False, timeout: float = 10.0,
                 cluster_timeout: float = 30.0, max_workers: int = DEFAULT_MAX_WORKERS):
        self.namespace = namespace
        self.search_namespaces = search_namespaces or _unique([SHARED_NAMESPACE, namespace])
        self.insecure_registry = insecure_registry
        self.max_workers = max_workers

        self.cluster: Optional[ClusterClient] = None
        if use_cluster and check_tool_available("kubectl"):
            self.cluster = ClusterClient(context=kube_context, timeout=cluster_timeout)
        elif use_cluster:
            logger.warning("kubectl was not found; cluster image streams and templates will not be searched")

        if self.cluster is not None:
            cluster = self.cluster
            self.credentials = SecretCredentialStore(secrets_fn=lambda: cluster.list_secrets(namespace))
        else:
            self.credentials = NoCredentials()

        self.registry: Optional[RegistryClient] = None
        if use_registry:
            self.registry = RegistryClient(self.credentials, timeout=timeout, insecure=insecure_registry)

        self.docker: Optional[LocalDockerClient] = None
        if use_docker and check_tool_available("docker"):
            self.docker = LocalDockerClient(timeout=timeout)

        self.inspector = SourceInspector(timeout=timeout)
        self.detector = SourceRepositoryEnumerator(self.inspector)

    def configure(self, config: AppConfig) -> AppConfig:
        """Fills in every collaborator the caller did not set explicitly."""
        registry_searcher = None
        if self.registry is not None:
            registry_searcher = DockerRegistrySearcher(self.registry, allow_insecure=self.insecure_registry)
        if config.docker_searcher is None and (self.docker is not None or registry_searcher is not None):
            config.docker_searcher = DockerClientSearcher(
                self.docker, registry_searcher=registry_searcher, insecure=self.insecure_registry
            )
        if self.cluster is not None:
            if config.image_stream_searcher is None:
                config.image_stream_searcher = ImageStreamSearcher(self.cluster, self.search_namespaces)
            if config.image_stream_by_annotation_searcher is None:
                config.image_stream_by_annotation_searcher = ImageStreamByAnnotationSearcher(
                    self.cluster, self.search_namespaces
                )
            if config.template_searcher is None:
                config.template_searcher = TemplateSearcher(self.cluster, self.search_namespaces)
        if config.template_file_searcher is None:
            config.template_file_searcher = TemplateFileSearcher()
        if config.inspector is None:
            config.inspector = self.inspector
        if config.detector is None:
            config.detector = self.detector
        config.namespace = self.namespace
        config.max_workers = self.max_workers
        config.insecure_registry = config.insecure_registry or self.insecure_registry
        return config

    def generate(self, config: AppConfig) -> AppResult:
        start = time.monotonic()
        result = GenerationPipeline(self.configure(config)).run()
        err = self.credentials.err() if isinstance(self.credentials, SecretCredentialStore) else None
        if err is not None:
            logger.warning(f"Registry credentials could not be loaded: {err}")
        logger.debug(f"Generation finished in {time.monotonic() - start:.2f}s")
        return result

    def export(self, result: AppResult, output_format: str = "yaml") -> str:
        return ManifestExporter(output_format).export(result.objects.to_manifests())

    def write(self, result: AppResult, target: str, output_format: str = "yaml") -> Path:
        path = Path(target).resolve()
        self._atomic_write(path, self.export(result, output_format))
        logger.info(f"Wrote {len(result.objects)} object(s) to {path}")
        return path

    def submit(self, result: AppResult) -> List[Dict[str, Any]]:
        """
        Creates every generated object in the cluster.

        Nothing is sent unless the whole graph was generated; creation
        failures are collected and raised together at the end.
        """
        if self.cluster is None:
            raise ClientError("cannot create objects: no cluster client is available")
        created = []
        errors: List[Exception] = []
        for manifest in result.objects.to_manifests():
            try:
                created.append(self.cluster.create(manifest, result.namespace))
            except KubeForgeError as e:
                errors.append(e)
        err = aggregate(errors)
        if err is not None:
            raise err
        return created

    def generate_summary(self, result: AppResult) -> Dict[str, Any]:
        counts = Counter(object_kind(obj) for obj in result.objects)
        return {
            "name": result.name,
            "namespace": result.namespace,
            "total_objects": len(result.objects),
            "by_kind": dict(counts),
            "warnings": len(result.warnings),
            "has_source": result.has_source,
            "summary_timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
        }

    def close(self) -> None:
        self.inspector.close()
        if self.registry is not None:
            self.registry.close()

    def _atomic_write(self, target_path: Path, content: str):
        if not os.access(target_path.parent, os.W_OK):
            raise PermissionError(f"No write access to {target_path.parent}")
        temp_file = target_path.with_suffix(target_path.suffix + '.kubeforge.tmp')
        try:
            temp_file.write_text(content, encoding='utf-8')
            os.replace(temp_file, target_path)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise IOError(f"Atomic write failed: {str(e)}")


def _unique(values: List[str]) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen
