"""
Shared fakes for the generation tests: an in-memory registry, docker
daemon, cluster and source inspector, plus a factory for AppConfig.
"""

import io
from typing import Dict, List, Optional

import pytest

from kubeforge.core.errors import ClientError, ImageNotFound, SourceInspectionError
from kubeforge.core.models import ImageMetadata, ImageStreamRecord, TagRecord
from kubeforge.core.reference import ImageReference
from kubeforge.generate.config import AppConfig
from kubeforge.search.searchers import (
    DockerClientSearcher,
    DockerRegistrySearcher,
    ImageStreamByAnnotationSearcher,
    ImageStreamSearcher,
    TemplateSearcher,
)
from kubeforge.source.detector import SourceRepositoryEnumerator
from kubeforge.source.repository import split_ref

RUBY_HELLO_WORLD = "https://github.com/openshift/ruby-hello-world"

RUBY_BUILDER = ImageMetadata(
    env=["STI_SCRIPTS_URL=image:///usr/libexec/s2i"],
    exposed_ports=["8080/tcp"],
)
MYSQL = ImageMetadata(exposed_ports=["3306/tcp"], volumes=["/var/lib/mysql"])

REGISTRY_IMAGES = {
    "centos": ImageMetadata(),
    "centos/ruby-22-centos7": RUBY_BUILDER,
    "centos/mongodb-26-centos7": ImageMetadata(exposed_ports=["27017/tcp"], volumes=["/var/lib/mongodb/data"]),
    "centos/mysql-56-centos7": MYSQL,
    "openshift/origin:v1.0.6": ImageMetadata(),
    "openshift/origin-base": ImageMetadata(),
    "mysql": MYSQL,
}


def _key(name: str) -> str:
    return str(ImageReference.parse(name).docker_client_defaults())


class FakeRegistryClient:
    def __init__(self, images: Optional[Dict[str, ImageMetadata]] = None, broken: Optional[List[str]] = None):
        self.images = {_key(k): v for k, v in (REGISTRY_IMAGES if images is None else images).items()}
        self.broken = {_key(b) for b in broken or []}
        self.calls: List[str] = []

    def inspect_image(self, reference: str) -> ImageMetadata:
        self.calls.append(reference)
        key = _key(reference)
        if key in self.broken:
            raise ClientError(f"registry unavailable for {reference}")
        if key not in self.images:
            raise ImageNotFound(reference)
        return self.images[key]


class FakeDockerClient:
    def __init__(self, images: Dict[str, ImageMetadata]):
        self.images = dict(images)

    def list_images(self, pattern: Optional[str] = None) -> List[str]:
        return sorted(self.images)

    def inspect_image(self, name: str) -> ImageMetadata:
        if name not in self.images:
            raise ImageNotFound(name)
        return self.images[name]


class FakeCluster:
    def __init__(self, streams=None, images=None, templates=None):
        self.streams: Dict[str, List[ImageStreamRecord]] = streams or {}
        self.images: Dict[tuple, ImageMetadata] = images or {}
        self.templates = templates or {}
        self.created: List[dict] = []

    def list_image_streams(self, namespace: str) -> List[ImageStreamRecord]:
        return list(self.streams.get(namespace, []))

    def get_image_stream_image(self, namespace: str, name: str, image_id: str) -> ImageMetadata:
        try:
            return self.images[(namespace, name, image_id)]
        except KeyError:
            raise ImageNotFound(f"{name}@{image_id}")

    def list_templates(self, namespace: str):
        return list(self.templates.get(namespace, []))

    def create(self, manifest: dict, namespace: str) -> dict:
        self.created.append(manifest)
        return manifest


def ruby_cluster() -> FakeCluster:
    """An `openshift` namespace carrying a ruby builder stream."""
    stream = ImageStreamRecord(
        name="ruby",
        namespace="openshift",
        tags={
            "2.2": TagRecord(
                name="2.2",
                image="sha256:ruby22",
                annotations={"supports": "ruby:2.2,ruby", "tags": "builder,ruby"},
            ),
        },
    )
    return FakeCluster(
        streams={"openshift": [stream]},
        images={("openshift", "ruby", "sha256:ruby22"): RUBY_BUILDER},
    )


class FakeInspector:
    """Serves file listings and contents keyed by repository location."""

    def __init__(self, repos: Optional[Dict[str, Dict[str, str]]] = None):
        self.repos = repos or {}
        self.listed: List[str] = []

    def _files(self, location: str) -> Dict[str, str]:
        base, _ = split_ref(location)
        if base not in self.repos:
            raise SourceInspectionError(f"unable to clone {location}")
        return self.repos[base]

    def list_files(self, location: str, context_dir: str = "") -> List[str]:
        self.listed.append(location)
        return sorted(self._files(location))

    def read_file(self, location: str, rel_path: str) -> bytes:
        return self._files(location)[rel_path].encode("utf-8")

    def remote_url(self, location: str) -> str:
        return split_ref(location)[0]

    def close(self) -> None:
        pass


DEFAULT_REPOS = {
    RUBY_HELLO_WORLD: {
        "Gemfile": "source 'https://rubygems.org'",
        "config.ru": "run App",
        "Dockerfile": "FROM centos/ruby-22-centos7\nUSER default\nEXPOSE 8080",
    },
}


@pytest.fixture
def registry():
    return FakeRegistryClient()


@pytest.fixture
def make_config(registry):
    """Builds an AppConfig wired to the fakes; keyword arguments override fields."""

    def factory(repos=None, cluster=None, docker_searcher="registry", **kwargs):
        inspector = FakeInspector(DEFAULT_REPOS if repos is None else repos)
        if docker_searcher == "registry":
            docker_searcher = DockerClientSearcher(None, registry_searcher=DockerRegistrySearcher(registry))
        config = AppConfig(
            docker_searcher=docker_searcher,
            inspector=inspector,
            detector=SourceRepositoryEnumerator(inspector),
            out=io.StringIO(),
            err_out=io.StringIO(),
            max_workers=4,
            **kwargs,
        )
        if cluster is not None:
            config.image_stream_searcher = ImageStreamSearcher(cluster, ["openshift"])
            config.image_stream_by_annotation_searcher = ImageStreamByAnnotationSearcher(cluster, ["openshift"])
            config.template_searcher = TemplateSearcher(cluster, ["openshift"])
        return config

    return factory


def manifests_of(result, kind: str) -> List[dict]:
    return [m for m in result.objects.to_manifests() if m["kind"] == kind]


def names_of(result, kind: str) -> List[str]:
    return sorted(m["metadata"]["name"] for m in manifests_of(result, kind))
