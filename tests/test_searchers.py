#!/usr/bin/env python3
"""
KUBEFORGE SEARCHER TESTS - Candidate Discovery
----------------------------------------------
Scoring rules and the behaviour of each searcher against fake backends,
including partial backend failure.

Author: KubeForge Team
Date: 2026-10-18
"""

import json
import threading

import pytest

from conftest import FakeCluster, FakeDockerClient, FakeRegistryClient, ruby_cluster
from kubeforge.core.errors import ClientError
from kubeforge.core.models import ImageMetadata, ImageStreamRecord, TagRecord, TemplateRecord
from kubeforge.core.reference import ImageReference
from kubeforge.search.searchers import (
    DockerClientSearcher,
    DockerRegistrySearcher,
    ImageStreamByAnnotationSearcher,
    ImageStreamSearcher,
    MultiSearcher,
    TemplateFileSearcher,
    TemplateSearcher,
    image_match_score,
    partial_scorer,
)


@pytest.mark.parametrize("a, b, prefix, expected", [
    ("ruby", "ruby", True, 0.0),
    ("", "ruby", False, 0.5),
    ("rub", "ruby", True, 0.5),
    ("rub", "ruby", False, 1.0),
    ("perl", "ruby", True, 1.0),
])
def test_partial_scorer(a, b, prefix, expected):
    assert partial_scorer(a, b, prefix, 0.5, 1.0) == expected


def test_image_match_score():
    parse = ImageReference.parse
    assert image_match_score(parse("centos"), parse("docker.io/library/centos:latest")) == 0.0
    assert image_match_score(parse("centos:7"), parse("centos")) == 0.125
    assert image_match_score(parse("centos"), parse("fedora")) is None


def test_registry_searcher_exact_and_missing():
    searcher = DockerRegistrySearcher(FakeRegistryClient())
    matches, errs = searcher.search(True, "centos", "nosuchimage")

    assert [m.name for m in matches] == ["centos:latest"]
    assert matches[0].exact and not matches[0].local_only
    assert errs == []


def test_registry_searcher_reports_backend_failure():
    searcher = DockerRegistrySearcher(FakeRegistryClient(broken=["centos"]))
    matches, errs = searcher.search(True, "centos")
    assert matches == []
    assert isinstance(errs[0], ClientError)


def test_docker_searcher_marks_builder_images():
    registry = DockerRegistrySearcher(FakeRegistryClient())
    matches, _ = DockerClientSearcher(None, registry_searcher=registry).search(True, "centos/ruby-22-centos7")
    assert matches[0].builder is True


def test_local_image_confirmed_by_registry_is_not_local_only():
    docker = FakeDockerClient({"centos:latest": ImageMetadata()})
    registry = DockerRegistrySearcher(FakeRegistryClient())
    matches, _ = DockerClientSearcher(docker, registry_searcher=registry).search(False, "centos")
    assert len(matches) == 1
    assert matches[0].local_only is False


def test_local_image_unknown_to_registry_is_local_only():
    docker = FakeDockerClient({"myapp:dev": ImageMetadata()})
    registry = DockerRegistrySearcher(FakeRegistryClient())
    matches, _ = DockerClientSearcher(docker, registry_searcher=registry).search(False, "myapp")
    assert matches[0].local_only is True
    assert matches[0].score > 0


def test_image_stream_searcher():
    searcher = ImageStreamSearcher(ruby_cluster(), ["openshift"])

    matches, errs = searcher.search(False, "ruby:2.2")
    assert len(matches) == 1
    assert matches[0].exact and matches[0].image_tag == "2.2"
    assert matches[0].image.exposed_ports == ["8080/tcp"]

    # No image was ever recorded for :latest
    matches, _ = searcher.search(False, "ruby")
    assert matches == []
    assert errs == []


def test_image_stream_searcher_with_missing_tags_allowed():
    searcher = ImageStreamSearcher(ruby_cluster(), ["openshift"], allow_missing_tags=True)
    matches, _ = searcher.search(True, "ruby")
    assert [m.name for m in matches] == ["ruby"]
    assert matches[0].image is None


def test_annotation_searcher():
    searcher = ImageStreamByAnnotationSearcher(ruby_cluster(), ["openshift"])

    matches, _ = searcher.search(False, "ruby")
    assert matches[0].exact and matches[0].builder

    matches, _ = searcher.search(False, "ruby:1.9")
    assert matches[0].score == 0.5

    matches, _ = searcher.search(True, "perl")
    assert matches == []


class _SlowNamespaceCluster(FakeCluster):
    """Holds listings of the `slow` namespace until released."""

    def __init__(self):
        ruby = ruby_cluster()
        super().__init__(streams=ruby.streams, images=ruby.images)
        self.entered = threading.Event()
        self.release = threading.Event()

    def list_image_streams(self, namespace):
        if namespace == "slow":
            self.entered.set()
            self.release.wait(5)
        return super().list_image_streams(namespace)


def test_annotation_searcher_does_not_wait_on_other_namespaces():
    cluster = _SlowNamespaceCluster()
    searcher = ImageStreamByAnnotationSearcher(cluster, ["openshift"])
    slow = threading.Thread(target=searcher._streams, args=("slow",))
    slow.start()
    try:
        assert cluster.entered.wait(5)
        matches, errs = searcher.search(False, "ruby")
        assert slow.is_alive()
        assert matches and not errs
    finally:
        cluster.release.set()
        slow.join()


def test_template_searcher():
    cluster = FakeCluster(templates={"openshift": [
        TemplateRecord(name="mysql-ephemeral"),
        TemplateRecord(name="mysql"),
    ]})
    matches, _ = TemplateSearcher(cluster, ["openshift"]).search(False, "mysql")
    assert sorted((m.name, m.score) for m in matches) == [("mysql", 0.0), ("mysql-ephemeral", 0.5)]
    assert all(m.is_template() for m in matches)


def test_template_searcher_leaves_cluster_records_untouched():
    stored = TemplateRecord(name="mysql")
    cluster = FakeCluster(templates={"openshift": [stored]})

    matches, _ = TemplateSearcher(cluster, ["openshift"]).search(True, "mysql")

    assert matches[0].template.namespace == "openshift"
    assert stored.namespace == ""


def test_template_file_searcher(tmp_path):
    template = tmp_path / "app.json"
    template.write_text(json.dumps({"kind": "Template", "metadata": {"name": "app"}, "objects": []}))
    not_template = tmp_path / "pod.json"
    not_template.write_text(json.dumps({"kind": "Pod"}))

    matches, errs = TemplateFileSearcher().search(True, str(template), str(not_template), str(tmp_path / "none"))
    assert [m.name for m in matches] == ["app"]
    assert len(errs) == 1


class _Exploding:
    def search(self, precise, *terms):
        raise ClientError("backend down")


def test_multi_searcher_keeps_partial_results():
    """One failing backend never hides what the others found."""
    registry = DockerRegistrySearcher(FakeRegistryClient())
    streams = ImageStreamSearcher(FakeCluster(), ["openshift"])
    matches, errs = MultiSearcher([_Exploding(), registry, streams]).search(False, "centos")

    assert [m.name for m in matches] == ["centos:latest"]
    assert [str(e) for e in errs] == ["backend down"]


def test_multi_searcher_preserves_searcher_order():
    first = ImageStreamSearcher(FakeCluster(streams={"openshift": [
        ImageStreamRecord(name="centos", tags={"latest": TagRecord(name="latest", image="sha256:c")}),
    ]}), ["openshift"])
    second = DockerRegistrySearcher(FakeRegistryClient())
    matches, _ = MultiSearcher([first, second]).search(False, "centos")
    assert [m.argument for m in matches] == [
        '--image-stream="openshift/centos:latest"',
        '--docker-image="centos:latest"',
    ]
