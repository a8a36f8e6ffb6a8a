#!/usr/bin/env python3
"""
KUBEFORGE DETECTOR TESTS - Source Classification
------------------------------------------------
Language signatures, Dockerfile and Jenkinsfile discovery, and the
once-only classification of each repository, including a real local
directory read through the SourceInspector.

Author: KubeForge Team
Date: 2026-10-18
"""

import pytest

from conftest import RUBY_HELLO_WORLD, FakeInspector
from kubeforge.core.errors import InvalidArgumentError, SourceInspectionError
from kubeforge.source.detector import CLASSIFIED, FAILED, SourceRepositoryEnumerator
from kubeforge.source.dockerfile import parse_dockerfile
from kubeforge.source.inspector import SourceInspector
from kubeforge.source.repository import SourceRepository


@pytest.mark.parametrize("files, terms", [
    (["Gemfile"], ["ruby"]),
    (["pom.xml"], ["jee"]),
    (["package.json", "Gemfile"], ["ruby"]),
    (["app.csproj"], ["dotnet"]),
    (["README.md"], []),
])
def test_language_terms(files, terms):
    inspector = FakeInspector({RUBY_HELLO_WORLD: {f: "" for f in files}})
    info = SourceRepositoryEnumerator(inspector).detect(SourceRepository.parse(RUBY_HELLO_WORLD))
    assert info.terms == terms


def test_detection_runs_once():
    inspector = FakeInspector({RUBY_HELLO_WORLD: {"Gemfile": ""}})
    detector = SourceRepositoryEnumerator(inspector)
    repo = SourceRepository.parse(RUBY_HELLO_WORLD)

    first = detector.detect(repo)
    second = detector.detect(repo)

    assert first is second
    assert inspector.listed == [RUBY_HELLO_WORLD]
    assert repo.state.status == CLASSIFIED
    with pytest.raises(InvalidArgumentError):
        repo.set_info(first)


def test_failed_detection_is_remembered():
    detector = SourceRepositoryEnumerator(FakeInspector({}))
    repo = SourceRepository.parse(RUBY_HELLO_WORLD)

    with pytest.raises(SourceInspectionError):
        detector.detect(repo)
    assert repo.state.status == FAILED
    with pytest.raises(SourceInspectionError):
        detector.detect(repo)


def test_dockerfile_and_jenkinsfile_are_found():
    inspector = FakeInspector({RUBY_HELLO_WORLD: {
        "Dockerfile": "FROM centos:7\nEXPOSE 8080 9000/udp\nVOLUME [\"/data\"]",
        "Jenkinsfile": "node {}",
    }})
    info = SourceRepositoryEnumerator(inspector).detect(SourceRepository.parse(RUBY_HELLO_WORLD))

    assert info.jenkinsfile is True
    assert info.dockerfile.base_image() == "centos:7"
    assert info.dockerfile.exposed_ports() == ["8080/tcp", "9000/udp"]
    assert info.dockerfile.volumes() == ["/data"]


def test_dockerfile_only_repository_needs_no_inspection():
    inspector = FakeInspector({})
    info = SourceRepositoryEnumerator(inspector).detect(SourceRepository.from_dockerfile("FROM centos"))
    assert info.dockerfile.base_image() == "centos"
    assert inspector.listed == []


def test_detect_all_collects_failures():
    inspector = FakeInspector({RUBY_HELLO_WORLD: {"Gemfile": ""}})
    repos = [SourceRepository.parse(RUBY_HELLO_WORLD), SourceRepository.parse("https://github.com/x/missing")]
    errs = SourceRepositoryEnumerator(inspector).detect_all(repos, max_workers=2)
    assert len(errs) == 1
    assert repos[0].info.terms == ["ruby"]


def test_local_directory_with_context_dir(tmp_path):
    app = tmp_path / "app"
    app.mkdir()
    (app / "requirements.txt").write_text("flask\n")
    (app / "Dockerfile").write_text("# base\nFROM python:3 \\\n  AS build\nEXPOSE 5000\n")

    inspector = SourceInspector()
    repo = SourceRepository.parse(str(tmp_path), context_dir="app")
    info = SourceRepositoryEnumerator(inspector).detect(repo)

    assert info.terms == ["python"]
    assert info.dockerfile.base_image() == "python:3"
    assert info.dockerfile.exposed_ports() == ["5000/tcp"]


def test_parse_dockerfile_uses_last_from():
    dockerfile = parse_dockerfile("FROM golang AS build\nRUN make\nFROM --platform=linux/amd64 alpine:3\n")
    assert dockerfile.base_image() == "alpine:3"
    assert parse_dockerfile("USER foo").base_image() == ""


@pytest.mark.parametrize("location, name", [
    ("https://github.com/openshift/ruby-hello-world.git", "ruby-hello-world"),
    ("git@github.com:openshift/origin.git", "origin"),
    ("git://github.com/openshift/origin.git#beta4", "origin"),
])
def test_repository_suggested_name(location, name):
    assert SourceRepository.parse(location).suggested_name() == name


def test_repository_ref_fragment():
    repo = SourceRepository.parse("git://github.com/openshift/origin.git#beta4")
    assert repo.base_location == "git://github.com/openshift/origin.git"
    assert repo.ref == "beta4"
    assert repo.remote
