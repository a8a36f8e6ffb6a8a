#!/usr/bin/env python3
"""
KUBEFORGE CLIENT TESTS - Registry, Docker and Cluster Adapters
--------------------------------------------------------------
The registry client runs against an httpx MockTransport; the docker and
kubectl adapters run against a patched command runner.

Author: KubeForge Team
Date: 2026-10-18
"""

import base64
import json

import httpx
import pytest

from kubeforge.clients import cluster as cluster_module
from kubeforge.clients import docker as docker_module
from kubeforge.clients.cluster import ClusterClient, image_stream_from_manifest
from kubeforge.clients.docker import LocalDockerClient
from kubeforge.clients.registry import MANIFEST_LIST, MANIFEST_V2, RegistryClient, parse_challenge
from kubeforge.core.errors import ClientError, ImageNotFound
from kubeforge.search.credentials import BasicCredentials
from kubeforge.utils.subprocess import CommandResult

HUB = "https://registry-1.docker.io/v2"
CHALLENGE = 'Bearer realm="https://auth.docker.io/token",service="registry.docker.io",scope="repository:library/centos:pull"'


def make_registry(routes, credentials=None, seen=None):
    """Serves JSON bodies by URL path; a route value may be (status, body, headers)."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        route = routes.get(f"{request.url.scheme}://{request.url.host}{request.url.path}")
        if route is None:
            return httpx.Response(404, json={"errors": [{"code": "NAME_UNKNOWN"}]})
        if callable(route):
            return route(request)
        if isinstance(route, tuple):
            status, body, headers = route
            return httpx.Response(status, json=body, headers=headers)
        return httpx.Response(200, json=route)

    return RegistryClient(credentials, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def centos_routes(manifest=None):
    def protected(body):
        def respond(request):
            if request.headers.get("Authorization") != "Bearer t0ken":
                return httpx.Response(401, headers={"WWW-Authenticate": CHALLENGE})
            return httpx.Response(200, json=body)
        return respond

    return {
        "https://auth.docker.io/token": {"token": "t0ken"},
        f"{HUB}/library/centos/manifests/latest": protected(
            manifest or {"mediaType": MANIFEST_V2, "config": {"digest": "sha256:cfg"}}
        ),
        f"{HUB}/library/centos/blobs/sha256:cfg": protected({"config": {
            "Env": ["PATH=/usr/bin"],
            "ExposedPorts": {"8080/tcp": {}, "22/tcp": {}},
            "Volumes": {"/data": {}},
        }}),
    }


def test_parse_challenge():
    assert parse_challenge(CHALLENGE) == {
        "realm": "https://auth.docker.io/token",
        "service": "registry.docker.io",
        "scope": "repository:library/centos:pull",
    }
    assert parse_challenge('Basic realm="x"') == {}


def test_inspect_image_answers_token_challenge():
    seen = []
    creds = BasicCredentials()
    creds.add("https://auth.docker.io/token", "user", "pass")
    client = make_registry(centos_routes(), credentials=creds, seen=seen)

    info = client.inspect_image("centos")

    assert info.exposed_ports == ["22/tcp", "8080/tcp"]
    assert info.volumes == ["/data"]
    assert info.image_id == "sha256:cfg"
    token_request = next(r for r in seen if r.url.host == "auth.docker.io")
    assert token_request.url.params["scope"] == "repository:library/centos:pull"
    expected = "Basic " + base64.b64encode(b"user:pass").decode("ascii")
    assert token_request.headers["Authorization"] == expected


def test_manifest_list_picks_linux_amd64():
    index = {
        "mediaType": MANIFEST_LIST,
        "manifests": [
            {"digest": "sha256:arm", "platform": {"os": "linux", "architecture": "arm64"}},
            {"digest": "sha256:amd", "platform": {"os": "linux", "architecture": "amd64"}},
        ],
    }
    routes = centos_routes(manifest=index)
    routes[f"{HUB}/library/centos/manifests/sha256:amd"] = {"config": {"digest": "sha256:cfg"}}
    routes[f"{HUB}/library/centos/blobs/sha256:cfg"] = {"config": {"ExposedPorts": {"80/tcp": {}}}}

    assert make_registry(routes).inspect_image("centos").exposed_ports == ["80/tcp"]


def test_missing_image_is_not_found():
    with pytest.raises(ImageNotFound):
        make_registry({}).inspect_image("quay.io/nobody/nothing:1")


def test_server_error_is_a_client_error():
    routes = {"https://quay.io/v2/coreos/etcd/manifests/latest": (500, {}, {})}
    with pytest.raises(ClientError) as exc:
        make_registry(routes).inspect_image("quay.io/coreos/etcd")
    assert not isinstance(exc.value, ImageNotFound)


def test_list_images():
    routes = {"https://quay.io/v2/coreos/etcd/tags/list": {"name": "coreos/etcd", "tags": ["v3", "latest"]}}
    assert make_registry(routes).list_images("quay.io/coreos/etcd") == [
        "quay.io/coreos/etcd:latest",
        "quay.io/coreos/etcd:v3",
    ]


def test_docker_client_lists_tagged_images(monkeypatch):
    output = "centos:latest\n<none>:<none>\nmysql:5.7\n"
    monkeypatch.setattr(docker_module, "run_command", lambda cmd, timeout=None: CommandResult(0, output, ""))
    assert LocalDockerClient().list_images() == ["centos:latest", "mysql:5.7"]


def test_docker_client_inspect(monkeypatch):
    payload = json.dumps([{"Id": "sha256:abc", "Config": {"ExposedPorts": {"3306/tcp": {}}}}])
    monkeypatch.setattr(docker_module, "run_command", lambda cmd, timeout=None: CommandResult(0, payload, ""))
    info = LocalDockerClient().inspect_image("mysql:5.7")
    assert info.exposed_ports == ["3306/tcp"] and info.image_id == "sha256:abc"

    missing = CommandResult(1, "", "Error: No such image: nope")
    monkeypatch.setattr(docker_module, "run_command", lambda cmd, timeout=None: missing)
    with pytest.raises(ImageNotFound):
        LocalDockerClient().inspect_image("nope")


def test_image_stream_from_manifest():
    record = image_stream_from_manifest({
        "metadata": {"name": "ruby", "namespace": "openshift", "generation": 3},
        "spec": {"tags": [{"name": "2.2", "annotations": {"supports": "ruby"}}]},
        "status": {
            "dockerImageRepository": "172.30.1.1:5000/openshift/ruby",
            "tags": [{"tag": "2.2", "items": [{"image": "sha256:r22"}]}],
        },
    })
    assert record.latest_tagged_image("2.2").image == "sha256:r22"
    assert record.tags["2.2"].annotations == {"supports": "ruby"}
    assert record.generation == 3


def test_cluster_client_uses_context_and_reports_failures(monkeypatch):
    calls = []

    def fake_run(cmd, timeout=None, input_text=None):
        calls.append(cmd)
        return CommandResult(1, "", "error: forbidden")

    monkeypatch.setattr(cluster_module, "run_command", fake_run)
    with pytest.raises(ClientError):
        ClusterClient(context="dev").list_templates("openshift")
    assert calls[0][:3] == ["kubectl", "--context", "dev"]
