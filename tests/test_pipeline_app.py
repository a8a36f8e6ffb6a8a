#!/usr/bin/env python3
"""
KUBEFORGE NEW-APP TESTS - Application Generation
------------------------------------------------
Checks the deployments, services and image streams generated for images,
detected source repositories and templates.

Author: KubeForge Team
Date: 2026-10-18
"""

import pytest

from conftest import MYSQL, RUBY_HELLO_WORLD, FakeDockerClient, FakeRegistryClient, manifests_of, names_of, ruby_cluster
from kubeforge.core.errors import AggregateError, ErrNoLanguageDetected, ErrNoResolver, InvalidArgumentError
from kubeforge.core.models import ImageMetadata
from kubeforge.generate.pipeline import GenerationPipeline
from kubeforge.search.searchers import DockerClientSearcher, DockerRegistrySearcher, TemplateFileSearcher

TEMPLATE_YAML = """\
apiVersion: template.openshift.io/v1
kind: Template
metadata:
  name: web-template
parameters:
- name: NAME
  required: true
- name: PORT
  value: "8080"
objects:
- apiVersion: v1
  kind: Service
  metadata:
    name: ${NAME}
  spec:
    ports:
    - port: ${PORT}
"""


def run_app(make_config, **kwargs):
    config = make_config(**kwargs)
    return GenerationPipeline(config).run(), config


def test_image_with_volume_and_port(make_config):
    result, _ = run_app(make_config, components=["mysql"])

    assert names_of(result, "ImageStream") == ["mysql"]
    assert names_of(result, "DeploymentConfig") == ["mysql"]
    assert names_of(result, "Service") == ["mysql"]

    dc = manifests_of(result, "DeploymentConfig")[0]
    pod = dc["spec"]["template"]["spec"]
    assert pod["volumes"] == [{"name": "mysql-volume-1", "emptyDir": {}}]
    container = pod["containers"][0]
    assert container["image"] == "mysql:latest"
    assert container["volumeMounts"] == [{"name": "mysql-volume-1", "mountPath": "/var/lib/mysql"}]
    assert container["ports"] == [{"containerPort": 3306, "protocol": "TCP"}]

    trigger = dc["spec"]["triggers"][1]
    assert trigger["imageChangeParams"]["from"] == {"kind": "ImageStreamTag", "name": "mysql:latest"}

    service = manifests_of(result, "Service")[0]
    assert service["spec"]["ports"][0]["port"] == 3306


def test_selector_is_subset_of_pod_labels(make_config):
    result, _ = run_app(make_config, components=["mysql"])

    dc = manifests_of(result, "DeploymentConfig")[0]
    selector = dc["spec"]["selector"]
    pod_labels = dc["spec"]["template"]["metadata"]["labels"]
    assert selector == {"deploymentconfig": "mysql", "app": "mysql"}
    assert all(pod_labels[k] == v for k, v in selector.items())
    assert manifests_of(result, "Service")[0]["spec"]["selector"] == selector


def test_custom_name_applies_to_every_object(make_config):
    result, _ = run_app(make_config, components=["mysql"], name="custom")

    assert names_of(result, "ImageStream") == ["custom"]
    assert names_of(result, "DeploymentConfig") == ["custom"]
    assert names_of(result, "Service") == ["custom"]
    container = manifests_of(result, "DeploymentConfig")[0]["spec"]["template"]["spec"]["containers"][0]
    assert container["image"] == "custom:latest"


def test_user_labels_replace_default(make_config):
    result, _ = run_app(make_config, components=["mysql"], labels={"tier": "db"})

    for manifest in result.objects.to_manifests():
        assert manifest["metadata"]["labels"] == {"tier": "db"}


def test_images_sharing_a_base_name_get_their_own_streams(make_config):
    registry = FakeRegistryClient({"mysql": MYSQL, "centos/mysql": MYSQL})
    searcher = DockerClientSearcher(None, registry_searcher=DockerRegistrySearcher(registry))
    result, _ = run_app(make_config, components=["mysql", "centos/mysql"], docker_searcher=searcher)

    streams = {
        m["metadata"]["name"]: [t["from"]["name"] for t in m["spec"]["tags"]]
        for m in manifests_of(result, "ImageStream")
    }
    assert streams == {"mysql": ["mysql:latest"], "mysql-1": ["centos/mysql:latest"]}

    triggers = {}
    for dc in manifests_of(result, "DeploymentConfig"):
        change = [t for t in dc["spec"]["triggers"] if t["type"] == "ImageChange"][0]
        triggers[dc["metadata"]["name"]] = change["imageChangeParams"]["from"]["name"]
    assert triggers == {"mysql": "mysql:latest", "mysql-1": "mysql-1:latest"}


def test_local_only_image_gets_no_stream(make_config):
    docker = FakeDockerClient({"localimage:latest": ImageMetadata(exposed_ports=["9000/tcp"])})
    result, config = run_app(
        make_config,
        components=["localimage"],
        docker_searcher=DockerClientSearcher(docker),
    )

    assert names_of(result, "ImageStream") == []
    dc = manifests_of(result, "DeploymentConfig")[0]
    assert dc["spec"]["template"]["spec"]["containers"][0]["image"] == "localimage:latest"
    assert [t["type"] for t in dc["spec"]["triggers"]] == ["ConfigChange"]
    assert "was only found locally" in config.err_out.getvalue()


def test_group_shares_one_deployment(make_config):
    result, _ = run_app(make_config, components=["mysql+centos/mongodb-26-centos7"])

    assert names_of(result, "DeploymentConfig") == ["mysql"]
    dc = manifests_of(result, "DeploymentConfig")[0]
    containers = dc["spec"]["template"]["spec"]["containers"]
    assert [c["name"] for c in containers] == ["mysql", "mongodb-26-centos7"]
    volumes = [v["name"] for v in dc["spec"]["template"]["spec"]["volumes"]]
    assert volumes == ["mysql-volume-1", "mysql-volume-2"]
    ports = [p["port"] for p in manifests_of(result, "Service")[0]["spec"]["ports"]]
    assert ports == [3306, 27017]


def test_detected_source_build_and_deploy(make_config):
    repos = {RUBY_HELLO_WORLD: {"Gemfile": "", "config.ru": ""}}
    result, _ = run_app(make_config, repos=repos, cluster=ruby_cluster(), source_repositories=[RUBY_HELLO_WORLD])

    assert names_of(result, "BuildConfig") == ["ruby-hello-world"]
    assert names_of(result, "ImageStream") == ["ruby-hello-world"]
    assert names_of(result, "DeploymentConfig") == ["ruby-hello-world"]
    assert names_of(result, "Service") == ["ruby-hello-world"]

    build = manifests_of(result, "BuildConfig")[0]
    assert build["spec"]["strategy"]["sourceStrategy"]["from"] == {
        "kind": "ImageStreamTag", "name": "ruby:2.2", "namespace": "openshift",
    }
    trigger_types = [t["type"] for t in build["spec"]["triggers"]]
    assert trigger_types == ["GitHub", "Generic", "ConfigChange", "ImageChange"]

    container = manifests_of(result, "DeploymentConfig")[0]["spec"]["template"]["spec"]["containers"][0]
    assert container["image"] == "ruby-hello-world:latest"
    assert container["ports"] == [{"containerPort": 8080, "protocol": "TCP"}]
    assert result.has_source is True


def test_repository_dockerfile_drives_docker_build(make_config):
    result, _ = run_app(make_config, source_repositories=[RUBY_HELLO_WORLD])

    build = manifests_of(result, "BuildConfig")[0]
    assert build["spec"]["strategy"]["type"] == "Docker"
    assert build["spec"]["strategy"]["dockerStrategy"]["from"] == {
        "kind": "ImageStreamTag", "name": "ruby-22-centos7:latest",
    }
    # EXPOSE in the Dockerfile decides the service port
    assert manifests_of(result, "Service")[0]["spec"]["ports"][0]["port"] == 8080


def test_jenkinsfile_gives_pipeline_build(make_config):
    repos = {RUBY_HELLO_WORLD: {"Jenkinsfile": "node {}", "Gemfile": ""}}
    result, _ = run_app(make_config, repos=repos, source_repositories=[RUBY_HELLO_WORLD])

    build = manifests_of(result, "BuildConfig")[0]
    assert build["spec"]["strategy"]["type"] == "JenkinsPipeline"
    assert "to" not in build["spec"]["output"]
    assert manifests_of(result, "DeploymentConfig") == []
    assert manifests_of(result, "ImageStream") == []


def test_undetectable_repository(make_config):
    repos = {RUBY_HELLO_WORLD: {"README.md": ""}}
    with pytest.raises(AggregateError) as exc:
        run_app(make_config, repos=repos, source_repositories=[RUBY_HELLO_WORLD])

    assert isinstance(exc.value.errors[0], ErrNoLanguageDetected)
    assert f"[image]~{RUBY_HELLO_WORLD}" in str(exc.value)


def test_explicit_pairing_with_tilde(make_config):
    repos = {RUBY_HELLO_WORLD: {"Gemfile": ""}}
    result, _ = run_app(make_config, repos=repos, components=[f"centos/ruby-22-centos7~{RUBY_HELLO_WORLD}"])

    assert names_of(result, "BuildConfig") == ["ruby-hello-world"]
    assert names_of(result, "DeploymentConfig") == ["ruby-hello-world"]
    assert names_of(result, "ImageStream") == ["ruby-22-centos7", "ruby-hello-world"]


def test_missing_searchers_mean_no_resolver(make_config):
    with pytest.raises(AggregateError) as exc:
        run_app(make_config, components=["mysql"], docker_searcher=None)

    assert isinstance(exc.value.errors[0], ErrNoResolver)
    assert "no resolver" in str(exc.value)


def test_every_unresolved_input_is_reported(make_config):
    with pytest.raises(AggregateError) as exc:
        run_app(make_config, components=["nosuchimage", "alsomissing"])

    values = sorted(e.value for e in exc.value.errors)
    assert values == ["alsomissing", "nosuchimage"]


def test_template_file_with_parameters(make_config, tmp_path):
    template = tmp_path / "web.yaml"
    template.write_text(TEMPLATE_YAML)
    result, _ = run_app(
        make_config,
        template_files=[str(template)],
        template_parameters=["NAME=web"],
        template_file_searcher=TemplateFileSearcher(),
    )

    services = manifests_of(result, "Service")
    assert services[0]["metadata"]["name"] == "web"
    assert services[0]["spec"]["ports"] == [{"port": "8080"}]
    assert services[0]["metadata"]["labels"] == {"app": "web-template"}
    assert result.name == "web-template"


def test_template_missing_required_parameter(make_config, tmp_path):
    template = tmp_path / "web.yaml"
    template.write_text(TEMPLATE_YAML)
    with pytest.raises(AggregateError) as exc:
        run_app(make_config, template_files=[str(template)], template_file_searcher=TemplateFileSearcher())
    assert "requires a value for parameter NAME" in str(exc.value)


def test_parameters_without_template(make_config):
    with pytest.raises(AggregateError) as exc:
        run_app(make_config, components=["mysql"], template_parameters=["NAME=web"])
    assert isinstance(exc.value.errors[0], InvalidArgumentError)


@pytest.mark.parametrize("name", ["Bad_Name", "a", "trailing-"])
def test_invalid_name(make_config, name):
    with pytest.raises(InvalidArgumentError):
        run_app(make_config, components=["mysql"], name=name)


def test_generation_is_deterministic(make_config):
    """Two runs over the same inputs give the same names and references."""

    def shape(result):
        out = []
        for manifest in result.objects.to_manifests():
            spec = manifest.get("spec") or {}
            out.append((manifest["kind"], manifest["metadata"]["name"], spec.get("output"), spec.get("selector")))
        return out

    kwargs = dict(
        components=["mysql", "centos/mongodb-26-centos7"],
        source_repositories=[RUBY_HELLO_WORLD],
    )
    first, _ = run_app(make_config, **kwargs)
    second, _ = run_app(make_config, **kwargs)
    assert shape(first) == shape(second)
