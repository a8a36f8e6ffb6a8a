import pytest

from kubeforge.core.environment import (
    Environment,
    ImagePath,
    SecretSpec,
    parse_secrets,
    parse_source_image_paths,
    validate_docker_secrets,
)
from kubeforge.core.errors import InvalidArgumentError


def test_first_occurrence_wins():
    env = Environment.parse(["A=1", "B=2", "A=3"])
    assert env.to_env_vars() == [{"name": "A", "value": "1"}, {"name": "B", "value": "2"}]


def test_merge_keeps_existing_keys():
    build_env = Environment.parse(["A=build"])
    build_env.add_environment(Environment.parse(["A=app", "C=app"]))
    assert list(build_env) == [("A", "build"), ("C", "app")]


def test_value_may_contain_equals():
    assert Environment.parse(["URL=a=b"])["URL"] == "a=b"


@pytest.mark.parametrize("entry", ["novalue", "=x", "1A=x"])
def test_malformed_environment(entry):
    with pytest.raises(InvalidArgumentError):
        Environment.parse([entry])


def test_parse_secrets():
    assert parse_secrets(["foo:/var", "bar"]) == [SecretSpec("foo", "/var"), SecretSpec("bar", ".")]


@pytest.mark.parametrize("entry", [":/var", "foo:"])
def test_malformed_secrets(entry):
    with pytest.raises(InvalidArgumentError):
        parse_secrets([entry])


def test_docker_secrets_must_be_relative():
    validate_docker_secrets([SecretSpec("foo", "sub/dir")])
    with pytest.raises(InvalidArgumentError):
        validate_docker_secrets([SecretSpec("foo", "/var")])


def test_source_image_paths():
    assert parse_source_image_paths("/src:dst; /opt/app:lib") == [
        ImagePath("/src", "dst"),
        ImagePath("/opt/app", "lib"),
    ]


@pytest.mark.parametrize("value", ["src:dst", "/src", "/src:"])
def test_malformed_source_image_paths(value):
    with pytest.raises(InvalidArgumentError):
        parse_source_image_paths(value)
