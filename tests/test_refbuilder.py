import pytest

from kubeforge.core.errors import InvalidArgumentError
from kubeforge.generate.refbuilder import (
    MAX_NAME_LENGTH,
    ReferenceBuilder,
    UniqueNameGenerator,
    sanitize_name,
)


@pytest.mark.parametrize("raw, expected", [
    ("ruby-hello-world", "ruby-hello-world"),
    ("Ruby_Hello.World", "rubyhelloworld"),
    ("--leading", "leading"),
    ("x" * 70, "x" * MAX_NAME_LENGTH),
])
def test_sanitize_name(raw, expected):
    assert sanitize_name(raw) == expected


def test_unique_names_get_suffixes():
    names = UniqueNameGenerator()
    assert [names.generate("app") for _ in range(3)] == ["app", "app-1", "app-2"]


def test_suffix_keeps_name_within_limit():
    names = UniqueNameGenerator()
    long_name = "a" * MAX_NAME_LENGTH
    names.generate(long_name)
    second = names.generate(long_name)
    assert len(second) == MAX_NAME_LENGTH
    assert second.endswith("-1")


def test_too_short_name_is_rejected():
    with pytest.raises(InvalidArgumentError):
        UniqueNameGenerator().generate("_")


def test_components_groups_and_pairings():
    refs = ReferenceBuilder()
    seen = []
    refs.add_components(
        ["mysql+ruby~https://github.com/openshift/ruby-hello-world", "redis"],
        seen.append,
    )
    components, repositories, errors = refs.result()

    assert [c.value for c in components] == ["mysql", "ruby", "redis"]
    assert seen == components
    assert components[0].group_id == components[1].group_id != components[2].group_id
    assert components[1].expect_to_build and components[1].uses is repositories[0]
    assert repositories[0].used_by == [components[1]]
    assert errors == []


def test_repeated_repository_is_added_once():
    refs = ReferenceBuilder()
    first = refs.add_source_repository("https://github.com/openshift/ruby-hello-world")
    again = refs.add_source_repository("https://github.com/openshift/ruby-hello-world")
    assert first is again
    assert len(refs.repositories) == 1


def test_bad_inputs_are_collected():
    refs = ReferenceBuilder()
    refs.add_components(["~https://github.com/openshift/origin"], lambda c: None)
    refs.add_source_repository("not-a-repository")
    refs.add_groups(["missing+other"])
    assert len(refs.errors) == 4


def test_groups_merge_existing_components():
    refs = ReferenceBuilder()
    refs.add_components(["mysql", "redis"], lambda c: None)
    refs.add_groups(["mysql+redis"])
    mysql, redis = refs.components
    assert mysql.group_id == redis.group_id
