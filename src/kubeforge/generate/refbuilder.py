#!/usr/bin/env python3
"""
KUBEFORGE REFERENCE BUILDER
---------------------------
Collects component inputs and source repositories from every flag,
expanding `a+b` groups and `builder~repo` pairings, and hands out object
names that are valid and unique for the whole run.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
import re
from typing import Callable, Dict, List, Optional, Set, Tuple

from kubeforge.core.errors import InvalidArgumentError, KubeForgeError
from kubeforge.core.models import ComponentInput
from kubeforge.source.repository import SourceRepository

logger = logging.getLogger("kubeforge.refbuilder")

MAX_NAME_LENGTH = 58
MIN_NAME_LENGTH = 2

_INVALID_NAME_CHARS = re.compile(r"[^-0-9a-z]")


def sanitize_name(name: str) -> str:
    """Lower-cases, drops characters outside [-0-9a-z] and leading hyphens, truncates to 58."""
    name = _INVALID_NAME_CHARS.sub("", name.lower()).lstrip("-")
    return name[:MAX_NAME_LENGTH]


class UniqueNameGenerator:
    """
    Hands out names unique within one run.

    A repeated name gets `-1`, `-2`, ... appended, truncating the base so
    the result still fits.
    """

    def __init__(self):
        self._used: Set[str] = set()

    def generate(self, name: str) -> str:
        base = sanitize_name(name)
        if len(base) < MIN_NAME_LENGTH:
            raise InvalidArgumentError(f"invalid name: {name!r}")
        candidate = base
        count = 0
        while candidate in self._used:
            count += 1
            suffix = f"-{count}"
            candidate = base[:MAX_NAME_LENGTH - len(suffix)] + suffix
        self._used.add(candidate)
        return candidate

    def reserve(self, name: str) -> None:
        self._used.add(name)


class ReferenceBuilder:
    """Accumulates component inputs, repositories and the errors met while parsing them."""

    def __init__(self):
        self.components: List[ComponentInput] = []
        self.repositories: List[SourceRepository] = []
        self.errors: List[Exception] = []
        self._repos_by_location: Dict[str, SourceRepository] = {}
        self._next_group = 0

    def new_group(self) -> int:
        group = self._next_group
        self._next_group += 1
        return group

    def add_components(self, inputs: List[str], configure: Callable[[ComponentInput], None],
                       from_flag: str = "") -> List[ComponentInput]:
        """
        Parses each token into one or more ComponentInputs.

        `a+b` puts both in one group; `builder~repo` pairs the builder with
        the repository and marks it for building. `configure` attaches the
        resolver for the flag the tokens came from.
        """
        added = []
        for token in inputs:
            group = self.new_group()
            for member in token.split("+"):
                value, sep, location = member.partition("~")
                value = value.strip()
                if not value:
                    self.errors.append(InvalidArgumentError(f"component {member!r} must name an image or template"))
                    continue
                component = ComponentInput(value=value, argument=member, from_flag=from_flag, group_id=group)
                if sep:
                    component.expect_to_build = True
                    if location:
                        repo = self.add_source_repository(location)
                        if repo is not None:
                            component.use(repo)
                            repo.use_with(component)
                configure(component)
                self.components.append(component)
                added.append(component)
        return added

    def add_component(self, component: ComponentInput) -> ComponentInput:
        component.group_id = self.new_group()
        self.components.append(component)
        return component

    def add_source_repository(self, location: str, context_dir: str = "",
                              strategy: str = "") -> Optional[SourceRepository]:
        """Adds a repository once per location; returns the existing one for a repeat."""
        try:
            repo = SourceRepository.parse(location, context_dir=context_dir, strategy=strategy)
        except KubeForgeError as e:
            self.errors.append(e)
            return None
        existing = self._repos_by_location.get(repo.location)
        if existing is not None:
            return existing
        self._repos_by_location[repo.location] = repo
        self.repositories.append(repo)
        return repo

    def add_repository(self, repo: SourceRepository) -> SourceRepository:
        self.repositories.append(repo)
        return repo

    def add_groups(self, groups: List[str]) -> None:
        """Merges the named components (`a+b`) into one deployment group."""
        for group in groups:
            group_id = self.new_group()
            for value in group.split("+"):
                matched = [c for c in self.components if c.value == value or c.argument == value]
                if not matched:
                    self.errors.append(InvalidArgumentError(f"the component {value!r} in group {group!r} was not found"))
                for component in matched:
                    component.group_id = group_id

    def result(self) -> Tuple[List[ComponentInput], List[SourceRepository], List[Exception]]:
        return list(self.components), list(self.repositories), list(self.errors)
