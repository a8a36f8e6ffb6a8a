#!/usr/bin/env python3
"""
KUBEFORGE SOURCE REPOSITORY
---------------------------
A source location (local directory or remote git URL with an optional
`#ref` fragment) plus everything the build needs to know about it: the
context directory, an optional literal Dockerfile, the requested strategy
and build secrets. Detection fills in `info` exactly once.

Author: KubeForge Team
Date: 2026-10-18
"""

import os
import re
from typing import List, Optional
from urllib.parse import urlparse

from kubeforge.core.environment import SecretSpec
from kubeforge.core.errors import InvalidArgumentError
from kubeforge.core.models import DetectionState, SourceRepositoryInfo

REMOTE_SCHEMES = ("git", "http", "https", "ssh", "file")
STRATEGIES = ("", "source", "docker", "pipeline")

# user@host:path, the scp-like syntax git accepts for ssh remotes (not image@digest)
_SCP_RE = re.compile(r"^[\w.-]+@(?!sha(?:256|384|512):)[\w.-]+:.+$")


def split_ref(location: str):
    """Splits `location#ref` into its parts."""
    base, _, ref = location.partition("#")
    return base, ref


def is_remote_location(location: str) -> bool:
    base, _ = split_ref(location)
    if "://" in base:
        return urlparse(base).scheme in REMOTE_SCHEMES
    return bool(_SCP_RE.match(base))


def is_possible_source_repository(value: str) -> bool:
    """URL, scp-style git remote, or an existing local directory."""
    if not value or not value.strip():
        return False
    if is_remote_location(value):
        return True
    base, _ = split_ref(value)
    if base in (".", "..") or base.startswith(("./", "../", "/", "~/")):
        return os.path.isdir(os.path.expanduser(base))
    return False


class SourceRepository:
    """
    One repository to build from.

    A repository created from a literal Dockerfile has no location; its
    only content is that Dockerfile.
    """

    def __init__(self, location: str = "", context_dir: str = "", dockerfile: str = "",
                 strategy: str = "", secrets: Optional[List[SecretSpec]] = None):
        if strategy not in STRATEGIES:
            raise InvalidArgumentError(f"unknown build strategy {strategy!r}")
        base, ref = split_ref(location)
        self.location = location
        self.base_location = base
        self.ref = ref
        self.context_dir = context_dir.strip("/")
        self.dockerfile = dockerfile
        self.strategy = strategy
        self.secrets: List[SecretSpec] = list(secrets or [])
        self.remote = is_remote_location(location) if location else False
        self.state = DetectionState()
        self._info: Optional[SourceRepositoryInfo] = None
        self.used_by: List[object] = []

    @classmethod
    def parse(cls, location: str, context_dir: str = "", strategy: str = "") -> "SourceRepository":
        if not is_possible_source_repository(location):
            raise InvalidArgumentError(f"{location!r} is not a valid source repository location")
        if not is_remote_location(location):
            base, ref = split_ref(location)
            location = os.path.abspath(os.path.expanduser(base)) + (f"#{ref}" if ref else "")
        return cls(location=location, context_dir=context_dir, strategy=strategy)

    @classmethod
    def from_dockerfile(cls, contents: str, strategy: str = "docker") -> "SourceRepository":
        return cls(dockerfile=contents, strategy=strategy)

    @property
    def info(self) -> Optional[SourceRepositoryInfo]:
        return self._info

    def set_info(self, info: SourceRepositoryInfo) -> None:
        if self._info is not None:
            raise InvalidArgumentError(f"repository {self} has already been classified")
        self._info = info

    def is_dockerfile_only(self) -> bool:
        return not self.location and bool(self.dockerfile)

    def local_path(self) -> str:
        if self.remote:
            return ""
        return self.base_location

    def add_secrets(self, secrets: List[SecretSpec]) -> None:
        for secret in secrets:
            if secret not in self.secrets:
                self.secrets.append(secret)

    def suggested_name(self) -> str:
        """The name a build of this repository would get, e.g. `ruby-hello-world`."""
        if not self.location:
            return ""
        base = self.base_location.rstrip("/")
        if self.remote and "://" not in base:
            base = base.split(":", 1)[1]
        elif self.remote:
            base = urlparse(base).path.rstrip("/")
        name = os.path.basename(base)
        if name.endswith(".git"):
            name = name[:-4]
        return name

    def use_with(self, component) -> None:
        self.used_by.append(component)

    def __str__(self) -> str:
        if self.location:
            return self.location
        return "Dockerfile"

    def __repr__(self) -> str:
        return f"SourceRepository({str(self)!r})"
