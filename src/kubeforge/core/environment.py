"""Environment, secret and source-image path bindings."""

import os
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from kubeforge.core.errors import InvalidArgumentError

ENV_ARG_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*=")


def is_environment_argument(value: str) -> bool:
    return bool(ENV_ARG_RE.match(value))


class Environment:
    """
    Ordered KEY=value bindings.

    Insertion order is kept and the first occurrence of a key wins; later
    duplicates are ignored rather than overwriting.
    """

    def __init__(self, pairs: Optional[Iterable[Tuple[str, str]]] = None):
        self._items: Dict[str, str] = {}
        for key, value in pairs or []:
            self.add(key, value)

    @classmethod
    def parse(cls, entries: Iterable[str]) -> "Environment":
        env = cls()
        for entry in entries:
            if not is_environment_argument(entry):
                raise InvalidArgumentError(f"environment variables must be of the form key=value: {entry!r}")
            key, value = entry.split("=", 1)
            env.add(key, value)
        return env

    def add(self, key: str, value: str) -> bool:
        if key in self._items:
            return False
        self._items[key] = value
        return True

    def add_environment(self, other: "Environment") -> None:
        for key, value in other:
            self.add(key, value)

    def to_env_vars(self) -> List[Dict[str, str]]:
        return [{"name": k, "value": v} for k, v in self._items.items()]

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._items.items()))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __getitem__(self, key: str) -> str:
        return self._items[key]

    def __repr__(self) -> str:
        return f"Environment({list(self._items.items())!r})"


@dataclass(frozen=True)
class SecretSpec:
    """A build secret mounted at a destination directory."""
    name: str
    destination_dir: str = "."

    def to_manifest(self) -> Dict:
        return {"secret": {"name": self.name}, "destinationDir": self.destination_dir}


def parse_secrets(entries: Iterable[str]) -> List[SecretSpec]:
    """`name:dest` mounts at dest, a bare `name` mounts at `.`."""
    secrets = []
    for entry in entries:
        name, sep, dest = entry.partition(":")
        if not name:
            raise InvalidArgumentError(f"invalid secret {entry!r}: the secret name must not be empty")
        if sep and not dest:
            raise InvalidArgumentError(f"invalid secret {entry!r}: the destination directory must not be empty")
        secrets.append(SecretSpec(name=name, destination_dir=dest if sep else "."))
    return secrets


def validate_docker_secrets(secrets: Iterable[SecretSpec]) -> None:
    for secret in secrets:
        if os.path.isabs(secret.destination_dir):
            raise InvalidArgumentError(
                f"for the docker strategy, the secret destination directory "
                f"{secret.destination_dir!r} must be a relative path"
            )


@dataclass(frozen=True)
class ImagePath:
    """A path copied out of a source image into the build context."""
    source_path: str
    destination_dir: str

    def to_manifest(self) -> Dict:
        return {"sourcePath": self.source_path, "destinationDir": self.destination_dir}


def parse_source_image_paths(value: str) -> List[ImagePath]:
    """Parses `src:dst[;src:dst...]`; the source path must be absolute."""
    paths = []
    for entry in filter(None, (e.strip() for e in value.split(";"))):
        src, sep, dst = entry.partition(":")
        if not sep or not src or not dst:
            raise InvalidArgumentError(f"source image paths must be of the form [source]:[destination]: {entry!r}")
        if not src.startswith("/"):
            raise InvalidArgumentError(f"the source image path {src!r} must be absolute")
        paths.append(ImagePath(source_path=src, destination_dir=dst))
    return paths
