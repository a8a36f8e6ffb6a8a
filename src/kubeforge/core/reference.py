#!/usr/bin/env python3
"""
KUBEFORGE REFERENCES - Image Identity
-------------------------------------
Parses image pull specs into their registry/namespace/name/tag parts and
models the image references a build consumes and produces.

Two references are the same image when their defaulted fields match, never
by comparing the raw strings ("centos" and "docker.io/library/centos:latest"
are one image).

Author: KubeForge Team
Date: 2026-10-18
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from kubeforge.core.errors import InvalidArgumentError

DEFAULT_REGISTRY = "docker.io"
DEFAULT_NAMESPACE = "library"
DEFAULT_TAG = "latest"

DOCKER_HUB_ALIASES = ("docker.io", "index.docker.io", "registry-1.docker.io")

_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:[._-][a-z0-9]+)*$")


@dataclass(frozen=True)
class ImageReference:
    """A parsed image pull spec: registry/namespace/name:tag@id."""
    registry: str = ""
    namespace: str = ""
    name: str = ""
    tag: str = ""
    id: str = ""

    @classmethod
    def parse(cls, spec: str) -> "ImageReference":
        """
        Parses a pull spec such as `registry:5000/ns/name:tag@sha256:...`.

        Raises InvalidArgumentError for empty or malformed specs.
        """
        if not spec or spec.strip() != spec:
            raise InvalidArgumentError(f"invalid image reference {spec!r}")

        remainder, image_id = spec, ""
        if "@" in remainder:
            remainder, image_id = remainder.split("@", 1)

        tag = ""
        last_slash = remainder.rfind("/")
        last_colon = remainder.rfind(":")
        if last_colon > last_slash:
            remainder, tag = remainder[:last_colon], remainder[last_colon + 1:]

        parts = remainder.split("/")
        registry = ""
        if len(parts) > 1 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
            registry = parts.pop(0)

        if len(parts) == 1:
            namespace, name = "", parts[0]
        else:
            namespace, name = parts[0], "/".join(parts[1:])

        for piece in [namespace] + name.split("/"):
            if piece and not _COMPONENT_RE.match(piece):
                raise InvalidArgumentError(f"invalid image reference {spec!r}")
        if not name:
            raise InvalidArgumentError(f"invalid image reference {spec!r}")

        return cls(registry=registry, namespace=namespace, name=name, tag=tag, id=image_id)

    def docker_client_defaults(self) -> "ImageReference":
        """Fills in the defaults the docker client would assume."""
        ref = self
        if not ref.registry:
            ref = replace(ref, registry=DEFAULT_REGISTRY)
        if not ref.namespace and ref.registry in DOCKER_HUB_ALIASES:
            ref = replace(ref, namespace=DEFAULT_NAMESPACE)
        if not ref.tag and not ref.id:
            ref = replace(ref, tag=DEFAULT_TAG)
        return ref

    def minimal(self) -> "ImageReference":
        """Strips the defaults that docker_client_defaults would add."""
        ref = self
        if ref.tag == DEFAULT_TAG:
            ref = replace(ref, tag="")
        if ref.registry in DOCKER_HUB_ALIASES:
            ref = replace(ref, registry="")
            if ref.namespace == DEFAULT_NAMESPACE:
                ref = replace(ref, namespace="")
        return ref

    def as_repository(self) -> "ImageReference":
        return replace(self, tag="", id="")

    def with_tag(self, tag: str) -> "ImageReference":
        return replace(self, tag=tag, id="")

    def repository_path(self) -> str:
        """The path used against a registry API, e.g. `library/centos`."""
        ref = self.docker_client_defaults()
        return f"{ref.namespace}/{ref.name}" if ref.namespace else ref.name

    def same_image(self, other: "ImageReference") -> bool:
        return self.docker_client_defaults() == other.docker_client_defaults()

    def __str__(self) -> str:
        out = self.name
        if self.namespace:
            out = f"{self.namespace}/{out}"
        if self.registry:
            out = f"{self.registry}/{out}"
        if self.tag:
            out = f"{out}:{self.tag}"
        if self.id:
            out = f"{out}@{self.id}"
        return out


@dataclass
class ImageRef:
    """
    An image as a build or deployment sees it.

    `as_image_stream` means the image is tracked by an image stream in the
    cluster; otherwise it is pulled directly as a docker image. Output
    images are the result of a build and carry no pull spec of their own.
    """
    reference: ImageReference
    as_image_stream: bool = True
    output_image: bool = False
    insecure: bool = False
    info: Optional[Any] = None            # ImageMetadata of the image, when known
    object_name: str = ""
    existing_stream: Optional[Any] = None  # ImageStreamRecord already in the cluster
    namespace: str = ""
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def tag(self) -> str:
        return self.reference.tag or DEFAULT_TAG

    def suggested_name(self) -> str:
        if self.object_name:
            return self.object_name
        if self.existing_stream is not None:
            return self.existing_stream.name
        return self.reference.name

    def object_reference(self) -> Dict[str, str]:
        if not self.as_image_stream:
            return {"kind": "DockerImage", "name": str(self.reference)}
        ref = {"kind": "ImageStreamTag", "name": f"{self.suggested_name()}:{self.tag}"}
        if self.existing_stream is not None and self.existing_stream.namespace:
            ref["namespace"] = self.existing_stream.namespace
        elif self.namespace:
            ref["namespace"] = self.namespace
        return ref

    def identity(self) -> Tuple[str, str, str, str]:
        """kind/namespace/name/tag used to compare build input and output."""
        if self.as_image_stream:
            namespace = self.existing_stream.namespace if self.existing_stream is not None else self.namespace
            return ("ImageStreamTag", namespace or "", self.suggested_name(), self.tag)
        ref = self.reference.docker_client_defaults()
        return ("DockerImage", f"{ref.registry}/{ref.namespace}", ref.name, ref.tag)

    def display(self) -> str:
        """The fully defaulted pull spec, used in user-facing messages."""
        return str(self.reference.docker_client_defaults())

    def exposed_ports(self):
        if self.info is None:
            return []
        return list(self.info.exposed_ports)
