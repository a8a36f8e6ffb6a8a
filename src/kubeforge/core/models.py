#!/usr/bin/env python3
"""
KUBEFORGE CORE MODELS
---------------------
Defines the fundamental data structures shared by searchers, resolvers,
the source detector and the generation pipeline.

Author: KubeForge Team
Date: 2026-10-18
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Env/label markers that identify an image able to build from source
BUILDER_ENV_MARKERS = ("STI_SCRIPTS_URL",)
BUILDER_LABEL_MARKERS = ("io.openshift.s2i.scripts-url",)


@dataclass
class ImageMetadata:
    """The runtime facts of an image that generation cares about."""
    env: List[str] = field(default_factory=list)           # "KEY=value" entries
    exposed_ports: List[str] = field(default_factory=list)  # "8080/tcp" entries
    volumes: List[str] = field(default_factory=list)        # declared mount paths
    labels: Dict[str, str] = field(default_factory=dict)
    image_id: str = ""

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]], image_id: str = "") -> "ImageMetadata":
        """Builds metadata from a docker image `Config` block."""
        config = config or {}
        ports = sorted((config.get("ExposedPorts") or {}).keys(), key=port_sort_key)
        return cls(
            env=list(config.get("Env") or []),
            exposed_ports=ports,
            volumes=sorted((config.get("Volumes") or {}).keys()),
            labels=dict(config.get("Labels") or {}),
            image_id=image_id,
        )

    def is_builder(self) -> bool:
        for entry in self.env:
            if entry.split("=", 1)[0] in BUILDER_ENV_MARKERS:
                return True
        return any(label in self.labels for label in BUILDER_LABEL_MARKERS)


def port_sort_key(port: str):
    number, _, proto = port.partition("/")
    try:
        return (int(number), proto or "tcp")
    except ValueError:
        return (0, port)


@dataclass
class TagRecord:
    """One tag of a cluster image stream."""
    name: str
    image: str = ""                                  # image id recorded for the tag
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass
class ImageStreamRecord:
    """An image stream that already exists in the cluster."""
    name: str
    namespace: str = ""
    docker_image_repository: str = ""
    tags: Dict[str, TagRecord] = field(default_factory=dict)
    generation: int = 0

    def latest_tagged_image(self, tag: str) -> Optional[TagRecord]:
        record = self.tags.get(tag)
        if record is None or not record.image:
            return None
        return record


@dataclass
class TemplateParameter:
    name: str
    value: str = ""
    description: str = ""
    required: bool = False


@dataclass
class TemplateRecord:
    """A template, either stored in the cluster or read from a local file."""
    name: str
    namespace: str = ""
    description: str = ""
    parameters: List[TemplateParameter] = field(default_factory=list)
    objects: List[Dict[str, Any]] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class ComponentMatch:
    """
    One candidate for a component input, as reported by a single searcher.

    Score is 0.0 for an exact match and grows towards 1.0 as the match
    weakens; candidates are ranked by it.
    """
    value: str
    name: str
    argument: str = ""
    description: str = ""
    score: float = 0.0
    builder: bool = False
    insecure: bool = False
    local_only: bool = False
    image: Optional[ImageMetadata] = None
    image_stream: Optional[ImageStreamRecord] = None
    image_tag: str = ""
    template: Optional[TemplateRecord] = None

    @property
    def exact(self) -> bool:
        return self.score == 0.0

    def is_image(self) -> bool:
        return self.template is None

    def is_template(self) -> bool:
        return self.template is not None


@dataclass
class ComponentInput:
    """
    A user token awaiting resolution.

    `resolved_match` is attached in place once resolution completes;
    `search_matches` keeps every candidate when the result was ambiguous.
    """
    value: str
    argument: str = ""
    from_flag: str = ""           # e.g. "--docker-image", empty for bare arguments
    expect_to_build: bool = False
    uses: Optional[Any] = None    # SourceRepository this component builds
    group_id: int = 0
    resolver: Optional[Any] = None
    resolved_match: Optional[ComponentMatch] = None
    search_matches: List[ComponentMatch] = field(default_factory=list)

    def use(self, repository) -> None:
        self.uses = repository
        self.expect_to_build = True

    def needs_source(self) -> bool:
        return self.expect_to_build and self.uses is None

    def __str__(self) -> str:
        if self.uses is not None:
            return f"{self.value}~{self.uses}"
        return self.value


@dataclass
class SourceRepositoryInfo:
    """What detection learned about a repository's content."""
    path: str = ""
    terms: List[str] = field(default_factory=list)
    dockerfile: Optional[Any] = None      # parsed Dockerfile, when present
    jenkinsfile: bool = False


@dataclass
class DetectionState:
    """Guards the once-only population of a repository's info."""
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    status: str = "unclassified"
    error: Optional[Exception] = None
