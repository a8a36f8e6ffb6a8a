#!/usr/bin/env python3
"""
KUBEFORGE OBJECTS - The Generated Graph
---------------------------------------
The object kinds a run can produce. Each kind is a dataclass variant of
GeneratedObject that renders itself with `to_manifest()`; the ObjectList
keeps names unique per kind and merges image streams that share a name.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Optional

from kubeforge.core.environment import ImagePath, SecretSpec
from kubeforge.core.errors import GraphValidationError

logger = logging.getLogger("kubeforge.objects")

INSECURE_ANNOTATION = "openshift.io/image.insecureRepository"
GENERATED_BY_ANNOTATION = "openshift.io/generated-by"
GENERATED_BY = "KubeForgeNewApp"

SOURCE_STRATEGY = "Source"
DOCKER_STRATEGY = "Docker"
PIPELINE_STRATEGY = "JenkinsPipeline"


@dataclass
class GeneratedObject:
    kind: ClassVar[str] = ""
    api_version: ClassVar[str] = ""

    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    def metadata(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {"name": self.name}
        if self.labels:
            meta["labels"] = dict(self.labels)
        annotations = {GENERATED_BY_ANNOTATION: GENERATED_BY}
        annotations.update(self.annotations)
        meta["annotations"] = annotations
        return meta

    def spec(self) -> Dict[str, Any]:
        return {}

    def to_manifest(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata(),
            "spec": self.spec(),
        }


@dataclass
class ImageStream(GeneratedObject):
    """Tracks tagged images. A tag mapped to None is a build output with no pull spec."""
    kind: ClassVar[str] = "ImageStream"
    api_version: ClassVar[str] = "image.openshift.io/v1"

    tags: Dict[str, Optional[str]] = field(default_factory=dict)
    insecure: bool = False

    def merge(self, other: "ImageStream") -> None:
        for tag, source in other.tags.items():
            current = self.tags.get(tag)
            if current is not None and source is not None and current != source:
                raise GraphValidationError([
                    f'image stream "{self.name}" tag "{tag}" would track both {current} and {source}'
                ])
            if current is None:
                self.tags[tag] = source
        self.insecure = self.insecure or other.insecure

    def metadata(self) -> Dict[str, Any]:
        meta = super().metadata()
        if self.insecure:
            meta["annotations"][INSECURE_ANNOTATION] = "true"
        return meta

    def spec(self) -> Dict[str, Any]:
        spec_tags = []
        for tag, source in self.tags.items():
            if source is None:
                continue
            entry: Dict[str, Any] = {
                "name": tag,
                "from": {"kind": "DockerImage", "name": source},
                "importPolicy": {},
            }
            if self.insecure:
                entry["importPolicy"] = {"insecure": True}
            spec_tags.append(entry)
        return {"lookupPolicy": {"local": False}, "tags": spec_tags}


@dataclass
class BuildConfig(GeneratedObject):
    kind: ClassVar[str] = "BuildConfig"
    api_version: ClassVar[str] = "build.openshift.io/v1"

    strategy: str = SOURCE_STRATEGY
    git_uri: str = ""
    git_ref: str = ""
    context_dir: str = ""
    dockerfile: Optional[str] = None
    source_images: List[Dict[str, Any]] = field(default_factory=list)
    secrets: List[SecretSpec] = field(default_factory=list)
    from_ref: Optional[Dict[str, str]] = None
    env: List[Dict[str, str]] = field(default_factory=list)
    output_to: Optional[Dict[str, str]] = None
    webhook_secret: str = ""

    def source(self) -> Dict[str, Any]:
        source: Dict[str, Any] = {}
        if self.git_uri:
            source["type"] = "Git"
            source["git"] = {"uri": self.git_uri}
            if self.git_ref:
                source["git"]["ref"] = self.git_ref
        elif self.dockerfile is not None:
            source["type"] = "Dockerfile"
        elif self.source_images:
            source["type"] = "Image"
        else:
            source["type"] = "None"
        if self.dockerfile is not None:
            source["dockerfile"] = self.dockerfile
        if self.context_dir:
            source["contextDir"] = self.context_dir
        if self.source_images:
            source["images"] = [dict(i) for i in self.source_images]
        if self.secrets:
            source["secrets"] = [s.to_manifest() for s in self.secrets]
        return source

    def strategy_manifest(self) -> Dict[str, Any]:
        if self.strategy == PIPELINE_STRATEGY:
            return {"type": PIPELINE_STRATEGY, "jenkinsPipelineStrategy": {"env": list(self.env)} if self.env else {}}
        key = "dockerStrategy" if self.strategy == DOCKER_STRATEGY else "sourceStrategy"
        body: Dict[str, Any] = {}
        if self.from_ref is not None:
            body["from"] = dict(self.from_ref)
        if self.env:
            body["env"] = list(self.env)
        return {"type": self.strategy, key: body}

    def triggers(self) -> List[Dict[str, Any]]:
        triggers: List[Dict[str, Any]] = []
        if self.git_uri and self.webhook_secret:
            triggers.append({"type": "GitHub", "github": {"secret": self.webhook_secret}})
            triggers.append({"type": "Generic", "generic": {"secret": self.webhook_secret}})
        triggers.append({"type": "ConfigChange"})
        if self.from_ref is not None and self.from_ref.get("kind") == "ImageStreamTag":
            triggers.append({"type": "ImageChange", "imageChange": {}})
        return triggers

    def spec(self) -> Dict[str, Any]:
        output: Dict[str, Any] = {}
        if self.output_to is not None:
            output["to"] = dict(self.output_to)
        return {
            "triggers": self.triggers(),
            "source": self.source(),
            "strategy": self.strategy_manifest(),
            "output": output,
        }


@dataclass
class ContainerSpec:
    name: str
    image: str
    image_trigger: Optional[Dict[str, str]] = None   # ImageStreamTag reference driving redeploys
    env: List[Dict[str, str]] = field(default_factory=list)
    ports: List[str] = field(default_factory=list)
    volume_mounts: List[Dict[str, str]] = field(default_factory=list)

    def to_manifest(self) -> Dict[str, Any]:
        container: Dict[str, Any] = {"name": self.name, "image": self.image}
        if self.ports:
            container["ports"] = [_container_port(p) for p in self.ports]
        if self.env:
            container["env"] = list(self.env)
        if self.volume_mounts:
            container["volumeMounts"] = list(self.volume_mounts)
        return container


def _split_port(port: str):
    number, _, protocol = port.partition("/")
    return int(number), (protocol or "tcp").upper()


def _container_port(port: str) -> Dict[str, Any]:
    number, protocol = _split_port(port)
    return {"containerPort": number, "protocol": protocol}


@dataclass
class DeploymentConfig(GeneratedObject):
    kind: ClassVar[str] = "DeploymentConfig"
    api_version: ClassVar[str] = "apps.openshift.io/v1"

    containers: List[ContainerSpec] = field(default_factory=list)
    volumes: List[Dict[str, Any]] = field(default_factory=list)
    selector: Dict[str, str] = field(default_factory=dict)
    pod_labels: Dict[str, str] = field(default_factory=dict)
    replicas: int = 1

    def triggers(self) -> List[Dict[str, Any]]:
        triggers: List[Dict[str, Any]] = [{"type": "ConfigChange"}]
        for container in self.containers:
            if container.image_trigger is None:
                continue
            triggers.append({
                "type": "ImageChange",
                "imageChangeParams": {
                    "automatic": True,
                    "containerNames": [container.name],
                    "from": dict(container.image_trigger),
                },
            })
        return triggers

    def spec(self) -> Dict[str, Any]:
        pod_spec: Dict[str, Any] = {"containers": [c.to_manifest() for c in self.containers]}
        if self.volumes:
            pod_spec["volumes"] = list(self.volumes)
        return {
            "replicas": self.replicas,
            "selector": dict(self.selector),
            "strategy": {"resources": {}},
            "template": {
                "metadata": {"labels": dict(self.pod_labels)},
                "spec": pod_spec,
            },
            "triggers": self.triggers(),
        }


@dataclass
class Service(GeneratedObject):
    kind: ClassVar[str] = "Service"
    api_version: ClassVar[str] = "v1"

    ports: List[str] = field(default_factory=list)
    selector: Dict[str, str] = field(default_factory=dict)

    def primary_port(self) -> Optional[int]:
        if not self.ports:
            return None
        return _split_port(self.ports[0])[0]

    def spec(self) -> Dict[str, Any]:
        ports = []
        for port in self.ports:
            number, protocol = _split_port(port)
            ports.append({
                "name": f"{number}-{protocol.lower()}",
                "port": number,
                "protocol": protocol,
                "targetPort": number,
            })
        return {"ports": ports, "selector": dict(self.selector)}


@dataclass
class TemplateObject(GeneratedObject):
    """An object produced by processing a template; rendered as given."""
    manifest: Dict[str, Any] = field(default_factory=dict)

    @property
    def object_kind(self) -> str:
        return self.manifest.get("kind", "")

    def to_manifest(self) -> Dict[str, Any]:
        manifest = dict(self.manifest)
        metadata = dict(manifest.get("metadata") or {})
        if self.labels:
            labels = dict(metadata.get("labels") or {})
            for key, value in self.labels.items():
                labels.setdefault(key, value)
            metadata["labels"] = labels
        manifest["metadata"] = metadata
        return manifest


def object_kind(obj: GeneratedObject) -> str:
    if isinstance(obj, TemplateObject):
        return obj.object_kind
    return obj.kind


class ObjectList:
    """
    The ordered result graph.

    Adding an object whose kind and name are already taken merges it when
    it is an ImageStream and is otherwise ignored. Two streams that map
    one tag to different images raise GraphValidationError.
    """

    def __init__(self):
        self._items: List[GeneratedObject] = []
        self._index: Dict[tuple, GeneratedObject] = {}

    def add(self, obj: GeneratedObject) -> GeneratedObject:
        key = (object_kind(obj), obj.name)
        existing = self._index.get(key)
        if existing is not None:
            if isinstance(existing, ImageStream) and isinstance(obj, ImageStream):
                existing.merge(obj)
            else:
                logger.debug(f"Skipping duplicate {key[0]} {obj.name}")
            return existing
        self._index[key] = obj
        self._items.append(obj)
        return obj

    def get(self, kind: str, name: str) -> Optional[GeneratedObject]:
        return self._index.get((kind, name))

    def of_kind(self, kind: str) -> List[GeneratedObject]:
        return [o for o in self._items if object_kind(o) == kind]

    def names(self, kind: str) -> List[str]:
        return [o.name for o in self.of_kind(kind)]

    def to_manifests(self) -> List[Dict[str, Any]]:
        return [o.to_manifest() for o in self._items]

    def __iter__(self) -> Iterator[GeneratedObject]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
