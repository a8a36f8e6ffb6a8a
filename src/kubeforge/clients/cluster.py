"""Cluster object client backed by kubectl."""

import json
import logging
from typing import Any, Dict, List, Optional

from kubeforge.core.errors import ClientError, ImageNotFound
from kubeforge.core.models import (
    ImageMetadata,
    ImageStreamRecord,
    TagRecord,
    TemplateParameter,
    TemplateRecord,
)
from kubeforge.utils.subprocess import run_command

logger = logging.getLogger("kubeforge.clients.cluster")


def image_stream_from_manifest(item: Dict[str, Any]) -> ImageStreamRecord:
    metadata = item.get("metadata") or {}
    spec = item.get("spec") or {}
    status = item.get("status") or {}
    tags: Dict[str, TagRecord] = {}
    for spec_tag in spec.get("tags") or []:
        tags[spec_tag["name"]] = TagRecord(
            name=spec_tag["name"],
            annotations=dict(spec_tag.get("annotations") or {}),
        )
    for status_tag in status.get("tags") or []:
        record = tags.setdefault(status_tag["tag"], TagRecord(name=status_tag["tag"]))
        items = status_tag.get("items") or []
        if items:
            record.image = items[0].get("image", "")
    return ImageStreamRecord(
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", ""),
        docker_image_repository=status.get("dockerImageRepository") or spec.get("dockerImageRepository", ""),
        tags=tags,
        generation=int(metadata.get("generation") or 0),
    )


def template_from_manifest(item: Dict[str, Any]) -> TemplateRecord:
    metadata = item.get("metadata") or {}
    annotations = metadata.get("annotations") or {}
    return TemplateRecord(
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", ""),
        description=annotations.get("description", ""),
        parameters=[
            TemplateParameter(
                name=p["name"],
                value=str(p.get("value", "")),
                description=p.get("description", ""),
                required=bool(p.get("required", False)),
            )
            for p in item.get("parameters") or []
        ],
        objects=list(item.get("objects") or []),
        labels=dict(item.get("labels") or {}),
    )


class ClusterClient:
    """Reads image streams, templates and secrets, and creates objects."""

    def __init__(self, binary: str = "kubectl", context: Optional[str] = None, timeout: float = 30.0):
        self.binary = binary
        self.context = context
        self.timeout = timeout

    def _kubectl(self, *args: str, input_text: Optional[str] = None) -> Any:
        cmd = [self.binary]
        if self.context:
            cmd.extend(["--context", self.context])
        cmd.extend(args)
        result = run_command(cmd, timeout=self.timeout, input_text=input_text)
        if result.timed_out:
            raise ClientError(f"kubectl {' '.join(args)} timed out after {self.timeout}s")
        if not result.success:
            stderr = result.stderr.strip()
            if "NotFound" in stderr or "not found" in stderr:
                raise ImageNotFound(args[-1] if args else "")
            raise ClientError(f"kubectl {' '.join(args)} failed: {stderr}")
        try:
            return json.loads(result.stdout) if result.stdout.strip() else {}
        except json.JSONDecodeError as e:
            raise ClientError(f"unreadable kubectl output: {e}")

    def _list(self, resource: str, namespace: str) -> List[Dict[str, Any]]:
        data = self._kubectl("get", resource, "-n", namespace, "-o", "json")
        return list(data.get("items") or [])

    def list_image_streams(self, namespace: str) -> List[ImageStreamRecord]:
        return [image_stream_from_manifest(i) for i in self._list("imagestreams", namespace)]

    def get_image_stream(self, namespace: str, name: str) -> ImageStreamRecord:
        return image_stream_from_manifest(self._kubectl("get", "imagestream", name, "-n", namespace, "-o", "json"))

    def get_image_stream_image(self, namespace: str, name: str, image_id: str) -> ImageMetadata:
        data = self._kubectl("get", "imagestreamimage", f"{name}@{image_id}", "-n", namespace, "-o", "json")
        docker_metadata = (data.get("image") or {}).get("dockerImageMetadata") or {}
        return ImageMetadata.from_config(docker_metadata.get("Config"), image_id=image_id)

    def list_templates(self, namespace: str) -> List[TemplateRecord]:
        return [template_from_manifest(i) for i in self._list("templates", namespace)]

    def list_secrets(self, namespace: str) -> List[Dict[str, Any]]:
        return self._list("secrets", namespace)

    def create(self, manifest: Dict[str, Any], namespace: str) -> Dict[str, Any]:
        logger.info(f"Creating {manifest.get('kind')} {manifest.get('metadata', {}).get('name')}")
        return self._kubectl("create", "-n", namespace, "-o", "json", "-f", "-", input_text=json.dumps(manifest))
