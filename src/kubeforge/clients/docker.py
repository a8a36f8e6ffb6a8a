"""Local Docker image client backed by the docker CLI."""

import json
import logging
from typing import List, Optional

from kubeforge.core.errors import ClientError, ImageNotFound
from kubeforge.core.models import ImageMetadata
from kubeforge.utils.subprocess import run_command

logger = logging.getLogger("kubeforge.clients.docker")


class LocalDockerClient:
    """Lists and inspects images known to the local docker daemon."""

    def __init__(self, binary: str = "docker", timeout: float = 10.0):
        self.binary = binary
        self.timeout = timeout

    def list_images(self, pattern: Optional[str] = None) -> List[str]:
        """Returns `repository:tag` entries, optionally filtered by a reference pattern."""
        args = [self.binary, "image", "ls", "--format", "{{.Repository}}:{{.Tag}}"]
        if pattern:
            args.extend(["--filter", f"reference={pattern}"])
        result = run_command(args, timeout=self.timeout)
        if not result.success:
            raise ClientError(f"unable to list local images: {result.stderr.strip()}")
        tags = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if line and "<none>" not in line:
                tags.append(line)
        return tags

    def inspect_image(self, name: str) -> ImageMetadata:
        result = run_command([self.binary, "image", "inspect", name], timeout=self.timeout)
        if not result.success:
            if "No such image" in result.stderr or "no such image" in result.stderr:
                raise ImageNotFound(name)
            raise ClientError(f"unable to inspect image {name}: {result.stderr.strip()}")
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ClientError(f"unreadable inspect output for {name}: {e}")
        if not data:
            raise ImageNotFound(name)
        logger.debug(f"Inspected local image {name}")
        return ImageMetadata.from_config(data[0].get("Config"), image_id=data[0].get("Id", ""))
