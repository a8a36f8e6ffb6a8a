#!/usr/bin/env python3
"""
KUBEFORGE PLANS - From Matches to Pipelines
-------------------------------------------
A Pipeline is what one component turns into: either an image to deploy
as-is, or a build (from a builder image, a Dockerfile base image or a
Jenkinsfile) whose output may then be deployed. The PlanBuilder assigns
names and output references and rejects builds that would overwrite their
own input image.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from kubeforge.core.environment import Environment, ImagePath, SecretSpec, validate_docker_secrets
from kubeforge.core.errors import CircularOutputReferenceError
from kubeforge.core.models import ComponentInput, ComponentMatch, ImageMetadata
from kubeforge.core.reference import DEFAULT_TAG, ImageRef, ImageReference
from kubeforge.generate.objects import DOCKER_STRATEGY, PIPELINE_STRATEGY, SOURCE_STRATEGY
from kubeforge.source.repository import SourceRepository

logger = logging.getLogger("kubeforge.plan")

CIRCULAR_HINT = "please specify a different output reference with --to"


@dataclass
class BuildPlan:
    name: str
    strategy: str
    source: Optional[SourceRepository] = None
    input: Optional[ImageRef] = None           # builder image, or the Dockerfile's base image
    output: Optional[ImageRef] = None
    env: Environment = field(default_factory=Environment)
    secrets: List[SecretSpec] = field(default_factory=list)
    source_image: Optional[ImageRef] = None
    source_image_paths: List[ImagePath] = field(default_factory=list)


@dataclass
class Pipeline:
    name: str
    group_id: int = 0
    image: Optional[ImageRef] = None           # what a deployment runs
    build: Optional[BuildPlan] = None
    deploy: bool = True


def image_ref_from_match(match: ComponentMatch, insecure: bool = False) -> ImageRef:
    """The image a resolved match points at, tracked by a stream unless it only exists locally."""
    if match.image_stream is not None:
        stream = match.image_stream
        ref = ImageReference(namespace=stream.namespace, name=stream.name, tag=match.image_tag or DEFAULT_TAG)
        return ImageRef(
            reference=ref,
            info=match.image,
            existing_stream=stream,
            namespace=stream.namespace,
        )
    ref = ImageReference.parse(match.name)
    return ImageRef(
        reference=ref,
        as_image_stream=not match.local_only,
        insecure=match.insecure or insecure,
        info=match.image,
    )


def dockerfile_metadata(dockerfile, base: Optional[ImageMetadata]) -> ImageMetadata:
    ports = dockerfile.exposed_ports() if dockerfile is not None else []
    volumes = dockerfile.volumes() if dockerfile is not None else []
    if base is not None:
        ports = ports or list(base.exposed_ports)
        volumes = volumes + [v for v in base.volumes if v not in volumes]
    return ImageMetadata(exposed_ports=ports, volumes=volumes)


class PlanBuilder:
    """Turns resolved components and repositories into named pipelines."""

    def __init__(self, ctx):
        self.ctx = ctx
        self.config = ctx.config

    def image_pipeline(self, component: ComponentInput) -> Pipeline:
        image = image_ref_from_match(component.resolved_match, self.config.insecure_registry)
        name = self.ctx.names.generate(self.config.name or image.suggested_name())
        if self.config.name and image.existing_stream is None:
            image.object_name = name
        if not image.as_image_stream:
            self.ctx.warn(
                f'the image "{component.resolved_match.name}" was only found locally; '
                f"it must be available on every node that runs it"
            )
        return Pipeline(name=name, group_id=component.group_id, image=image)

    def build_pipeline(self, component: Optional[ComponentInput], repo: Optional[SourceRepository],
                       strategy: str, group_id: int, env: Environment,
                       source_image: Optional[ImageRef] = None,
                       source_image_paths: Optional[List[ImagePath]] = None,
                       secrets: Optional[List[SecretSpec]] = None) -> Pipeline:
        input_ref = None
        if component is not None and component.resolved_match is not None:
            input_ref = image_ref_from_match(component.resolved_match, self.config.insecure_registry)

        name = self.ctx.names.generate(self._build_name(repo, input_ref))
        output = None if strategy == PIPELINE_STRATEGY else self._output_ref(name)
        self.validate_output(input_ref, output)

        if secrets is None:
            secrets = list(repo.secrets) if repo is not None else []
        if strategy == DOCKER_STRATEGY:
            validate_docker_secrets(secrets)

        if output is not None:
            if strategy == DOCKER_STRATEGY:
                dockerfile = repo.info.dockerfile if repo is not None and repo.info is not None else None
                output.info = dockerfile_metadata(dockerfile, input_ref.info if input_ref else None)
            elif input_ref is not None:
                output.info = input_ref.info

        build = BuildPlan(
            name=name,
            strategy=strategy,
            source=repo,
            input=input_ref,
            output=output,
            env=env,
            secrets=secrets,
            source_image=source_image,
            source_image_paths=list(source_image_paths or []),
        )
        deploy = (
            not self.config.expect_to_build
            and strategy != PIPELINE_STRATEGY
            and output is not None
        )
        logger.debug(f"Planned {strategy} build {name} (input={input_ref and input_ref.display()})")
        return Pipeline(name=name, group_id=group_id, image=output, build=build, deploy=deploy)

    def _build_name(self, repo: Optional[SourceRepository], input_ref: Optional[ImageRef]) -> str:
        if self.config.name:
            return self.config.name
        if repo is not None and repo.suggested_name():
            return repo.suggested_name()
        if self.config.to:
            return ImageReference.parse(self.config.to).name.split("/")[-1]
        if input_ref is not None:
            return input_ref.suggested_name().split("/")[-1]
        return "build"

    def _output_ref(self, name: str) -> Optional[ImageRef]:
        if self.config.no_output:
            return None
        if self.config.to:
            ref = ImageReference.parse(self.config.to)
            if self.config.output_docker:
                return ImageRef(reference=ref, as_image_stream=False, output_image=True)
            return ImageRef(
                reference=ref.with_tag(ref.tag or DEFAULT_TAG),
                output_image=True,
                object_name=ref.name.split("/")[-1],
                namespace=ref.namespace,
            )
        if self.config.output_docker:
            return ImageRef(reference=ImageReference(name=name, tag=DEFAULT_TAG), as_image_stream=False, output_image=True)
        return ImageRef(reference=ImageReference(name=name, tag=DEFAULT_TAG), output_image=True, object_name=name)

    def validate_output(self, input_ref: Optional[ImageRef], output: Optional[ImageRef]) -> None:
        """
        Rejects a build whose output is its own input.

        With an explicit --to the user asked for exactly that, so it only
        earns a warning.
        """
        if input_ref is None or output is None:
            return
        if input_ref.identity() != output.identity():
            return
        if self.config.to:
            self.ctx.warn(f'the input and output image stream tags are identical ("{output.display()}")')
            return
        raise CircularOutputReferenceError(input_ref.display(), hint=CIRCULAR_HINT)


def strategy_for(repo: Optional[SourceRepository], default: str = "") -> str:
    """The build strategy for an explicit builder paired with a repository."""
    requested = (repo.strategy if repo is not None else "") or default
    if requested == "docker" or (repo is not None and repo.dockerfile):
        return DOCKER_STRATEGY
    if requested == "pipeline":
        return PIPELINE_STRATEGY
    return SOURCE_STRATEGY
