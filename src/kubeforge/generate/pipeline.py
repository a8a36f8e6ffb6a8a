#!/usr/bin/env python3
"""
KUBEFORGE GENERATION PIPELINE - From Intent to Objects
------------------------------------------------------
The central coordinator of a new-app or new-build run. Inputs flow
through a fixed sequence of phases: flag validation, collection,
concurrent resolution and detection, source pairing, builder discovery,
planning, and finally emission of the object graph.

Per-input failures are collected on the GenerationContext and raised
together as one AggregateError. Contradictory intent (a Dockerfile with a
conflicting strategy or several repositories, a build that would
overwrite its own input) is fatal and raised on its own.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
import secrets as token_source
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from kubeforge.core.environment import (
    Environment,
    parse_secrets,
    parse_source_image_paths,
    validate_docker_secrets,
)
from kubeforge.core.errors import (
    ErrMissingFrom,
    ErrNoLanguageDetected,
    GraphValidationError,
    InvalidArgumentError,
    SourcePairingError,
    StrategyConflictError,
    aggregate,
)
from kubeforge.core.models import ComponentInput, port_sort_key
from kubeforge.core.reference import ImageRef
from kubeforge.generate.context import GenerationContext
from kubeforge.generate.objects import (
    DOCKER_STRATEGY,
    PIPELINE_STRATEGY,
    SOURCE_STRATEGY,
    BuildConfig,
    ContainerSpec,
    DeploymentConfig,
    ImageStream,
    ObjectList,
    Service,
    TemplateObject,
)
from kubeforge.generate.plan import Pipeline, PlanBuilder, image_ref_from_match, strategy_for
from kubeforge.generate.refbuilder import MAX_NAME_LENGTH, MIN_NAME_LENGTH, UniqueNameGenerator, sanitize_name
from kubeforge.generate.templates import parse_template_parameters, process_template
from kubeforge.rules.labels import LabelPolicy
from kubeforge.search.resolvers import (
    FirstMatchResolver,
    PerfectMatchWeightedResolver,
    UniqueExactOrInexactMatchResolver,
    WeightedSearcher,
    resolve_components,
)
from kubeforge.search.searchers import MultiSearcher
from kubeforge.source.detector import SourceRepositoryEnumerator
from kubeforge.source.inspector import SourceInspector
from kubeforge.source.repository import STRATEGIES, SourceRepository
from kubeforge.validator.validator import GraphValidator

logger = logging.getLogger("kubeforge.pipeline")

DOCKERFILE_STRATEGY_CONFLICT = "when directly referencing a Dockerfile, the strategy must must be 'docker'"
DOCKERFILE_MULTIPLE_SOURCES = "--dockerfile cannot be used with multiple source repositories"
DOCKER_IMAGE_WEIGHT = 2.0

INVALID_NAME_HINT = (
    "Must be a lower case alphanumeric (a-z, and 0-9) string with a maximum length of "
    f"{MAX_NAME_LENGTH} characters, where the first character is a letter (a-z), and the '-' "
    "character is allowed anywhere except the first or last character."
)


@dataclass
class AppResult:
    """What a successful run hands back to the caller."""
    objects: ObjectList
    name: str = ""
    namespace: str = ""
    has_source: bool = False
    warnings: List[str] = field(default_factory=list)


@dataclass
class _RunFlags:
    """Flag values parsed once up front."""
    env: Environment
    build_env: Environment
    secrets: list
    source_image_paths: list
    template_params: Dict[str, str]


def _stream_owner(ref: ImageRef) -> str:
    """What a stream tracks: the repository of a pulled image, or a build's destination."""
    if ref.output_image:
        return f"output:{ref.namespace}/{ref.suggested_name()}"
    source = ref.reference.docker_client_defaults()
    return f"{source.registry}/{source.namespace}/{source.name}"


class GenerationPipeline:
    """
    Runs one generation from an AppConfig.

    Collaborators (searchers, detector, inspector) come from the config;
    a missing searcher simply leaves the matching flag without a resolver.
    """

    def __init__(self, config):
        self.config = config
        self.inspector = config.inspector
        self.detector = config.detector
        if self.detector is None:
            self.detector = SourceRepositoryEnumerator(self.inspector or SourceInspector())

    def run(self) -> AppResult:
        ctx = GenerationContext(config=self.config)

        # --- PHASE 1: FLAG VALIDATION ---
        # Anything wrong here is contradictory or malformed intent: fatal.
        flags = self._validate_flags()

        # --- PHASE 2: COLLECTION ---
        self._collect(ctx, flags)

        # --- PHASE 3: RESOLUTION & DETECTION ---
        pending = list(ctx.components)
        if ctx.source_image is not None:
            pending.append(ctx.source_image)
        ctx.record(resolve_components(pending, max_workers=self.config.max_workers))
        ctx.record(self.detector.detect_all(ctx.repositories, max_workers=self.config.max_workers))
        self._mark_builds(ctx)

        # --- PHASE 4: SOURCE PAIRING ---
        self._ensure_has_source(ctx)

        # --- PHASE 5: BUILDERS FOR UNPAIRED REPOSITORIES ---
        repo_builds = self._repository_builds(ctx)

        err = aggregate(ctx.errors)
        if err is not None:
            raise err

        # --- PHASE 6: PLANNING ---
        self._plan(ctx, flags, repo_builds)

        # --- PHASE 7: EMISSION ---
        self._name_streams(ctx)
        objects = ObjectList()
        self._emit_builds(ctx, objects)
        if not self.config.expect_to_build:
            self._emit_deployments(ctx, flags.env, objects)
        template_names = self._emit_templates(ctx, flags, objects)

        err = aggregate(ctx.errors)
        if err is not None:
            raise err

        name = self._result_name(ctx, template_names)

        # --- PHASE 8: LABELS & VALIDATION ---
        labels = dict(self.config.labels) or ({"app": name} if name else {})
        policy = LabelPolicy(labels)
        for obj in objects:
            _, changes = policy.protect(obj)
            for change in changes:
                logger.debug(change)

        valid, problems = GraphValidator(allow_identical_output=bool(self.config.to)).validate_graph(
            objects.to_manifests()
        )
        if not valid:
            raise GraphValidationError(problems)

        logger.info(f"Generated {len(objects)} object(s) for {name or 'the application'}")
        return AppResult(
            objects=objects,
            name=name,
            namespace=self.config.namespace,
            has_source=bool(ctx.repositories),
            warnings=list(ctx.warnings),
        )

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def _validate_flags(self) -> _RunFlags:
        config = self.config
        if config.strategy not in STRATEGIES:
            raise InvalidArgumentError(
                f"unknown build strategy {config.strategy!r}, must be one of: source, docker, pipeline"
            )
        if config.dockerfile:
            if config.strategy not in ("", "docker"):
                raise StrategyConflictError(DOCKERFILE_STRATEGY_CONFLICT)
            if len(config.source_repositories) > 1:
                raise StrategyConflictError(DOCKERFILE_MULTIPLE_SOURCES)
        if bool(config.source_image) != bool(config.source_image_path):
            raise InvalidArgumentError("--source-image and --source-image-path must be specified together")
        if config.name:
            sanitized = sanitize_name(config.name)
            if sanitized != config.name or len(sanitized) < MIN_NAME_LENGTH or config.name.endswith("-"):
                raise InvalidArgumentError(f"invalid name: {config.name}. {INVALID_NAME_HINT}")

        env = Environment.parse(config.environment)
        build_env = Environment.parse(config.build_environment)
        if config.add_environment_to_build:
            build_env.add_environment(env)

        return _RunFlags(
            env=env,
            build_env=build_env,
            secrets=parse_secrets(config.secrets),
            source_image_paths=parse_source_image_paths(config.source_image_path),
            template_params=parse_template_parameters(config.template_parameters),
        )

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def _weighted_resolver(self, groups) -> Optional[PerfectMatchWeightedResolver]:
        groups = [[WeightedSearcher(s, w) for s, w in group if s is not None] for group in groups]
        groups = [g for g in groups if g]
        if not groups:
            return None
        return PerfectMatchWeightedResolver(groups)

    def _component_resolver(self):
        config = self.config
        return self._weighted_resolver([
            [(config.image_stream_searcher, 0.0), (config.template_searcher, 0.0)],
            [(config.template_file_searcher, 0.0)],
            [(config.docker_searcher, DOCKER_IMAGE_WEIGHT)],
        ])

    def _builder_resolver(self):
        config = self.config
        return self._weighted_resolver([
            [(config.image_stream_by_annotation_searcher, 0.0)],
            [(config.image_stream_searcher, 1.0)],
            [(config.docker_searcher, DOCKER_IMAGE_WEIGHT)],
        ])

    def _image_resolver(self):
        searchers = [s for s in (self.config.image_stream_searcher, self.config.docker_searcher) if s is not None]
        if not searchers:
            return None
        return UniqueExactOrInexactMatchResolver(MultiSearcher(searchers, max_workers=self.config.max_workers))

    @staticmethod
    def _unique_resolver(searcher, qualifier: str = ""):
        if searcher is None:
            return None
        return UniqueExactOrInexactMatchResolver(searcher, qualifier)

    def _collect(self, ctx: GenerationContext, flags: _RunFlags) -> None:
        config = self.config
        refs = ctx.refs

        def configure_with(resolver):
            def configure(component: ComponentInput) -> None:
                component.resolver = resolver
            return configure

        refs.add_components(config.components, configure_with(self._component_resolver()))
        refs.add_components(
            config.image_streams,
            configure_with(self._unique_resolver(config.image_stream_searcher, "image stream")),
            from_flag="--image-stream",
        )
        refs.add_components(
            config.docker_images,
            configure_with(self._unique_resolver(config.docker_searcher, "docker image")),
            from_flag="--docker-image",
        )
        refs.add_components(
            config.templates,
            configure_with(self._unique_resolver(config.template_searcher, "template")),
            from_flag="--template",
        )
        file_resolver = FirstMatchResolver(config.template_file_searcher) if config.template_file_searcher else None
        refs.add_components(config.template_files, configure_with(file_resolver), from_flag="--file")

        for location in config.source_repositories:
            refs.add_source_repository(location)
        refs.add_groups(config.groups)

        components, repositories, errors = refs.result()
        ctx.record(errors)

        for repo in repositories:
            if not repo.context_dir and config.context_dir:
                repo.context_dir = config.context_dir.strip("/")
            if not repo.strategy:
                repo.strategy = config.strategy

        if config.dockerfile:
            if len(repositories) > 1:
                raise StrategyConflictError(DOCKERFILE_MULTIPLE_SOURCES)
            if repositories:
                repositories[0].dockerfile = config.dockerfile
            else:
                repositories.append(refs.add_repository(
                    SourceRepository.from_dockerfile(config.dockerfile)
                ))

        for repo in repositories:
            repo.add_secrets(flags.secrets)
            if repo.strategy == "docker" or repo.dockerfile:
                try:
                    validate_docker_secrets(repo.secrets)
                except InvalidArgumentError as e:
                    ctx.record([e])

        if config.source_image:
            ctx.source_image = ComponentInput(
                value=config.source_image,
                argument=f"--source-image={config.source_image}",
                from_flag="--source-image",
                resolver=self._image_resolver(),
            )

        ctx.components = components
        ctx.repositories = repositories
        logger.debug(f"Collected {len(components)} component(s) and {len(repositories)} repository(ies)")

    # ------------------------------------------------------------------
    # Phases 3-5
    # ------------------------------------------------------------------

    def _mark_builds(self, ctx: GenerationContext) -> None:
        """In build mode every image input is a builder for some source."""
        for component in ctx.components:
            match = component.resolved_match
            if match is None:
                continue
            if match.is_template():
                if component.expect_to_build or self.config.expect_to_build:
                    ctx.record([InvalidArgumentError(
                        f'template "{match.name}" cannot be used as a builder image'
                    )])
                continue
            if self.config.expect_to_build:
                component.expect_to_build = True

    def _ensure_has_source(self, ctx: GenerationContext) -> None:
        needing = [
            c for c in ctx.components
            if c.resolved_match is not None and c.resolved_match.is_image() and c.needs_source()
        ]
        if not needing:
            return
        repos = list(ctx.repositories)
        if len(repos) == 1:
            for component in needing:
                component.use(repos[0])
                repos[0].use_with(component)
            return
        if len(repos) > 1:
            suggestions = [f"{c.value}~{r}" for c in needing for r in repos]
            ctx.record([SourcePairingError(
                "there are multiple code locations provided - use one of the following suggestions "
                "to declare which code goes with the image:\n  " + "\n  ".join(suggestions)
            )])
            return
        if ctx.source_image is not None:
            return
        ctx.record([SourcePairingError(
            "the following images require source code: " + ", ".join(c.value for c in needing)
        )])

    def _repository_builds(self, ctx: GenerationContext) -> List[Tuple[Optional[ComponentInput], SourceRepository, str]]:
        """Works out how each repository without an explicit builder gets built."""
        builds = []
        builder_resolver = self._builder_resolver()
        from_resolver = self._image_resolver()
        for repo in ctx.repositories:
            if repo.used_by or repo.info is None:
                continue
            info = repo.info
            strategy = repo.strategy

            if strategy == "pipeline" or (info.jenkinsfile and strategy == "" and not repo.dockerfile):
                builds.append((None, repo, PIPELINE_STRATEGY))
                continue

            if info.dockerfile is not None and strategy in ("", "docker"):
                base = info.dockerfile.base_image()
                if not base:
                    ctx.record([ErrMissingFrom(repo.location)])
                    continue
                component = ComponentInput(value=base, argument=f"FROM {base}", from_flag="FROM", resolver=from_resolver)
                builds.append((component, repo, DOCKER_STRATEGY))
            elif strategy == "docker":
                ctx.record([InvalidArgumentError(
                    f'the docker strategy was requested but the repository "{repo}" has no Dockerfile'
                )])
                continue
            elif not info.terms:
                ctx.record([ErrNoLanguageDetected(str(repo))])
                continue
            else:
                component = ComponentInput(
                    value=info.terms[0],
                    argument=f"{info.terms[0]}~{repo}",
                    from_flag="detected",
                    resolver=builder_resolver,
                )
                builds.append((component, repo, SOURCE_STRATEGY))

            component.use(repo)
            repo.use_with(component)
            ctx.refs.add_component(component)

        generated = [c for c, _, _ in builds if c is not None]
        ctx.record(resolve_components(generated, max_workers=self.config.max_workers))
        return builds

    # ------------------------------------------------------------------
    # Phase 6
    # ------------------------------------------------------------------

    def _plan(self, ctx: GenerationContext, flags: _RunFlags, repo_builds) -> None:
        planner = PlanBuilder(ctx)
        source_image: Optional[ImageRef] = None
        if ctx.source_image is not None and ctx.source_image.resolved_match is not None:
            source_image = image_ref_from_match(ctx.source_image.resolved_match, self.config.insecure_registry)

        def build(component, repo, strategy, group_id):
            try:
                ctx.pipelines.append(planner.build_pipeline(
                    component, repo, strategy, group_id, flags.build_env,
                    source_image=source_image,
                    source_image_paths=flags.source_image_paths,
                    secrets=None if repo is not None else list(flags.secrets),
                ))
            except InvalidArgumentError as e:
                ctx.record([e])

        for component in ctx.components:
            match = component.resolved_match
            if match is None or match.is_template():
                continue
            if component.uses is not None:
                build(component, component.uses, strategy_for(component.uses, self.config.strategy), component.group_id)
            elif component.expect_to_build and source_image is not None:
                build(component, None, SOURCE_STRATEGY, component.group_id)
            elif not component.expect_to_build:
                ctx.pipelines.append(planner.image_pipeline(component))

        for component, repo, strategy in repo_builds:
            if component is not None and component.resolved_match is None:
                continue
            group_id = component.group_id if component is not None else ctx.refs.new_group()
            build(component, repo, strategy, group_id)

    # ------------------------------------------------------------------
    # Phase 7
    # ------------------------------------------------------------------

    def _name_streams(self, ctx: GenerationContext) -> None:
        """
        Gives every image stream the run creates a name of its own.

        Build outputs keep their names. A build's input may share the
        stream of that build's output; any other image whose base name is
        already taken by a different repository gets a suffixed stream.
        """
        names = UniqueNameGenerator()
        owners: Dict[str, Set[str]] = {}
        claimed: Dict[int, str] = {}

        def claim(ref: Optional[ImageRef], shared: str = "") -> None:
            if ref is None or not ref.as_image_stream or ref.existing_stream is not None:
                return
            owner = _stream_owner(ref)
            name = ref.suggested_name()
            taken = owners.get(name)
            if taken and owner not in taken and shared not in taken:
                name = names.generate(name)
                logger.debug(f"Image stream name {ref.suggested_name()} is taken, using {name} for {owner}")
            names.reserve(name)
            owners.setdefault(name, set()).add(owner)
            ref.object_name = name
            claimed[id(ref)] = owner

        for pipeline in ctx.pipelines:
            if pipeline.build is not None and pipeline.build.output is not None:
                claim(pipeline.build.output)
        for pipeline in ctx.pipelines:
            plan = pipeline.build
            if plan is None:
                claim(pipeline.image)
                continue
            own_output = claimed.get(id(plan.output), "")
            claim(plan.input, shared=own_output)
            claim(plan.source_image)

    def _image_stream_for(self, ref: Optional[ImageRef]) -> Optional[ImageStream]:
        if ref is None or not ref.as_image_stream or ref.existing_stream is not None:
            return None
        if ref.output_image:
            return ImageStream(name=ref.suggested_name(), tags={ref.tag: None})
        source = ref.reference
        pull_spec = str(source) if source.id else str(source.with_tag(ref.tag))
        return ImageStream(name=ref.suggested_name(), tags={ref.tag: pull_spec}, insecure=ref.insecure)

    def _git_uri(self, repo: Optional[SourceRepository]) -> str:
        if repo is None or repo.is_dockerfile_only():
            return ""
        if repo.remote or self.inspector is None:
            return repo.base_location
        return self.inspector.remote_url(repo.location)

    def _emit_builds(self, ctx: GenerationContext, objects: ObjectList) -> None:
        for pipeline in ctx.pipelines:
            plan = pipeline.build
            if plan is None:
                stream = self._image_stream_for(pipeline.image)
                if stream is not None:
                    objects.add(stream)
                continue

            for ref in (plan.input, plan.source_image, plan.output):
                stream = self._image_stream_for(ref)
                if stream is not None:
                    objects.add(stream)

            repo = plan.source
            git_uri = self._git_uri(repo)
            source_images = []
            if plan.source_image is not None:
                source_images.append({
                    "from": plan.source_image.object_reference(),
                    "paths": [p.to_manifest() for p in plan.source_image_paths],
                })
            objects.add(BuildConfig(
                name=plan.name,
                strategy=plan.strategy,
                git_uri=git_uri,
                git_ref=repo.ref if repo is not None else "",
                context_dir=repo.context_dir if repo is not None else "",
                dockerfile=repo.dockerfile if repo is not None and repo.dockerfile else None,
                source_images=source_images,
                secrets=list(plan.secrets),
                from_ref=plan.input.object_reference() if plan.input is not None else None,
                env=plan.env.to_env_vars(),
                output_to=plan.output.object_reference() if plan.output is not None else None,
                webhook_secret=token_source.token_hex(10) if git_uri else "",
            ))

    def _container_for(self, pipeline: Pipeline, env: Environment) -> ContainerSpec:
        image = pipeline.image
        if image.as_image_stream:
            trigger = image.object_reference()
            pull = trigger["name"]
        else:
            trigger = None
            pull = str(image.reference)
        return ContainerSpec(
            name=pipeline.name,
            image=pull,
            image_trigger=trigger,
            env=env.to_env_vars(),
            ports=image.exposed_ports(),
        )

    def _emit_deployments(self, ctx: GenerationContext, env: Environment, objects: ObjectList) -> None:
        groups: Dict[int, List[Pipeline]] = {}
        for pipeline in ctx.pipelines:
            if pipeline.deploy and pipeline.image is not None:
                groups.setdefault(pipeline.group_id, []).append(pipeline)

        for members in groups.values():
            name = members[0].name
            selector = {"deploymentconfig": name}
            containers = []
            volumes = []
            ports: List[str] = []
            for pipeline in members:
                container = self._container_for(pipeline, env)
                info = pipeline.image.info
                for path in (info.volumes if info is not None else []):
                    volume_name = f"{name}-volume-{len(volumes) + 1}"
                    volumes.append({"name": volume_name, "emptyDir": {}})
                    container.volume_mounts.append({"name": volume_name, "mountPath": path})
                for port in container.ports:
                    if port not in ports:
                        ports.append(port)
                containers.append(container)

            objects.add(DeploymentConfig(
                name=name,
                containers=containers,
                volumes=volumes,
                selector=dict(selector),
                pod_labels=dict(selector),
            ))
            if ports:
                objects.add(Service(name=name, ports=sorted(ports, key=port_sort_key), selector=dict(selector)))

    def _emit_templates(self, ctx: GenerationContext, flags: _RunFlags, objects: ObjectList) -> List[str]:
        names = []
        for component in ctx.components:
            match = component.resolved_match
            if match is None or not match.is_template() or component.expect_to_build:
                continue
            try:
                processed = process_template(match.template, flags.template_params)
            except InvalidArgumentError as e:
                ctx.record([e])
                continue
            names.append(match.template.name)
            for manifest in processed:
                obj_name = (manifest.get("metadata") or {}).get("name", "")
                objects.add(TemplateObject(name=obj_name, manifest=manifest))
        if flags.template_params and not names and not ctx.errors:
            ctx.record([InvalidArgumentError("template parameters were provided but no template was specified")])
        return names

    def _result_name(self, ctx: GenerationContext, template_names: List[str]) -> str:
        for pipeline in ctx.pipelines:
            if pipeline.deploy:
                return pipeline.name
        if ctx.pipelines:
            return ctx.pipelines[0].name
        if template_names:
            return template_names[0]
        return ""

