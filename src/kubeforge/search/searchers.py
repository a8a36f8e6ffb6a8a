#!/usr/bin/env python3
"""
KUBEFORGE SEARCHERS - Candidate Discovery
-----------------------------------------
Each searcher turns terms into ComponentMatch candidates from one backend:
the local docker daemon, a remote registry, cluster image streams (by name
or by their `supports` annotation), cluster templates, or template files on
disk. A searcher never raises for a backend failure; it returns whatever it
found together with the errors it met.

Author: KubeForge Team
Date: 2026-10-18
"""

import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from kubeforge.clients.cluster import template_from_manifest
from kubeforge.core.errors import ClientError, ImageNotFound, InvalidArgumentError
from kubeforge.core.models import ComponentMatch, ImageMetadata, ImageStreamRecord
from kubeforge.core.reference import DEFAULT_TAG, ImageReference

logger = logging.getLogger("kubeforge.search")

SearchResult = Tuple[List[ComponentMatch], List[Exception]]

SUPPORTS_ANNOTATION = "supports"
TAGS_ANNOTATION = "tags"


class Searcher(Protocol):
    def search(self, precise: bool, *terms: str) -> SearchResult:
        ...


def partial_scorer(a: str, b: str, prefix: bool, partial: float, none: float) -> float:
    """0.0 when equal, `partial` when one side is unset or a prefix of the other, else `none`."""
    if a == b:
        return 0.0
    if not a or not b:
        return partial
    if prefix and (b.startswith(a) or a.startswith(b)):
        return partial
    return none


def image_match_score(term: ImageReference, candidate: ImageReference) -> Optional[float]:
    """
    Scores a candidate image against a requested one over name, namespace,
    registry and tag. Returns None when the names do not match at all.
    """
    term, candidate = term.minimal(), candidate.minimal()
    name_score = partial_scorer(term.name, candidate.name, True, 0.5, 1.0)
    if name_score == 1.0:
        return None
    total = name_score
    total += partial_scorer(term.namespace, candidate.namespace, False, 0.5, 1.0)
    total += partial_scorer(term.registry, candidate.registry, False, 0.5, 1.0)
    total += partial_scorer(term.tag, candidate.tag, False, 0.5, 1.0)
    return total / 4.0


def _docker_match(term: str, name: str, score: float, info: Optional[ImageMetadata],
                  insecure: bool = False, local_only: bool = False) -> ComponentMatch:
    return ComponentMatch(
        value=term,
        name=name,
        argument=f'--docker-image="{name}"',
        description=f'Docker image "{name}"',
        score=score,
        builder=info.is_builder() if info is not None else False,
        insecure=insecure,
        local_only=local_only,
        image=info,
    )


class DockerRegistrySearcher:
    """Finds images that exist in a remote registry. Only exact matches are produced."""

    def __init__(self, client, allow_insecure: bool = False):
        self.client = client
        self.allow_insecure = allow_insecure

    def search(self, precise: bool, *terms: str) -> SearchResult:
        matches: List[ComponentMatch] = []
        errs: List[Exception] = []
        for term in terms:
            try:
                ref = ImageReference.parse(term)
            except InvalidArgumentError as e:
                errs.append(e)
                continue
            if not ref.tag and not ref.id:
                ref = ref.with_tag(DEFAULT_TAG)
            try:
                info = self.client.inspect_image(str(ref))
            except ImageNotFound:
                logger.debug(f"Registry has no image {ref}")
                continue
            except ClientError as e:
                errs.append(e)
                continue
            logger.debug(f"Registry matched {term} to {ref}")
            matches.append(_docker_match(term, str(ref), 0.0, info, insecure=self.allow_insecure))
        return matches, errs


class DockerClientSearcher:
    """
    Finds images known to the local docker daemon.

    Terms with no local candidate are handed to `registry_searcher` when one
    is configured. A local match the registry does not confirm is flagged
    `local_only`: it can be deployed but not tracked by the cluster.
    """

    def __init__(self, client=None, registry_searcher: Optional[Searcher] = None,
                 insecure: bool = False):
        self.client = client
        self.registry_searcher = registry_searcher
        self.insecure = insecure

    def search(self, precise: bool, *terms: str) -> SearchResult:
        matches: List[ComponentMatch] = []
        errs: List[Exception] = []
        for term in terms:
            found, term_errs = self._search_term(precise, term)
            matches.extend(found)
            errs.extend(term_errs)
        return matches, errs

    def _search_term(self, precise: bool, term: str) -> SearchResult:
        try:
            ref = ImageReference.parse(term)
        except InvalidArgumentError as e:
            return [], [e]

        if self.client is None:
            if self.registry_searcher is None:
                return [], []
            return self.registry_searcher.search(precise, term)

        try:
            local_tags = self.client.list_images()
        except ClientError as e:
            if self.registry_searcher is None:
                return [], [e]
            found, errs = self.registry_searcher.search(precise, term)
            return found, [e] + list(errs)

        scored: List[Tuple[float, str]] = []
        for tag in local_tags:
            try:
                candidate = ImageReference.parse(tag)
            except InvalidArgumentError:
                continue
            score = image_match_score(ref, candidate)
            if score is None or (precise and score != 0.0):
                continue
            scored.append((score, tag))

        if not scored:
            if self.registry_searcher is not None:
                return self.registry_searcher.search(precise, term)
            return [], []

        remote: Dict[str, ComponentMatch] = {}
        errs: List[Exception] = []
        if self.registry_searcher is not None:
            found, remote_errs = self.registry_searcher.search(True, term)
            remote = {m.value: m for m in found if m.exact}
            errs.extend(remote_errs)

        matches = []
        for score, tag in sorted(scored):
            try:
                info = self.client.inspect_image(tag)
            except ImageNotFound:
                continue
            except ClientError as e:
                errs.append(e)
                continue
            local_only = term not in remote
            if local_only:
                logger.debug(f"Image {tag} was found locally but not in a registry")
            matches.append(_docker_match(term, tag, score, info, insecure=self.insecure, local_only=local_only))
        return matches, errs


def _image_stream_info(client, namespace: str, stream: ImageStreamRecord,
                       tag: str, errs: List[Exception]) -> Optional[ImageMetadata]:
    record = stream.latest_tagged_image(tag)
    if record is None:
        return None
    try:
        return client.get_image_stream_image(namespace, stream.name, record.image)
    except ClientError as e:
        errs.append(e)
        return None


class ImageStreamSearcher:
    """Finds image streams by name in the configured namespaces."""

    def __init__(self, client, namespaces: Sequence[str], allow_missing_tags: bool = False):
        self.client = client
        self.namespaces = list(namespaces)
        self.allow_missing_tags = allow_missing_tags

    def search(self, precise: bool, *terms: str) -> SearchResult:
        matches: List[ComponentMatch] = []
        errs: List[Exception] = []
        for term in terms:
            try:
                ref = ImageReference.parse(term)
            except InvalidArgumentError as e:
                errs.append(e)
                continue
            tag = ref.tag or DEFAULT_TAG
            namespaces = [ref.namespace] if ref.namespace else self.namespaces
            for namespace in namespaces:
                try:
                    streams = self.client.list_image_streams(namespace)
                except ClientError as e:
                    errs.append(e)
                    continue
                for stream in streams:
                    score = partial_scorer(ref.name, stream.name, True, 0.5, 1.0)
                    if score == 1.0 or (precise and score != 0.0):
                        continue
                    if stream.latest_tagged_image(tag) is None and not self.allow_missing_tags:
                        logger.debug(f"Image stream {namespace}/{stream.name} has no image for tag {tag}")
                        continue
                    info = _image_stream_info(self.client, namespace, stream, tag, errs)
                    matches.append(ComponentMatch(
                        value=term,
                        name=stream.name,
                        argument=f'--image-stream="{namespace}/{stream.name}:{tag}"',
                        description=f'Image stream "{stream.name}" (tag "{tag}") in project "{namespace}"',
                        score=score,
                        builder=info.is_builder() if info is not None else False,
                        image=info,
                        image_stream=stream,
                        image_tag=tag,
                    ))
        return matches, errs


class ImageStreamByAnnotationSearcher:
    """
    Finds image stream tags whose `supports` annotation names the term.

    Used to find builder images for detected languages. Stream listings are
    cached per namespace for the lifetime of the searcher.
    """

    def __init__(self, client, namespaces: Sequence[str]):
        self.client = client
        self.namespaces = list(namespaces)
        self._lock = threading.Lock()
        self._cache: Dict[str, List[ImageStreamRecord]] = {}
        self._namespace_locks: Dict[str, threading.Lock] = {}

    def _streams(self, namespace: str) -> List[ImageStreamRecord]:
        with self._lock:
            lock = self._namespace_locks.setdefault(namespace, threading.Lock())
        with lock:
            if namespace not in self._cache:
                self._cache[namespace] = self.client.list_image_streams(namespace)
            return self._cache[namespace]

    def search(self, precise: bool, *terms: str) -> SearchResult:
        matches: List[ComponentMatch] = []
        errs: List[Exception] = []
        for term in terms:
            base = term.split(":", 1)[0]
            for namespace in self.namespaces:
                try:
                    streams = self._streams(namespace)
                except ClientError as e:
                    errs.append(e)
                    continue
                for stream in streams:
                    for tag_name, record in stream.tags.items():
                        score = self._score(term, base, record.annotations.get(SUPPORTS_ANNOTATION, ""))
                        if score is None or (precise and score != 0.0):
                            continue
                        info = _image_stream_info(self.client, namespace, stream, tag_name, errs)
                        tags = [t.strip() for t in record.annotations.get(TAGS_ANNOTATION, "").split(",")]
                        matches.append(ComponentMatch(
                            value=term,
                            name=stream.name,
                            argument=f'--image-stream="{namespace}/{stream.name}:{tag_name}"',
                            description=f'Image stream "{stream.name}" (tag "{tag_name}") in project "{namespace}"',
                            score=score,
                            builder="builder" in tags,
                            image=info,
                            image_stream=stream,
                            image_tag=tag_name,
                        ))
        return matches, errs

    @staticmethod
    def _score(term: str, base: str, supports: str) -> Optional[float]:
        best = None
        for item in (s.strip() for s in supports.split(",")):
            if not item:
                continue
            if item == term:
                return 0.0
            if item.split(":", 1)[0] == base:
                best = 0.5
        return best


class TemplateSearcher:
    """Finds templates stored in the cluster."""

    def __init__(self, client, namespaces: Sequence[str]):
        self.client = client
        self.namespaces = list(namespaces)

    def search(self, precise: bool, *terms: str) -> SearchResult:
        matches: List[ComponentMatch] = []
        errs: List[Exception] = []
        for term in terms:
            namespace_hint, _, name = term.rpartition("/")
            namespaces = [namespace_hint] if namespace_hint else self.namespaces
            for namespace in namespaces:
                try:
                    templates = self.client.list_templates(namespace)
                except ClientError as e:
                    errs.append(e)
                    continue
                for template in templates:
                    if template.name == name:
                        score = 0.0
                    elif name in template.name:
                        score = 0.5
                    else:
                        continue
                    if precise and score != 0.0:
                        continue
                    if not template.namespace:
                        template = replace(template, namespace=namespace)
                    matches.append(ComponentMatch(
                        value=term,
                        name=template.name,
                        argument=f'--template="{namespace}/{template.name}"',
                        description=f'Template "{template.name}" in project "{namespace}"',
                        score=score,
                        template=template,
                    ))
        return matches, errs


class TemplateFileSearcher:
    """Treats a term naming an existing YAML or JSON file as a template."""

    def search(self, precise: bool, *terms: str) -> SearchResult:
        matches: List[ComponentMatch] = []
        errs: List[Exception] = []
        for term in terms:
            if not os.path.isfile(term):
                continue
            try:
                data = load_manifest_file(term)
            except (OSError, ValueError, YAMLError) as e:
                errs.append(ClientError(f"unable to read template file {term}: {e}"))
                continue
            if not isinstance(data, dict) or data.get("kind") != "Template":
                errs.append(ClientError(f"{term} is not a template file"))
                continue
            template = template_from_manifest(data)
            matches.append(ComponentMatch(
                value=term,
                name=template.name,
                argument=f'--file="{term}"',
                description=f'Template file "{term}"',
                score=0.0,
                template=template,
            ))
        return matches, errs


def load_manifest_file(path: str):
    with open(path, "r", encoding="utf-8") as f:
        content = f.read()
    if path.endswith(".json"):
        return json.loads(content)
    yaml = YAML(typ="safe")
    return yaml.load(content)


class MultiSearcher:
    """Queries several searchers concurrently and merges their results."""

    def __init__(self, searchers: Sequence[Searcher], max_workers: int = 8):
        self.searchers = list(searchers)
        self.max_workers = max_workers

    def search(self, precise: bool, *terms: str) -> SearchResult:
        if not self.searchers:
            return [], []
        results: Dict[int, List[ComponentMatch]] = {}
        errs: List[Exception] = []
        workers = max(1, min(len(self.searchers), self.max_workers))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(searcher.search, precise, *terms): index
                for index, searcher in enumerate(self.searchers)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    found, searcher_errs = future.result()
                except Exception as e:
                    logger.debug(f"Searcher {self.searchers[index]!r} failed: {e}")
                    errs.append(e)
                    continue
                results[index] = list(found)
                errs.extend(searcher_errs)
        matches = []
        for index in sorted(results):
            matches.extend(results[index])
        return matches, errs
