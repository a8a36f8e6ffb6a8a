#!/usr/bin/env python3
"""
KUBEFORGE DETECTOR - Source Classification
------------------------------------------
Works out what a repository is written in (by its file signature), whether
it carries a Dockerfile, and whether it declares a Jenkins pipeline.

Each repository is classified at most once; the state moves from
unclassified through detecting to classified or failed, and a second
request returns the cached result.

Author: KubeForge Team
Date: 2026-10-18
"""

import fnmatch
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from kubeforge.core.errors import KubeForgeError
from kubeforge.core.models import SourceRepositoryInfo
from kubeforge.source.dockerfile import DockerfileTester, parse_dockerfile
from kubeforge.source.repository import SourceRepository

logger = logging.getLogger("kubeforge.source.detector")

UNCLASSIFIED = "unclassified"
DETECTING = "detecting"
CLASSIFIED = "classified"
FAILED = "failed"

JENKINSFILE_NAME = "Jenkinsfile"


@dataclass(frozen=True)
class Detector:
    """A platform recognised by any of a set of top-level file patterns."""
    platform: str
    patterns: Tuple[str, ...]

    def detect(self, files: Sequence[str]) -> Optional[str]:
        for pattern in self.patterns:
            if any(fnmatch.fnmatchcase(name, pattern) for name in files):
                return self.platform
        return None


DEFAULT_DETECTORS: Tuple[Detector, ...] = (
    Detector("ruby", ("Gemfile", "Rakefile", "config.ru")),
    Detector("jee", ("pom.xml",)),
    Detector("nodejs", ("package.json",)),
    Detector("perl", ("cpanfile", "index.pl")),
    Detector("php", ("index.php", "composer.json")),
    Detector("python", ("requirements.txt", "setup.py")),
    Detector("golang", ("main.go", "Godeps")),
    Detector("dotnet", ("project.json", "*.csproj")),
)


class SourceRepositoryEnumerator:
    """Runs the detectors and the Dockerfile tester against repositories."""

    def __init__(self, inspector, detectors: Sequence[Detector] = DEFAULT_DETECTORS,
                 tester: Optional[DockerfileTester] = None):
        self.inspector = inspector
        self.detectors = list(detectors)
        self.tester = tester or DockerfileTester()

    def detect(self, repo: SourceRepository) -> SourceRepositoryInfo:
        with repo.state.lock:
            if repo.state.status == CLASSIFIED:
                return repo.info
            if repo.state.status == FAILED:
                raise repo.state.error
            repo.state.status = DETECTING
            try:
                info = self._classify(repo)
            except KubeForgeError as e:
                repo.state.status = FAILED
                repo.state.error = e
                raise
            repo.set_info(info)
            repo.state.status = CLASSIFIED
            return info

    def _classify(self, repo: SourceRepository) -> SourceRepositoryInfo:
        if repo.is_dockerfile_only():
            return SourceRepositoryInfo(dockerfile=parse_dockerfile(repo.dockerfile))

        files = self.inspector.list_files(repo.location, repo.context_dir)
        info = SourceRepositoryInfo(path=repo.location)
        for detector in self.detectors:
            platform = detector.detect(files)
            if platform:
                info.terms = [platform]
                break

        if repo.dockerfile:
            info.dockerfile = parse_dockerfile(repo.dockerfile)
        else:
            info.dockerfile = self.tester.test(self.inspector, repo.location, repo.context_dir, files)
        info.jenkinsfile = JENKINSFILE_NAME in files
        logger.debug(
            f"Classified {repo}: terms={info.terms} dockerfile={info.dockerfile is not None} "
            f"jenkinsfile={info.jenkinsfile}"
        )
        return info

    def detect_all(self, repos: Sequence[SourceRepository], max_workers: int = 8) -> List[Exception]:
        """Detects every repository concurrently; returns the failures in completion order."""
        errs: List[Exception] = []
        if not repos:
            return errs
        with ThreadPoolExecutor(max_workers=max(1, min(len(repos), max_workers))) as executor:
            futures = {executor.submit(self.detect, repo): repo for repo in repos}
            for future in as_completed(futures):
                try:
                    future.result()
                except KubeForgeError as e:
                    logger.debug(f"Detection failed for {futures[future]}: {e}")
                    errs.append(e)
        return errs
