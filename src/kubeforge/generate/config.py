#!/usr/bin/env python3
"""
KUBEFORGE APP CONFIG
--------------------
Everything one generation run needs: the user's inputs and flags, the
searchers and detector to resolve them with, and the streams that receive
output and warnings.

Author: KubeForge Team
Date: 2026-10-18
"""

import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO

from kubeforge.generate.classify import add_arguments

DEFAULT_NAMESPACE = "default"
DEFAULT_MAX_WORKERS = 8


@dataclass
class AppConfig:
    # Inputs, by the flag they arrived through
    components: List[str] = field(default_factory=list)
    image_streams: List[str] = field(default_factory=list)
    docker_images: List[str] = field(default_factory=list)
    templates: List[str] = field(default_factory=list)
    template_files: List[str] = field(default_factory=list)
    source_repositories: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)

    environment: List[str] = field(default_factory=list)
    build_environment: List[str] = field(default_factory=list)
    add_environment_to_build: bool = False
    template_parameters: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)

    # Build shaping
    name: str = ""
    to: str = ""
    output_docker: bool = False
    no_output: bool = False
    strategy: str = ""
    dockerfile: str = ""
    context_dir: str = ""
    source_image: str = ""
    source_image_path: str = ""
    secrets: List[str] = field(default_factory=list)
    insecure_registry: bool = False
    expect_to_build: bool = False

    namespace: str = DEFAULT_NAMESPACE
    max_workers: int = DEFAULT_MAX_WORKERS

    # Collaborators
    docker_searcher: Optional[Any] = None
    image_stream_searcher: Optional[Any] = None
    image_stream_by_annotation_searcher: Optional[Any] = None
    template_searcher: Optional[Any] = None
    template_file_searcher: Optional[Any] = None
    detector: Optional[Any] = None
    inspector: Optional[Any] = None

    out: TextIO = field(default=sys.stdout, repr=False)
    err_out: TextIO = field(default=sys.stderr, repr=False)

    def add_arguments(self, args: List[str]) -> List[str]:
        """Sorts positional arguments into env, repositories and components; returns the unknown ones."""
        return add_arguments(self, args)

    def warn(self, message: str) -> None:
        self.err_out.write(f"--> WARNING: {message}\n")
