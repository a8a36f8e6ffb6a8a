#!/usr/bin/env python3
"""
KUBEFORGE GENERATION CONTEXT
----------------------------
The running record of one generation: what was asked for, what was
resolved, the plans built from it, and every warning and non-fatal error
met along the way.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from kubeforge.core.models import ComponentInput
from kubeforge.generate.config import AppConfig
from kubeforge.generate.refbuilder import ReferenceBuilder, UniqueNameGenerator
from kubeforge.source.repository import SourceRepository

logger = logging.getLogger("kubeforge.generate")


@dataclass
class GenerationContext:
    """
    Maintains the state of a single generation run.

    Created by the GenerationPipeline and filled in stage by stage:
    classification, resolution and detection, planning, emission.
    """
    config: AppConfig
    refs: ReferenceBuilder = field(default_factory=ReferenceBuilder)
    names: UniqueNameGenerator = field(default_factory=UniqueNameGenerator)
    components: List[ComponentInput] = field(default_factory=list)
    repositories: List[SourceRepository] = field(default_factory=list)
    source_image: Optional[ComponentInput] = None
    pipelines: List[Any] = field(default_factory=list)     # Pipeline plans, in input order
    errors: List[Exception] = field(default_factory=list)  # non-fatal, aggregated at the end
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        if message in self.warnings:
            return
        self.warnings.append(message)
        self.config.warn(message)
        logger.debug(f"Warning: {message}")

    def record(self, errors: List[Exception]) -> None:
        self.errors.extend(errors)
