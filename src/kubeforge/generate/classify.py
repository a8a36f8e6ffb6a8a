"""Routes raw positional arguments to environment, repositories or components."""

import logging
from typing import List

from kubeforge.core.environment import is_environment_argument
from kubeforge.source.repository import is_possible_source_repository

logger = logging.getLogger("kubeforge.classify")

ENVIRONMENT = "environment"
REPOSITORY = "repository"
COMPONENT = "component"
UNKNOWN = "unknown"

ARGUMENT_SEPARATOR = "--"


def classify_argument(value: str) -> str:
    """
    Names the single category a token belongs to.

    `KEY=value` is always an environment binding. Otherwise a `~` means a
    builder/source pairing, so such tokens are components even when the
    part after it looks like a repository.
    """
    if not value or not value.strip():
        return UNKNOWN
    if is_environment_argument(value):
        return ENVIRONMENT
    if "~" in value:
        return COMPONENT
    if is_possible_source_repository(value):
        return REPOSITORY
    return COMPONENT


def add_arguments(config, args: List[str]) -> List[str]:
    unknown: List[str] = []
    only_components = False
    for arg in args:
        if arg == ARGUMENT_SEPARATOR and not only_components:
            only_components = True
            continue
        category = classify_argument(arg)
        if category == UNKNOWN:
            unknown.append(arg)
        elif only_components or category == COMPONENT:
            config.components.append(arg)
        elif category == ENVIRONMENT:
            config.environment.append(arg)
        else:
            config.source_repositories.append(arg)
        logger.debug(f"Classified {arg!r} as {COMPONENT if only_components else category}")
    return unknown
