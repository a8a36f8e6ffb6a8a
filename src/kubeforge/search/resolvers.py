#!/usr/bin/env python3
"""
KUBEFORGE RESOLVERS - Choosing One Match
----------------------------------------
A resolver turns the candidates its searcher reports for a value into at
most one accepted ComponentMatch, or raises a per-input ResolutionError.
`resolve_components` runs every component's resolver concurrently and
collects their failures instead of stopping at the first one.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import List, Protocol, Sequence

from kubeforge.core.errors import (
    ErrMultipleMatches,
    ErrNoMatch,
    ErrNoResolver,
    KubeForgeError,
)
from kubeforge.core.models import ComponentInput, ComponentMatch

logger = logging.getLogger("kubeforge.resolve")


class Resolver(Protocol):
    def resolve(self, value: str) -> ComponentMatch:
        ...


def _lowest_unique(value: str, candidates: List[ComponentMatch], errs: List[Exception]) -> ComponentMatch:
    if not candidates:
        raise ErrNoMatch(value, errs)
    best = min(m.score for m in candidates)
    ties = [m for m in candidates if m.score == best]
    if len(ties) > 1:
        raise ErrMultipleMatches(value, ties, errs)
    return ties[0]


class UniqueExactOrInexactMatchResolver:
    """
    Accepts the first exact match; failing that, the single best inexact
    match. A tie for the best score is ambiguous.
    """

    def __init__(self, searcher, qualifier: str = ""):
        self.searcher = searcher
        self.qualifier = qualifier

    def resolve(self, value: str) -> ComponentMatch:
        matches, errs = self.searcher.search(False, value)
        for match in matches:
            if match.exact:
                logger.debug(f"Exact match for {value}: {match.name}")
                return match
        if not matches:
            raise ErrNoMatch(value, errs, self.qualifier)
        return _lowest_unique(value, list(matches), list(errs))


class FirstMatchResolver:
    """Accepts whatever the searcher reports first."""

    def __init__(self, searcher):
        self.searcher = searcher

    def resolve(self, value: str) -> ComponentMatch:
        matches, errs = self.searcher.search(False, value)
        if not matches:
            raise ErrNoMatch(value, errs)
        return matches[0]


@dataclass
class WeightedSearcher:
    searcher: object
    weight: float = 0.0


class PerfectMatchWeightedResolver:
    """
    Searches ordered groups of weighted searchers.

    The first group holding exactly one exact match wins outright. If no
    group does, every candidate is ranked by score plus its searcher's
    weight and the unique best one is accepted.
    """

    def __init__(self, groups: Sequence[Sequence[WeightedSearcher]]):
        self.groups = [list(group) for group in groups]

    def resolve(self, value: str) -> ComponentMatch:
        candidates: List[ComponentMatch] = []
        errs: List[Exception] = []
        for group in self.groups:
            exact: List[ComponentMatch] = []
            for weighted in group:
                matches, searcher_errs = weighted.searcher.search(False, value)
                errs.extend(searcher_errs)
                for match in matches:
                    if match.exact:
                        exact.append(match)
                    candidates.append(replace(match, score=match.score + weighted.weight))
            if len(exact) == 1:
                return exact[0]
            if len(exact) > 1:
                raise ErrMultipleMatches(value, exact, errs)
        return _lowest_unique(value, candidates, errs)


def resolve_component(component: ComponentInput) -> None:
    if component.resolved_match is not None:
        return
    if component.resolver is None:
        raise ErrNoResolver(component.value)
    try:
        component.resolved_match = component.resolver.resolve(component.value)
    except ErrMultipleMatches as e:
        component.search_matches = list(e.matches)
        raise


def resolve_components(components: Sequence[ComponentInput], max_workers: int = 8) -> List[Exception]:
    """
    Resolves every component concurrently, attaching matches in place.

    Returns the per-input errors in completion order.
    """
    errs: List[Exception] = []
    pending = [c for c in components if c.resolved_match is None]
    if not pending:
        return errs
    with ThreadPoolExecutor(max_workers=max(1, min(len(pending), max_workers))) as executor:
        futures = {executor.submit(resolve_component, c): c for c in pending}
        for future in as_completed(futures):
            component = futures[future]
            try:
                future.result()
            except KubeForgeError as e:
                logger.debug(f"Unable to resolve {component.value}: {e}")
                errs.append(e)
    return errs
