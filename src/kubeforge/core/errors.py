#!/usr/bin/env python3
"""
KUBEFORGE ERRORS - The Incident Ledger
--------------------------------------
Every failure the resolution and generation pipeline can report.

Per-input failures (no match, ambiguous match, undetectable source) are
collected into an AggregateError so one bad argument never hides the
others. Strategy conflicts and circular output references are fatal and
raised on their own.

Author: KubeForge Team
Date: 2026-10-18
"""

from typing import Iterable, List, Optional, Sequence


class KubeForgeError(Exception):
    """Base class for all errors raised by kubeforge."""


class ResolutionError(KubeForgeError):
    """A single component input could not be turned into one match."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(str(self))


class ErrNoMatch(ResolutionError):
    """
    No searcher produced a match for the value.

    `errs` carries the underlying error of every backend that tried.
    """

    def __init__(self, value: str, errs: Optional[Sequence[Exception]] = None, qualifier: str = ""):
        self.errs = list(errs or [])
        self.qualifier = qualifier
        super().__init__(value)

    def __str__(self) -> str:
        msg = f'no match for "{self.value}"'
        if self.qualifier:
            msg = f"{msg}: {self.qualifier}"
        if self.errs:
            causes = "; ".join(str(e) for e in self.errs)
            msg = f"{msg} ({causes})"
        return msg


class ErrMultipleMatches(ResolutionError):
    """Several candidates tied for the best score."""

    def __init__(self, value: str, matches: Sequence, errs: Optional[Sequence[Exception]] = None):
        self.matches = list(matches)
        self.errs = list(errs or [])
        super().__init__(value)

    def __str__(self) -> str:
        candidates = ", ".join(
            f"{m.argument or m.name} ({m.description})" for m in self.matches
        )
        return f'multiple images or templates matched "{self.value}": {candidates}'


class ErrNoResolver(ResolutionError):
    """The input carries neither a resolver nor a pre-resolved match."""

    def __str__(self) -> str:
        return f'no resolver was provided to search for "{self.value}"'


class ErrNoLanguageDetected(ResolutionError):
    """A repository needs a builder image but no language could be detected."""

    def __str__(self) -> str:
        return (
            f'no language was detected for repository "{self.value}"; '
            f"specify a builder image with [image]~{self.value}"
        )


class ErrMissingFrom(KubeForgeError):
    """A Dockerfile without a FROM instruction cannot seed a docker build."""

    def __init__(self, location: str):
        self.location = location
        super().__init__(f'the Dockerfile in the repository "{location}" has no FROM instruction')


class StrategyConflictError(KubeForgeError):
    """Contradictory build intent that cannot be arbitrated (fatal)."""


class SourcePairingError(KubeForgeError):
    """Images that need source code could not be paired with a repository."""


class CircularOutputReferenceError(KubeForgeError):
    """A build whose output image identity equals its input image identity."""

    def __init__(self, reference, hint: str = ""):
        self.reference = reference
        msg = f'output image of "{reference}" should be different than input'
        if hint:
            msg = f"{msg}, {hint}"
        super().__init__(msg)


class InvalidArgumentError(KubeForgeError):
    """A malformed flag or argument value."""


class GraphValidationError(KubeForgeError):
    """The generated object graph breaks one of its own invariants."""

    def __init__(self, problems: Sequence[str]):
        self.problems = list(problems)
        super().__init__("generated objects are inconsistent: " + "; ".join(self.problems))


class SourceInspectionError(KubeForgeError):
    """Listing or fetching a source repository failed."""


class ClientError(KubeForgeError):
    """A registry, docker or cluster call failed."""


class ImageNotFound(ClientError):
    """The requested image does not exist. Callers treat this as a non-match."""

    def __init__(self, image: str):
        self.image = image
        super().__init__(f'image "{image}" was not found')


class AggregateError(KubeForgeError):
    """
    A set of independent failures.

    The order of `errors` follows task completion and is not meaningful.
    """

    def __init__(self, errors: Iterable[Exception]):
        self.errors: List[Exception] = list(errors)
        super().__init__(str(self))

    def __str__(self) -> str:
        if len(self.errors) == 1:
            return str(self.errors[0])
        return "[" + ", ".join(str(e) for e in self.errors) + "]"

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self):
        return iter(self.errors)


def aggregate(errors: Sequence[Exception]) -> Optional[AggregateError]:
    """Wraps a non-empty error list, flattening nested aggregates."""
    flat: List[Exception] = []
    for err in errors:
        if isinstance(err, AggregateError):
            flat.extend(err.errors)
        else:
            flat.append(err)
    if not flat:
        return None
    return AggregateError(flat)
