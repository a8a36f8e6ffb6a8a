#!/usr/bin/env python3
"""
KUBEFORGE VALIDATOR - The Judge
-------------------------------
The final gate of a generation run. Checks the rendered manifests against
the invariants the graph must hold before anything is shown to the user or
submitted to the cluster.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
import re
from typing import Any, Dict, List, Tuple

logger = logging.getLogger("kubeforge.validator")

_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
MAX_OBJECT_NAME_LENGTH = 63

# Generated kinds whose names must satisfy the DNS label rules
GENERATED_KINDS = ("ImageStream", "BuildConfig", "DeploymentConfig", "Service")


class GraphValidator:
    """
    Enforces the structural invariants of a generated object graph:
    unique names per kind, deployment selectors matched by their own pods,
    services that select a generated deployment, and builds that never
    write to their own input.
    """

    def __init__(self, allow_identical_output: bool = False):
        self.allow_identical_output = allow_identical_output
        # Fields every manifest must carry
        self.required_fields = ["apiVersion", "kind", "metadata"]

    def validate_manifest(self, doc: Any) -> Tuple[bool, str]:
        if not isinstance(doc, dict):
            return False, "manifest is not a mapping"
        for name in self.required_fields:
            if name not in doc:
                return False, f"manifest is missing the required field '{name}'"
        kind = doc["kind"]
        name = (doc.get("metadata") or {}).get("name", "")
        if kind in GENERATED_KINDS:
            if len(name) > MAX_OBJECT_NAME_LENGTH or not _NAME_RE.match(name):
                return False, f"{kind} name {name!r} is not a valid object name"
        return True, ""

    def validate_graph(self, manifests: List[Dict[str, Any]]) -> Tuple[bool, List[str]]:
        problems: List[str] = []
        seen = set()
        deployments: List[Dict[str, Any]] = []

        for doc in manifests:
            valid, err = self.validate_manifest(doc)
            if not valid:
                problems.append(err)
                continue
            key = (doc["kind"], doc["metadata"].get("name", ""))
            if key in seen:
                problems.append(f"{key[0]} {key[1]!r} is defined more than once")
            seen.add(key)

            if doc["kind"] == "DeploymentConfig":
                deployments.append(doc)
                problems.extend(self._check_selector(doc))
            elif doc["kind"] == "BuildConfig":
                problems.extend(self._check_build_output(doc))

        for doc in manifests:
            if isinstance(doc, dict) and doc.get("kind") == "Service":
                problems.extend(self._check_service(doc, deployments))

        for problem in problems:
            logger.debug(f"Graph validation: {problem}")
        return not problems, problems

    def _check_selector(self, doc: Dict[str, Any]) -> List[str]:
        spec = doc.get("spec") or {}
        selector = spec.get("selector") or {}
        pod_labels = ((spec.get("template") or {}).get("metadata") or {}).get("labels") or {}
        missing = [k for k, v in selector.items() if pod_labels.get(k) != v]
        if missing:
            return [
                f"DeploymentConfig {doc['metadata']['name']!r} selector keys {', '.join(sorted(missing))} "
                f"do not match its pod labels"
            ]
        return []

    def _check_service(self, doc: Dict[str, Any], deployments: List[Dict[str, Any]]) -> List[str]:
        """A service named after a generated deployment must select that deployment's pods."""
        name = doc["metadata"]["name"]
        selector = (doc.get("spec") or {}).get("selector") or {}
        for deployment in deployments:
            if deployment["metadata"].get("name") != name:
                continue
            pod_labels = ((deployment.get("spec") or {}).get("template") or {}).get("metadata", {}).get("labels") or {}
            if selector and all(pod_labels.get(k) == v for k, v in selector.items()):
                return []
            return [f"Service {name!r} does not select the pods of its deployment"]
        return []

    def _check_build_output(self, doc: Dict[str, Any]) -> List[str]:
        spec = doc.get("spec") or {}
        output = (spec.get("output") or {}).get("to")
        strategy = spec.get("strategy") or {}
        source = strategy.get("sourceStrategy") or strategy.get("dockerStrategy") or {}
        build_input = source.get("from")
        if output is None or build_input is None or self.allow_identical_output:
            return []
        if output == build_input:
            return [f"BuildConfig {doc['metadata']['name']!r} outputs to its own input {output.get('name')}"]
        return []
