#!/usr/bin/env python3
"""
KUBEFORGE LABEL POLICY - Consistent Labelling
---------------------------------------------
The LabelPolicy runs every generated object through a list of rules that
stamp the application labels onto it and keep deployment selectors, pod
labels and service selectors in step with each other.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
from typing import Dict, List, Tuple

from kubeforge.generate.objects import DeploymentConfig, GeneratedObject, Service

logger = logging.getLogger("kubeforge.rules")


class LabelPolicy:
    """
    Applies a fixed label set to a generated graph.

    Labels already present on an object are left alone; the policy only
    fills in what is missing.
    """

    def __init__(self, labels: Dict[str, str]):
        self.labels = dict(labels)

        # Rules run in order against every object
        self.active_rules = [
            self._rule_object_labels,
            self._rule_deployment_selector,
            self._rule_service_selector,
        ]

    def protect(self, obj: GeneratedObject) -> Tuple[GeneratedObject, List[str]]:
        """Returns the object and a description of every change made to it."""
        changes = []
        if not self.labels:
            return obj, changes
        for rule in self.active_rules:
            obj, msg = rule(obj)
            if msg:
                changes.append(msg)
        return obj, changes

    def _missing(self, target: Dict[str, str]) -> Dict[str, str]:
        return {k: v for k, v in self.labels.items() if k not in target}

    def _rule_object_labels(self, obj: GeneratedObject) -> Tuple[GeneratedObject, str]:
        missing = self._missing(obj.labels)
        if not missing:
            return obj, ""
        obj.labels.update(missing)
        return obj, f"Labelled {obj.kind or 'object'} {obj.name} with {', '.join(sorted(missing))}"

    def _rule_deployment_selector(self, obj: GeneratedObject) -> Tuple[GeneratedObject, str]:
        """The selector gains the labels and the pod template carries every selector key."""
        if not isinstance(obj, DeploymentConfig):
            return obj, ""
        missing = self._missing(obj.selector)
        obj.selector.update(missing)
        unlabelled = {k: v for k, v in obj.selector.items() if k not in obj.pod_labels}
        obj.pod_labels.update(unlabelled)
        if not missing and not unlabelled:
            return obj, ""
        return obj, f"Synchronised selector of DeploymentConfig {obj.name}"

    def _rule_service_selector(self, obj: GeneratedObject) -> Tuple[GeneratedObject, str]:
        if not isinstance(obj, Service):
            return obj, ""
        missing = self._missing(obj.selector)
        if not missing:
            return obj, ""
        obj.selector.update(missing)
        return obj, f"Extended selector of Service {obj.name}"
