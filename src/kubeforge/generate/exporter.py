#!/usr/bin/env python3
"""
KUBEFORGE EXPORTER - Manifest Output
------------------------------------
Renders a generated object graph as a single `kind: List` document, in
YAML (ruamel round-trip dumper, Kubernetes key order) or JSON.

Author: KubeForge Team
Date: 2026-10-18
"""

import io
import json
from typing import Any, Dict, List

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from kubeforge.core.errors import InvalidArgumentError

OUTPUT_FORMATS = ("yaml", "json")


class ManifestExporter:
    """Converts rendered manifests to text with a stable key order."""

    def __init__(self, output_format: str = "yaml"):
        if output_format not in OUTPUT_FORMATS:
            raise InvalidArgumentError(f"unsupported output format {output_format!r}, use yaml or json")
        self.output_format = output_format
        self.yaml = YAML(typ='rt')
        # Standard K8s: 2 spaces, sequences offset 2
        self.yaml.indent(mapping=2, sequence=4, offset=2)
        self.yaml.width = 4096
        self.preferred_order = ["apiVersion", "kind", "metadata", "spec", "items", "status"]

    def _get_sorted_map(self, data: Any) -> Any:
        """Recursively orders keys: known keys first, the rest in their original order."""
        if isinstance(data, list):
            return [self._get_sorted_map(item) for item in data]
        if not isinstance(data, dict):
            return data

        keys = list(data.keys())

        def sort_logic(key):
            if key in self.preferred_order:
                return self.preferred_order.index(key)
            return len(self.preferred_order) + keys.index(key)

        sorted_map = CommentedMap()
        for key in sorted(keys, key=sort_logic):
            sorted_map[key] = self._get_sorted_map(data[key])
        return sorted_map

    @staticmethod
    def as_list(manifests: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {"apiVersion": "v1", "kind": "List", "metadata": {}, "items": list(manifests)}

    def export(self, manifests: List[Dict[str, Any]]) -> str:
        document = self.as_list(manifests)
        if self.output_format == "json":
            return json.dumps(document, indent=4) + "\n"
        stream = io.StringIO()
        self.yaml.dump(self._get_sorted_map(document), stream)
        return stream.getvalue()
