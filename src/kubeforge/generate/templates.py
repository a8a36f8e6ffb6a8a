"""Local processing of templates: parameter substitution over the template's objects."""

import copy
import logging
import re
from typing import Any, Dict, List

from kubeforge.core.errors import InvalidArgumentError
from kubeforge.core.models import TemplateRecord

logger = logging.getLogger("kubeforge.templates")

_PARAM_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def parse_template_parameters(entries: List[str]) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise InvalidArgumentError(f"template parameters must be of the form key=value: {entry!r}")
        params.setdefault(key, value)
    return params


def _substitute(value: Any, values: Dict[str, str]) -> Any:
    if isinstance(value, str):
        return _PARAM_RE.sub(lambda m: values.get(m.group(1), m.group(0)), value)
    if isinstance(value, dict):
        return {k: _substitute(v, values) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute(v, values) for v in value]
    return value


def process_template(template: TemplateRecord, params: Dict[str, str]) -> List[Dict[str, Any]]:
    """
    Returns the template's objects with `${NAME}` parameters replaced.

    Raises InvalidArgumentError for a parameter the template does not
    declare or a required parameter that has no value.
    """
    declared = {p.name: p for p in template.parameters}
    unknown = sorted(set(params) - set(declared))
    if unknown:
        raise InvalidArgumentError(
            f"unexpected parameter name(s) for template {template.name!r}: {', '.join(unknown)}"
        )
    values: Dict[str, str] = {}
    for param in template.parameters:
        value = params.get(param.name, param.value)
        if param.required and not value:
            raise InvalidArgumentError(f"template {template.name!r} requires a value for parameter {param.name}")
        values[param.name] = value

    objects = []
    for obj in template.objects:
        processed = _substitute(copy.deepcopy(obj), values)
        if template.labels:
            metadata = processed.setdefault("metadata", {})
            labels = metadata.setdefault("labels", {})
            for key, value in template.labels.items():
                labels.setdefault(key, value)
        objects.append(processed)
    logger.debug(f"Processed template {template.name} into {len(objects)} object(s)")
    return objects
