"""
JSON Template Adapter

Architectural Intent:
- Implements TemplatePort over templates written in the engine's JSON
  configuration syntax (``variable``, ``provider``, ``resource``,
  ``output`` blocks)
- Variable references use the ``${var.NAME}`` form
- Resource blocks handed out by decode_resource are the parsed document
  itself, so edits made by the lifecycle are kept on flush()

Design Decisions:
- Canonical output is JSON with sorted keys so identical templates yield
  identical engine input
- interpolate_field only substitutes variables that carry a default;
  any other reference is left for the engine to resolve
"""

from __future__ import annotations
import json
import logging
import re
from typing import Any, Mapping

from stackweaver.domain.errors import TemplateError
from stackweaver.domain.ports.template_port import TemplateBuilderPort, TemplatePort

logger = logging.getLogger(__name__)

VAR_REF = re.compile(r"\$\{var\.([A-Za-z0-9_-]+)\}")


def _references(node: Any) -> set[str]:
    """Names of every variable referenced anywhere below node."""
    if isinstance(node, str):
        return set(VAR_REF.findall(node))
    if isinstance(node, Mapping):
        found: set[str] = set()
        for value in node.values():
            found |= _references(value)
        return found
    if isinstance(node, list):
        found = set()
        for value in node:
            found |= _references(value)
        return found
    return set()


class JsonTemplate(TemplatePort):
    def __init__(self, doc: dict[str, Any], content_id: str):
        self._doc = doc
        self._content_id = content_id
        self._output = ""
        self.flush()

    @property
    def content_id(self) -> str:
        return self._content_id

    @property
    def variables(self) -> dict[str, Any]:
        section = self._doc.setdefault("variable", {})
        if not isinstance(section, dict):
            raise TemplateError("template 'variable' block must be an object")
        return section

    def _default(self, name: str) -> Any:
        var = self.variables.get(name)
        if isinstance(var, Mapping):
            return var.get("default")
        return None

    def fill_variables(self, prefix: str, values: Mapping[str, str]) -> None:
        referenced = sorted(n for n in _references(self._doc) if n.startswith(prefix))
        missing = []
        for name in referenced:
            key = name[len(prefix):]
            if key in values:
                self.variables[name] = {"default": values[key]}
            elif self._default(name) is None:
                missing.append(name)
        if missing:
            raise TemplateError(
                f"template {self._content_id} references undefined variable(s): "
                + ", ".join(missing)
            )
        logger.debug("Filled %d %s* variable(s) in %s", len(referenced), prefix, self._content_id)

    def decode_resource(self, block_type: str) -> dict[str, dict[str, Any]]:
        resources = self._doc.get("resource") or {}
        if not isinstance(resources, dict):
            raise TemplateError("template 'resource' block must be an object")
        blocks = resources.get(block_type)
        if blocks is None:
            return {}
        if not isinstance(blocks, dict) or not all(
            isinstance(b, dict) for b in blocks.values()
        ):
            raise TemplateError(f"resource {block_type!r} must map names to objects")
        return blocks

    def interpolate_field(self, instance: dict[str, Any], field: str) -> None:
        value = instance.get(field)
        if not isinstance(value, str):
            return

        def substitute(match: re.Match) -> str:
            default = self._default(match.group(1))
            return match.group(0) if default is None else str(default)

        instance[field] = VAR_REF.sub(substitute, value)

    def flush(self) -> None:
        self._output = json.dumps(self._doc, sort_keys=True, indent=2)

    def json_output(self) -> str:
        return self._output


class JsonTemplateBuilder(TemplateBuilderPort):
    def build(self, content: str, content_id: str) -> JsonTemplate:
        try:
            doc = json.loads(content)
        except json.JSONDecodeError as e:
            raise TemplateError(f"template {content_id} is not valid JSON: {e}") from e
        if not isinstance(doc, dict):
            raise TemplateError(f"template {content_id} must be a JSON object")
        return JsonTemplate(doc, content_id)
