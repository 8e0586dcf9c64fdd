"""
Template Port

Architectural Intent:
- Port interface for the declarative template engine
- The lifecycle fills variables, decodes and mutates resource blocks,
  then flushes the template back to canonical text for the engine
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping


class TemplatePort(ABC):

    @property
    @abstractmethod
    def content_id(self) -> str:
        pass

    @abstractmethod
    def fill_variables(self, prefix: str, values: Mapping[str, str]) -> None:
        """
        Defines every referenced variable named ``prefix + key`` from values.
        Raises TemplateError for referenced variables it cannot supply.
        """
        pass

    @abstractmethod
    def decode_resource(self, block_type: str) -> dict[str, dict[str, Any]]:
        """
        Returns the named instance blocks of a resource type.
        The returned mappings are live: changes are kept on flush().
        """
        pass

    @abstractmethod
    def interpolate_field(self, instance: dict[str, Any], field: str) -> None:
        """
        Resolves variable references inside one string field of a block.
        """
        pass

    @abstractmethod
    def flush(self) -> None:
        pass

    @abstractmethod
    def json_output(self) -> str:
        pass


class TemplateBuilderPort(ABC):

    @abstractmethod
    def build(self, content: str, content_id: str) -> TemplatePort:
        """
        Parses template content. Raises TemplateError on malformed content.
        """
        pass
