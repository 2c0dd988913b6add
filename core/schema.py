"""Typed output-schema descriptions for structured generation.

A stage declares the JSON object it expects back as an ``OutputSchema``:
named ``FieldSpec`` values plus the set of required names. The same value is
rendered into the prompt, used to validate the parsed reply, and checked
against the stage's pydantic output model when the stage is defined.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
import math
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel

from core.errors import SchemaDefinitionError, StructuredOutputInvalid


class FieldKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    kind: FieldKind
    description: str = ""
    items: FieldSpec | None = None
    schema: OutputSchema | None = None

    def __post_init__(self) -> None:
        if self.kind is FieldKind.ARRAY and self.items is None:
            raise SchemaDefinitionError("array fields need an item spec")
        if self.kind is not FieldKind.ARRAY and self.items is not None:
            raise SchemaDefinitionError(f"{self.kind.value} fields cannot declare items")
        if self.kind is FieldKind.OBJECT and self.schema is None:
            raise SchemaDefinitionError("object fields need a nested schema")
        if self.kind is not FieldKind.OBJECT and self.schema is not None:
            raise SchemaDefinitionError(f"{self.kind.value} fields cannot declare a nested schema")

    def to_json_schema(self) -> dict[str, Any]:
        if self.kind is FieldKind.OBJECT:
            assert self.schema is not None
            out = self.schema.to_json_schema()
        else:
            out = {"type": self.kind.value}
        if self.items is not None:
            out["items"] = self.items.to_json_schema()
        if self.description:
            out["description"] = self.description
        return out

    def errors(self, value: Any, path: str) -> list[str]:
        kind = self.kind
        if kind is FieldKind.STRING:
            return [] if isinstance(value, str) else [f"{path}: expected string"]
        if kind is FieldKind.BOOLEAN:
            return [] if isinstance(value, bool) else [f"{path}: expected boolean"]
        if kind is FieldKind.NUMBER:
            ok = isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
            return [] if ok else [f"{path}: expected number"]
        if kind is FieldKind.INTEGER:
            ok = isinstance(value, int) and not isinstance(value, bool)
            return [] if ok else [f"{path}: expected integer"]
        if kind is FieldKind.ARRAY:
            if not isinstance(value, list):
                return [f"{path}: expected array"]
            assert self.items is not None
            problems: list[str] = []
            for idx, item in enumerate(value):
                problems.extend(self.items.errors(item, f"{path}[{idx}]"))
            return problems
        assert self.schema is not None
        if not isinstance(value, dict):
            return [f"{path}: expected object"]
        return self.schema.errors(value, path)


def string(description: str = "") -> FieldSpec:
    return FieldSpec(FieldKind.STRING, description)


def number(description: str = "") -> FieldSpec:
    return FieldSpec(FieldKind.NUMBER, description)


def array_of(items: FieldSpec, description: str = "") -> FieldSpec:
    return FieldSpec(FieldKind.ARRAY, description, items=items)


def object_of(schema: OutputSchema, description: str = "") -> FieldSpec:
    return FieldSpec(FieldKind.OBJECT, description, schema=schema)


@dataclass(frozen=True, slots=True)
class OutputSchema:
    """An object shape: field specs by name and the names that must be present."""

    fields: Mapping[str, FieldSpec]
    required: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.fields:
            raise SchemaDefinitionError("schema declares no fields")
        # Read-only copies so one definition can serve concurrent runs.
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "required", frozenset(self.required))
        unknown = self.required - set(self.fields)
        if unknown:
            raise SchemaDefinitionError(f"required names not declared as fields: {sorted(unknown)}")

    @property
    def optional(self) -> frozenset[str]:
        return frozenset(self.fields) - self.required

    def to_json_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {name: spec.to_json_schema() for name, spec in self.fields.items()},
            "required": [name for name in self.fields if name in self.required],
        }

    def describe(self) -> str:
        return json.dumps(self.to_json_schema(), indent=2)

    def errors(self, data: Mapping[str, Any], path: str = "$") -> list[str]:
        problems: list[str] = []
        for name in self.fields:
            if name in self.required and data.get(name) is None:
                problems.append(f"{path}.{name}: required field missing")
        for name, value in data.items():
            spec = self.fields.get(name)
            # Unknown keys are dropped by the caller; optional nulls are allowed.
            if spec is None or value is None:
                continue
            problems.extend(spec.errors(value, f"{path}.{name}"))
        return problems

    def validate(self, data: Any) -> dict[str, Any]:
        """Return ``data`` restricted to declared fields, or raise StructuredOutputInvalid."""
        if not isinstance(data, dict):
            raise StructuredOutputInvalid("Expected a JSON object matching the output schema")
        problems = self.errors(data)
        if problems:
            raise StructuredOutputInvalid("Schema validation failed: " + "; ".join(problems))
        return {name: data[name] for name in self.fields if data.get(name) is not None}

    def check_model(self, model: type[BaseModel]) -> None:
        """Fail fast when a pydantic output model drifts from this schema.

        Names are compared by alias when the model declares one, so camelCase
        schemas can back snake_case models.
        """
        declared: dict[str, bool] = {}
        for attr, info in model.model_fields.items():
            declared[info.alias or attr] = info.is_required()
        if set(declared) != set(self.fields):
            raise SchemaDefinitionError(
                f"{model.__name__} fields {sorted(declared)} do not match schema fields {sorted(self.fields)}"
            )
        model_required = {name for name, req in declared.items() if req}
        if model_required != set(self.required):
            raise SchemaDefinitionError(
                f"{model.__name__} required fields {sorted(model_required)} "
                f"do not match schema required {sorted(self.required)}"
            )
