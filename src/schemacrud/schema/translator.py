"""Translation of key-like labels and messages in schemas."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from schemacrud.schema.models import Schema

TRANSLATION_KEY = re.compile(r"^[A-Z][A-Z0-9_.]+\.[A-Z0-9_.]+$")
_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def is_translation_key(value: Any) -> bool:
    """``USER.NAME`` style strings are keys; anything else is literal text."""
    return isinstance(value, str) and bool(TRANSLATION_KEY.match(value))


@runtime_checkable
class Translator(Protocol):
    def translate(self, key: str, **params: Any) -> str:
        """Return the message for ``key``, or ``key`` itself if unknown."""
        ...


def _flatten(messages: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    flat: dict[str, str] = {}
    for key, value in messages.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, full_key))
        else:
            flat[full_key] = str(value)
    return flat


class DictTranslator:
    """Translator backed by a (possibly nested) mapping of messages.

    Nested mappings are flattened to dotted keys, so ``{"USER": {"NAME": "Name"}}``
    serves ``USER.NAME``.  Placeholders use ``{{name}}``.
    """

    def __init__(self, messages: Mapping[str, Any] | None = None):
        self._messages = _flatten(messages or {})

    @classmethod
    def from_yaml(cls, path: Path) -> DictTranslator:
        with Path(path).open(encoding="utf-8") as fh:
            return cls(yaml.safe_load(fh) or {})

    def translate(self, key: str, **params: Any) -> str:
        message = self._messages.get(key)
        if message is None:
            return key

        def substitute(match: re.Match[str]) -> str:
            name = match.group(1)
            return str(params[name]) if name in params else match.group(0)

        return _PLACEHOLDER.sub(substitute, message)


class SchemaTranslator:
    """Translates titles, labels and messages of a schema.

    Only values that look like translation keys are passed to the translator.
    A message that still has unfilled ``{{placeholders}}`` is left as the key,
    so clients can translate it later with the parameters they hold.
    """

    def __init__(self, translator: Translator):
        self.translator = translator

    def text(self, value: Any) -> Any:
        if not is_translation_key(value):
            return value
        translated = self.translator.translate(value)
        if not translated or _PLACEHOLDER.search(translated):
            return value
        return translated

    def translate_schema(self, schema: Schema) -> Schema:
        fields = {
            name: replace(
                field_def,
                label=self.text(field_def.label),
                description=self.text(field_def.description),
                placeholder=self.text(field_def.placeholder),
            )
            for name, field_def in schema.fields.items()
        }
        actions = [
            replace(
                action,
                label=self.text(action.label),
                # confirm/success messages usually carry record placeholders
                confirm=self.text(action.confirm),
                success_message=self.text(action.success_message),
            )
            for action in schema.actions
        ]
        details = [replace(d, title=self.text(d.title)) for d in schema.details]
        relationships = [replace(r, title=self.text(r.title)) for r in schema.relationships]
        return replace(
            schema,
            title=self.text(schema.title),
            singular_title=self.text(schema.singular_title),
            description=self.text(schema.description),
            fields=fields,
            actions=actions,
            details=details,
            relationships=relationships,
            contexts={k: self.translate_schema(v) for k, v in schema.contexts.items()},
        )
