"""Value synthesizer — deterministic, plausible values for schema nodes.

Values depend only on the schema and the name they are synthesized for,
so compiling an unchanged document twice yields identical plans.
"""

import json
import logging
import math
import re
import uuid
import zlib
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel

from api_test_plan.core.config import Settings
from api_test_plan.parser.base import SchemaKind, SchemaNode, SpecDocument
from api_test_plan.parser.errors import Diagnostic

logger = logging.getLogger(__name__)

WORDS = (
    "amber", "bravo", "cedar", "delta", "ember", "falcon", "garnet", "harbor",
    "indigo", "juniper", "kestrel", "lumen", "maple", "nectar", "orchid", "pebble",
    "quartz", "raven", "sierra", "tundra", "umber", "velvet", "willow", "zephyr",
)

FORMAT_VALUES = {
    "date": "2024-01-15",
    "date-time": "2024-01-15T10:30:00Z",
    "time": "10:30:00",
    "email": "user@example.com",
    "uri": "https://example.com/resource",
    "url": "https://example.com/resource",
    "hostname": "api.example.com",
    "ipv4": "192.0.2.10",
    "ipv6": "2001:db8::10",
    "byte": "c2FtcGxlLWRhdGE=",
    "password": "Sample-Passw0rd!",
}

NUMERIC_SENTINEL = 1


class ValueContext(BaseModel):
    """Where a synthesized value will be used."""

    name: str = "value"
    is_path_segment: bool = False


def encode_path_segment(value: Any) -> str:
    """Percent-encode a value for use as a single URL path segment."""
    return quote(stringify(value), safe="")


def stringify(value: Any) -> str:
    """Render a synthesized value as header / path text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def placeholder_uuid(name: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, name))


class ValueSynthesizer:
    """Synthesizes request values; problems are collected in ``diagnostics``."""

    def __init__(self, document: SpecDocument, settings: Settings | None = None, operation: str | None = None):
        self.document = document
        self.settings = settings or Settings()
        self.operation = operation
        self.diagnostics: list[Diagnostic] = []

    def synthesize(self, schema_id: int, context: ValueContext | None = None) -> Any:
        context = context or ValueContext()
        value = self._value(schema_id, context.name, ())
        if context.is_path_segment:
            return encode_path_segment(value)
        return value

    def _warn(self, code: str, message: str) -> None:
        logger.debug("%s: %s", code, message)
        self.diagnostics.append(
            Diagnostic(severity="warning", code=code, message=message, operation=self.operation)
        )

    def _value(self, node_id: int, name: str, stack: tuple[int, ...]) -> Any:
        node = self.document.node(node_id)
        if node.example is not None:
            return node.example
        if node.default is not None:
            return node.default
        if node.enum:
            return node.enum[0]
        if node.format == "uuid":
            return placeholder_uuid(name)
        if node.format in FORMAT_VALUES and node.kind in (SchemaKind.STRING, SchemaKind.UNKNOWN):
            return FORMAT_VALUES[node.format]

        if node.kind == SchemaKind.OBJECT:
            if node_id in stack:
                return {}
            return self._object(node, node_id, stack)
        if node.kind == SchemaKind.ARRAY:
            if node_id in stack or node.items is None:
                return []
            count = 0 if node.max_items == 0 else max(1, node.min_items or 1)
            return [self._value(node.items, f"{name}_item", stack + (node_id,)) for _ in range(count)]
        if node.kind == SchemaKind.UNION:
            if node_id in stack or not node.variants:
                return None
            return self._value(node.variants[0], name, stack + (node_id,))
        if node.kind == SchemaKind.INTEGER:
            return self._number(node, name, integer=True)
        if node.kind == SchemaKind.NUMBER:
            return self._number(node, name, integer=False)
        if node.kind == SchemaKind.BOOLEAN:
            return True
        if node.kind == SchemaKind.NULL:
            return None
        return self._phrase(node, name)

    def _object(self, node: SchemaNode, node_id: int, stack: tuple[int, ...]) -> dict:
        result = {}
        for prop, child_id in node.properties.items():
            child = self.document.node(child_id)
            if prop in node.required or child.example is not None or child.default is not None:
                result[prop] = self._value(child_id, prop, stack + (node_id,))
        return result

    def _phrase(self, node: SchemaNode, name: str) -> str:
        seed = zlib.crc32(name.encode("utf-8"))
        words = [WORDS[seed % len(WORDS)], WORDS[(seed // len(WORDS)) % len(WORDS)]]
        phrase = " ".join(words)

        min_length = node.min_length or 0
        if node.max_length is None:
            limit = max(self.settings.max_phrase_length, min_length)
        else:
            limit = node.max_length
        if min_length > limit:
            self._warn("empty-range", f"{name}: minLength {min_length} > maxLength {limit}")
            limit = min_length

        extra = 2
        while len(phrase) < min_length:
            phrase += " " + WORDS[(seed + extra) % len(WORDS)]
            extra += 1
        phrase = phrase[:limit]
        if phrase.endswith(" "):
            phrase = phrase[:-1] + "x"

        if node.pattern and not _matches(node.pattern, phrase):
            self._warn("pattern-not-satisfied", f"{name}: placeholder {phrase!r} does not match {node.pattern!r}")
        return phrase

    def _number(self, node: SchemaNode, name: str, integer: bool) -> int | float:
        low, high = node.minimum, node.maximum
        if integer:
            if low is not None:
                low = math.floor(low) + 1 if node.exclusive_minimum else math.ceil(low)
            if high is not None:
                high = math.ceil(high) - 1 if node.exclusive_maximum else math.floor(high)
            exclusive_low = exclusive_high = False
        else:
            exclusive_low, exclusive_high = node.exclusive_minimum, node.exclusive_maximum

        if low is not None and high is not None:
            if low > high or (low == high and (exclusive_low or exclusive_high)):
                self._warn("empty-range", f"{name}: minimum {node.minimum} exceeds maximum {node.maximum}")
                return low
            return (low + high) // 2 if integer else (low + high) / 2

        value = NUMERIC_SENTINEL
        if low is not None and (value < low or (value == low and exclusive_low)):
            value = low + 1 if exclusive_low else low
        if high is not None and (value > high or (value == high and exclusive_high)):
            value = high - 1 if exclusive_high else high
        return value


def _matches(pattern: str, value: str) -> bool:
    try:
        return re.search(pattern, value) is not None
    except re.error:
        logger.debug("Cannot compile pattern %r, skipping check", pattern)
        return True
