"""Assertion synthesizer — structural response checks derived from a schema.

The schema is walked breadth-first from the response root (``$``). A node
that is already one of its own ancestors (a self-referential schema) only
gets a shallow object/array type check, which keeps the list finite. Named
schemas reused in sibling positions are expanded in full each time.
"""

import re
from collections import deque

from api_test_plan.parser.base import SchemaKind, SchemaNode, SpecDocument

from .models import Assertion, CheckKind, Guard, GuardKind

FORMAT_PATTERNS = {
    "uuid": r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$",
    "date": r"^\d{4}-\d{2}-\d{2}$",
    "date-time": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}",
    "email": r"^[^\s@]+@[^\s@]+\.[^\s@]+$",
    "uri": r"^[a-zA-Z][a-zA-Z0-9+.-]*:.+",
    "url": r"^https?://.+",
    "ipv4": r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$",
    "ipv6": r"^[0-9a-fA-F:]+$",
}

UUID_PATTERN = FORMAT_PATTERNS["uuid"]

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SHALLOW_KINDS = (SchemaKind.OBJECT, SchemaKind.ARRAY)


def child_target(parent: str, name: str) -> str:
    """Locator for property ``name`` of the value at ``parent``."""
    if IDENTIFIER_RE.match(name):
        return f"{parent}.{name}"
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'{parent}["{escaped}"]'


def derive_assertions(schema_id: int, document: SpecDocument) -> list[Assertion]:
    """Derive the ordered structural checks for a 2xx response body."""
    assertions: list[Assertion] = []
    queue: deque[tuple[int, str, tuple[Guard, ...], tuple[int, ...]]] = deque([(schema_id, "$", (), ())])

    while queue:
        node_id, target, guards, ancestors = queue.popleft()
        node = document.node(node_id)

        if node_id in ancestors:
            if node.kind in SHALLOW_KINDS:
                assertions.append(_type_check(node, target, guards))
            continue
        ancestors = ancestors + (node_id,)

        if node.kind == SchemaKind.OBJECT:
            assertions.extend(_object_checks(node, target, guards))
            # Nullable objects only get their properties checked when not null.
            inner = guards + (Guard(kind=GuardKind.IF_PRESENT, target=target),) if node.nullable else guards
            for name, child_id in node.properties.items():
                child = child_target(target, name)
                if name in node.required:
                    queue.append((child_id, child, inner, ancestors))
                else:
                    child_guards = inner + (Guard(kind=GuardKind.IF_PRESENT, target=child),)
                    queue.append((child_id, child, child_guards, ancestors))
        elif node.kind == SchemaKind.ARRAY:
            assertions.extend(_array_checks(node, target, guards))
            if node.items is not None:
                item_guard = Guard(kind=GuardKind.NON_EMPTY_ARRAY, target=target)
                queue.append((node.items, f"{target}[0]", guards + (item_guard,), ancestors))
        else:
            assertions.extend(_value_checks(node, target, guards, document))

    return assertions


def _type_check(node: SchemaNode, target: str, guards: tuple[Guard, ...]) -> Assertion:
    return Assertion(
        target=target,
        check=CheckKind.IS_TYPE,
        params={"type": node.kind.value, "nullable": node.nullable},
        guards=guards,
    )


def _object_checks(node: SchemaNode, target: str, guards: tuple[Guard, ...]) -> list[Assertion]:
    checks = [_type_check(node, target, guards)]
    if node.required:
        checks.append(Assertion(
            target=target,
            check=CheckKind.HAS_REQUIRED_KEYS,
            params={"keys": list(node.required)},
            guards=_non_null(node, target, guards),
        ))
    return checks


def _array_checks(node: SchemaNode, target: str, guards: tuple[Guard, ...]) -> list[Assertion]:
    checks = [_type_check(node, target, guards)]
    if node.min_items is not None or node.max_items is not None:
        checks.append(Assertion(
            target=target,
            check=CheckKind.LENGTH_BOUND,
            params={"min": node.min_items, "max": node.max_items},
            guards=_non_null(node, target, guards),
        ))
    return checks


def _value_checks(node: SchemaNode, target: str, guards: tuple[Guard, ...], document: SpecDocument) -> list[Assertion]:
    if node.enum:
        values = list(node.enum)
        if node.nullable and None not in values:
            values.append(None)
        return [Assertion(target=target, check=CheckKind.ENUM_MEMBERSHIP, params={"values": values}, guards=guards)]

    if node.kind == SchemaKind.UNION:
        kinds = []
        for variant_id in node.variants:
            kind = document.node(variant_id).kind
            if kind == SchemaKind.UNKNOWN:
                return []
            if kind.value not in kinds:
                kinds.append(kind.value)
        return [Assertion(
            target=target,
            check=CheckKind.IS_TYPE,
            params={"types": kinds, "nullable": node.nullable},
            guards=guards,
        )]

    if node.kind == SchemaKind.UNKNOWN:
        if node.format in FORMAT_PATTERNS:
            return [_pattern_check(FORMAT_PATTERNS[node.format], node, target, guards)]
        return []

    checks = []
    format_pattern = FORMAT_PATTERNS.get(node.format or "") if node.kind == SchemaKind.STRING else None
    if format_pattern:
        checks.append(_pattern_check(format_pattern, node, target, guards))
    else:
        checks.append(_type_check(node, target, guards))

    inner = _non_null(node, target, guards)
    if node.kind == SchemaKind.STRING:
        if node.min_length is not None or node.max_length is not None:
            checks.append(Assertion(
                target=target,
                check=CheckKind.LENGTH_BOUND,
                params={"min": node.min_length, "max": node.max_length},
                guards=inner,
            ))
        if node.pattern:
            checks.append(_pattern_check(node.pattern, node, target, guards))
    elif node.kind in (SchemaKind.INTEGER, SchemaKind.NUMBER):
        if node.minimum is not None or node.maximum is not None:
            checks.append(Assertion(
                target=target,
                check=CheckKind.NUMERIC_RANGE,
                params={
                    "minimum": node.minimum,
                    "maximum": node.maximum,
                    "exclusive_minimum": node.exclusive_minimum,
                    "exclusive_maximum": node.exclusive_maximum,
                },
                guards=inner,
            ))
    return checks


def _pattern_check(pattern: str, node: SchemaNode, target: str, guards: tuple[Guard, ...]) -> Assertion:
    return Assertion(
        target=target,
        check=CheckKind.MATCHES_PATTERN,
        params={"pattern": pattern, "nullable": node.nullable},
        guards=guards,
    )


def _non_null(node: SchemaNode, target: str, guards: tuple[Guard, ...]) -> tuple[Guard, ...]:
    """Guards for checks that only make sense on a non-null value."""
    guard = Guard(kind=GuardKind.IF_PRESENT, target=target)
    if not node.nullable or guard in guards:
        return guards
    return guards + (guard,)
