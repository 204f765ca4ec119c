"""OpenAPI / Swagger document builder.

Builds a SpecDocument from an OpenAPI 3.x or Swagger 2.0 tree. Each operation
is built independently: a failure rejects only that operation and is
reported in ``BuildResult.errors``.
"""

import logging
import re
from typing import Any
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict

from .base import (
    Operation,
    ParameterDef,
    ParameterLocation,
    PathSegment,
    SchemaArena,
    SchemaKind,
    SchemaNode,
    SecurityScheme,
    SpecDocument,
)
from .errors import (
    BuildError,
    DanglingReferenceError,
    Diagnostic,
    InvalidDocumentError,
    PathParameterMismatchError,
    UnsupportedSchemaConstructError,
)

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

PATH_TOKEN_RE = re.compile(r"\{([^{}]*)\}")

TYPE_KINDS = {
    "object": SchemaKind.OBJECT,
    "array": SchemaKind.ARRAY,
    "string": SchemaKind.STRING,
    "number": SchemaKind.NUMBER,
    "integer": SchemaKind.INTEGER,
    "boolean": SchemaKind.BOOLEAN,
    "null": SchemaKind.NULL,
}

# Swagger 2.0 non-body parameters carry their schema inline.
INLINE_SCHEMA_KEYS = (
    "type", "format", "items", "enum", "default", "minimum", "maximum",
    "exclusiveMinimum", "exclusiveMaximum", "minLength", "maxLength",
    "pattern", "minItems", "maxItems", "x-nullable",
)

MERGED_FIELDS = (
    "format", "enum", "minimum", "maximum", "min_length", "max_length",
    "pattern", "min_items", "max_items", "example", "default",
)


class BuildResult(BaseModel):
    """The built document plus every operation-level error."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    document: SpecDocument
    errors: list[BuildError] = []
    warnings: list[Diagnostic] = []

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return [e.to_diagnostic() for e in self.errors] + list(self.warnings)


def operation_key(method: str, path: str) -> str:
    return f"{method.upper()} {path}"


def parse_path_template(path: str) -> list[PathSegment]:
    """Split ``/widgets/{id}/parts`` into literal and parameter tokens."""
    segments = []
    position = 0
    for match in PATH_TOKEN_RE.finditer(path):
        if match.start() > position:
            segments.append(PathSegment(text=path[position:match.start()]))
        name = match.group(1).strip()
        if not name:
            raise PathParameterMismatchError(f"Empty parameter token in path template {path!r}")
        segments.append(PathSegment(text=name, is_parameter=True))
        position = match.end()
    if position < len(path):
        segments.append(PathSegment(text=path[position:]))

    for segment in segments:
        if not segment.is_parameter and ("{" in segment.text or "}" in segment.text):
            raise PathParameterMismatchError(f"Unbalanced braces in path template {path!r}")
    return segments


def build_spec_document(raw: Any) -> BuildResult:
    """Build a SpecDocument from a parsed OpenAPI / Swagger tree."""
    if not isinstance(raw, dict) or not ("openapi" in raw or "swagger" in raw):
        error = InvalidDocumentError("Document must be a mapping with an 'openapi' or 'swagger' key")
        return BuildResult(document=SpecDocument(version=""), errors=[error])
    return _DocumentBuilder(raw).build()


def _pick_media(content: Any) -> tuple[str | None, dict | None]:
    if not isinstance(content, dict) or not content:
        return None, None
    if isinstance(content.get("application/json"), dict):
        return "application/json", content["application/json"]
    for media_type, media in content.items():
        if str(media_type).endswith("+json") and isinstance(media, dict):
            return media_type, media
    media_type, media = next(iter(content.items()))
    return media_type, media if isinstance(media, dict) else {}


def _first_example(raw: dict) -> Any:
    if raw.get("example") is not None:
        return raw["example"]
    examples = raw.get("examples")
    if isinstance(examples, dict):
        for example in examples.values():
            if isinstance(example, dict) and "value" in example:
                return example["value"]
    return None


class _DocumentBuilder:
    def __init__(self, raw: dict):
        self.raw = raw
        self.swagger2 = "swagger" in raw and "openapi" not in raw
        self.arena = SchemaArena()
        self.memo: dict[str, int] = {}
        self.in_progress: set[int] = set()
        self.errors: list[BuildError] = []
        self.warnings: list[Diagnostic] = []

    def build(self) -> BuildResult:
        version = str(self.raw.get("openapi") or self.raw.get("swagger"))
        info = self.raw.get("info") if isinstance(self.raw.get("info"), dict) else {}
        schemes = self._security_schemes()

        operations = []
        paths = self.raw.get("paths") or {}
        if not isinstance(paths, dict):
            self.errors.append(InvalidDocumentError("'paths' must be a mapping"))
            paths = {}

        for path, path_item in paths.items():
            try:
                path_item = self.deref(path_item)
            except BuildError as e:
                e.operation = e.operation or str(path)
                self.errors.append(e)
                continue
            for method, raw_op in path_item.items():
                if str(method).lower() not in HTTP_METHODS or not isinstance(raw_op, dict):
                    continue
                operation = self._build_transactional(str(path), str(method), path_item, raw_op)
                if operation is not None:
                    operations.append(operation)

        logger.info("Built %d operations (%d rejected)", len(operations), len(self.errors))
        document = SpecDocument(
            version=version,
            title=str(info.get("title", "")),
            servers=self._servers(),
            operations=operations,
            security_schemes=schemes,
            schemas=self.arena.nodes,
        )
        return BuildResult(document=document, errors=self.errors, warnings=self.warnings)

    def _build_transactional(self, path: str, method: str, path_item: dict, raw_op: dict) -> Operation | None:
        key = str(raw_op.get("operationId") or operation_key(method, path))
        arena_size = len(self.arena)
        memo_before = set(self.memo)
        warnings_size = len(self.warnings)
        try:
            return self._build_operation(key, path, method, path_item, raw_op)
        except BuildError as e:
            # Drop everything this operation created so later references retry cleanly.
            self.arena.truncate(arena_size)
            del self.warnings[warnings_size:]
            for pointer in set(self.memo) - memo_before:
                del self.memo[pointer]
            self.in_progress.clear()
            e.operation = e.operation or key
            logger.warning("Skipping %s: %s", key, e.message)
            self.errors.append(e)
            return None

    # -- references -----------------------------------------------------------

    def resolve_pointer(self, pointer: str) -> Any:
        """Resolve a local JSON pointer such as ``#/components/schemas/Widget``."""
        if not pointer.startswith("#"):
            raise UnsupportedSchemaConstructError(
                f"External references are not supported: {pointer}", pointer=pointer
            )
        current: Any = self.raw
        fragment = pointer[1:]
        if not fragment:
            return current
        if not fragment.startswith("/"):
            raise DanglingReferenceError(pointer)
        for part in fragment[1:].split("/"):
            part = unquote(part).replace("~1", "/").replace("~0", "~")
            if isinstance(current, dict) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                raise DanglingReferenceError(pointer)
        return current

    def deref(self, obj: Any) -> dict:
        """Follow a chain of ``$ref`` objects to a mapping (non-schema objects)."""
        seen: list[str] = []
        while isinstance(obj, dict) and isinstance(obj.get("$ref"), str):
            pointer = obj["$ref"]
            if pointer in seen:
                raise UnsupportedSchemaConstructError(
                    f"Circular reference: {' -> '.join(seen + [pointer])}", pointer=pointer
                )
            seen.append(pointer)
            obj = self.resolve_pointer(pointer)
        if not isinstance(obj, dict):
            raise UnsupportedSchemaConstructError(
                "Expected a mapping", pointer=seen[-1] if seen else None
            )
        return obj

    # -- schemas --------------------------------------------------------------

    def schema(self, raw: Any) -> int:
        """Return the arena id for a raw schema, resolving references."""
        if isinstance(raw, dict) and isinstance(raw.get("$ref"), str):
            return self._schema_ref(raw["$ref"], ())
        if raw is False:
            raise UnsupportedSchemaConstructError("The 'false' schema is not supported")
        return self.arena.add(self._build_schema(raw))

    def _schema_ref(self, pointer: str, chain: tuple[str, ...]) -> int:
        if pointer in self.memo:
            return self.memo[pointer]
        if pointer in chain:
            raise UnsupportedSchemaConstructError(
                f"Circular reference alias: {' -> '.join(chain + (pointer,))}", pointer=pointer
            )
        target = self.resolve_pointer(pointer)
        if isinstance(target, dict) and isinstance(target.get("$ref"), str):
            node_id = self._schema_ref(target["$ref"], chain + (pointer,))
            self.memo[pointer] = node_id
            return node_id

        # Register a placeholder first so a self-reference resolves to this id.
        name = pointer.rsplit("/", 1)[-1].replace("~1", "/").replace("~0", "~")
        node_id = self.arena.add(SchemaNode(title=name))
        self.memo[pointer] = node_id
        self.in_progress.add(node_id)
        try:
            if target is False:
                raise UnsupportedSchemaConstructError("The 'false' schema is not supported", pointer=pointer)
            node = self._build_schema(target)
        finally:
            self.in_progress.discard(node_id)
        if node.title is None:
            node.title = name
        self.arena.replace(node_id, node)
        return node_id

    def _build_schema(self, raw: Any) -> SchemaNode:
        if not isinstance(raw, dict):
            return SchemaNode()
        if "not" in raw:
            raise UnsupportedSchemaConstructError("'not' schemas are not supported")
        if "allOf" in raw:
            return self._merge_all_of(raw)

        nullable = bool(raw.get("nullable") or raw.get("x-nullable"))
        for key in ("oneOf", "anyOf"):
            if key in raw:
                members = raw[key]
                if not isinstance(members, list) or not members:
                    raise UnsupportedSchemaConstructError(f"'{key}' must be a non-empty list")
                return SchemaNode(
                    kind=SchemaKind.UNION,
                    title=_text(raw.get("title")),
                    variants=[self.schema(m) for m in members],
                    nullable=nullable,
                )

        type_ = raw.get("type")
        if isinstance(type_, list):
            types = [t for t in type_ if t != "null"]
            nullable = nullable or len(types) != len(type_)
            if not types:
                type_ = "null"
            elif len(types) == 1:
                type_ = types[0]
            else:
                variants = [self.arena.add(self._build_schema({**raw, "type": t})) for t in types]
                return SchemaNode(kind=SchemaKind.UNION, variants=variants, nullable=nullable)

        node = SchemaNode(
            kind=self._kind(type_, raw),
            title=_text(raw.get("title")),
            format=_text(raw.get("format")),
            nullable=nullable,
            example=_first_example(raw),
            default=raw.get("default"),
        )
        if isinstance(raw.get("enum"), list):
            node.enum = list(raw["enum"])
        elif "const" in raw:
            node.enum = [raw["const"]]
        self._apply_constraints(node, raw)

        if node.kind == SchemaKind.OBJECT:
            properties = raw.get("properties") or {}
            if not isinstance(properties, dict):
                raise UnsupportedSchemaConstructError("'properties' must be a mapping")
            node.properties = {str(name): self.schema(sub) for name, sub in properties.items()}
            required = raw.get("required")
            node.required = [r for r in required if isinstance(r, str)] if isinstance(required, list) else []
        elif node.kind == SchemaKind.ARRAY:
            items = raw.get("items", {})
            if isinstance(items, list):
                raise UnsupportedSchemaConstructError("Tuple-style 'items' lists are not supported")
            node.items = self.schema(items)
        return node

    def _kind(self, type_: Any, raw: dict) -> SchemaKind:
        if isinstance(type_, str):
            return TYPE_KINDS.get(type_, SchemaKind.UNKNOWN)
        if "properties" in raw or "additionalProperties" in raw:
            return SchemaKind.OBJECT
        if "items" in raw:
            return SchemaKind.ARRAY
        return SchemaKind.UNKNOWN

    def _apply_constraints(self, node: SchemaNode, raw: dict) -> None:
        if _is_number(raw.get("minimum")):
            node.minimum = raw["minimum"]
        if _is_number(raw.get("maximum")):
            node.maximum = raw["maximum"]

        exclusive_min = raw.get("exclusiveMinimum")
        if isinstance(exclusive_min, bool):
            node.exclusive_minimum = exclusive_min
        elif _is_number(exclusive_min):
            if node.minimum is None or exclusive_min >= node.minimum:
                node.minimum = exclusive_min
                node.exclusive_minimum = True

        exclusive_max = raw.get("exclusiveMaximum")
        if isinstance(exclusive_max, bool):
            node.exclusive_maximum = exclusive_max
        elif _is_number(exclusive_max):
            if node.maximum is None or exclusive_max <= node.maximum:
                node.maximum = exclusive_max
                node.exclusive_maximum = True

        for raw_key, field in (
            ("minLength", "min_length"),
            ("maxLength", "max_length"),
            ("minItems", "min_items"),
            ("maxItems", "max_items"),
        ):
            value = raw.get(raw_key)
            if isinstance(value, int) and not isinstance(value, bool):
                setattr(node, field, value)
        if isinstance(raw.get("pattern"), str):
            node.pattern = raw["pattern"]

    def _merge_all_of(self, raw: dict) -> SchemaNode:
        members = raw["allOf"]
        if not isinstance(members, list) or not members:
            raise UnsupportedSchemaConstructError("'allOf' must be a non-empty list")

        parts = [self.schema(m) for m in members]
        own = {k: v for k, v in raw.items() if k != "allOf"}
        if own:
            parts.append(self.arena.add(self._build_schema(own)))

        merged = SchemaNode(
            kind=SchemaKind.UNKNOWN,
            title=_text(raw.get("title")),
            nullable=bool(raw.get("nullable") or raw.get("x-nullable")),
        )
        kinds = set()
        for part_id in parts:
            if part_id in self.in_progress:
                raise UnsupportedSchemaConstructError("Recursive 'allOf' composition is not supported")
            part = self.arena.get(part_id)
            if part.kind == SchemaKind.UNION:
                raise UnsupportedSchemaConstructError("'allOf' over 'oneOf'/'anyOf' is not supported")
            if part.kind != SchemaKind.UNKNOWN:
                kinds.add(part.kind)
            merged.properties.update(part.properties)
            merged.required.extend(r for r in part.required if r not in merged.required)
            if part.items is not None:
                merged.items = part.items
            for field in MERGED_FIELDS:
                value = getattr(part, field)
                if value is not None:
                    setattr(merged, field, value)
            merged.exclusive_minimum = merged.exclusive_minimum or part.exclusive_minimum
            merged.exclusive_maximum = merged.exclusive_maximum or part.exclusive_maximum

        if len(kinds) > 1:
            names = ", ".join(sorted(k.value for k in kinds))
            raise UnsupportedSchemaConstructError(f"'allOf' mixes incompatible types: {names}")
        if kinds:
            merged.kind = kinds.pop()
        elif merged.properties:
            merged.kind = SchemaKind.OBJECT

        if merged.kind == SchemaKind.ARRAY and merged.items is None:
            merged.items = self.arena.add(SchemaNode())
        if merged.kind != SchemaKind.ARRAY:
            merged.items = None
        return merged

    # -- operations -----------------------------------------------------------

    def _build_operation(self, key: str, path: str, method: str, path_item: dict, raw_op: dict) -> Operation:
        segments = parse_path_template(path)

        parameters = []
        form_params = []
        body_id, body_required, content_type = None, False, "application/json"
        for raw_param in self._merge_parameters(path_item.get("parameters"), raw_op.get("parameters")):
            location = raw_param.get("in")
            if location == "body":
                body_id = self.schema(raw_param.get("schema", {}))
                body_required = bool(raw_param.get("required"))
            elif location == "formData":
                form_params.append(raw_param)
            elif location == "cookie":
                self.warnings.append(Diagnostic(
                    severity="warning",
                    code="cookie-parameter-dropped",
                    message=f"Cookie parameter '{raw_param.get('name')}' is not modelled",
                    operation=key,
                ))
            elif location in ("path", "query", "header"):
                parameters.append(self._parameter(raw_param))
            else:
                raise UnsupportedSchemaConstructError(f"Unknown parameter location: {location!r}")

        if form_params:
            body_id, body_required, content_type = self._form_body(form_params)
        if "requestBody" in raw_op:
            body_id, body_required, content_type = self._request_body(raw_op["requestBody"])

        self._check_path_parameters(path, segments, parameters)

        return Operation(
            operation_id=key,
            method=method.upper(),
            path=path,
            path_segments=segments,
            summary=str(raw_op.get("summary") or raw_op.get("description") or ""),
            parameters=parameters,
            request_body_schema=body_id,
            request_body_required=body_required,
            content_type=content_type,
            responses=self._responses(raw_op.get("responses") or {}),
            security=self._security(raw_op),
            tags=[str(t) for t in raw_op.get("tags") or []],
        )

    def _merge_parameters(self, path_level: Any, op_level: Any) -> list[dict]:
        merged: dict[tuple[str, str], dict] = {}
        for raw_list in (path_level, op_level):
            if not raw_list:
                continue
            if not isinstance(raw_list, list):
                raise UnsupportedSchemaConstructError("'parameters' must be a list")
            for raw_param in raw_list:
                param = self.deref(raw_param)
                merged[(str(param.get("name")), str(param.get("in")))] = param
        return list(merged.values())

    def _parameter(self, raw: dict) -> ParameterDef:
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise UnsupportedSchemaConstructError("Parameter without a name")

        if "schema" in raw:
            schema_id = self.schema(raw["schema"])
        elif "content" in raw:
            _, media = _pick_media(raw["content"])
            schema_id = self.schema((media or {}).get("schema", {}))
        else:
            schema_id = self.schema({k: raw[k] for k in INLINE_SCHEMA_KEYS if k in raw})

        location = ParameterLocation(raw["in"])
        return ParameterDef(
            name=name,
            location=location,
            required=bool(raw.get("required")) or location == ParameterLocation.PATH,
            schema_id=schema_id,
            description=str(raw.get("description") or ""),
            example=_first_example(raw),
        )

    def _form_body(self, form_params: list[dict]) -> tuple[int, bool, str]:
        node = SchemaNode(kind=SchemaKind.OBJECT)
        has_file = False
        for raw in form_params:
            name = str(raw.get("name"))
            has_file = has_file or raw.get("type") == "file"
            node.properties[name] = self.schema({k: raw[k] for k in INLINE_SCHEMA_KEYS if k in raw})
            if raw.get("required"):
                node.required.append(name)
        content_type = "multipart/form-data" if has_file else "application/x-www-form-urlencoded"
        return self.arena.add(node), bool(node.required), content_type

    def _request_body(self, raw: Any) -> tuple[int | None, bool, str]:
        body = self.deref(raw)
        media_type, media = _pick_media(body.get("content"))
        required = bool(body.get("required"))
        if media is None:
            return None, required, "application/json"
        schema = media.get("schema")
        return (self.schema(schema) if schema is not None else None), required, media_type

    def _check_path_parameters(self, path: str, segments: list[PathSegment], parameters: list[ParameterDef]) -> None:
        tokens = [s.text for s in segments if s.is_parameter]
        declared = [p.name for p in parameters if p.location == ParameterLocation.PATH]
        problems = []
        for name in declared:
            count = tokens.count(name)
            if count != 1:
                problems.append(f"path parameter '{name}' appears {count} times in {path!r}")
        for token in dict.fromkeys(tokens):
            if token not in declared:
                problems.append(f"template token '{{{token}}}' has no declared path parameter")
        if problems:
            raise PathParameterMismatchError("; ".join(problems))

    def _responses(self, raw: Any) -> dict[int, int | None]:
        if not isinstance(raw, dict):
            raise UnsupportedSchemaConstructError("'responses' must be a mapping")
        result: dict[int, int | None] = {}
        for status, response in raw.items():
            try:
                code = int(status)
            except (TypeError, ValueError):
                logger.debug("Ignoring non-numeric response key %r", status)
                continue
            response = self.deref(response) if response is not None else {}
            if self.swagger2:
                schema = response.get("schema")
            else:
                _, media = _pick_media(response.get("content"))
                schema = media.get("schema") if media else None
            result[code] = self.schema(schema) if schema is not None else None
        return result

    def _security(self, raw_op: dict) -> list[str]:
        requirements = raw_op["security"] if "security" in raw_op else self.raw.get("security")
        if not requirements or not isinstance(requirements, list):
            return []
        names: set[str] = set()
        for alternative in requirements:
            if not isinstance(alternative, dict):
                continue
            if not alternative:
                # An empty alternative allows anonymous access.
                return []
            names.update(str(n) for n in alternative)
        return sorted(names)

    # -- document level -------------------------------------------------------

    def _security_schemes(self) -> dict[str, SecurityScheme]:
        if self.swagger2:
            definitions = self.raw.get("securityDefinitions") or {}
        else:
            definitions = (self.raw.get("components") or {}).get("securitySchemes") or {}

        schemes = {}
        for name, raw in definitions.items():
            try:
                scheme = self.deref(raw)
            except BuildError as e:
                self.errors.append(e)
                continue
            schemes[str(name)] = SecurityScheme(
                name=str(name),
                type=str(scheme.get("type", "")),
                scheme=str(scheme["scheme"]).lower() if scheme.get("scheme") else None,
                location=scheme.get("in"),
                parameter_name=scheme.get("name"),
            )
        return schemes

    def _servers(self) -> list[str]:
        if self.swagger2:
            host = self.raw.get("host") or ""
            base_path = self.raw.get("basePath") or ""
            schemes = self.raw.get("schemes") or ["https"]
            if host:
                return [f"{schemes[0]}://{host}{base_path}"]
            return [base_path] if base_path else []
        servers = self.raw.get("servers") or []
        return [str(s["url"]) for s in servers if isinstance(s, dict) and "url" in s]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) else None
