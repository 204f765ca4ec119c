"""Normalized data models for a parsed API document.

The builder converts an OpenAPI / Swagger tree into these models. Schemas
live in a flat arena (``SpecDocument.schemas``) and refer to each other by
integer id, so self-referential definitions need no special handling when
models are copied or serialized.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class SchemaKind(str, Enum):
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    NULL = "null"
    UNION = "union"
    UNKNOWN = "unknown"


class SchemaNode(BaseModel):
    """A single JSON-Schema-like type descriptor."""

    kind: SchemaKind = SchemaKind.UNKNOWN
    title: str | None = None  # $ref name, comment material only
    properties: dict[str, int] = {}  # name -> node id
    required: list[str] = []
    items: int | None = None
    variants: list[int] = []
    format: str | None = None
    enum: list[Any] | None = None
    nullable: bool = False
    minimum: float | None = None
    maximum: float | None = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    min_items: int | None = None
    max_items: int | None = None
    example: Any = None
    default: Any = None


class SchemaArena:
    """Append-only store of SchemaNode addressed by integer id."""

    def __init__(self, nodes: list[SchemaNode] | None = None):
        self.nodes: list[SchemaNode] = nodes if nodes is not None else []

    def add(self, node: SchemaNode) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def replace(self, node_id: int, node: SchemaNode) -> None:
        self.nodes[node_id] = node

    def get(self, node_id: int) -> SchemaNode:
        return self.nodes[node_id]

    def truncate(self, size: int) -> None:
        del self.nodes[size:]

    def __len__(self) -> int:
        return len(self.nodes)


class ParameterLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"


class ParameterDef(BaseModel):
    """A single operation parameter."""

    name: str
    location: ParameterLocation
    required: bool
    schema_id: int
    description: str = ""
    example: Any = None


class PathSegment(BaseModel):
    """One token of a path template: literal text or a ``{name}`` parameter."""

    text: str
    is_parameter: bool = False


class SecurityScheme(BaseModel):
    """A declared security scheme, kept only to shape credential headers."""

    name: str
    type: str  # http / apiKey / oauth2 / openIdConnect / basic
    scheme: str | None = None  # bearer / basic, for type=http
    location: str | None = None  # header / query / cookie, for type=apiKey
    parameter_name: str | None = None


class Operation(BaseModel):
    """A single HTTP method + path combination."""

    operation_id: str
    method: str  # GET / POST / PUT / DELETE / PATCH / ...
    path: str  # /widgets/{id}
    path_segments: list[PathSegment]
    summary: str = ""
    parameters: list[ParameterDef] = []
    request_body_schema: int | None = None
    request_body_required: bool = False
    content_type: str = "application/json"
    responses: dict[int, int | None] = {}  # status -> schema id, None = no body
    security: list[str] = []  # sorted scheme names, empty = public
    tags: list[str] = []

    def path_parameters(self) -> list[ParameterDef]:
        return [p for p in self.parameters if p.location == ParameterLocation.PATH]

    def documents_status(self, status: int) -> bool:
        return status in self.responses


class SpecDocument(BaseModel):
    """The normalized API document: operations in document order plus the schema arena."""

    version: str
    title: str = ""
    servers: list[str] = []
    operations: list[Operation] = []
    security_schemes: dict[str, SecurityScheme] = {}
    schemas: list[SchemaNode] = []

    def node(self, node_id: int) -> SchemaNode:
        return self.schemas[node_id]

    def arena(self) -> SchemaArena:
        return SchemaArena(self.schemas)
