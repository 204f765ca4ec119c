"""Build errors and diagnostics.

Builder internals raise ``BuildError`` subclasses; ``build_spec_document``
catches them per operation and reports them instead of aborting.
"""

from typing import Literal

from pydantic import BaseModel


class Diagnostic(BaseModel):
    """A reportable problem found while compiling a document."""

    severity: Literal["error", "warning"]
    code: str
    message: str
    operation: str | None = None
    pointer: str | None = None


class BuildError(Exception):
    """Base class for errors that reject an operation or the whole document."""

    code = "build-error"

    def __init__(self, message: str, operation: str | None = None, pointer: str | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.pointer = pointer

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(
            severity="error",
            code=self.code,
            message=self.message,
            operation=self.operation,
            pointer=self.pointer,
        )


class DanglingReferenceError(BuildError):
    """A ``$ref`` pointer that does not resolve inside the document."""

    code = "dangling-reference"

    def __init__(self, pointer: str, operation: str | None = None):
        super().__init__(f"Reference not found: {pointer}", operation=operation, pointer=pointer)


class PathParameterMismatchError(BuildError):
    """Declared path parameters and ``{name}`` template tokens disagree."""

    code = "path-parameter-mismatch"


class UnsupportedSchemaConstructError(BuildError):
    """A schema combinator or reference form the model cannot represent."""

    code = "unsupported-schema-construct"


class InvalidDocumentError(BuildError):
    """The root of the tree is not an OpenAPI / Swagger document."""

    code = "invalid-document"
