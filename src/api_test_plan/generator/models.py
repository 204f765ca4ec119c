"""Test plan models handed to the code emitter.

Every model here is frozen: scenarios and their assertions are built once
and never modified afterwards.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from api_test_plan.parser.errors import Diagnostic


class ScenarioKind(str, Enum):
    HAPPY = "happy"
    MISSING_REQUIRED_PARAMETER = "missing-required-parameter"
    UNAUTHENTICATED = "unauthenticated"
    INVALID_CREDENTIAL = "invalid-credential"
    INSUFFICIENT_PERMISSION = "insufficient-permission"
    NOT_FOUND = "not-found"


class Credential(str, Enum):
    VALID = "valid"
    NONE = "none"
    INVALID = "invalid"
    LIMITED = "limited"


class CheckKind(str, Enum):
    IS_TYPE = "is-type"
    HAS_REQUIRED_KEYS = "has-required-keys"
    ENUM_MEMBERSHIP = "enum-membership"
    MATCHES_PATTERN = "matches-pattern"
    NUMERIC_RANGE = "numeric-range"
    LENGTH_BOUND = "length-bound"


class GuardKind(str, Enum):
    IF_PRESENT = "if-present"
    NON_EMPTY_ARRAY = "is-nonempty-array-then-check-first-item"


class Guard(BaseModel):
    """A condition on ``target`` that must hold before an assertion runs."""

    model_config = ConfigDict(frozen=True)

    kind: GuardKind
    target: str


class Assertion(BaseModel):
    """A single structural check on the response body."""

    model_config = ConfigDict(frozen=True)

    target: str  # $, $.data, $.data[0].id
    check: CheckKind
    params: dict[str, Any] = {}
    guards: tuple[Guard, ...] = ()


class ScenarioPlan(BaseModel):
    """One fully resolved test case for an operation."""

    model_config = ConfigDict(frozen=True)

    scenario_id: str
    kind: ScenarioKind
    operation_id: str
    method: str
    path_template: str
    description: str = ""
    path: str
    query: dict[str, Any] = {}
    headers: dict[str, str] = {}
    body: Any = None
    content_type: str | None = None  # set when a body is sent
    credential: Credential | None = None  # None for public operations
    target_parameter: str | None = None  # omitted / substituted parameter
    expected_status: int
    assertions: tuple[Assertion, ...] = ()


class OperationPlan(BaseModel):
    """All scenarios planned for one operation, in emission order."""

    model_config = ConfigDict(frozen=True)

    operation_id: str
    method: str
    path: str
    summary: str = ""
    tags: tuple[str, ...] = ()
    scenarios: tuple[ScenarioPlan, ...] = ()


class TestPlan(BaseModel):
    """The compiled plan for a whole document."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(frozen=True)

    title: str = ""
    version: str = ""
    servers: tuple[str, ...] = ()
    operations: tuple[OperationPlan, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()

    def scenarios(self) -> list[ScenarioPlan]:
        return [s for op in self.operations for s in op.scenarios]

    def has_errors(self) -> bool:
        return any(d.severity == "error" for d in self.diagnostics)
