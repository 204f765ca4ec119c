"""Scenario synthesizer — decides which scenarios apply to an operation.

Emission order is fixed: happy, missing-required-parameter (declaration
order), unauthenticated, invalid-credential, insufficient-permission,
not-found.
"""

import base64
import logging
from typing import Any

from api_test_plan.core.config import Settings
from api_test_plan.parser.base import (
    Operation,
    ParameterDef,
    ParameterLocation,
    SchemaKind,
    SpecDocument,
)
from api_test_plan.parser.errors import Diagnostic

from .assertions import derive_assertions
from .models import Credential, ScenarioKind, ScenarioPlan
from .values import ValueContext, ValueSynthesizer, encode_path_segment, stringify

logger = logging.getLogger(__name__)

NIL_UUID = "00000000-0000-0000-0000-000000000000"

INVALID_BASIC_CREDENTIAL = base64.b64encode(b"invalid-user:invalid-password").decode("ascii")

BEARER_SCHEME_TYPES = ("oauth2", "openIdConnect")


class _Request:
    """Mutable request parts used while assembling one scenario."""

    def __init__(self, path_values: dict[str, str], query: dict[str, Any], headers: dict[str, str], body: Any):
        self.path_values = path_values
        self.query = query
        self.headers = headers
        self.body = body

    def copy(self) -> "_Request":
        return _Request(dict(self.path_values), dict(self.query), dict(self.headers), self.body)


def success_status(operation: Operation, settings: Settings) -> int:
    """Lowest documented 2xx status, or the configured default."""
    documented = sorted(code for code in operation.responses if 200 <= code < 300)
    return documented[0] if documented else settings.default_success_status


def resolve_path(operation: Operation, path_values: dict[str, str]) -> str:
    """Substitute already-encoded values into the path template."""
    return "".join(
        path_values.get(segment.text, "") if segment.is_parameter else segment.text
        for segment in operation.path_segments
    )


def plan_scenarios(
    operation: Operation,
    document: SpecDocument,
    synthesizer: ValueSynthesizer | None = None,
    settings: Settings | None = None,
) -> list[ScenarioPlan]:
    """Build every applicable scenario for ``operation``."""
    settings = settings or Settings()
    synthesizer = synthesizer or ValueSynthesizer(document, settings, operation=operation.operation_id)
    planner = _ScenarioPlanner(operation, document, synthesizer, settings)
    return planner.plan()


class _ScenarioPlanner:
    def __init__(self, operation: Operation, document: SpecDocument, synthesizer: ValueSynthesizer, settings: Settings):
        self.operation = operation
        self.document = document
        self.synthesizer = synthesizer
        self.settings = settings
        self.secured = bool(operation.security)
        self.label = operation.summary or f"{operation.method} {operation.path}"

    def plan(self) -> list[ScenarioPlan]:
        base = self._base_request()
        scenarios = [self._happy(base)]

        if self.operation.documents_status(self.settings.missing_parameter_status):
            for param in self.operation.parameters:
                if param.required:
                    scenarios.append(self._missing_parameter(base, param))

        if self.secured:
            scenarios.append(self._scenario(
                ScenarioKind.UNAUTHENTICATED, base, Credential.NONE,
                self.settings.unauthenticated_status, "without credentials",
            ))
            scenarios.append(self._scenario(
                ScenarioKind.INVALID_CREDENTIAL, base, Credential.INVALID,
                self.settings.unauthenticated_status, "with an unrecognized credential",
            ))
            scenarios.append(self._scenario(
                ScenarioKind.INSUFFICIENT_PERMISSION, base, Credential.LIMITED,
                self.settings.forbidden_status, "with an under-scoped credential",
            ))

        not_found = self._not_found(base)
        if not_found is not None:
            scenarios.append(not_found)

        logger.debug("%s: planned %d scenarios", self.operation.operation_id, len(scenarios))
        return scenarios

    # -- request assembly -----------------------------------------------------

    def _base_request(self) -> _Request:
        """Happy-path request parts without any credential."""
        path_values: dict[str, str] = {}
        query: dict[str, Any] = {}
        headers: dict[str, str] = {}
        for param in self.operation.parameters:
            if not (param.required or self._has_example(param)):
                continue
            if param.location == ParameterLocation.PATH:
                if param.example is not None:
                    path_values[param.name] = encode_path_segment(param.example)
                else:
                    context = ValueContext(name=param.name, is_path_segment=True)
                    path_values[param.name] = self.synthesizer.synthesize(param.schema_id, context)
                continue

            value = self._value(param)
            if param.location == ParameterLocation.QUERY:
                query[param.name] = value
            else:
                headers[param.name] = stringify(value)

        body = None
        if self.operation.request_body_schema is not None:
            body = self.synthesizer.synthesize(self.operation.request_body_schema, ValueContext(name="body"))
        return _Request(path_values, query, headers, body)

    def _value(self, param: ParameterDef) -> Any:
        if param.example is not None:
            return param.example
        return self.synthesizer.synthesize(param.schema_id, ValueContext(name=param.name))

    def _has_example(self, param: ParameterDef) -> bool:
        node = self.document.node(param.schema_id)
        return param.example is not None or node.example is not None or node.default is not None

    def _with_credential(self, request: _Request, credential: Credential) -> _Request:
        request = request.copy()
        if not self.secured or credential == Credential.NONE:
            return request

        name = self.operation.security[0]
        scheme = self.document.security_schemes.get(name)
        if scheme is None:
            self._warn("unknown-security-scheme", f"Security scheme '{name}' is not declared; assuming bearer")

        if scheme is not None and scheme.type == "apiKey":
            token = self.settings.invalid_api_key if credential == Credential.INVALID else self._token(credential)
            key_name = scheme.parameter_name or name
            if scheme.location == "query":
                request.query[key_name] = token
            elif scheme.location == "cookie":
                request.headers["Cookie"] = f"{key_name}={token}"
            else:
                request.headers[key_name] = token
        elif scheme is not None and (scheme.type == "basic" or scheme.scheme == "basic"):
            token = INVALID_BASIC_CREDENTIAL if credential == Credential.INVALID else self._token(credential)
            request.headers["Authorization"] = f"Basic {token}"
        else:
            token = self.settings.invalid_bearer_token if credential == Credential.INVALID else self._token(credential)
            request.headers["Authorization"] = f"Bearer {token}"
        return request

    def _token(self, credential: Credential) -> str:
        if credential == Credential.LIMITED:
            return self.settings.limited_credential_placeholder
        return self.settings.credential_placeholder

    def _warn(self, code: str, message: str) -> None:
        if not any(d.code == code and d.message == message for d in self.synthesizer.diagnostics):
            self.synthesizer.diagnostics.append(Diagnostic(
                severity="warning", code=code, message=message, operation=self.operation.operation_id,
            ))

    # -- scenarios ------------------------------------------------------------

    def _scenario(
        self,
        kind: ScenarioKind,
        base: _Request,
        credential: Credential,
        expected_status: int,
        detail: str,
        target_parameter: str | None = None,
        assertions: tuple = (),
    ) -> ScenarioPlan:
        request = self._with_credential(base, credential)
        scenario_id = f"{self.operation.operation_id}:{kind.value}"
        if target_parameter is not None and kind == ScenarioKind.MISSING_REQUIRED_PARAMETER:
            scenario_id = f"{scenario_id}:{target_parameter}"
        return ScenarioPlan(
            scenario_id=scenario_id,
            kind=kind,
            operation_id=self.operation.operation_id,
            method=self.operation.method,
            path_template=self.operation.path,
            description=f"{self.label} - {detail}",
            path=resolve_path(self.operation, request.path_values),
            query=request.query,
            headers=request.headers,
            body=request.body,
            content_type=self.operation.content_type if request.body is not None else None,
            credential=credential if self.secured else None,
            target_parameter=target_parameter,
            expected_status=expected_status,
            assertions=assertions,
        )

    def _happy(self, base: _Request) -> ScenarioPlan:
        status = success_status(self.operation, self.settings)
        schema_id = self.operation.responses.get(status)
        assertions = tuple(derive_assertions(schema_id, self.document)) if schema_id is not None else ()
        return self._scenario(
            ScenarioKind.HAPPY, base, Credential.VALID, status,
            "succeeds with valid input", assertions=assertions,
        )

    def _missing_parameter(self, base: _Request, param: ParameterDef) -> ScenarioPlan:
        request = base.copy()
        if param.location == ParameterLocation.PATH:
            # An omitted path parameter leaves its segment empty.
            request.path_values[param.name] = ""
        elif param.location == ParameterLocation.QUERY:
            request.query.pop(param.name, None)
        else:
            request.headers.pop(param.name, None)
        return self._scenario(
            ScenarioKind.MISSING_REQUIRED_PARAMETER, request, Credential.VALID,
            self.settings.missing_parameter_status,
            f"rejects a request without required {param.location.value} parameter '{param.name}'",
            target_parameter=param.name,
        )

    def _not_found(self, base: _Request) -> ScenarioPlan | None:
        if not self.operation.documents_status(self.settings.not_found_status):
            return None
        declared = {p.name: p for p in self.operation.path_parameters()}
        candidates = []
        for segment in self.operation.path_segments:
            param = declared.get(segment.text) if segment.is_parameter else None
            if param is None:
                continue
            node = self.document.node(param.schema_id)
            if node.kind == SchemaKind.STRING and not node.enum:
                candidates.append((param, node))
        if not candidates:
            return None

        # The innermost identifier names the resource being looked up.
        param, node = candidates[-1]
        sentinel = NIL_UUID if node.format == "uuid" else self.settings.not_found_sentinel
        request = base.copy()
        request.path_values[param.name] = encode_path_segment(sentinel)
        return self._scenario(
            ScenarioKind.NOT_FOUND, request, Credential.VALID,
            self.settings.not_found_status,
            f"returns not found for a nonexistent '{param.name}'",
            target_parameter=param.name,
        )
