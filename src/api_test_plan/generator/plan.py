"""Test plan generator — composes scenario and assertion synthesis per operation."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from api_test_plan.core.config import Settings
from api_test_plan.parser.base import Operation, SpecDocument
from api_test_plan.parser.errors import Diagnostic
from api_test_plan.parser.swagger import build_spec_document

from .models import OperationPlan, TestPlan
from .scenarios import plan_scenarios
from .values import ValueSynthesizer

logger = logging.getLogger(__name__)


class TestPlanGenerator:
    """Generates a TestPlan from a built SpecDocument."""

    __test__ = False  # not a pytest test class

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def generate(self, document: SpecDocument, diagnostics: list[Diagnostic] | None = None) -> TestPlan:
        """Plan every operation; ``diagnostics`` from earlier stages are kept first."""
        workers = max(1, self.settings.workers)
        if workers > 1 and len(document.operations) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(lambda op: self._plan_operation(op, document), document.operations))
        else:
            results = [self._plan_operation(op, document) for op in document.operations]

        collected = list(diagnostics or [])
        operations = []
        for operation_plan, operation_diagnostics in results:
            operations.append(operation_plan)
            collected.extend(operation_diagnostics)

        logger.info(
            "Planned %d scenarios across %d operations",
            sum(len(p.scenarios) for p in operations), len(operations),
        )
        return TestPlan(
            title=document.title,
            version=document.version,
            servers=tuple(document.servers),
            operations=tuple(operations),
            diagnostics=tuple(collected),
        )

    def _plan_operation(self, operation: Operation, document: SpecDocument) -> tuple[OperationPlan, list[Diagnostic]]:
        # Each operation gets its own synthesizer so nothing mutable is shared across workers.
        synthesizer = ValueSynthesizer(document, self.settings, operation=operation.operation_id)
        scenarios = plan_scenarios(operation, document, synthesizer, self.settings)
        operation_plan = OperationPlan(
            operation_id=operation.operation_id,
            method=operation.method,
            path=operation.path,
            summary=operation.summary,
            tags=tuple(operation.tags),
            scenarios=tuple(scenarios),
        )
        return operation_plan, synthesizer.diagnostics


def compile_document(raw: Any, settings: Settings | None = None) -> TestPlan:
    """Build and plan a raw OpenAPI / Swagger tree in one step."""
    result = build_spec_document(raw)
    return TestPlanGenerator(settings).generate(result.document, diagnostics=result.diagnostics)
