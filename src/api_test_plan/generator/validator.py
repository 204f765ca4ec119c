"""Validates a compiled test plan before it is handed to an emitter."""

from .models import ScenarioKind, ScenarioPlan, TestPlan

PATH_FORBIDDEN = (" ", "{", "}", "\t", "\n", "\r")


def validate_paths(scenarios: list[ScenarioPlan]) -> dict[str, str]:
    """Check resolved paths for unescaped characters and empty segments.

    Returns dict of {scenario_id: error_message} for scenarios with errors.
    """
    errors = {}
    for scenario in scenarios:
        bad = [c for c in PATH_FORBIDDEN if c in scenario.path]
        if bad:
            errors[scenario.scenario_id] = f"Unescaped characters {bad!r} in path {scenario.path!r}"
            continue
        if not scenario.path.startswith("/"):
            errors[scenario.scenario_id] = f"Path {scenario.path!r} does not start with '/'"
            continue
        omits_path_param = (
            scenario.kind == ScenarioKind.MISSING_REQUIRED_PARAMETER
            and "{" + str(scenario.target_parameter) + "}" in scenario.path_template
        )
        if "//" in scenario.path and not omits_path_param and "//" not in scenario.path_template:
            errors[scenario.scenario_id] = f"Empty segment in path {scenario.path!r}"
    return errors


def validate_headers(scenarios: list[ScenarioPlan]) -> dict[str, str]:
    """Check header maps are well-formed: non-empty names, no line breaks.

    Returns dict of {scenario_id: error_message} for scenarios with errors.
    """
    errors = {}
    for scenario in scenarios:
        for name, value in scenario.headers.items():
            if not name.strip() or any(c in name for c in ":\r\n "):
                errors[scenario.scenario_id] = f"Malformed header name {name!r}"
                break
            if "\r" in value or "\n" in value:
                errors[scenario.scenario_id] = f"Line break in header {name!r}"
                break
    return errors


def validate_expectations(scenarios: list[ScenarioPlan]) -> dict[str, str]:
    """Check expected statuses and that only 2xx scenarios assert body shape."""
    errors = {}
    for scenario in scenarios:
        if not 100 <= scenario.expected_status <= 599:
            errors[scenario.scenario_id] = f"Expected status {scenario.expected_status} is not an HTTP status"
        elif scenario.assertions and not 200 <= scenario.expected_status < 300:
            errors[scenario.scenario_id] = "Body assertions on a non-2xx scenario"
    return errors


def validate_plan(plan: TestPlan) -> dict[str, str]:
    """Run all validations on a plan.

    Returns dict of {scenario_id: error_message} for all scenarios with errors.
    Duplicate scenario ids are reported under the duplicated id.
    """
    scenarios = plan.scenarios()
    errors = {}

    seen = set()
    for scenario in scenarios:
        if scenario.scenario_id in seen:
            errors[scenario.scenario_id] = "Duplicate scenario id"
        seen.add(scenario.scenario_id)

    for check in (validate_paths, validate_headers, validate_expectations):
        for scenario_id, message in check(scenarios).items():
            errors.setdefault(scenario_id, message)
    return errors
