"""CLI entry point for api-test-plan."""

import fnmatch
from pathlib import Path

import click
import yaml

from api_test_plan.core.config import get_settings
from api_test_plan.core.logging import setup_logging
from api_test_plan.generator.plan import TestPlanGenerator
from api_test_plan.generator.validator import validate_plan
from api_test_plan.parser.base import Operation
from api_test_plan.parser.detect import DocumentLoadError, load_document
from api_test_plan.parser.swagger import BuildResult, build_spec_document


def _build(doc_path: Path) -> BuildResult:
    """Load and build an API document."""
    try:
        raw = load_document(doc_path)
    except DocumentLoadError as e:
        raise click.ClickException(str(e)) from e
    return build_spec_document(raw)


def _filter_operations(operations: list[Operation], patterns: tuple[str, ...]) -> list[Operation]:
    """Keep operations matching any pattern like 'GET /pets' or '/pets/*'."""
    if not patterns:
        return operations
    result = []
    for op in operations:
        for pattern in patterns:
            parts = pattern.split(None, 1)
            if len(parts) == 2:
                method, path_glob = parts
                if op.method == method.upper() and fnmatch.fnmatchcase(op.path, path_glob):
                    result.append(op)
                    break
            elif fnmatch.fnmatchcase(op.path, pattern):
                result.append(op)
                break
    return result


@click.group()
def main():
    """API Test Plan — compile OpenAPI documents into HTTP test plans."""
    pass


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output file for the test plan.")
@click.option("--format", "fmt", default="json", type=click.Choice(["json", "yaml"]), help="Output format.")
@click.option("--filter", "filters", multiple=True, help="Only plan matching operations, e.g. 'GET /pets/*'.")
@click.option("--workers", default=None, type=click.IntRange(min=1), help="Worker threads for synthesis.")
@click.option("--strict", is_flag=True, help="Exit with status 1 on any error diagnostic or invalid scenario.")
@click.option("--log-level", default=None, type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
def plan(doc_path: Path, output: Path, fmt: str, filters: tuple[str, ...], workers: int | None, strict: bool, log_level: str | None):
    """Compile an API document into a test plan."""
    settings = get_settings(workers=workers, log_level=log_level)
    setup_logging(settings.log_level)

    click.echo(f"Parsing {doc_path}...")
    result = _build(doc_path)
    document = result.document
    document.operations = _filter_operations(document.operations, filters)
    click.echo(f"Found {len(document.operations)} operations.")

    test_plan = TestPlanGenerator(settings).generate(document, diagnostics=result.diagnostics)

    if fmt == "json":
        content = test_plan.model_dump_json(indent=2) + "\n"
    else:
        content = yaml.safe_dump(test_plan.model_dump(mode="json"), sort_keys=False, allow_unicode=True)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(content, encoding="utf-8")
    click.echo(f"Planned {len(test_plan.scenarios())} scenarios, saved to {output}")

    for diagnostic in test_plan.diagnostics:
        where = f" [{diagnostic.operation}]" if diagnostic.operation else ""
        click.echo(f"  {diagnostic.severity.upper()} {diagnostic.code}{where}: {diagnostic.message}", err=True)

    errors = validate_plan(test_plan)
    for scenario_id, message in errors.items():
        click.echo(f"  INVALID {scenario_id}: {message}", err=True)

    if strict and (errors or test_plan.has_errors()):
        click.get_current_context().exit(1)


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, path_type=Path))
@click.option("--filter", "filters", multiple=True, help="Only list matching operations, e.g. 'GET /pets/*'.")
def operations(doc_path: Path, filters: tuple[str, ...]):
    """List the operations of an API document and any build errors."""
    setup_logging(get_settings().log_level)
    result = _build(doc_path)
    for op in _filter_operations(result.document.operations, filters):
        auth = "secured" if op.security else "public"
        click.echo(f"{op.method:7} {op.path}  ({op.operation_id}, {auth})")
    for error in result.errors:
        click.echo(f"REJECTED {error.operation or '-'}: {error.message}", err=True)
