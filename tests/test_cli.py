import json
from pathlib import Path

import yaml
from click.testing import CliRunner

from api_test_plan.cli import _filter_operations, main
from api_test_plan.parser.base import Operation, PathSegment

FIXTURES = Path(__file__).parent / "fixtures"

BROKEN_DOC = """\
openapi: 3.0.3
info:
  title: Broken
  version: '1'
paths:
  /things:
    get:
      operationId: listThings
      responses:
        '200':
          description: ok
          content:
            application/json:
              schema:
                $ref: '#/components/schemas/Missing'
  /health:
    get:
      operationId: health
      responses:
        '200':
          description: ok
"""


def _make_operation(method: str, path: str) -> Operation:
    return Operation(
        operation_id=f"{method.lower()}{path}",
        method=method,
        path=path,
        path_segments=[PathSegment(text=path)],
    )


class TestCliPlan:
    def test_plan_json(self, tmp_path):
        output_file = tmp_path / "plan.json"
        runner = CliRunner()
        result = runner.invoke(main, ["plan", str(FIXTURES / "petstore.yaml"), "-o", str(output_file)])

        assert result.exit_code == 0, result.output
        assert "Found 3 operations." in result.output
        assert "Planned 7 scenarios" in result.output
        data = json.loads(output_file.read_text())
        assert data["title"] == "Petstore"
        assert data["operations"][0]["scenarios"][0]["scenario_id"] == "listPets:happy"

    def test_plan_yaml(self, tmp_path):
        output_file = tmp_path / "out" / "plan.yaml"
        runner = CliRunner()
        result = runner.invoke(main, [
            "plan", str(FIXTURES / "widgets.yaml"),
            "-o", str(output_file),
            "--format", "yaml",
        ])

        assert result.exit_code == 0, result.output
        data = yaml.safe_load(output_file.read_text())
        statuses = [s["expected_status"] for s in data["operations"][1]["scenarios"]]
        assert statuses == [200, 400, 401, 401, 403, 404]

    def test_plan_with_filter(self, tmp_path):
        output_file = tmp_path / "plan.json"
        runner = CliRunner()
        result = runner.invoke(main, [
            "plan", str(FIXTURES / "widgets.yaml"),
            "-o", str(output_file),
            "--filter", "DELETE /widgets/*",
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(output_file.read_text())
        assert [op["operation_id"] for op in data["operations"]] == ["deleteWidget"]

    def test_plan_reports_rejected_operations(self, tmp_path):
        doc = tmp_path / "broken.yaml"
        doc.write_text(BROKEN_DOC)
        output_file = tmp_path / "plan.json"
        runner = CliRunner()
        result = runner.invoke(main, ["plan", str(doc), "-o", str(output_file)])

        assert result.exit_code == 0
        assert "dangling-reference [listThings]" in result.output
        data = json.loads(output_file.read_text())
        assert [op["operation_id"] for op in data["operations"]] == ["health"]

    def test_plan_strict_fails_on_errors(self, tmp_path):
        doc = tmp_path / "broken.yaml"
        doc.write_text(BROKEN_DOC)
        runner = CliRunner()
        result = runner.invoke(main, ["plan", str(doc), "-o", str(tmp_path / "plan.json"), "--strict"])

        assert result.exit_code == 1
        assert "Planned 1 scenarios" in result.output
        assert (tmp_path / "plan.json").exists()

    def test_plan_strict_passes_clean_document(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, [
            "plan", str(FIXTURES / "legacy_users.json"),
            "-o", str(tmp_path / "plan.json"),
            "--strict", "--workers", "2",
        ])

        assert result.exit_code == 0, result.output

    def test_plan_unparseable_document(self, tmp_path):
        doc = tmp_path / "bad.json"
        doc.write_text("{not json")
        runner = CliRunner()
        result = runner.invoke(main, ["plan", str(doc), "-o", str(tmp_path / "plan.json")])

        assert result.exit_code == 1
        assert "Cannot parse" in result.output


class TestCliOperations:
    def test_lists_operations(self):
        runner = CliRunner()
        result = runner.invoke(main, ["operations", str(FIXTURES / "petstore.yaml")])

        assert result.exit_code == 0
        assert "(listPets, public)" in result.output
        assert "(createPet, secured)" in result.output

    def test_lists_rejected_operations(self, tmp_path):
        doc = tmp_path / "broken.yaml"
        doc.write_text(BROKEN_DOC)
        runner = CliRunner()
        result = runner.invoke(main, ["operations", str(doc)])

        assert result.exit_code == 0
        assert "REJECTED listThings: Reference not found: #/components/schemas/Missing" in result.output


class TestFilterOperations:
    def test_no_filter_returns_all(self):
        ops = [_make_operation("GET", "/pets"), _make_operation("POST", "/pets")]
        assert _filter_operations(ops, ()) == ops

    def test_filter_by_method_and_path(self):
        ops = [_make_operation("GET", "/pets"), _make_operation("POST", "/pets")]
        result = _filter_operations(ops, ("get /pets",))
        assert [op.method for op in result] == ["GET"]

    def test_filter_by_path_glob(self):
        ops = [_make_operation("GET", "/pets"), _make_operation("GET", "/users/1")]
        result = _filter_operations(ops, ("/users/*",))
        assert [op.path for op in result] == ["/users/1"]

    def test_multiple_filters(self):
        ops = [_make_operation("GET", "/pets"), _make_operation("GET", "/users"), _make_operation("GET", "/orders")]
        result = _filter_operations(ops, ("/pets", "/orders"))
        assert [op.path for op in result] == ["/pets", "/orders"]
