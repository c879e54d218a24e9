"""Tests for the regex-based ArkTS/TypeScript text provider."""

from pathlib import Path

import pytest

from capcheck.models.findings import Severity
from capcheck.models.program import ProjectLoadError
from capcheck.policy.catalog import default_catalog
from capcheck.providers.memory import MemoryProgram
from capcheck.providers.text_provider import (
    extract_calls,
    load_project,
    parse_source,
    split_code,
)
from capcheck.scanner.engine import analyze_program

FIXTURES = Path(__file__).parent / "fixtures"
DEMO = FIXTURES / "demo_project"
INDEX = "entry/src/main/ets/pages/Index.ets"
MULTI = "entry/src/main/ets/pages/MultipleApis.ets"

SERVICE_SOURCE = """\
import geo from '@ohos.geoLocationManager';

function helper(a) {
  geo.getCurrentLocation();
}

class Service {
  count: number = init();
  handler = () => {
    run();
  }

  start() {
    try {
      geo.getLastLocation();
    } catch (error) {
      log(error);
    }
  }
}
"""

def calls_on(line: str):
    code, masked = split_code(line)
    return extract_calls(code[0], masked[0], 1)

def by_signature(methods):
    return {m.signature: m for m in methods}

class TestSplitCode:
    def test_line_comment_blanked(self):
        code, _ = split_code("a(); // foo(\nb();")
        assert code[0].rstrip() == "a();"
        assert code[1] == "b();"

    def test_block_comment_keeps_columns(self):
        source = "x /* y() */ z()"
        code, masked = split_code(source)
        assert "y(" not in code[0]
        assert len(code[0]) == len(source)
        assert len(masked[0]) == len(source)
        assert code[0].endswith("z()")

    def test_multiline_block_comment(self):
        code, _ = split_code("/*\n * call()\n */\nreal();")
        assert code[1].strip() == ""
        assert code[3] == "real();"

    def test_string_contents_masked(self):
        code, masked = split_code("b('x(y)');")
        assert code[0] == "b('x(y)');"
        assert masked[0] == "b('    ');"

class TestExtractCalls:
    def test_nested_calls_with_arguments(self):
        calls = calls_on("foo(a, bar(b, c));")
        assert [c.name for c in calls] == ["foo", "bar"]
        assert calls[0].args == ["a", "bar(b, c)"]
        assert calls[0].text == "foo(a, bar(b, c))"
        assert calls[1].args == ["b", "c"]
        assert calls[1].position() == (1, 8)

    def test_member_call_uses_last_name(self):
        calls = calls_on("geo.getCurrentLocation();")
        assert [c.name for c in calls] == ["getCurrentLocation"]
        assert calls[0].args == []

    def test_string_argument_kept_verbatim(self):
        calls = calls_on("x.canIUse('SystemCapability.Location.Location.Core')")
        assert calls[0].name == "canIUse"
        assert calls[0].args == ["'SystemCapability.Location.Location.Core'"]

    def test_parens_inside_strings_ignored(self):
        calls = calls_on("log('call(x)')")
        assert [c.name for c in calls] == ["log"]

    def test_keywords_not_calls(self):
        calls = calls_on("if (check(x)) { return fetch(y); }")
        assert [c.name for c in calls] == ["check", "fetch"]

    def test_constructors_and_declarations_skipped(self):
        assert calls_on("const m = new Map();") == []
        assert calls_on("function f(x) {") == []

    def test_generic_call(self):
        calls = calls_on("store.get<string>(key)")
        assert calls[0].name == "get"
        assert calls[0].args == ["key"]

    def test_arguments_continue_on_following_lines(self):
        code, masked = split_code("if (canIUse(\n    'SystemCapability.Location.Location.Core')) {")
        calls = extract_calls(code[0], masked[0], 1, list(zip(code[1:], masked[1:])))
        assert calls[0].name == "canIUse"
        assert calls[0].args == ["'SystemCapability.Location.Location.Core'"]
        assert calls[0].position() == (1, 5)

    def test_unclosed_call_without_following_lines(self):
        calls = calls_on("foo(a,")
        assert calls[0].name == "foo"
        assert calls[0].args[0] == "a"


class TestParseSource:
    def test_method_signatures(self):
        methods = parse_source(SERVICE_SOURCE, "src/a.ets")
        assert [m.signature for m in methods] == [
            "@src/a.ets: %dflt.%dflt()",
            "@src/a.ets: %dflt.helper()",
            "@src/a.ets: Service.%instInit()",
            "@src/a.ets: Service.handler()",
            "@src/a.ets: Service.start()",
        ]

    def test_free_function_statements(self):
        helper = by_signature(parse_source(SERVICE_SOURCE, "src/a.ets"))["@src/a.ets: %dflt.helper()"]
        statements = helper.statements()
        assert [s.text for s in statements] == ["geo.getCurrentLocation();"]
        call = statements[0].calls()[0]
        assert call.callee_name() == "getCurrentLocation"
        assert call.position() == (4, 7)

    def test_field_initializer_goes_to_instance_init(self):
        init = by_signature(parse_source(SERVICE_SOURCE, "src/a.ets"))["@src/a.ets: Service.%instInit()"]
        statement = init.statements()[0]
        assert [c.callee_name() for c in statement.calls()] == ["init"]

    def test_catch_clause_rendered(self):
        start = by_signature(parse_source(SERVICE_SOURCE, "src/a.ets"))["@src/a.ets: Service.start()"]
        statements = start.statements()
        assert [s.text for s in statements] == [
            "try {",
            "geo.getLastLocation();",
            "error = caughtexception",
            "log(error);",
        ]
        assert [s.position()[0] for s in statements] == [14, 15, 16, 17]

    def test_catch_without_binding(self):
        source = "function f() {\n  try {\n    g();\n  } catch {\n  }\n}\n"
        (method,) = parse_source(source, "f.ts")
        assert "e = caughtexception" in [s.text for s in method.statements()]

    def test_body_on_declaration_line(self):
        (method,) = parse_source("function one() { a(); }\n", "one.ts")
        assert method.signature == "@one.ts: %dflt.one()"
        assert [s.text for s in method.statements()] == ["a();"]

    def test_interface_members_have_no_body(self):
        assert parse_source("interface Api {\n  fetch(): void;\n}\n", "api.ts") == []

class TestMultiLineGuard:
    def test_guard_split_across_lines_is_compliant(self):
        source = (
            "function locate() {\n"
            "  if (canIUse(\n"
            "      'SystemCapability.Location.Location.Core')) {\n"
            "    geoLocationManager.getCurrentLocation();\n"
            "  }\n"
            "}\n"
        )
        program = MemoryProgram(method_list=parse_source(source, "a.ets"))
        report = analyze_program(program, default_catalog())
        (finding,) = report.findings
        assert finding.api_name == "getCurrentLocation"
        assert finding.has_any_guard
        assert finding.severity == Severity.COMPLIANT
        assert finding.resolved_line == 4

    def test_top_level_guard_split_across_lines(self):
        source = (
            "if (canIUse(\n"
            " 'SystemCapability.Location.Location.Core')) { geoLocationManager.getCurrentLocation(); }\n"
        )
        program = MemoryProgram(method_list=parse_source(source, "b.ets"))
        (finding,) = analyze_program(program, default_catalog()).findings
        assert finding.severity == Severity.COMPLIANT


class TestLoadProject:
    def test_demo_project_methods(self):
        program = load_project(DEMO)
        signatures = {m.signature for m in program.methods()}
        assert f"@{INDEX}: Index.checkIn()" in signatures
        assert f"@{INDEX}: Index.build()" in signatures
        assert f"@{INDEX}: Index.%instInit()" in signatures
        assert f"@{MULTI}: TestMultipleAPIs.testCameraAPIs()" in signatures
        assert program.root == DEMO.resolve()

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(ProjectLoadError):
            load_project(tmp_path / "missing")

    def test_extension_selection(self):
        program = load_project(DEMO, extensions=[".ts"])
        assert list(program.methods()) == []

class TestDemoProjectAnalysis:
    """The demo project end to end through the default catalog."""

    @pytest.fixture(scope="class")
    def report(self):
        return analyze_program(load_project(DEMO), default_catalog(), project="demo")

    def test_summary(self, report):
        assert report.summary.distinct_apis == 5
        assert report.summary.total_findings == 7
        assert report.summary.findings_with_any_guard == 5
        assert report.summary.findings_with_correct_guard == 3
        assert report.summary.findings_with_exception_handling == 5

    def test_unguarded_unwrapped_call_is_severe(self, report):
        severe = report.by_severity(Severity.SEVERE)
        assert len(severe) == 1
        finding = severe[0]
        assert finding.api_name == "getCurrentLocation"
        assert finding.method_name == "checkIn"
        assert finding.resolved_file == INDEX
        assert finding.resolved_line == 9

    def test_wrong_guard_is_advisory(self, report):
        advisory = report.by_severity(Severity.ADVISORY)
        assert {f.api_name for f in advisory} == {
            "getCameraManager",
            "getSupportedCameras",
            "isLocationEnabled",
        }
        camera = next(f for f in advisory if f.api_name == "getCameraManager")
        assert camera.has_any_guard
        assert not camera.is_guarded

    def test_guarded_calls_compliant(self, report):
        compliant = report.by_severity(Severity.COMPLIANT)
        assert sorted((f.method_name, f.api_name) for f in compliant) == [
            ("testLocationAPIs", "getCurrentLocation"),
            ("testLocationAPIs", "getLastLocation"),
            ("testWithoutTryCatch", "getCurrentLocation"),
        ]
        lines = {(f.method_name, f.api_name): f.resolved_line for f in compliant}
        assert lines[("testLocationAPIs", "getCurrentLocation")] == 9
        assert lines[("testWithoutTryCatch", "getCurrentLocation")] == 41

    def test_recommendations_severe_first(self, report):
        assert report.recommendations[0].startswith("Severe: getCurrentLocation() in method checkIn")
        assert all(r.startswith("Advisory:") for r in report.recommendations[1:])
        assert len(report.recommendations) == 4
