"""Integration tests for the capcheck CLI.

Tests end-to-end scan and catalog workflows against fixture projects.
"""

import json
from pathlib import Path

from openpyxl import Workbook
from typer.testing import CliRunner

from capcheck import __version__
from capcheck.cli import app

runner = CliRunner()
FIXTURES = Path(__file__).parent / "fixtures"
DEMO = FIXTURES / "demo_project"
CLEAN = FIXTURES / "clean_project"


class TestScan:
    """Demo project end-to-end: scan -> report."""

    def test_console_report(self):
        result = runner.invoke(app, ["scan", str(DEMO)])
        assert result.exit_code == 0
        assert "CAPABILITY GUARD ANALYSIS" in result.stdout
        assert "Found 5 distinct API(s) to check:" in result.stdout
        assert "Severe: getCurrentLocation() in method checkIn" in result.stdout
        assert "entry/src/main/ets/pages/Index.ets:9: getCurrentLocation() in method checkIn" in result.stdout

    def test_json_output(self):
        result = runner.invoke(app, ["scan", str(DEMO), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["capcheck_version"] == __version__
        assert data["project"] == "demo_project"
        assert data["error"] is None
        assert data["summary"]["total_findings"] == 7
        assert data["summary"]["distinct_apis"] == 5
        severities = [f["severity"] for f in data["findings"]]
        assert severities.count("severe") == 1
        assert severities.count("advisory") == 3
        assert severities.count("compliant") == 3

    def test_json_output_is_repeatable(self):
        first = runner.invoke(app, ["scan", str(DEMO), "--json"])
        second = runner.invoke(app, ["scan", str(DEMO), "--json"])
        assert first.stdout == second.stdout

    def test_output_file(self, tmp_path: Path):
        out = tmp_path / "reports" / "report.json"
        result = runner.invoke(app, ["scan", str(DEMO), "--quiet", "-o", str(out)])
        assert result.exit_code == 0
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["summary"]["findings_with_correct_guard"] == 3

    def test_save_text(self, tmp_path: Path):
        out = tmp_path / "info.txt"
        result = runner.invoke(app, ["scan", str(DEMO), "--save-text", str(out)])
        assert result.exit_code == 0
        text = out.read_text(encoding="utf-8")
        assert "CAPABILITY GUARD ANALYSIS" in text
        assert "Recommendations:" in text
        assert text.count("CAPABILITY GUARD ANALYSIS") == 1

    def test_fail_on_severe(self):
        result = runner.invoke(app, ["scan", str(DEMO), "--quiet", "--fail-on-severe"])
        assert result.exit_code == 1

    def test_clean_project(self):
        result = runner.invoke(app, ["scan", str(CLEAN), "--fail-on-severe"])
        assert result.exit_code == 0
        assert "No API calls requiring capability checks found" in result.stdout

    def test_extension_option(self):
        result = runner.invoke(app, ["scan", str(DEMO), "--ext", ".ts", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["findings"] == []


class TestScanInputs:
    def test_program_dump(self):
        result = runner.invoke(
            app, ["scan", "--program", str(FIXTURES / "program_dump.json"), "--json"]
        )
        assert result.exit_code == 0
        findings = json.loads(result.stdout)["findings"]
        by_method = {f["method_name"]: f for f in findings}
        assert by_method["checkIn"]["severity"] == "severe"
        assert by_method["checkIn"]["resolved_line"] == 9
        assert by_method["locate"]["severity"] == "compliant"

    def test_custom_catalog(self, tmp_path: Path):
        catalog = tmp_path / "catalog.yaml"
        catalog.write_text("apis:\n  getLastLocation: SystemCapability.Location.Location.Core\n")
        result = runner.invoke(app, ["scan", str(DEMO), "--catalog", str(catalog), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [f["api_name"] for f in data["findings"]] == ["getLastLocation"]

    def test_bad_catalog(self, tmp_path: Path):
        catalog = tmp_path / "catalog.json"
        catalog.write_text("[1, 2]")
        result = runner.invoke(app, ["scan", str(DEMO), "--catalog", str(catalog)])
        assert result.exit_code == 1

    def test_scene_config(self, tmp_path: Path):
        scene = tmp_path / "scene.json"
        scene.write_text(json.dumps({
            "targetProjectName": "LocationDemo",
            "targetProjectDirectory": str(DEMO),
        }))
        result = runner.invoke(app, ["scan", "--config", str(scene), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["project"] == "LocationDemo"
        assert data["summary"]["total_findings"] == 7

    def test_project_config_file_picked_up(self, tmp_path: Path):
        (tmp_path / "capcheck.yaml").write_text(f"project_dir: {DEMO.as_posix()}\nproject_name: FromFile\n")
        result = runner.invoke(app, ["scan", str(tmp_path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["project"] == "FromFile"


class TestFatalErrors:
    """A project that cannot be loaded yields a failed report and exit 2."""

    def test_missing_directory(self, tmp_path: Path):
        out = tmp_path / "report.json"
        result = runner.invoke(app, ["scan", str(tmp_path / "missing"), "-q", "-o", str(out)])
        assert result.exit_code == 2
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["findings"] == []
        assert data["error"]
        assert len(data["recommendations"]) == 1
        assert data["recommendations"][0].startswith("Analysis failed:")

    def test_console_shows_failure(self, tmp_path: Path):
        result = runner.invoke(app, ["scan", str(tmp_path / "missing")])
        assert result.exit_code == 2
        assert "Analysis failed:" in result.stdout

    def test_malformed_config(self, tmp_path: Path):
        config = tmp_path / "capcheck.yaml"
        config.write_text("project_dir: [unclosed\n")
        out = tmp_path / "report.json"
        result = runner.invoke(app, ["scan", "-c", str(config), "-q", "-o", str(out)])
        assert result.exit_code == 2
        assert json.loads(out.read_text(encoding="utf-8"))["error"]

    def test_malformed_program_dump(self, tmp_path: Path):
        dump = tmp_path / "program.json"
        dump.write_text("{}")
        result = runner.invoke(app, ["scan", "--program", str(dump), "-q"])
        assert result.exit_code == 2


class TestCatalogCommands:
    def test_import(self, tmp_path: Path):
        source = tmp_path / "apis.csv"
        source.write_text(
            "module,class,method,since,deprecated,syscap\n"
            "@ohos.geoLocationManager,,getCurrentLocation,9,,SystemCapability.Location.Location.Core\n"
            "@ohos.geoLocationManager,,getAddressesFromLocation,9,,SystemCapability.Location.Location.Geocoder\n"
            "@ohos.geoLocationManager,,(callback) => void,9,,SystemCapability.Location.Location.Core\n",
            encoding="utf-8",
        )
        out = tmp_path / "catalog.yaml"
        result = runner.invoke(app, ["catalog", "import", str(source), "-o", str(out)])
        assert result.exit_code == 0
        assert "Found 2 API mappings" in result.stdout

        lookup = runner.invoke(
            app, ["catalog", "lookup", "getAddressesFromLocation", "--catalog", str(out)]
        )
        assert lookup.exit_code == 0
        assert "SystemCapability.Location.Location.Geocoder" in lookup.stdout

    def test_import_workbook(self, tmp_path: Path):
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(["module", "class", "method", "since", "deprecated", "syscap"])
        sheet.append(["@ohos.geoLocationManager", None, "getLastLocation", 9, None, "SystemCapability.Location.Location.Core"])
        sheet.append(["@ohos.geoLocationManager", None, "x", 9, None, "SystemCapability.Location.Location.Core"])
        source = tmp_path / "apis.xlsx"
        workbook.save(source)

        out = tmp_path / "catalog.yaml"
        result = runner.invoke(app, ["catalog", "import", str(source), "-o", str(out)])
        assert result.exit_code == 0
        assert "Found 1 API mappings" in result.stdout
        assert "getLastLocation: SystemCapability.Location.Location.Core" in out.read_text(encoding="utf-8")

    def test_import_missing_file(self, tmp_path: Path):
        result = runner.invoke(app, ["catalog", "import", str(tmp_path / "missing.csv")])
        assert result.exit_code == 1

    def test_stats(self):
        result = runner.invoke(app, ["catalog", "stats", "--top", "3"])
        assert result.exit_code == 0
        assert "APIs in catalog" in result.stdout
        assert "SystemCapability.Location.Location.Core" in result.stdout

    def test_lookup_default_catalog(self):
        result = runner.invoke(app, ["catalog", "lookup", "getCurrentLocation"])
        assert result.exit_code == 0
        assert "getCurrentLocation -> SystemCapability.Location.Location.Core" in result.stdout

    def test_lookup_unknown(self):
        result = runner.invoke(app, ["catalog", "lookup", "notAnApi"])
        assert result.exit_code == 1


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"capcheck v{__version__}" in result.stdout
