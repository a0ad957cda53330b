"""Tests for the crm-transform command line."""

import json

import pytest

from crm_ingestion.cli import EXIT_MISSING_FILE, EXIT_OK, EXIT_STRUCTURAL, main


@pytest.fixture
def files(tmp_path, account_workbook, account_mapping):
    mapping = tmp_path / "accounts.json"
    mapping.write_text(json.dumps(account_mapping), encoding="utf-8")
    workbook = tmp_path / "export.xlsx"
    workbook.write_bytes(account_workbook)
    return tmp_path, mapping, workbook


class TestTransformCommand:
    def test_csv_to_stdout(self, files, capsys):
        _, mapping, workbook = files
        code = main(["--mapping", str(mapping), "--template", "id,name,accountNumber", "--workbook", str(workbook)])
        out, err = capsys.readouterr()

        assert code == EXIT_OK
        assert out == "id,name,accountNumber\n,Acme,A-1\n,Beta,\n"
        assert "Row 1: name is required" in err
        summary = json.loads(next(line for line in err.splitlines() if line.startswith("{\"mapping\"")))
        assert summary["valid_rows"] == 2
        assert summary["invalid_rows"] == 1

    def test_output_and_errors_files(self, files, capsys):
        tmp_path, mapping, workbook = files
        template = tmp_path / "accounts_template.csv"
        template.write_text("id,name,accountNumber,ownerId\n,Sample,S-1,\n", encoding="utf-8")
        output = tmp_path / "accounts.csv"
        errors = tmp_path / "errors.json"

        code = main([
            "--mapping", str(mapping),
            "--template", str(template),
            "--workbook", str(workbook),
            "--output", str(output),
            "--errors", str(errors),
            "--default", "ownerId=u-17",
        ])
        out, _ = capsys.readouterr()

        assert code == EXIT_OK
        assert output.read_text(encoding="utf-8") == (
            "id,name,accountNumber,ownerId\n,Acme,A-1,u-17\n,Beta,,u-17\n"
        )
        report = json.loads(errors.read_text(encoding="utf-8"))
        assert report["errors"][0]["error"] == "name is required"
        assert json.loads(out)["mapping"] == "accounts"

    def test_probe_only(self, files, capsys):
        _, mapping, workbook = files
        code = main(["--mapping", str(mapping), "--workbook", str(workbook), "--probe-only"])
        out, _ = capsys.readouterr()
        assert code == EXIT_OK
        assert "Format: xlsx" in out
        assert "Sheet: Accounts" in out
        assert "Rows: 3" in out


class TestExitCodes:
    def test_missing_workbook(self, files, capsys):
        tmp_path, mapping, _ = files
        code = main(["--mapping", str(mapping), "--template", "id,name", "--workbook", str(tmp_path / "nope.xlsx")])
        assert code == EXIT_MISSING_FILE
        assert "Workbook file not found" in capsys.readouterr().err

    def test_missing_mapping(self, files, capsys):
        tmp_path, _, workbook = files
        code = main(["--mapping", str(tmp_path / "nope.json"), "--template", "id", "--workbook", str(workbook)])
        assert code == EXIT_MISSING_FILE

    def test_invalid_mapping(self, files, capsys):
        tmp_path, _, workbook = files
        mapping = tmp_path / "broken.yaml"
        mapping.write_text("- target: name\n- source: Email\n", encoding="utf-8")
        code = main(["--mapping", str(mapping), "--template", "id,name", "--workbook", str(workbook)])
        err = capsys.readouterr().err
        assert code == EXIT_STRUCTURAL
        assert "MAPPING_CONFIG_ERROR" in err
        assert "  - rule 1 ('name'): copy rule is missing sourceColumn" in err

    def test_invalid_template(self, files, capsys):
        _, mapping, workbook = files
        code = main(["--mapping", str(mapping), "--template", "id,name,id", "--workbook", str(workbook)])
        assert code == EXIT_STRUCTURAL
        assert "TEMPLATE_ERROR" in capsys.readouterr().err

    def test_unreadable_workbook(self, files, capsys):
        tmp_path, mapping, _ = files
        workbook = tmp_path / "export.xlsx"
        workbook.write_text("Account Name\nAcme\n", encoding="utf-8")
        code = main(["--mapping", str(mapping), "--template", "id,name", "--workbook", str(workbook)])
        err = capsys.readouterr().err
        assert code == EXIT_STRUCTURAL
        assert "WORKBOOK_PARSE_ERROR" in err
        assert "export.xlsx" in err

    def test_truncated_workbook(self, files, truncated_workbook, capsys):
        tmp_path, mapping, _ = files
        workbook = tmp_path / "half_uploaded.xlsx"
        workbook.write_bytes(truncated_workbook)
        code = main(["--mapping", str(mapping), "--template", "id,name", "--workbook", str(workbook)])
        assert code == EXIT_STRUCTURAL
        assert "WORKBOOK_PARSE_ERROR" in capsys.readouterr().err

    def test_template_required_without_probe(self, files):
        _, mapping, workbook = files
        with pytest.raises(SystemExit) as exc_info:
            main(["--mapping", str(mapping), "--workbook", str(workbook)])
        assert exc_info.value.code == 2

    def test_bad_default_pair(self, files):
        _, mapping, workbook = files
        with pytest.raises(SystemExit):
            main(["--mapping", str(mapping), "--template", "id", "--workbook", str(workbook), "--default", "ownerId"])

    def test_bad_log_level_from_environment(self, files, monkeypatch):
        _, mapping, workbook = files
        monkeypatch.setenv("CRM_INGESTION_LOG_LEVEL", "chatty")
        with pytest.raises(SystemExit) as exc_info:
            main(["--mapping", str(mapping), "--template", "id", "--workbook", str(workbook)])
        assert exc_info.value.code == 2

    def test_log_level_flag_enables_json_logs(self, files, capsys):
        _, mapping, workbook = files
        code = main(["--mapping", str(mapping), "--template", "id,name", "--workbook", str(workbook), "--log-level", "info"])
        err = capsys.readouterr().err
        assert code == EXIT_OK
        events = [json.loads(line)["message"] for line in err.splitlines() if line.startswith('{"ts"')]
        assert "transform_started" in events and "transform_completed" in events
