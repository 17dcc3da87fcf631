"""
Unit Tests - Command Line Interface
"""
import pytest

from warehouse import cli
from warehouse.pipeline import WarehousePipeline


@pytest.fixture
def use_test_warehouse(monkeypatch, warehouse_engine, test_settings, oulad_dir):
    """Point CLI commands at the in-memory warehouse"""
    monkeypatch.setattr(
        cli,
        "WarehousePipeline",
        lambda dataset: WarehousePipeline(dataset, engine=warehouse_engine, settings=test_settings),
    )
    monkeypatch.setattr(cli, "get_settings", lambda: test_settings)


class TestCli:
    """Tests for the warehouse command"""

    def test_list(self, capsys):
        """Datasets are listed with their descriptions"""
        assert cli.main(["--log-level", "ERROR", "list"]) == 0

        out = capsys.readouterr().out
        assert out.startswith("chinook\t")
        assert "oulad\t" in out

    def test_unknown_dataset_is_a_usage_error(self):
        """argparse rejects unregistered datasets"""
        with pytest.raises(SystemExit):
            cli.main(["run", "northwind"])

    def test_ingest_selected_table(self, use_test_warehouse, capsys):
        """--table limits ingestion"""
        assert cli.main(["--log-level", "ERROR", "ingest", "oulad", "--table", "courses"]) == 0

        assert capsys.readouterr().out.strip() == "raw.courses: 3 rows (completed)"

    def test_transform_then_test(self, use_test_warehouse, capsys):
        """Layers can be built and tested one at a time"""
        assert cli.main(["--log-level", "ERROR", "ingest", "oulad"]) == 0
        assert cli.main(["--log-level", "ERROR", "transform", "oulad", "--layer", "clean"]) == 0
        assert cli.main(["--log-level", "ERROR", "test", "oulad", "--layer", "clean"]) == 0

        out = capsys.readouterr().out
        assert "clean.student_info: 3 rows" in out
        assert "student_info: passed" in out

    def test_run(self, use_test_warehouse, capsys):
        """run executes every stage"""
        assert cli.main(["--log-level", "ERROR", "run", "oulad"]) == 0

        assert capsys.readouterr().out.startswith("oulad: success")

    def test_failures_exit_non_zero(self, use_test_warehouse):
        """Errors are logged and reported through the exit code"""
        assert cli.main(["transform", "oulad", "--layer", "mart"]) == 1
