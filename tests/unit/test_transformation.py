"""
Unit Tests - Transformations
"""
from datetime import date

import pytest
import polars as pl
from pydantic import ValidationError
from sqlalchemy import select

from warehouse.database.connection import read_frame, reflect_table
from warehouse.ingestion.raw_loader import RawLoader
from warehouse.transformation.clean import CleanTransformer
from warehouse.transformation.definitions import (
    CleanModel,
    ColumnSpec,
    DatasetDefinition,
    SourceDefinition,
    load_dataset_definition,
)
from warehouse.transformation.marts import (
    DateDimension,
    MartBuilder,
    MartModel,
    build_date_frame,
)
from warehouse.transformation.transformers import TransformLayer


class TestDefinitions:
    """Tests for dataset declarations"""

    def test_column_type_is_validated(self):
        """Unknown clean column types fail at load time"""
        with pytest.raises(ValidationError):
            ColumnSpec(name="score", type="percent")

    def test_null_if_accepts_a_single_value(self):
        """A scalar null_if becomes a one-item list"""
        assert ColumnSpec(name="imd_band", null_if="?").null_if == ["?"]

    def test_file_sources_need_files(self):
        """CSV tables must name their file"""
        with pytest.raises(ValidationError):
            SourceDefinition(kind="csv", tables=[{"name": "courses"}])

    def test_raw_name_defaults_to_snake_case(self):
        """Raw table names derive from the source name"""
        source = SourceDefinition(kind="sql", tables=[{"name": "InvoiceLine"}, {"name": "Artist", "table": "artists"}])
        assert [t.raw_name for t in source.tables] == ["invoice_line", "artists"]

    def test_duplicate_clean_models_rejected(self):
        """Clean model names are unique"""
        model = {"name": "artist", "source": "artist", "columns": [{"name": "artist_id"}]}
        with pytest.raises(ValidationError, match="Duplicate clean model"):
            DatasetDefinition(
                name="x",
                source={"kind": "sql", "tables": [{"name": "Artist"}]},
                clean=[model, model],
            )

    def test_source_table_lookup(self):
        """Source tables resolve by source or raw name"""
        definition = DatasetDefinition(
            name="x",
            source={"kind": "sql", "tables": [{"name": "InvoiceLine"}, {"name": "Artist"}]},
        )
        assert definition.source_table("InvoiceLine").raw_name == "invoice_line"
        assert definition.source_table("artist").name == "Artist"
        with pytest.raises(KeyError, match="Unknown source table"):
            definition.source_table("Album")

    def test_malformed_yaml(self, tmp_path):
        """YAML syntax errors surface as ValueError"""
        path = tmp_path / "broken.yml"
        path.write_text("name: [unclosed\n")
        with pytest.raises(ValueError, match="Error parsing YAML"):
            load_dataset_definition(path)

    def test_missing_file(self, tmp_path):
        """Missing definition files raise FileNotFoundError"""
        with pytest.raises(FileNotFoundError):
            load_dataset_definition(tmp_path / "missing.yml")


@pytest.fixture
def raw_student_info(warehouse_engine, test_settings):
    """raw.student_info with placeholder values"""
    RawLoader(warehouse_engine, test_settings).load(
        [
            {"id_student": "1", "gender": "M", "imd_band": "?", "studied_credits": "60"},
            {"id_student": "2", "gender": None, "imd_band": "10-20%", "studied_credits": "120"},
        ],
        "student_info",
        "replace",
    )
    return warehouse_engine


STUDENT_INFO = CleanModel(
    name="student_info",
    source="student_info",
    columns=[
        ColumnSpec(name="student_id", source="id_student", type="integer"),
        ColumnSpec(name="gender", type="string", default="Unknown"),
        ColumnSpec(name="imd_band", type="string", null_if=["?"]),
        ColumnSpec(name="studied_credits", type="integer"),
    ],
)


class TestCleanTransformer:
    """Tests for the raw -> clean transformer"""

    def test_run_renames_casts_and_fills(self, raw_student_info, test_settings):
        """Declared columns only, typed, with placeholders mapped and defaults filled"""
        transformer = CleanTransformer(raw_student_info, test_settings)

        result = transformer.run(STUDENT_INFO)

        assert result.layer == TransformLayer.CLEAN
        assert result.input_rows == result.output_rows == 2

        with raw_student_info.connect() as conn:
            table = reflect_table(conn, "student_info", "clean")
        df = read_frame(raw_student_info, select(table).order_by(table.c.student_id))

        assert df.columns == ["student_id", "gender", "imd_band", "studied_credits"]
        assert df["student_id"].to_list() == [1, 2]
        assert df["gender"].to_list() == ["M", "Unknown"]
        assert df["imd_band"].to_list() == [None, "10-20%"]
        assert df["studied_credits"].sum() == 180

    def test_rerun_is_idempotent(self, raw_student_info, test_settings):
        """Rebuilding replaces the table instead of appending"""
        transformer = CleanTransformer(raw_student_info, test_settings)

        transformer.run(STUDENT_INFO)
        result = transformer.run(STUDENT_INFO)

        assert result.output_rows == 2

    def test_missing_source_column(self, raw_student_info, test_settings):
        """A declared source column must exist in raw"""
        model = CleanModel(
            name="student_info",
            source="student_info",
            columns=[ColumnSpec(name="region", type="string")],
        )
        with pytest.raises(ValueError, match="Column 'region' not found"):
            CleanTransformer(raw_student_info, test_settings).run(model)


class TestDateDimension:
    """Tests for the calendar dimension"""

    def test_quarter_formula(self):
        """Quarter = ((Month - 1) // 3) + 1 for every month"""
        keys = pl.Series([20240100 + 15 + m * 100 - 100 for m in range(1, 13)])
        df = build_date_frame(keys)

        for row in df.iter_rows(named=True):
            assert row["Quarter"] == ((row["Month"] - 1) // 3) + 1
        assert df["Quarter"].to_list() == [1, 1, 1, 2, 2, 2, 3, 3, 3, 4, 4, 4]

    def test_attributes(self):
        """Calendar attributes derive from the key"""
        df = build_date_frame(pl.Series([20090101, 20090101, None, 20091130]))

        assert df["DateKey"].to_list() == [20090101, 20091130]
        first = df.row(0, named=True)
        assert first["FullDate"] == date(2009, 1, 1)
        assert first["MonthName"] == "January"
        assert first["DayName"] == "Thursday"
        assert first["DayOfWeek"] == 4
        assert first["IsWeekend"] is False

    def test_empty(self):
        """No keys gives an empty dimension with all columns"""
        df = build_date_frame(pl.Series([], dtype=pl.Int64))
        assert df.height == 0
        assert "Quarter" in df.columns


class TestMartBuilder:
    """Tests for mart model execution"""

    def test_models_run_in_order(self, raw_student_info, test_settings):
        """Later models read marts built earlier in the same build"""
        CleanTransformer(raw_student_info, test_settings).run(STUDENT_INFO)

        def students(ctx):
            info = ctx.clean("student_info")
            return select(info.c.student_id.label("StudentKey"), info.c.gender.label("Gender"))

        def unknown_gender(ctx):
            dim = ctx.mart("DimStudent")
            return select(dim.c.StudentKey).where(dim.c.Gender == "Unknown")

        models = [
            MartModel("DimStudent", students),
            DateDimension(lambda ctx: []),
            MartModel("UnknownGender", unknown_gender),
        ]

        results = MartBuilder(raw_student_info, test_settings).build(models)

        assert [r.model for r in results] == ["DimStudent", "DimDate", "UnknownGender"]
        assert [r.output_rows for r in results] == [2, 0, 1]
        assert all(r.layer == TransformLayer.MART for r in results)
