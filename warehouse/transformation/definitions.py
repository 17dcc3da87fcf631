"""
Dataset Definitions

Declarative description of a dataset: where its raw tables come from, how
each raw table maps onto a clean table, and which named tests guard the
clean and mart layers. Definitions live in YAML next to the mart models.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from warehouse.database.sql import resolve_type
from warehouse.database.writer import WriteDisposition
from warehouse.naming import normalize_identifier

# A test is either a bare name ("not_null") or {name: params}
TestDeclaration = Union[str, Dict[str, Any]]


class SourceKind(str, Enum):
    """Where raw data is extracted from"""
    SQL = "sql"
    CSV = "csv"


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    PARQUET = "parquet"


class SourceTable(BaseModel):
    """One source table or file and the raw table it lands in"""
    name: str
    file: Optional[str] = None
    table: Optional[str] = None
    write_disposition: WriteDisposition = WriteDisposition.REPLACE

    @property
    def raw_name(self) -> str:
        return self.table or normalize_identifier(self.name)


class SourceDefinition(BaseModel):
    kind: SourceKind
    schema_name: Optional[str] = None
    directory: Optional[str] = None
    file_format: FileFormat = FileFormat.CSV
    null_values: List[str] = Field(default_factory=lambda: [""])
    tables: List[SourceTable]

    @model_validator(mode="after")
    def check_files(self) -> "SourceDefinition":
        if self.kind == SourceKind.CSV:
            missing = [t.name for t in self.tables if not t.file]
            if missing:
                raise ValueError(f"File sources need a 'file' for tables: {missing}")
        return self


class ColumnSpec(BaseModel):
    """Rename, cast and null handling for one clean column"""
    name: str
    source: Optional[str] = None
    type: str = "string"
    null_if: List[str] = Field(default_factory=list)
    default: Optional[Any] = None
    tests: List[TestDeclaration] = Field(default_factory=list)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        resolve_type(v)
        return v.lower()

    @field_validator("null_if", mode="before")
    @classmethod
    def coerce_null_if(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v

    @property
    def source_column(self) -> str:
        return self.source or self.name


class CleanModel(BaseModel):
    """Raw table -> clean table mapping"""
    name: str
    source: str
    description: str = ""
    columns: List[ColumnSpec]
    tests: List[TestDeclaration] = Field(default_factory=list)


class ColumnTests(BaseModel):
    name: str
    tests: List[TestDeclaration] = Field(default_factory=list)


class MartTableSpec(BaseModel):
    """Tests attached to a mart table built by a dataset's mart models"""
    name: str
    description: str = ""
    columns: List[ColumnTests] = Field(default_factory=list)
    tests: List[TestDeclaration] = Field(default_factory=list)


class DatasetDefinition(BaseModel):
    name: str
    description: str = ""
    source: SourceDefinition
    clean: List[CleanModel] = Field(default_factory=list)
    marts: List[MartTableSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_names(self) -> "DatasetDefinition":
        for label, names in (
            ("source table", [t.raw_name for t in self.source.tables]),
            ("clean model", [m.name for m in self.clean]),
            ("mart table", [m.name for m in self.marts]),
        ):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise ValueError(f"Duplicate {label} names: {duplicates}")
        return self

    def clean_model(self, name: str) -> CleanModel:
        for model in self.clean:
            if model.name == name:
                return model
        raise KeyError(f"Unknown clean model: {name}")

    def source_table(self, name: str) -> SourceTable:
        for table in self.source.tables:
            if name in (table.name, table.raw_name):
                return table
        raise KeyError(f"Unknown source table: {name}")


def load_yaml(file_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse a YAML file."""
    try:
        with open(file_path, "r", encoding="utf-8") as file:
            return yaml.safe_load(file) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file {file_path}: {e}")
    except FileNotFoundError:
        raise FileNotFoundError(f"YAML file not found: {file_path}")


def load_dataset_definition(file_path: Union[str, Path]) -> DatasetDefinition:
    """Read and validate a dataset definition file"""
    return DatasetDefinition.model_validate(load_yaml(file_path))
