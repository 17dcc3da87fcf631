"""
Ingestion Module
"""
from .extractors import CsvFileExtractor, SqlTableExtractor, create_extractor
from .raw_loader import LoadResult, LoadStatus, RawLoader

__all__ = [
    "CsvFileExtractor",
    "SqlTableExtractor",
    "create_extractor",
    "LoadResult",
    "LoadStatus",
    "RawLoader",
]
