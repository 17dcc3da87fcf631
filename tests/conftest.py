"""
Test Suite Configuration
"""
import logging
from datetime import datetime
from pathlib import Path

import pytest
import polars as pl
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
)
from sqlalchemy.pool import StaticPool

from warehouse.config.settings import (
    Settings,
    SourceDatabaseSettings,
    SourceFilesSettings,
    WarehouseSettings,
)
from warehouse.database.connection import create_warehouse_engine


@pytest.fixture(autouse=True)
def reset_log_handlers():
    """Drop stdout handlers installed by configure_logging during a test"""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings: in-memory warehouse, files under tmp_path"""
    return Settings(
        app_env="testing",
        source_db=SourceDatabaseSettings(url="sqlite://"),
        source_files=SourceFilesSettings(root_dir=str(tmp_path)),
        warehouse=WarehouseSettings(url="sqlite://", chunk_size=2),
    )


@pytest.fixture
def warehouse_engine(test_settings):
    """In-memory warehouse with raw/clean/mart attached"""
    engine = create_warehouse_engine(settings=test_settings)
    yield engine
    engine.dispose()


# =============================================================================
# Chinook source
# =============================================================================

def _chinook_tables(metadata: MetaData) -> dict:
    return {
        "Artist": Table(
            "Artist", metadata,
            Column("ArtistId", Integer, primary_key=True),
            Column("Name", String(120)),
        ),
        "Album": Table(
            "Album", metadata,
            Column("AlbumId", Integer, primary_key=True),
            Column("Title", String(160)),
            Column("ArtistId", Integer),
        ),
        "Genre": Table(
            "Genre", metadata,
            Column("GenreId", Integer, primary_key=True),
            Column("Name", String(120)),
        ),
        "MediaType": Table(
            "MediaType", metadata,
            Column("MediaTypeId", Integer, primary_key=True),
            Column("Name", String(120)),
        ),
        "Track": Table(
            "Track", metadata,
            Column("TrackId", Integer, primary_key=True),
            Column("Name", String(200)),
            Column("AlbumId", Integer),
            Column("MediaTypeId", Integer),
            Column("GenreId", Integer),
            Column("Composer", String(220)),
            Column("Milliseconds", Integer),
            Column("Bytes", Integer),
            Column("UnitPrice", Float),
        ),
        "Employee": Table(
            "Employee", metadata,
            Column("EmployeeId", Integer, primary_key=True),
            Column("LastName", String(20)),
            Column("FirstName", String(20)),
            Column("Title", String(30)),
            Column("ReportsTo", Integer),
            Column("BirthDate", DateTime),
            Column("HireDate", DateTime),
            Column("Address", String(70)),
            Column("City", String(40)),
            Column("State", String(40)),
            Column("Country", String(40)),
            Column("PostalCode", String(10)),
            Column("Phone", String(24)),
            Column("Fax", String(24)),
            Column("Email", String(60)),
        ),
        "Customer": Table(
            "Customer", metadata,
            Column("CustomerId", Integer, primary_key=True),
            Column("FirstName", String(40)),
            Column("LastName", String(20)),
            Column("Company", String(80)),
            Column("Address", String(70)),
            Column("City", String(40)),
            Column("State", String(40)),
            Column("Country", String(40)),
            Column("PostalCode", String(10)),
            Column("Phone", String(24)),
            Column("Fax", String(24)),
            Column("Email", String(60)),
            Column("SupportRepId", Integer),
        ),
        "Invoice": Table(
            "Invoice", metadata,
            Column("InvoiceId", Integer, primary_key=True),
            Column("CustomerId", Integer),
            Column("InvoiceDate", DateTime),
            Column("BillingAddress", String(70)),
            Column("BillingCity", String(40)),
            Column("BillingState", String(40)),
            Column("BillingCountry", String(40)),
            Column("BillingPostalCode", String(10)),
            Column("Total", Float),
        ),
        "InvoiceLine": Table(
            "InvoiceLine", metadata,
            Column("InvoiceLineId", Integer, primary_key=True),
            Column("InvoiceId", Integer),
            Column("TrackId", Integer),
            Column("UnitPrice", Float),
            Column("Quantity", Integer),
        ),
    }


CHINOOK_ROWS = {
    "Artist": [
        {"ArtistId": 1, "Name": "AC/DC"},
        {"ArtistId": 2, "Name": "Accept"},
        {"ArtistId": 3, "Name": "Aerosmith"},
    ],
    "Album": [
        {"AlbumId": 1, "Title": "For Those About To Rock We Salute You", "ArtistId": 1},
        {"AlbumId": 2, "Title": "Balls to the Wall", "ArtistId": 2},
        {"AlbumId": 3, "Title": "Restless and Wild", "ArtistId": 2},
        {"AlbumId": 4, "Title": "Let There Be Rock", "ArtistId": 1},
    ],
    "Genre": [
        {"GenreId": 1, "Name": "Rock"},
        {"GenreId": 2, "Name": "Jazz"},
    ],
    "MediaType": [
        {"MediaTypeId": 1, "Name": "MPEG audio file"},
        {"MediaTypeId": 2, "Name": "Protected AAC audio file"},
    ],
    "Track": [
        {"TrackId": 1, "Name": "For Those About To Rock (We Salute You)", "AlbumId": 1, "MediaTypeId": 1,
         "GenreId": 1, "Composer": "Angus Young, Malcolm Young, Brian Johnson", "Milliseconds": 343719,
         "Bytes": 11170334, "UnitPrice": 0.99},
        {"TrackId": 2, "Name": "Balls to the Wall", "AlbumId": 2, "MediaTypeId": 2,
         "GenreId": 1, "Composer": None, "Milliseconds": 342562,
         "Bytes": 5510424, "UnitPrice": 0.99},
        {"TrackId": 3, "Name": "Fast As a Shark", "AlbumId": 3, "MediaTypeId": 2,
         "GenreId": 1, "Composer": "F. Baltes, S. Kaufman, U. Dirkscneider & W. Hoffman", "Milliseconds": 230619,
         "Bytes": 3990994, "UnitPrice": 0.99},
        {"TrackId": 4, "Name": "Go Down", "AlbumId": 4, "MediaTypeId": 1,
         "GenreId": 1, "Composer": "AC/DC", "Milliseconds": 331180,
         "Bytes": 10847611, "UnitPrice": 0.99},
    ],
    "Employee": [
        {"EmployeeId": 1, "LastName": "Adams", "FirstName": "Andrew", "Title": "General Manager",
         "ReportsTo": None, "BirthDate": datetime(1962, 2, 18), "HireDate": datetime(2002, 8, 14),
         "Address": "11120 Jasper Ave NW", "City": "Edmonton", "State": "AB", "Country": "Canada",
         "PostalCode": "T5K 2N1", "Phone": "+1 (780) 428-9482", "Fax": "+1 (780) 428-3457",
         "Email": "andrew@chinookcorp.com"},
        {"EmployeeId": 2, "LastName": "Edwards", "FirstName": "Nancy", "Title": "Sales Manager",
         "ReportsTo": 1, "BirthDate": datetime(1958, 12, 8), "HireDate": datetime(2002, 5, 1),
         "Address": "825 8 Ave SW", "City": "Calgary", "State": "AB", "Country": "Canada",
         "PostalCode": "T2P 2T3", "Phone": "+1 (403) 262-3443", "Fax": "+1 (403) 262-3322",
         "Email": "nancy@chinookcorp.com"},
        {"EmployeeId": 3, "LastName": "Peacock", "FirstName": "Jane", "Title": "Sales Support Agent",
         "ReportsTo": 2, "BirthDate": datetime(1973, 8, 29), "HireDate": datetime(2002, 4, 1),
         "Address": "1111 6 Ave SW", "City": "Calgary", "State": "AB", "Country": "Canada",
         "PostalCode": "T2P 5M5", "Phone": "+1 (403) 262-3443", "Fax": "+1 (403) 262-6712",
         "Email": "jane@chinookcorp.com"},
    ],
    "Customer": [
        {"CustomerId": 1, "FirstName": "Luís", "LastName": "Gonçalves", "Company": "Embraer",
         "Address": "Av. Brigadeiro Faria Lima, 2170", "City": "São José dos Campos", "State": "SP",
         "Country": "Brazil", "PostalCode": "12227-000", "Phone": "+55 (12) 3923-5555",
         "Fax": "+55 (12) 3923-5566", "Email": "luisg@embraer.com.br", "SupportRepId": 3},
        {"CustomerId": 2, "FirstName": "Leonie", "LastName": "Köhler", "Company": None,
         "Address": "Theodor-Heuss-Straße 34", "City": "Stuttgart", "State": None,
         "Country": "Germany", "PostalCode": "70174", "Phone": "+49 0711 2842222",
         "Fax": None, "Email": "leonekohler@surfeu.de", "SupportRepId": 3},
    ],
    "Invoice": [
        {"InvoiceId": 1, "CustomerId": 2, "InvoiceDate": datetime(2009, 1, 1),
         "BillingAddress": "Theodor-Heuss-Straße 34", "BillingCity": "Stuttgart", "BillingState": None,
         "BillingCountry": "Germany", "BillingPostalCode": "70174", "Total": 1.98},
        {"InvoiceId": 2, "CustomerId": 1, "InvoiceDate": datetime(2009, 4, 15),
         "BillingAddress": "Av. Brigadeiro Faria Lima, 2170", "BillingCity": "São José dos Campos",
         "BillingState": "SP", "BillingCountry": "Brazil", "BillingPostalCode": "12227-000", "Total": 1.98},
        {"InvoiceId": 3, "CustomerId": 2, "InvoiceDate": datetime(2009, 11, 30),
         "BillingAddress": "Theodor-Heuss-Straße 34", "BillingCity": "Stuttgart", "BillingState": None,
         "BillingCountry": "Germany", "BillingPostalCode": "70174", "Total": 0.99},
    ],
    "InvoiceLine": [
        {"InvoiceLineId": 1, "InvoiceId": 1, "TrackId": 1, "UnitPrice": 0.99, "Quantity": 1},
        {"InvoiceLineId": 2, "InvoiceId": 1, "TrackId": 2, "UnitPrice": 0.99, "Quantity": 1},
        {"InvoiceLineId": 3, "InvoiceId": 2, "TrackId": 4, "UnitPrice": 0.99, "Quantity": 2},
        {"InvoiceLineId": 4, "InvoiceId": 3, "TrackId": 3, "UnitPrice": 0.99, "Quantity": 1},
    ],
}


@pytest.fixture
def chinook_source_engine():
    """Seeded Chinook source database (subset of the real rows)"""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    metadata = MetaData()
    tables = _chinook_tables(metadata)
    metadata.create_all(engine)

    with engine.begin() as conn:
        for name, rows in CHINOOK_ROWS.items():
            conn.execute(tables[name].insert(), rows)

    yield engine
    engine.dispose()


# =============================================================================
# OULAD files
# =============================================================================

OULAD_FILES = {
    "courses.csv": pl.DataFrame({
        "code_module": ["AAA", "AAA", "BBB"],
        "code_presentation": ["2013J", "2014B", "2013J"],
        "module_presentation_length": ["268", "241", "268"],
    }),
    "assessments.csv": pl.DataFrame({
        "code_module": ["AAA", "AAA", "BBB"],
        "code_presentation": ["2013J", "2014B", "2013J"],
        "id_assessment": ["1752", "1800", "14991"],
        "assessment_type": ["TMA", "TMA", "CMA"],
        "date": ["19", "?", "54"],
        "weight": ["10", "20", "0"],
    }),
    "vle.csv": pl.DataFrame({
        "id_site": ["546614", "546652", "546700"],
        "code_module": ["AAA", "AAA", "BBB"],
        "code_presentation": ["2013J", "2014B", "2013J"],
        "activity_type": ["homepage", "forumng", "resource"],
        "week_from": [None, None, "2"],
        "week_to": [None, None, "3"],
    }),
    "studentInfo.csv": pl.DataFrame({
        "code_module": ["AAA", "AAA", "BBB"],
        "code_presentation": ["2013J", "2014B", "2013J"],
        "id_student": ["11391", "28400", "30268"],
        "gender": ["M", None, "F"],
        "region": ["East Anglian Region", "Scotland", "North Western Region"],
        "highest_education": ["HE Qualification", "HE Qualification", "A Level or Equivalent"],
        "imd_band": ["90-100%", "?", "30-40%"],
        "age_band": ["55<=", "35-55", "35-55"],
        "num_of_prev_attempts": ["0", "0", "0"],
        "studied_credits": ["240", "60", "60"],
        "disability": ["N", "N", "Y"],
        "final_result": ["Pass", "Distinction", "Withdrawn"],
    }),
    "studentRegistration.csv": pl.DataFrame({
        "code_module": ["AAA", "AAA", "BBB"],
        "code_presentation": ["2013J", "2014B", "2013J"],
        "id_student": ["11391", "28400", "30268"],
        "date_registration": ["-159", "-53", "-92"],
        "date_unregistration": [None, None, "12"],
    }),
    "studentAssessment.csv": pl.DataFrame({
        "id_assessment": ["1752", "1752", "1800", "14991"],
        "id_student": ["11391", "28400", "28400", "30268"],
        "date_submitted": ["18", "22", "-1", "50"],
        "is_banked": ["0", "0", "1", "0"],
        "score": ["78", "70", "?", "100"],
    }),
    "studentVle.csv": pl.DataFrame({
        "code_module": ["AAA", "AAA", "AAA", "BBB"],
        "code_presentation": ["2013J", "2013J", "2014B", "2013J"],
        "id_student": ["11391", "11391", "28400", "30268"],
        "id_site": ["546614", "546614", "546652", "546700"],
        "date": ["-10", "-10", "0", "5"],
        "sum_click": ["4", "1", "7", "2"],
    }),
}


@pytest.fixture
def oulad_dir(tmp_path) -> Path:
    """OULAD CSV exports under <tmp_path>/oulad"""
    directory = tmp_path / "oulad"
    directory.mkdir()
    for name, df in OULAD_FILES.items():
        df.write_csv(directory / name)
    return directory


@pytest.fixture
def sample_records() -> list:
    """Records as an extractor yields them"""
    return [
        {"InvoiceLineId": 1, "TrackId": 1, "UnitPrice": 0.99},
        {"InvoiceLineId": 2, "TrackId": 2, "UnitPrice": 0.99},
        {"InvoiceLineId": 3, "TrackId": 4, "UnitPrice": 1.99},
    ]
