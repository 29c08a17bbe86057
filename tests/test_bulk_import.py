"""Tests for spreadsheet import."""

import asyncio

import pandas as pd
import pytest

from clinicrm.errors import ValidationError
from clinicrm.hooks import MutationHook
from clinicrm.notify import NoticeLevel
from clinicrm.services.bulk_import import (
    TEMPLATE_HEADERS,
    BulkImporter,
    map_columns,
    read_sheet,
    row_to_patient,
    write_template,
)
from tests.fakes import api_error

CSV = """Patient Name,Phone,Age,Status,Cold Reason,Follow-Up Required,Preferred Time
John Doe,+971501234567,35,,,Yes,Morning
No Phone,,40,,,No,
Bad Age,+971500000001,abc,,,No,
Cold Lead,+971500000002,50,Cold,,No,
Cold Lead Two,+971500000003,51,Cold,declined,No,Evening
"""


@pytest.fixture
def importer(remote, notifier, doctor_profile):
    return BulkImporter(MutationHook(remote), doctor_profile, notifier=notifier)


class TestMapping:

    def test_header_variants(self):
        mapping = map_columns(["Full Name", "Mobile", "price (aed)", "Favourite Colour"])
        assert mapping == {"Full Name": "name", "Mobile": "phone", "price (aed)": "price"}

    def test_first_matching_header_wins(self):
        assert map_columns(["Name", "Patient Name"]) == {"Name": "name"}

    def test_row_is_stamped_with_importer(self, doctor_profile):
        row = row_to_patient({"name": "Amy", "phone": "+971", "age": "33", "follow_up_required": "No"}, doctor_profile)
        assert row["doctor_id"] == "doc-1"
        assert row["clinic_id"] == "clinic-1"
        assert row["last_modified_by"] == "doc-1"
        assert row["status"] == "Pending"
        assert row["age"] == 33
        assert row["follow_up_required"] is False

    def test_invalid_enum_value(self, doctor_profile):
        with pytest.raises(ValidationError):
            row_to_patient({"name": "Amy", "phone": "+971", "preferred_channel": "Pigeon"}, doctor_profile)


class TestImport:

    def test_valid_rows_imported_and_errors_reported(self, importer, db, notifier, tmp_path):
        path = tmp_path / "patients.csv"
        path.write_text(CSV)

        report = asyncio.run(importer.import_file(path))

        assert report.filename == "patients.csv"
        assert report.success_count == 2
        assert report.error_count == 3
        assert report.errors[0] == "Row 3: missing phone number"
        assert report.errors[1].startswith("Row 4: invalid number")
        assert report.errors[2].startswith("Row 5:")

        names = sorted(r["name"] for r in db.tables["patients"])
        assert names == ["Cold Lead Two", "John Doe"]
        john = next(r for r in db.tables["patients"] if r["name"] == "John Doe")
        assert john["follow_up_required"] is True
        assert john["preferred_time"] == "Morning"

        assert notifier.messages(NoticeLevel.SUCCESS) == ["2 patients imported successfully"]
        assert notifier.messages(NoticeLevel.ERROR)[-1] == "3 patients failed to import"

    def test_import_bytes(self, importer, db):
        data = b"Name,Phone Number\nAmy,+971500000009\n"
        report = asyncio.run(importer.import_bytes(data, "upload.csv"))
        assert report.success_count == 1
        assert db.tables["patients"][0]["phone"] == "+971500000009"

    def test_rows_without_required_cells_are_not_inserted(self, importer, db):
        report = asyncio.run(importer.import_bytes(b"Name\nAmy\n", "names.csv"))
        assert report.error_count == 1
        assert report.errors == ["Row 2: missing phone number"]

        report = asyncio.run(importer.import_bytes(b"Name,Phone,Age\n,,30\n", "blank.csv"))
        assert report.error_count == 1
        assert report.errors == ["Row 2: missing patient name"]

        assert db.count_calls("patients", "insert") == 0

    def test_store_failures_are_reported_per_row(self, importer, db):
        db.fail("patients", "insert", api_error("23505", "duplicate key"), times=1)
        data = b"Name,Phone\nAmy,+1\nBob,+2\n"
        report = asyncio.run(importer.import_bytes(data, "upload.csv"))
        assert report.success_count == 1
        assert report.errors == ["Row 2: duplicate key"]

    def test_empty_file(self, importer, notifier, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("Patient Name,Phone\n")
        report = asyncio.run(importer.import_file(path))
        assert report.total == 0
        assert notifier.messages(NoticeLevel.ERROR) == ["No data found in the file"]

    def test_non_finite_numbers_fail_only_their_row(self, importer, db):
        data = b"Name,Phone,Age\nAmy,+1,inf\nBob,+2,30\n"
        report = asyncio.run(importer.import_bytes(data, "upload.csv"))
        assert report.success_count == 1
        assert report.errors[0].startswith("Row 2: invalid number")
        assert [p["name"] for p in db.tables["patients"]] == ["Bob"]

    def test_corrupt_workbook(self, importer, db):
        with pytest.raises(ValidationError) as excinfo:
            asyncio.run(importer.import_bytes(b"this is not a workbook", "broken.xlsx"))
        assert excinfo.value.field == "file"
        assert db.count_calls("patients", "insert") == 0

    def test_zero_byte_file(self, importer, notifier):
        report = asyncio.run(importer.import_bytes(b"", "blank.csv"))
        assert report.total == 0
        assert notifier.messages(NoticeLevel.ERROR) == ["No data found in the file"]

    def test_unsupported_type(self, tmp_path):
        path = tmp_path / "patients.txt"
        path.write_text("Name,Phone\n")
        with pytest.raises(ValidationError):
            read_sheet(path)


class TestTemplate:

    def test_xlsx_template(self, importer, db, tmp_path):
        path = write_template(tmp_path / "template.xlsx")

        df = read_sheet(path)
        assert list(df.columns) == TEMPLATE_HEADERS
        assert pd.read_excel(path, sheet_name="Instructions").shape[0] > 0

        report = asyncio.run(importer.import_file(path))
        assert report.success_count == 1
        assert db.tables["patients"][0]["name"] == "John Doe"

    def test_csv_template(self, tmp_path):
        path = write_template(tmp_path / "template.csv")
        assert list(read_sheet(path).columns) == TEMPLATE_HEADERS
