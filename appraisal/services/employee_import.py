"""
Bulk employee import sheet.

The first worksheet carries one employee per row under the IMPORT_COLUMNS
headers; starred headers are required. Org dimensions are referenced by code
and the reporting manager by email, so a sheet can be filled in without
looking up database ids.
"""
import io
import zipfile
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from appraisal.core.exceptions import ValidationError

IMPORT_COLUMNS = {
    "Email*": "email",
    "First Name*": "first_name",
    "Last Name*": "last_name",
    "Employee Code*": "code",
    "Initial Password*": "password",
    "Date of Joining (YYYY-MM-DD)*": "date_of_joining",
    "Designation": "designation",
    "Department Code": "department_code",
    "Location Code": "location_code",
    "Level Code": "level_code",
    "Grade Code": "grade_code",
    "Reporting Manager Email": "reporting_manager_email",
    "Role": "role",
}
REQUIRED_FIELDS = [name for header, name in IMPORT_COLUMNS.items() if header.endswith("*")]

SAMPLE_ROW = {
    "email": "john.doe@yourcompany.com",
    "first_name": "John",
    "last_name": "Doe",
    "code": "EMP001",
    "password": "ChangeMe123!",
    "date_of_joining": "2024-01-15",
    "designation": "Software Engineer",
    "department_code": "ENG",
    "role": "employee",
}


def build_template() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Employees"
    sheet.append(list(IMPORT_COLUMNS))
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    sheet.append([SAMPLE_ROW.get(name, "") for name in IMPORT_COLUMNS.values()])
    for cell in sheet[1]:
        sheet.column_dimensions[cell.column_letter].width = max(len(cell.value) + 2, 15)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    # Codes typed as numbers come back as 1001.0
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def read_rows(content: bytes) -> List[Tuple[int, Dict[str, Any]]]:
    """(spreadsheet row number, field values) for every non-empty data row."""
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ValidationError("The upload is not a readable XLSX workbook", details={"file_data": str(e)})

    try:
        rows = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(rows, None) or ()
        fields = [IMPORT_COLUMNS.get(str(title).strip()) if title is not None else None for title in header]
        missing = [title for title, name in IMPORT_COLUMNS.items() if name in REQUIRED_FIELDS and name not in fields]
        if missing:
            raise ValidationError(
                "The sheet is missing required columns",
                details={"columns": missing}
            )

        parsed = []
        for row_number, values in enumerate(rows, start=2):
            record = {
                name: _clean(value)
                for name, value in zip(fields, values)
                if name is not None
            }
            if any(value is not None for value in record.values()):
                parsed.append((row_number, record))
        return parsed
    finally:
        workbook.close()


def parse_joining_date(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        raise ValidationError(f"Date of joining '{value}' is not in YYYY-MM-DD format")
