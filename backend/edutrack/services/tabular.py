"""
Tabular upload parsing for bulk provisioning.

``parse_user_rows`` turns a CSV or XLSX upload into one dict per data row,
keyed by the header row. Blank rows are skipped. ``build_user_template``
produces the matching downloadable XLSX template.
"""
import csv
import io
import zipfile
from pathlib import Path
from typing import Any, Dict, List

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from edutrack.core.exceptions import ValidationError

Row = Dict[str, Any]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Column order of the bulk upload template; every header is read by row_to_payload
TEMPLATE_HEADERS = [
    "firstName", "lastName", "email", "role", "college", "batchId", "batchIds",
    "rollNumber", "department", "semester", "academicYear", "phoneNumber", "gender", "isActive",
]

TEMPLATE_SAMPLES = [
    ["Asha", "Verma", "asha.verma@college.edu", "student", "Engineering College",
     "3f2b8c1e-9a4d-4e7b-8c21-5d6f7a8b9c01", None, "CS24001", "CSE", 3, "2024-2025", "9876543210", "female", "true"],
    ["Meera", "Nair", "meera.nair@college.edu", "trainer", "Engineering College", None,
     "3f2b8c1e-9a4d-4e7b-8c21-5d6f7a8b9c01,7c9d0e1f-2a3b-4c5d-8e6f-708192a3b4c5",
     None, None, None, None, None, None, "true"],
    ["Ravi", "Kumar", "ravi.kumar@college.edu", "faculty", "Engineering College", None, None,
     None, None, None, None, None, None, "true"],
]


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _rows_from_matrix(matrix: List[List[Any]]) -> List[Row]:
    if not matrix:
        raise ValidationError("Uploaded file has no header row", field="file")
    headers = [str(h).strip() if h is not None else "" for h in matrix[0]]
    if not any(headers):
        raise ValidationError("Uploaded file has no header row", field="file")

    rows: List[Row] = []
    for values in matrix[1:]:
        row = {
            header: _clean(value)
            for header, value in zip(headers, values)
            if header
        }
        if any(v is not None for v in row.values()):
            rows.append(row)
    return rows


def parse_csv(content: bytes) -> List[Row]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded", field="file")
    return _rows_from_matrix([list(r) for r in csv.reader(io.StringIO(text))])


def parse_xlsx(content: bytes) -> List[Row]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ValidationError(f"Could not read spreadsheet: {e}", field="file")
    try:
        sheet = workbook.active
        matrix = [list(r) for r in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()
    return _rows_from_matrix(matrix)


def parse_user_rows(filename: str, content: bytes) -> List[Row]:
    suffix = Path(filename or "").suffix.lower()
    if suffix == ".csv":
        return parse_csv(content)
    if suffix == ".xlsx":
        return parse_xlsx(content)
    raise ValidationError("Only .csv and .xlsx files are allowed", field="file")


def split_ids(value: Any) -> List[str]:
    """Comma separated id cell to a list"""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def build_user_template() -> bytes:
    """Bulk upload template: header row plus one sample row per role"""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Users"
    sheet.append(TEMPLATE_HEADERS)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for sample in TEMPLATE_SAMPLES:
        sheet.append(sample)
    for column in sheet.columns:
        width = max(len(str(cell.value)) for cell in column if cell.value is not None)
        sheet.column_dimensions[column[0].column_letter].width = min(width + 2, 60)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
