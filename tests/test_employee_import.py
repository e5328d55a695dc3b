import base64
import io

import pytest
from openpyxl import Workbook, load_workbook

from appraisal.core.exceptions import ValidationError
from appraisal.models.department import Department
from appraisal.models.user import User, UserRole
from appraisal.services.employee_import import IMPORT_COLUMNS
from appraisal.services.org_service import OrgService

HEADERS = list(IMPORT_COLUMNS)


def employee_row(email, code, first_name="Nina", last_name="Hire", **extra):
    values = {
        "Email*": email,
        "First Name*": first_name,
        "Last Name*": last_name,
        "Employee Code*": code,
        "Initial Password*": "Welcome123!",
        "Date of Joining (YYYY-MM-DD)*": "2024-01-15",
    }
    values.update(extra)
    return [values.get(header) for header in HEADERS]


def make_sheet(rows, headers=HEADERS):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(headers)
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def org(db_session, company):
    return OrgService(db_session, company.id)


@pytest.fixture
def engineering(db_session, company):
    department = Department(company_id=company.id, code="ENG", name="Engineering")
    db_session.add(department)
    db_session.commit()
    return department


def test_clean_sheet_creates_every_employee(org, db_session, engineering):
    content = make_sheet([
        employee_row("lead@acme-corp.com", "EMP-100", first_name="Lena", **{"Department Code": "ENG", "Role": "Manager"}),
        employee_row("dev@acme-corp.com", "EMP-101", **{"Reporting Manager Email": "lead@acme-corp.com"}),
    ])

    result = org.bulk_import_employees(content)

    assert result["summary"] == {"total": 2, "successful": 2, "failed": 0}
    assert [r["row"] for r in result["success"]] == [2, 3]
    assert result["errors"] == []
    lead = db_session.query(User).filter(User.email == "lead@acme-corp.com").one()
    dev = db_session.query(User).filter(User.email == "dev@acme-corp.com").one()
    assert lead.role == UserRole.MANAGER
    assert lead.department_id == engineering.id
    assert dev.reporting_manager_id == lead.id
    assert dev.date_of_joining.year == 2024
    assert dev.company_id == org.company_id


def test_duplicate_and_incomplete_rows_are_reported(org, db_session, employee):
    content = make_sheet([
        employee_row("first@acme-corp.com", "EMP-200"),
        employee_row("first@acme-corp.com", "EMP-201"),
        employee_row(employee.email, "EMP-202"),
        employee_row("second@acme-corp.com", "EMP-200"),
        employee_row("third@acme-corp.com", "EMP-001"),
        employee_row("fourth@acme-corp.com", "EMP-203", last_name=None),
        employee_row("fifth@acme-corp.com", "EMP-204", **{"Department Code": "NOPE"}),
    ])

    result = org.bulk_import_employees(content)

    assert result["summary"] == {"total": 7, "successful": 1, "failed": 6}
    errors = {e["row"]: e["error"] for e in result["errors"]}
    assert errors[3] == "Email appears more than once in the sheet"
    assert errors[4] == "Email already exists"
    assert errors[5] == "Employee code appears more than once in the sheet"
    assert errors[6] == "Employee code already exists"
    assert "last_name" in errors[7]
    assert "NOPE" in errors[8]
    assert db_session.query(User).filter(User.email.in_(["second@acme-corp.com", "third@acme-corp.com"])).count() == 0


def test_bad_dates_and_roles_are_row_errors(org):
    content = make_sheet([
        employee_row("a@acme-corp.com", "EMP-300", **{"Date of Joining (YYYY-MM-DD)*": "15/01/2024"}),
        employee_row("b@acme-corp.com", "EMP-301", **{"Role": "super_admin"}),
        employee_row("c@acme-corp.com", "EMP-302", **{"Role": "wizard"}),
    ])
    result = org.bulk_import_employees(content)
    assert result["summary"]["failed"] == 3


def test_empty_sheet_is_rejected(org):
    with pytest.raises(ValidationError):
        org.bulk_import_employees(make_sheet([]))


def test_missing_required_column_is_rejected(org):
    with pytest.raises(ValidationError) as exc:
        org.bulk_import_employees(make_sheet([["x@acme-corp.com"]], headers=["Email*"]))
    assert "First Name*" in exc.value.details["columns"]


def test_non_spreadsheet_upload_is_rejected(org):
    with pytest.raises(ValidationError):
        org.bulk_import_employees(b"name,email\nNina,nina@acme-corp.com\n")


# --- API ---
def test_bulk_upload_endpoint(client, admin_user, auth_headers):
    content = make_sheet([employee_row("api@acme-corp.com", "EMP-400")])
    response = client.post(
        "/api/org/employees/bulk-upload",
        json={"file_data": base64.b64encode(content).decode()},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 200
    assert response.json()["summary"]["successful"] == 1

    login = client.post("/api/auth/login", json={"email": "api@acme-corp.com", "password": "Welcome123!"})
    assert login.status_code == 200


def test_hr_cannot_bulk_upload(client, hr_user, auth_headers):
    content = make_sheet([employee_row("hr@acme-corp.com", "EMP-500")])
    response = client.post(
        "/api/org/employees/bulk-upload",
        json={"file_data": base64.b64encode(content).decode()},
        headers=auth_headers(hr_user),
    )
    assert response.status_code == 403


def test_import_template_download(client, admin_user, auth_headers):
    response = client.get("/api/org/employees/bulk-upload/template", headers=auth_headers(admin_user))
    assert response.status_code == 200
    assert "employee_import_template.xlsx" in response.headers["content-disposition"]
    sheet = load_workbook(io.BytesIO(response.content)).active
    assert [cell.value for cell in sheet[1]] == HEADERS
