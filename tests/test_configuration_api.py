import pytest
from datetime import timedelta

from appraisal.core.clock import utcnow
from appraisal.core.permissions import NavItem, is_visible, visible_items
from appraisal.models.department import Department
from appraisal.models.user import UserRole
from appraisal.services.notification import NotificationService


# --- Navigation ---
@pytest.mark.parametrize("item,role,expected", [
    (NavItem.dashboard, UserRole.EMPLOYEE, True),
    (NavItem.my_evaluation, UserRole.EMPLOYEE, True),
    (NavItem.appraisal_progress, UserRole.EMPLOYEE, False),
    (NavItem.team_reviews, UserRole.MANAGER, True),
    (NavItem.initiate_appraisal, UserRole.MANAGER, False),
    (NavItem.initiate_appraisal, UserRole.HR_MANAGER, True),
    (NavItem.organization, UserRole.HR_MANAGER, False),
    (NavItem.organization, UserRole.ADMIN, True),
    (NavItem.company_setup, UserRole.ADMIN, False),
    (NavItem.company_setup, UserRole.SUPER_ADMIN, True),
])
def test_nav_visibility(item, role, expected):
    assert is_visible(item, role) is expected


def test_super_admin_sees_everything():
    assert visible_items(UserRole.SUPER_ADMIN) == list(NavItem)


def test_navigation_endpoint(client, manager, auth_headers):
    response = client.get("/api/navigation", headers=auth_headers(manager))
    assert response.status_code == 200
    data = response.json()
    keys = [item["key"] for item in data["items"]]
    assert "team_reviews" in keys
    assert "scheduled_tasks" not in keys
    assert "review_team" in data["capabilities"]


# --- Notifications ---
def test_notifications_list_and_mark_read(client, db_session, employee, auth_headers):
    note = NotificationService.notify_user(db_session, employee.id, "Hello", "Welcome aboard")
    headers = auth_headers(employee)

    unread = client.get("/api/notifications", params={"unread_only": True}, headers=headers).json()
    assert [n["id"] for n in unread] == [note.id]

    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"unread": 1}

    read = client.patch(f"/api/notifications/{note.id}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["read_at"] is not None
    assert client.get("/api/notifications", params={"unread_only": True}, headers=headers).json() == []


def test_mark_all_read(client, db_session, employee, auth_headers):
    for title in ("One", "Two"):
        NotificationService.notify_user(db_session, employee.id, title, "Body", type="reminder")
    headers = auth_headers(employee)
    assert client.post("/api/notifications/mark-all-read", headers=headers).json() == {"marked_read": 2}
    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"unread": 0}


def test_cannot_read_someone_elses_notification(client, db_session, employee, manager, auth_headers):
    note = NotificationService.notify_user(db_session, employee.id, "Hello", "Private")
    response = client.patch(f"/api/notifications/{note.id}/read", headers=auth_headers(manager))
    assert response.status_code == 404


# --- Org configuration ---
def test_dimension_lifecycle(client, admin_user, auth_headers):
    headers = auth_headers(admin_user)
    created = client.post("/api/org/departments", json={"code": "ENG", "name": "Engineering"}, headers=headers)
    assert created.status_code == 201
    department_id = created.json()["id"]

    duplicate = client.post("/api/org/departments", json={"code": "ENG", "name": "Again"}, headers=headers)
    assert duplicate.status_code == 400

    renamed = client.patch(f"/api/org/departments/{department_id}", json={"name": "Platform"}, headers=headers)
    assert renamed.json()["name"] == "Platform"

    assert client.delete(f"/api/org/departments/{department_id}", headers=headers).json()["status"] == "inactive"
    assert client.get("/api/org/departments", headers=headers).json() == []
    everything = client.get("/api/org/departments", params={"include_inactive": True}, headers=headers).json()
    assert [d["id"] for d in everything] == [department_id]


def test_hr_cannot_change_org_config(client, hr_user, auth_headers):
    response = client.post("/api/org/levels", json={"code": "L1", "description": "Junior"}, headers=auth_headers(hr_user))
    assert response.status_code == 403


def test_create_employee(client, admin_user, manager, auth_headers):
    payload = {
        "email": "newhire@acme-corp.com",
        "password": "Welcome123!",
        "first_name": "Nina",
        "last_name": "Hire",
        "reporting_manager_id": manager.id,
    }
    response = client.post("/api/org/employees", json=payload, headers=auth_headers(admin_user))
    assert response.status_code == 201
    assert response.json()["full_name"] == "Nina Hire"

    again = client.post("/api/org/employees", json=payload, headers=auth_headers(admin_user))
    assert again.status_code == 400


def test_employee_cannot_report_to_themselves(client, admin_user, employee, auth_headers):
    response = client.patch(
        f"/api/org/employees/{employee.id}",
        json={"reporting_manager_id": employee.id},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 400


def test_calendar_with_periods(client, admin_user, cycle, auth_headers):
    headers = auth_headers(admin_user)
    created = client.post(
        "/api/org/frequency-calendars",
        json={"code": "H1H2", "description": "Half-yearly", "appraisal_cycle_id": cycle.id},
        headers=headers,
    )
    assert created.status_code == 201
    calendar_id = created.json()["id"]

    start = utcnow() + timedelta(days=1)
    detail = client.post(
        f"/api/org/frequency-calendars/{calendar_id}/details",
        json={
            "display_name": "H1",
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=180)).isoformat(),
        },
        headers=headers,
    )
    assert detail.status_code == 201
    fetched = client.get(f"/api/org/frequency-calendars/{calendar_id}", headers=headers).json()
    assert [d["display_name"] for d in fetched["details"]] == ["H1"]


# --- Questionnaires ---
def test_questionnaire_crud_and_copy(client, hr_user, auth_headers):
    headers = auth_headers(hr_user)
    payload = {
        "name": "Quarterly Check-in",
        "target_role": "employee",
        "questions": [{"id": "q1", "text": "What went well?", "type": "textarea", "required": True}],
    }
    created = client.post("/api/questionnaires", json=payload, headers=headers)
    assert created.status_code == 201
    template_id = created.json()["id"]

    copied = client.post(f"/api/questionnaires/{template_id}/copy", json={"year": 2027}, headers=headers)
    assert copied.json()["name"] == "Copy of Quarterly Check-in"
    assert copied.json()["year"] == 2027
    assert copied.json()["questions"] == created.json()["questions"]

    assert client.delete(f"/api/questionnaires/{template_id}", headers=headers).json()["status"] == "inactive"
    active = [t["id"] for t in client.get("/api/questionnaires", headers=headers).json()]
    assert template_id not in active


def test_duplicate_question_ids_are_rejected(client, hr_user, auth_headers):
    payload = {
        "name": "Broken",
        "target_role": "manager",
        "questions": [{"id": "q1", "text": "A"}, {"id": "q1", "text": "B"}],
    }
    response = client.post("/api/questionnaires", json=payload, headers=auth_headers(hr_user))
    assert response.status_code == 422


def test_employees_cannot_manage_questionnaires(client, employee, auth_headers):
    assert client.get("/api/questionnaires", headers=auth_headers(employee)).status_code == 403


# --- Appraisal groups ---
def test_group_membership(client, hr_user, employee, make_user, auth_headers):
    headers = auth_headers(hr_user)
    created = client.post("/api/appraisal-groups", json={"name": "Sales", "member_ids": [employee.id]}, headers=headers)
    assert created.status_code == 201
    group_id = created.json()["id"]
    assert created.json()["member_count"] == 1

    colleague = make_user()
    added = client.post(
        f"/api/appraisal-groups/{group_id}/members",
        json={"user_ids": [employee.id, colleague.id]},
        headers=headers,
    )
    assert added.json() == {"added": 1, "already_members": 1}

    members = client.get(f"/api/appraisal-groups/{group_id}/members", headers=headers).json()
    assert {m["user_id"] for m in members} == {employee.id, colleague.id}

    removed = client.delete(f"/api/appraisal-groups/{group_id}/members/{colleague.id}", headers=headers)
    assert removed.status_code == 204
    assert len(client.get(f"/api/appraisal-groups/{group_id}/members", headers=headers).json()) == 1


def test_add_members_by_department(client, db_session, company, hr_user, make_user, auth_headers):
    department = Department(company_id=company.id, code="OPS", name="Operations")
    db_session.add(department)
    db_session.commit()
    make_user(department_id=department.id)
    make_user(department_id=department.id)
    make_user()

    headers = auth_headers(hr_user)
    group_id = client.post("/api/appraisal-groups", json={"name": "Ops"}, headers=headers).json()["id"]
    response = client.post(
        f"/api/appraisal-groups/{group_id}/members/by-filter",
        json={"department_ids": [department.id]},
        headers=headers,
    )
    assert response.json()["added"] == 2


def test_unknown_member_is_rejected(client, hr_user, auth_headers):
    headers = auth_headers(hr_user)
    group_id = client.post("/api/appraisal-groups", json={"name": "Ghosts"}, headers=headers).json()["id"]
    response = client.post(f"/api/appraisal-groups/{group_id}/members", json={"user_ids": [424242]}, headers=headers)
    assert response.status_code == 400


# --- Companies ---
def test_super_admin_onboards_a_company(client, make_user, auth_headers):
    platform = make_user(UserRole.SUPER_ADMIN, first_name="Sam", company_id=None)
    payload = {
        "name": "Globex",
        "company_url": "globex",
        "admin_email": "owner@globex-corp.com",
        "admin_password": "Globex123!",
        "admin_first_name": "Olive",
    }
    response = client.post("/api/companies", json=payload, headers=auth_headers(platform))
    assert response.status_code == 201
    data = response.json()
    assert data["company"]["company_url"] == "globex"

    login = client.post("/api/auth/login", json={"email": "owner@globex-corp.com", "password": "Globex123!"})
    assert login.json()["user"]["role"] == "admin"
    assert login.json()["user"]["company_id"] == data["company"]["id"]

    again = client.post("/api/companies", json=dict(payload, admin_email="other@globex-corp.com"), headers=auth_headers(platform))
    assert again.status_code == 400


def test_tenant_admin_cannot_onboard_companies(client, admin_user, auth_headers):
    assert client.get("/api/companies", headers=auth_headers(admin_user)).status_code == 403


def test_current_company_profile(client, admin_user, employee, auth_headers):
    assert client.get("/api/companies/current", headers=auth_headers(employee)).json()["name"] == "Acme Corp"
    updated = client.patch("/api/companies/current", json={"address": "1 Main St"}, headers=auth_headers(admin_user))
    assert updated.json()["address"] == "1 Main St"
    denied = client.patch("/api/companies/current", json={"address": "Elsewhere"}, headers=auth_headers(employee))
    assert denied.status_code == 403
