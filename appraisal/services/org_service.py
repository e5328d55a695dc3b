"""
Company configuration: org dimensions, employees, appraisal cycles,
review frequencies and frequency calendars.
"""
from typing import Any, Dict, List, Optional, Type

from email_validator import EmailNotValidError, validate_email

from appraisal.core.exceptions import NotFoundError, ValidationError
from appraisal.models.company import RecordStatus
from appraisal.models.location import Location
from appraisal.models.department import Department
from appraisal.models.level import Level
from appraisal.models.grade import Grade
from appraisal.models.user import User, UserRole
from appraisal.models.appraisal_cycle import AppraisalCycle
from appraisal.models.frequency_calendar import ReviewFrequency, FrequencyCalendar, FrequencyCalendarDetail
from appraisal.services import auth as auth_service
from appraisal.services import employee_import
from appraisal.services.base import BaseService

DIMENSION_MODELS: Dict[str, Type] = {
    "locations": Location,
    "departments": Department,
    "levels": Level,
    "grades": Grade,
}

_EMPLOYEE_REFERENCES = {
    "department_id": Department,
    "location_id": Location,
    "level_id": Level,
    "grade_id": Grade,
}


class OrgService(BaseService):

    # --- Generic company-scoped lookups ---
    def _get_scoped(self, model, entity_id: int, label: Optional[str] = None):
        obj = self.db.query(model).filter(
            model.id == entity_id,
            model.company_id == self.company_id
        ).first()
        if not obj:
            raise NotFoundError(label or model.__name__, entity_id)
        return obj

    def _ensure_unique_code(self, model, code: str, exclude_id: Optional[int] = None):
        query = self.db.query(model).filter(model.company_id == self.company_id, model.code == code)
        if exclude_id is not None:
            query = query.filter(model.id != exclude_id)
        if query.first():
            raise ValidationError(
                f"{model.__name__} code '{code}' already exists",
                details={"code": "must be unique within the company"}
            )

    # --- Org dimensions ---
    def create_dimension(self, model, data: Dict[str, Any]):
        self._ensure_unique_code(model, data["code"])
        obj = model(company_id=self.company_id, **data)
        self.db.add(obj)
        self.commit()
        self.db.refresh(obj)
        self.log_info(f"Created {model.__name__} {obj.code}", company_id=self.company_id)
        return obj

    def list_dimension(self, model, include_inactive: bool = False) -> List:
        query = self.db.query(model).filter(model.company_id == self.company_id)
        if not include_inactive:
            query = query.filter(model.status == RecordStatus.active)
        return query.order_by(model.code).all()

    def get_dimension(self, model, entity_id: int):
        return self._get_scoped(model, entity_id)

    def update_dimension(self, model, entity_id: int, data: Dict[str, Any]):
        obj = self._get_scoped(model, entity_id)
        for field, value in data.items():
            if hasattr(obj, field):
                setattr(obj, field, value)
        self.commit()
        self.db.refresh(obj)
        return obj

    def deactivate_dimension(self, model, entity_id: int):
        """Dimensions are referenced by employees and templates, so they are never hard-deleted."""
        obj = self._get_scoped(model, entity_id)
        obj.status = RecordStatus.inactive
        self.commit()
        return obj

    # --- Employees ---
    def _check_employee_references(self, data: Dict[str, Any], employee_id: Optional[int] = None):
        for field, model in _EMPLOYEE_REFERENCES.items():
            if data.get(field) is not None:
                self._get_scoped(model, data[field])
        manager_id = data.get("reporting_manager_id")
        if manager_id is not None:
            if employee_id is not None and manager_id == employee_id:
                raise ValidationError(
                    "An employee cannot report to themselves",
                    details={"reporting_manager_id": "must differ from the employee"}
                )
            self._get_scoped(User, manager_id, "Reporting manager")

    def create_employee(self, data: Dict[str, Any]) -> User:
        if self.db.query(User).filter(User.email == data["email"]).first():
            raise ValidationError("Email already in use", details={"email": "already registered"})
        self._check_employee_references(data)
        password = data.pop("password")
        user = User(company_id=self.company_id, hashed_password=auth_service.get_password_hash(password), **data)
        self.db.add(user)
        self.commit()
        self.db.refresh(user)
        self.log_info(f"Created employee {user.email}", company_id=self.company_id)
        return user

    def list_employees(self, include_inactive: bool = False) -> List[User]:
        query = self.db.query(User).filter(User.company_id == self.company_id)
        if not include_inactive:
            query = query.filter(User.is_active.is_(True))
        return query.order_by(User.first_name, User.id).all()

    def get_employee(self, employee_id: int) -> User:
        return self._get_scoped(User, employee_id, "Employee")

    # --- Bulk import ---
    def _by_code(self, model, code: str, label: str):
        obj = self.db.query(model).filter(model.company_id == self.company_id, model.code == code).first()
        if not obj:
            raise ValidationError(f"Unknown {label} code '{code}'")
        return obj

    def _import_row(self, row: Dict[str, Any], seen_emails: set, seen_codes: set) -> User:
        missing = [name for name in employee_import.REQUIRED_FIELDS if row.get(name) is None]
        if missing:
            raise ValidationError(f"Missing required value(s): {', '.join(missing)}")

        email = str(row["email"])
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email: {e}")
        if email in seen_emails:
            raise ValidationError("Email appears more than once in the sheet")
        if self.db.query(User.id).filter(User.email == email).first():
            raise ValidationError("Email already exists")

        code = str(row["code"])
        if code in seen_codes:
            raise ValidationError("Employee code appears more than once in the sheet")
        if self.db.query(User.id).filter(User.company_id == self.company_id, User.code == code).first():
            raise ValidationError("Employee code already exists")

        password = str(row["password"])
        if len(password) < 8:
            raise ValidationError("Initial password must be at least 8 characters")

        try:
            role = UserRole(str(row.get("role") or UserRole.EMPLOYEE.value).lower())
        except ValueError:
            raise ValidationError(f"Unknown role '{row['role']}'")
        if role == UserRole.SUPER_ADMIN:
            raise ValidationError("Platform administrators cannot be imported")

        data = {
            "email": email,
            "first_name": str(row["first_name"]),
            "last_name": str(row["last_name"]),
            "code": code,
            "designation": row.get("designation"),
            "role": role,
            "date_of_joining": employee_import.parse_joining_date(row["date_of_joining"]),
        }
        for field, model, label in (
            ("department_code", Department, "department"),
            ("location_code", Location, "location"),
            ("level_code", Level, "level"),
            ("grade_code", Grade, "grade"),
        ):
            if row.get(field) is not None:
                data[field.replace("_code", "_id")] = self._by_code(model, str(row[field]), label).id
        manager_email = row.get("reporting_manager_email")
        if manager_email is not None:
            manager = self.db.query(User).filter(
                User.company_id == self.company_id,
                User.email == str(manager_email)
            ).first()
            if not manager:
                raise ValidationError(f"Reporting manager '{manager_email}' not found")
            data["reporting_manager_id"] = manager.id

        user = User(company_id=self.company_id, hashed_password=auth_service.get_password_hash(password), **data)
        self.db.add(user)
        # Later rows may name this employee as their reporting manager
        self.db.flush()
        seen_emails.add(email)
        seen_codes.add(code)
        return user

    def bulk_import_employees(self, content: bytes) -> Dict[str, Any]:
        """
        Create employees from an XLSX sheet. Each row is checked on its own:
        valid rows are created, invalid ones are reported with their row
        number and never block the rest.
        """
        rows = employee_import.read_rows(content)
        if not rows:
            raise ValidationError("No employee rows found in the spreadsheet", details={"file_data": "empty sheet"})

        success, errors = [], []
        seen_emails, seen_codes = set(), set()
        for row_number, row in rows:
            try:
                user = self._import_row(row, seen_emails, seen_codes)
            except ValidationError as e:
                errors.append({"row": row_number, "email": row.get("email"), "error": e.message})
                continue
            success.append({"row": row_number, "email": user.email, "name": user.full_name})

        self.commit()
        self.log_info(
            f"Bulk import: {len(success)} employees created, {len(errors)} rows rejected",
            company_id=self.company_id,
        )
        return {
            "summary": {"total": len(rows), "successful": len(success), "failed": len(errors)},
            "success": success,
            "errors": errors,
        }

    def update_employee(self, employee_id: int, data: Dict[str, Any]) -> User:
        user = self._get_scoped(User, employee_id, "Employee")
        self._check_employee_references(data, employee_id=employee_id)
        for field, value in data.items():
            setattr(user, field, value)
        self.commit()
        self.db.refresh(user)
        return user

    # --- Appraisal cycles ---
    def create_cycle(self, data: Dict[str, Any]) -> AppraisalCycle:
        self._ensure_unique_code(AppraisalCycle, data["code"])
        cycle = AppraisalCycle(company_id=self.company_id, **data)
        self.db.add(cycle)
        self.commit()
        self.db.refresh(cycle)
        return cycle

    def list_cycles(self) -> List[AppraisalCycle]:
        return self.db.query(AppraisalCycle).filter(
            AppraisalCycle.company_id == self.company_id
        ).order_by(AppraisalCycle.from_date.desc()).all()

    def get_cycle(self, cycle_id: int) -> AppraisalCycle:
        return self._get_scoped(AppraisalCycle, cycle_id, "Appraisal cycle")

    def set_cycle_status(self, cycle_id: int, status: RecordStatus) -> AppraisalCycle:
        cycle = self.get_cycle(cycle_id)
        cycle.status = status
        self.commit()
        self.db.refresh(cycle)
        return cycle

    # --- Review frequencies ---
    def create_frequency(self, data: Dict[str, Any]) -> ReviewFrequency:
        self._ensure_unique_code(ReviewFrequency, data["code"])
        frequency = ReviewFrequency(company_id=self.company_id, **data)
        self.db.add(frequency)
        self.commit()
        self.db.refresh(frequency)
        return frequency

    def list_frequencies(self) -> List[ReviewFrequency]:
        return self.db.query(ReviewFrequency).filter(
            ReviewFrequency.company_id == self.company_id
        ).order_by(ReviewFrequency.code).all()

    # --- Frequency calendars ---
    def create_calendar(self, data: Dict[str, Any]) -> FrequencyCalendar:
        self._ensure_unique_code(FrequencyCalendar, data["code"])
        self.get_cycle(data["appraisal_cycle_id"])
        if data.get("review_frequency_id") is not None:
            self._get_scoped(ReviewFrequency, data["review_frequency_id"], "Review frequency")
        details = data.pop("details", [])
        calendar = FrequencyCalendar(company_id=self.company_id, **data)
        for detail in details:
            calendar.details.append(FrequencyCalendarDetail(**detail))
        self.db.add(calendar)
        self.commit()
        self.db.refresh(calendar)
        return calendar

    def list_calendars(self) -> List[FrequencyCalendar]:
        return self.db.query(FrequencyCalendar).filter(
            FrequencyCalendar.company_id == self.company_id
        ).order_by(FrequencyCalendar.code).all()

    def get_calendar(self, calendar_id: int) -> FrequencyCalendar:
        return self._get_scoped(FrequencyCalendar, calendar_id, "Frequency calendar")

    def add_calendar_detail(self, calendar_id: int, data: Dict[str, Any]) -> FrequencyCalendarDetail:
        calendar = self.get_calendar(calendar_id)
        detail = FrequencyCalendarDetail(frequency_calendar_id=calendar.id, **data)
        self.db.add(detail)
        self.commit()
        self.db.refresh(detail)
        return detail
