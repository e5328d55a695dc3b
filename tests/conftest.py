import pytest
import os
from datetime import timedelta
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from appraisal.core.clock import utcnow
from appraisal.database import Base, get_db
from appraisal.main import app
from appraisal.models.appraisal_cycle import AppraisalCycle
from appraisal.models.appraisal_group import AppraisalGroup, AppraisalGroupMember
from appraisal.models.company import Company
from appraisal.models.frequency_calendar import FrequencyCalendar, FrequencyCalendarDetail
from appraisal.models.initiated_appraisal import AppraisalType, PublishType, ReviewScope
from appraisal.models.questionnaire_template import QuestionnaireTemplate, TemplateTargetRole
from appraisal.models.user import User, UserRole
from appraisal.services import auth as auth_service
from appraisal.services.email_service import EmailService, get_email_backend, set_email_backend
from appraisal.services.initiation_service import InitiationService
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite needs explicit BEGIN for SAVEPOINT-based test isolation
@event.listens_for(engine, "connect")
def _disable_pysqlite_autobegin(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "Password123!"


class RecordingEmailBackend:
    """Collects outgoing mail; set `fail` to simulate a relay outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, message):
        if self.fail:
            raise ConnectionError("mail relay unavailable")
        self.sent.append(message)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Each test runs inside an outer transaction that is rolled back at the end.
    Service-level commits and rollbacks only touch a nested savepoint.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(autouse=True)
def email_outbox():
    backend = RecordingEmailBackend()
    previous = get_email_backend()
    set_email_backend(backend)
    yield backend
    set_email_backend(previous)


@pytest.fixture
def company(db_session):
    company = Company(name="Acme Corp", company_url="acme")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def make_user(db_session, company):
    """Factory for users of the default company."""
    counter = {"n": 0}

    def _make_user(role=UserRole.EMPLOYEE, first_name=None, last_name="Tester", **kwargs):
        counter["n"] += 1
        first_name = first_name or f"User{counter['n']}"
        user = User(
            email=kwargs.pop("email", f"{first_name.lower()}{counter['n']}@acme-corp.com"),
            hashed_password=auth_service.get_password_hash(PASSWORD),
            first_name=first_name,
            last_name=last_name,
            role=role,
            company_id=kwargs.pop("company_id", company.id),
            is_active=kwargs.pop("is_active", True),
            **kwargs
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user


@pytest.fixture
def admin_user(make_user):
    return make_user(UserRole.ADMIN, first_name="Ada", email="admin@acme-corp.com")


@pytest.fixture
def hr_user(make_user):
    return make_user(UserRole.HR_MANAGER, first_name="Hannah")


@pytest.fixture
def manager(make_user):
    return make_user(UserRole.MANAGER, first_name="Mark")


@pytest.fixture
def employee(make_user, manager):
    return make_user(
        UserRole.EMPLOYEE,
        first_name="Erin",
        code="EMP-001",
        reporting_manager_id=manager.id,
        date_of_joining=utcnow() - timedelta(days=800),
    )


@pytest.fixture
def get_token():
    """Helper fixture to create access tokens for a user."""
    def _get_token(user):
        return auth_service.create_access_token(data={
            "sub": user.email,
            "role": user.role.value,
            "user_id": user.id,
            "company_id": user.company_id,
        })
    return _get_token


@pytest.fixture
def auth_headers(get_token):
    def _auth_headers(user):
        return {"Authorization": f"Bearer {get_token(user)}"}
    return _auth_headers


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# --- Appraisal building blocks ---
@pytest.fixture
def templates(db_session, company, hr_user):
    """An employee self-evaluation template and a manager review template."""
    self_template = QuestionnaireTemplate(
        company_id=company.id,
        name="Annual Self Review",
        target_role=TemplateTargetRole.employee,
        questions=[
            {"id": "q1", "text": "Key achievements", "type": "textarea", "required": True},
            {"id": "q2", "text": "Rate your delivery", "type": "rating", "required": True},
            {"id": "q3", "text": "Anything else?", "type": "text", "required": False},
        ],
        created_by_id=hr_user.id,
    )
    manager_template = QuestionnaireTemplate(
        company_id=company.id,
        name="Manager Review",
        target_role=TemplateTargetRole.manager,
        questions=[
            {"id": "m1", "text": "Strengths observed", "type": "text", "required": True},
        ],
        created_by_id=hr_user.id,
    )
    db_session.add_all([self_template, manager_template])
    db_session.commit()
    return {"self": self_template, "manager": manager_template}


@pytest.fixture
def group(db_session, company, hr_user, employee):
    group = AppraisalGroup(company_id=company.id, name="Engineering 2026", created_by_id=hr_user.id)
    db_session.add(group)
    db_session.flush()
    db_session.add(AppraisalGroupMember(appraisal_group_id=group.id, user_id=employee.id, added_by_id=hr_user.id))
    db_session.commit()
    return group


@pytest.fixture
def cycle(db_session, company):
    now = utcnow()
    cycle = AppraisalCycle(
        company_id=company.id,
        code="FY26",
        description="Financial year 2026",
        from_date=now - timedelta(days=100),
        to_date=now + timedelta(days=265),
    )
    db_session.add(cycle)
    db_session.commit()
    return cycle


@pytest.fixture
def calendar(db_session, company, cycle):
    """A quarterly calendar: Q1 already started, Q2 starts in the future."""
    now = utcnow()
    calendar = FrequencyCalendar(
        company_id=company.id,
        code="FY26-Q",
        description="Quarterly reviews",
        appraisal_cycle_id=cycle.id,
    )
    db_session.add(calendar)
    db_session.flush()
    q1 = FrequencyCalendarDetail(
        frequency_calendar_id=calendar.id,
        display_name="Q1",
        start_date=now - timedelta(days=10),
        end_date=now + timedelta(days=80),
    )
    q2 = FrequencyCalendarDetail(
        frequency_calendar_id=calendar.id,
        display_name="Q2",
        start_date=now + timedelta(days=90),
        end_date=now + timedelta(days=180),
    )
    db_session.add_all([q1, q2])
    db_session.commit()
    return {"calendar": calendar, "q1": q1, "q2": q2}


@pytest.fixture
def initiate_request(group, templates):
    def _request(**overrides):
        request = {
            "appraisal_group_id": group.id,
            "appraisal_type": AppraisalType.questionnaire_based,
            "review_scope": ReviewScope.both,
            "publish_type": PublishType.now,
            "questionnaire_template_ids": [templates["self"].id, templates["manager"].id],
            "document_url": None,
            "appraisal_cycle_id": None,
            "frequency_calendar_id": None,
            "frequency_calendar_detail_ids": [],
            "period_timings": [],
            "days_to_initiate": 0,
            "days_to_close": 14,
            "number_of_reminders": 3,
            "exclude_tenure_less_than_year": False,
            "excluded_employee_ids": [],
            "make_public": False,
        }
        request.update(overrides)
        return request
    return _request


@pytest.fixture
def evaluation(db_session, company, hr_user, initiate_request):
    """A freshly initiated evaluation for `employee`, status not_started."""
    result = InitiationService(db_session, company.id, email_service=EmailService()).initiate(
        hr_user, initiate_request()
    )
    return result.initiated_appraisals[0].evaluations[0]


@pytest.fixture
def self_answers(templates):
    template_id = templates["self"].id
    return [
        {"template_id": template_id, "question_id": "q1", "type": "textarea", "value": "Shipped the billing revamp"},
        {"template_id": template_id, "question_id": "q2", "type": "rating", "value": 4},
    ]


@pytest.fixture
def manager_answers(templates):
    return [
        {"template_id": templates["manager"].id, "question_id": "m1", "type": "text", "value": "Ownership"},
    ]
