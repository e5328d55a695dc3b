import pytest
from datetime import timedelta
from appraisal.services import auth as auth_service
from appraisal.models.user import User, UserRole


def test_password_hashing():
    """Test that password hashing and verification works correctly."""
    password = "MySecurePassword123!"
    hashed = auth_service.get_password_hash(password)
    assert hashed != password
    assert auth_service.verify_password(password, hashed)
    assert not auth_service.verify_password("WrongPassword", hashed)


def test_create_user(db_session, company):
    """Test creating a new user with a hashed password."""
    email = "newuser@acme-corp.com"
    password = "Password123!"
    hashed_pwd = auth_service.get_password_hash(password)

    user = User(
        email=email,
        hashed_password=hashed_pwd,
        role=UserRole.EMPLOYEE,
        company_id=company.id,
        is_active=True
    )
    db_session.add(user)
    db_session.commit()

    saved_user = db_session.query(User).filter(User.email == email).first()
    assert saved_user is not None
    assert saved_user.email == email
    assert auth_service.verify_password(password, saved_user.hashed_password)


def test_access_token_round_trip():
    token = auth_service.create_access_token(data={"sub": "erin@acme-corp.com", "role": "employee"})
    payload = auth_service.decode_access_token(token)
    assert payload["sub"] == "erin@acme-corp.com"
    assert payload["type"] == "access"


def test_expired_token_is_reported():
    token = auth_service.create_access_token(data={"sub": "erin@acme-corp.com"}, expires_delta=timedelta(minutes=-1))
    assert auth_service.decode_access_token(token) == {"error": "TOKEN_EXPIRED"}


def test_garbage_token_is_rejected():
    assert auth_service.decode_access_token("not-a-jwt") is None
