import logging

from appraisal.core.config import settings
from appraisal.database import session_scope
from appraisal.models.company import Company
from appraisal.models.user import User, UserRole
from appraisal.services import auth as auth_service

logger = logging.getLogger(__name__)


def init_system_data():
    """
    First-run bootstrap: with BOOTSTRAP_ADMIN_EMAIL and BOOTSTRAP_ADMIN_PASSWORD
    set and no tenant yet, create one company and its ADMIN user.
    Failures are logged and left for an operator; the API still starts.
    """
    if not (settings.bootstrap_admin_email and settings.bootstrap_admin_password):
        logger.info("Bootstrap skipped: no admin credentials configured")
        return

    with session_scope() as db:
        try:
            if db.query(Company.id).first() is not None:
                logger.info("Bootstrap skipped: a company already exists")
                return
            if db.query(User.id).filter(User.email == settings.bootstrap_admin_email).first() is not None:
                logger.warning(f"Bootstrap skipped: {settings.bootstrap_admin_email} already exists without a company")
                return

            company = Company(name=settings.bootstrap_company_name)
            db.add(company)
            db.flush()
            db.add(User(
                email=settings.bootstrap_admin_email,
                hashed_password=auth_service.get_password_hash(settings.bootstrap_admin_password),
                first_name="Admin",
                role=UserRole.ADMIN,
                company_id=company.id,
                is_active=True,
            ))
            db.commit()
            logger.info(f"Bootstrapped company '{company.name}' with admin {settings.bootstrap_admin_email}")
        except Exception as e:
            db.rollback()
            logger.error(f"Bootstrap failed: {e}", exc_info=True)
