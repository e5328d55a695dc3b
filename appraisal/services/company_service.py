"""
Tenant lifecycle. Onboarding is the only place a company is created outside the
first-run bootstrap; it always comes with an ADMIN who configures the rest.
"""
from typing import Any, Dict, List, Tuple

from appraisal.core.exceptions import NotFoundError, ValidationError
from appraisal.models.company import Company
from appraisal.models.user import User, UserRole
from appraisal.services import auth as auth_service
from appraisal.services.audit import AuditService
from appraisal.services.base import BaseService


class CompanyService(BaseService):

    def list_companies(self) -> List[Company]:
        return self.db.query(Company).order_by(Company.name, Company.id).all()

    def get_company(self, company_id: int) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise NotFoundError("Company", company_id)
        return company

    def onboard(self, data: Dict[str, Any], actor: User) -> Tuple[Company, User]:
        if data.get("company_url") and self.db.query(Company.id).filter(
            Company.company_url == data["company_url"]
        ).first():
            raise ValidationError("Company URL already taken", details={"company_url": "must be unique"})
        if self.db.query(User.id).filter(User.email == data["admin_email"]).first():
            raise ValidationError("Email already in use", details={"admin_email": "already registered"})

        company = Company(
            name=data["name"],
            company_url=data.get("company_url"),
            address=data.get("address"),
            email=data.get("email"),
        )
        self.db.add(company)
        self.db.flush()
        admin = User(
            email=data["admin_email"],
            hashed_password=auth_service.get_password_hash(data["admin_password"]),
            first_name=data["admin_first_name"],
            last_name=data.get("admin_last_name"),
            role=UserRole.ADMIN,
            company_id=company.id,
            is_active=True,
        )
        self.db.add(admin)
        self.db.flush()
        AuditService(self.db, company.id).log_action(
            action="company_onboarded",
            entity_type="company",
            entity_id=company.id,
            user_id=actor.id,
            user_role=actor.role,
            details={"admin_user_id": admin.id},
        )
        self.commit()
        self.db.refresh(company)
        self.log_info(f"Onboarded company {company.id} ({company.name})", company_id=company.id)
        return company, admin

    def update_company(self, company_id: int, data: Dict[str, Any]) -> Company:
        company = self.get_company(company_id)
        for field, value in data.items():
            setattr(company, field, value)
        self.commit()
        self.db.refresh(company)
        return company
