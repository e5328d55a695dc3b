from typing import Any, Dict, Iterable, List, Optional, Tuple

from appraisal.core.exceptions import NotFoundError, ValidationError
from appraisal.models.company import RecordStatus
from appraisal.models.initiated_appraisal import ReviewScope
from appraisal.models.questionnaire_template import QuestionnaireTemplate, TemplateTargetRole
from appraisal.models.level import Level
from appraisal.models.grade import Grade
from appraisal.models.location import Location
from appraisal.services.base import BaseService
from appraisal.services.org_service import OrgService

SCOPE_TARGET_ROLES = {
    ReviewScope.self_review: {TemplateTargetRole.employee},
    ReviewScope.manager: {TemplateTargetRole.manager},
    ReviewScope.both: {TemplateTargetRole.employee, TemplateTargetRole.manager},
}


def question_index(templates: Iterable[QuestionnaireTemplate], role: Optional[TemplateTargetRole] = None) -> Dict[Tuple[int, str], dict]:
    """Map (template_id, question_id) -> question for the templates answered by `role`."""
    index = {}
    for template in templates:
        if role is not None and template.target_role != role:
            continue
        for question in template.questions or []:
            index[(template.id, question["id"])] = question
    return index


class QuestionnaireService(BaseService):

    def _validate_applicability(self, data: Dict[str, Any]):
        org = OrgService(self.db, self.company_id)
        for field, model in (
            ("applicable_level_id", Level),
            ("applicable_grade_id", Grade),
            ("applicable_location_id", Location),
        ):
            if data.get(field) is not None:
                org.get_dimension(model, data[field])

    def create_template(self, data: Dict[str, Any], created_by_id: int) -> QuestionnaireTemplate:
        self._validate_applicability(data)
        template = QuestionnaireTemplate(company_id=self.company_id, created_by_id=created_by_id, **data)
        self.db.add(template)
        self.commit()
        self.db.refresh(template)
        self.log_info(f"Created questionnaire template {template.id} '{template.name}'", company_id=self.company_id)
        return template

    def list_templates(
        self,
        target_role: Optional[TemplateTargetRole] = None,
        include_inactive: bool = False
    ) -> List[QuestionnaireTemplate]:
        query = self.db.query(QuestionnaireTemplate).filter(QuestionnaireTemplate.company_id == self.company_id)
        if target_role is not None:
            query = query.filter(QuestionnaireTemplate.target_role == target_role)
        if not include_inactive:
            query = query.filter(QuestionnaireTemplate.status == RecordStatus.active)
        return query.order_by(QuestionnaireTemplate.id).all()

    def get_template(self, template_id: int) -> QuestionnaireTemplate:
        template = self.db.query(QuestionnaireTemplate).filter(
            QuestionnaireTemplate.id == template_id,
            QuestionnaireTemplate.company_id == self.company_id
        ).first()
        if not template:
            raise NotFoundError("Questionnaire template", template_id)
        return template

    def get_templates(self, template_ids: List[int]) -> List[QuestionnaireTemplate]:
        """Load the given ids, all of which must exist in the company and be active."""
        if not template_ids:
            return []
        templates = self.db.query(QuestionnaireTemplate).filter(
            QuestionnaireTemplate.id.in_(template_ids),
            QuestionnaireTemplate.company_id == self.company_id
        ).all()
        found = {t.id: t for t in templates}
        missing = [tid for tid in template_ids if tid not in found]
        if missing:
            raise ValidationError(
                "Unknown questionnaire templates",
                details={"questionnaire_template_ids": f"not found: {missing}"}
            )
        inactive = [t.id for t in templates if t.status != RecordStatus.active]
        if inactive:
            raise ValidationError(
                "Inactive questionnaire templates cannot be used",
                details={"questionnaire_template_ids": f"inactive: {inactive}"}
            )
        return [found[tid] for tid in dict.fromkeys(template_ids)]

    def update_template(self, template_id: int, data: Dict[str, Any]) -> QuestionnaireTemplate:
        template = self.get_template(template_id)
        self._validate_applicability(data)
        for field, value in data.items():
            setattr(template, field, value)
        self.commit()
        self.db.refresh(template)
        return template

    def deactivate_template(self, template_id: int) -> QuestionnaireTemplate:
        template = self.get_template(template_id)
        template.status = RecordStatus.inactive
        self.commit()
        return template

    def copy_template(self, template_id: int, created_by_id: int, name: Optional[str] = None, year: Optional[int] = None) -> QuestionnaireTemplate:
        source = self.get_template(template_id)
        copy = QuestionnaireTemplate(
            company_id=self.company_id,
            name=name or f"Copy of {source.name}",
            description=source.description,
            target_role=source.target_role,
            applicable_level_id=source.applicable_level_id,
            applicable_grade_id=source.applicable_grade_id,
            applicable_location_id=source.applicable_location_id,
            questions=[dict(q) for q in source.questions or []],
            send_on_mail=source.send_on_mail,
            year=year if year is not None else source.year,
            status=RecordStatus.active,
            created_by_id=created_by_id,
        )
        self.db.add(copy)
        self.commit()
        self.db.refresh(copy)
        return copy

    @staticmethod
    def resolve_for_member(templates: List[QuestionnaireTemplate], member, review_scope: ReviewScope) -> List[QuestionnaireTemplate]:
        """Templates from the selection that the member gets under the review scope."""
        roles = SCOPE_TARGET_ROLES[review_scope]
        return [t for t in templates if t.target_role in roles and t.applies_to(member)]
