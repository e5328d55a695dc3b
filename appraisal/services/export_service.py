"""
Spreadsheet and document exports.

Progress rows go to XLSX through openpyxl. Evaluation documents are first laid
out as plain sections, then handed to a renderer (reportlab for PDF,
python-docx for DOCX); a renderer error surfaces as DependencyFailure.
"""
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import docx
from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from appraisal.core.clock import as_utc
from appraisal.core.exceptions import DependencyFailure, ValidationError
from appraisal.core.formatting import humanize
from appraisal.models.evaluation import Evaluation
from appraisal.models.questionnaire_template import QuestionnaireTemplate

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Employee Name",
    "Department",
    "Manager",
    "Appraisal Group",
    "Appraisal Type",
    "Frequency Calendar",
    "Status",
    "Due Date",
]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DOCUMENT_MEDIA_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def _enum_value(value) -> Optional[str]:
    return getattr(value, "value", value)


def format_date(value) -> str:
    if value is None:
        return ""
    return as_utc(value).strftime("%Y-%m-%d")


def row_to_cells(row: Dict[str, Any]) -> List[str]:
    return [
        row.get("employee_name") or "",
        row.get("department") or "",
        row.get("manager_name") or "",
        row.get("appraisal_group") or "",
        humanize(_enum_value(row.get("appraisal_type"))),
        row.get("frequency_calendar") or "",
        humanize(_enum_value(row.get("status"))),
        format_date(row.get("due_date")),
    ]


def rows_to_xlsx(rows: List[Dict[str, Any]]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Appraisal Progress"
    sheet.append(EXPORT_COLUMNS)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append(row_to_cells(row))
    for index, column in enumerate(EXPORT_COLUMNS, start=1):
        width = max([len(column)] + [len(str(sheet.cell(row=r, column=index).value or "")) for r in range(2, sheet.max_row + 1)])
        sheet.column_dimensions[sheet.cell(row=1, column=index).column_letter].width = min(width + 2, 50)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


# --- Evaluation documents ---
@dataclass
class Section:
    heading: str
    lines: List[str] = field(default_factory=list)


@dataclass
class EvaluationDocument:
    title: str
    sections: List[Section] = field(default_factory=list)


def _answer_lines(answers, questions: Dict[tuple, dict]) -> List[str]:
    lines = []
    for answer in answers or []:
        question = questions.get((answer.get("template_id"), answer.get("question_id")))
        text = question["text"] if question else answer.get("question_id")
        lines.append(f"{text}: {answer.get('value')}")
    return lines or ["No responses"]


def build_document(evaluation: Evaluation, templates: List[QuestionnaireTemplate], include_meeting_notes: bool = True) -> EvaluationDocument:
    questions = {}
    for template in templates:
        for question in template.questions or []:
            questions[(template.id, question["id"])] = question

    employee = evaluation.employee
    summary = Section("Summary", [
        f"Employee: {employee.full_name}" + (f" ({employee.code})" if employee.code else ""),
        f"Manager: {evaluation.manager.full_name if evaluation.manager else ''}",
        f"Period: {evaluation.period_key}",
        f"Status: {humanize(evaluation.status.value)}",
        f"Overall rating: {evaluation.overall_rating if evaluation.overall_rating is not None else 'Pending'}",
    ])
    if evaluation.calibrated_rating is not None:
        summary.lines.append(f"Calibrated rating: {evaluation.calibrated_rating}")
    sections = [
        summary,
        Section("Self Evaluation", _answer_lines(evaluation.self_evaluation_data, questions)),
        Section("Manager Evaluation", _answer_lines(evaluation.manager_evaluation_data, questions)),
    ]
    if evaluation.manager_comments:
        sections[-1].lines.append(f"Comments: {evaluation.manager_comments}")
    if include_meeting_notes and evaluation.meeting_notes:
        sections.append(Section("Review Meeting", [
            f"Held on: {format_date(evaluation.meeting_completed_at)}",
            evaluation.meeting_notes,
        ]))
    return EvaluationDocument(title=f"Performance Evaluation - {employee.full_name}", sections=sections)


def render_pdf(documents: List[EvaluationDocument]) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    for document in documents:
        y = height - 50
        pdf.setFont("Helvetica-Bold", 14)
        pdf.drawString(50, y, document.title)
        y -= 30
        for section in document.sections:
            pdf.setFont("Helvetica-Bold", 11)
            pdf.drawString(50, y, section.heading)
            y -= 18
            pdf.setFont("Helvetica", 10)
            for line in section.lines:
                pdf.drawString(60, y, str(line)[:110])
                y -= 15
                if y < 50:
                    pdf.showPage()
                    y = height - 50
                    pdf.setFont("Helvetica", 10)
            y -= 10
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def render_docx(documents: List[EvaluationDocument]) -> bytes:
    output = docx.Document()
    for index, document in enumerate(documents):
        if index:
            output.add_page_break()
        output.add_heading(document.title, level=1)
        for section in document.sections:
            output.add_heading(section.heading, level=2)
            for line in section.lines:
                output.add_paragraph(str(line))
    buffer = io.BytesIO()
    output.save(buffer)
    return buffer.getvalue()


RENDERERS: Dict[str, Callable[[List[EvaluationDocument]], bytes]] = {
    "pdf": render_pdf,
    "docx": render_docx,
}


def render_documents(documents: List[EvaluationDocument], fmt: str, renderer: Optional[Callable] = None) -> bytes:
    renderer = renderer or RENDERERS.get(fmt)
    if renderer is None:
        raise ValidationError(f"Unsupported export format '{fmt}'", details={"format": list(RENDERERS)})
    try:
        return renderer(documents)
    except Exception as e:
        logger.error(f"{fmt} renderer failed: {e}", exc_info=True)
        raise DependencyFailure("renderer", f"Could not render {fmt} export: {e}") from e
