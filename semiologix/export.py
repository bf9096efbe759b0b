import io
import re
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer

from semiologix.config import logger
from semiologix.schemas import AnamnesisData

# (heading, field) in the order of the editable document
SECTIONS = [
    ("Idade:", "age"),
    ("Sexo:", "sex"),
    ("Comorbidades: (HAS, DM, DPOC, etc.)", "comorbidities"),
    ("Medicamentos em Uso:", "medications"),
    ("Alergias:", "allergies"),
    ("História Pregressa Relevante: (Cirurgias, internações, hábitos importantes como tabagismo e etilismo)",
     "past_history"),
    ("Queixa Principal (QP): (Motivo principal da consulta, com tempo de evolução)", "chief_complaint"),
    ("História da Doença Atual (HDA): (Início, evolução, sintomas associados, tratamentos prévios)", "hpi"),
    ("Sinais Vitais:", None),
    ("Peso/Altura (opcional):", "weight_height"),
    ("Exame Físico Sumário: (Inspeção geral, achados mais relevantes no segmento afetado)", "physical_exam"),
    ("Resultados de Exames Relevantes:", "exam_results"),
    ("Hipóteses Diagnósticas (Médico):", "diagnostic_hypotheses"),
    ("Conduta Inicial (Médico):", "initial_plan"),
]


def format_anamnesis_for_editing(data: Optional[AnamnesisData]) -> str:
    """Render the anamnesis as editable text, one `# Heading:` per section."""
    if data is None:
        return ""
    blocks = []
    for heading, field in SECTIONS:
        if field is None:
            body = "\n".join([
                f"PA: {data.blood_pressure or 'NI'}",
                f"FC: {data.heart_rate or 'NI'}",
                f"FR: {data.respiratory_rate or 'NI'}",
                f"Temp: {data.temperature or 'NI'}",
                f"SpO₂: {data.spo2 or 'NI'}",
            ])
        else:
            body = getattr(data, field)
        blocks.append(f"# {heading}\n{body}")
    return "\n\n".join(blocks).strip()


def export_filename(data: Optional[AnamnesisData]) -> str:
    complaint = data.chief_complaint[:20] if data else ""
    if not complaint:
        return "anamnese_paciente.pdf"
    slug = re.sub(r"\s+", "_", complaint)
    return f"anamnese_{slug}.pdf"


def export_pdf(text: str, path: Optional[str] = None) -> bytes:
    """
    Build an A4 PDF from the edited anamnesis text.

    Lines starting with '#' become bold 14pt headings, everything else is
    11pt Helvetica body text.

    Args:
        text: Edited anamnesis text
        path: Also write the PDF to this file when given

    Returns:
        The PDF bytes
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, rightMargin=15 * mm, leftMargin=15 * mm,
                            topMargin=15 * mm, bottomMargin=15 * mm)

    styles = getSampleStyleSheet()
    heading_style = ParagraphStyle(
        "AnamnesisHeading",
        parent=styles["Heading2"],
        fontName="Helvetica-Bold",
        fontSize=14,
        leading=18,
        spaceBefore=4 * mm,
        spaceAfter=2 * mm,
    )
    body_style = ParagraphStyle(
        "AnamnesisBody",
        parent=styles["Normal"],
        fontName="Helvetica",
        fontSize=11,
        leading=6 * mm,
    )

    content = []
    for line in text.splitlines():
        if line.startswith("#"):
            content.append(Paragraph(escape(line.replace("#", "", 1).strip()), heading_style))
        elif line.strip():
            content.append(Paragraph(escape(line), body_style))
        else:
            content.append(Spacer(1, 3 * mm))

    if not content:
        content.append(Spacer(1, 0))
    doc.build(content)
    pdf = buffer.getvalue()
    if path:
        with open(path, "wb") as f:
            f.write(pdf)
        logger.info(f"Anamnesis exported to {path}")
    return pdf
