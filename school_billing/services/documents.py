"""Enrollment contract PDF (ReportLab, A4) and its storage."""
import io
import logging
from datetime import datetime

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from school_billing.config import settings
from school_billing.models.enrollment import Enrollment
from school_billing.services.installment_plan import InstallmentPlan
from school_billing.services.storage import document_key, save_document

logger = logging.getLogger(__name__)


def _money(value) -> str:
    return f"{value:,.2f}"


def render_contract_pdf(enrollment: Enrollment, plan: InstallmentPlan) -> bytes:
    """
    Build the unsigned contract.

    Layout: school name and address, title, parties, tuition terms, the
    charge schedule as a bordered table, then a signature box.
    """
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    w, h = A4
    margin_x = 15 * mm
    y = h - 20 * mm
    border_color = colors.HexColor("#707070")
    c.setStrokeColor(border_color)

    school_name = (settings.school_name or settings.app_name).strip()
    c.setFont("Helvetica-Bold", 16)
    c.drawString(margin_x, y, school_name[:70])
    y -= 6 * mm
    if settings.school_address:
        c.setFont("Helvetica", 9)
        c.drawString(margin_x, y, settings.school_address.replace("\n", " ")[:110])
        y -= 6 * mm

    y -= 6 * mm
    c.setFont("Helvetica-Bold", 14)
    title = "EDUCATIONAL SERVICES AGREEMENT"
    c.drawString((w - c.stringWidth(title, "Helvetica-Bold", 14)) / 2, y, title)
    y -= 12 * mm

    c.setFont("Helvetica", 10)
    lines = [
        f"Student: {enrollment.student_name}",
        f"Enrollment: {enrollment.id}",
        f"Annual tuition: {_money(enrollment.annual_tuition)}",
        f"Registration fee: {_money(enrollment.registration_fee)}",
        f"Monthly installment: {_money(plan.installment_amount)} "
        f"x {settings.installments_per_year}, due on day {enrollment.due_day}",
        "Late payments accrue a monthly penalty per complete 30-day block and daily moratorium interest.",
    ]
    for line in lines:
        c.drawString(margin_x, y, line[:110])
        y -= 6 * mm
    y -= 4 * mm

    data = [["Description", "Due date", "Amount"]]
    for planned in plan.charges:
        data.append([planned.description, planned.due_date.strftime("%d/%m/%Y"), _money(planned.amount)])
    table_width = w - 2 * margin_x
    table = Table(data, colWidths=[table_width * 0.5, table_width * 0.25, table_width * 0.25])
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, border_color),
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#e0e0e0")),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("ALIGN", (2, 1), (2, -1), "RIGHT"),
            ]
        )
    )
    _, th = table.wrapOn(c, table_width, h)
    table.drawOn(c, margin_x, y - th)
    y -= th + 12 * mm

    box_h = 25 * mm
    c.rect(margin_x, y - box_h, table_width, box_h, stroke=1, fill=0)
    c.setFont("Helvetica-Bold", 9)
    c.drawString(margin_x + 2 * mm, y - 5 * mm, "Signature of the student or guardian:")
    c.setFont("Helvetica", 8)
    c.drawString(margin_x, 12 * mm, f"Generated {datetime.utcnow():%d/%m/%Y %H:%M} UTC")

    c.showPage()
    c.save()
    return buf.getvalue()


async def generate_contract_document(enrollment: Enrollment, plan: InstallmentPlan) -> str:
    """Render and store the unsigned contract; return its storage reference."""
    pdf = render_contract_pdf(enrollment, plan)
    path = await save_document(document_key(str(enrollment.id), "contract"), pdf)
    logger.info("Contract document for enrollment %s stored at %s", enrollment.id, path)
    return path
