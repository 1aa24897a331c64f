"""
Owner statement PDF rendering (reportlab)
"""

import io
import logging
import os
from datetime import datetime

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..config import STATEMENTS_DIR
from ..currency import format_currency
from ..email_templates import THEME
from ..models import Statement

logger = logging.getLogger(__name__)

LINE_TYPE_LABELS = {
    "booking": "Booking",
    "expense": "Expense",
    "commission": "Commission",
}


def statement_pdf_filename(statement_id: str) -> str:
    return f"statement-{statement_id}.pdf"


def statement_pdf_url(statement_id: str) -> str:
    """Public URL the statement PDF is served from"""
    return f"/uploads/statements/{statement_pdf_filename(statement_id)}"


def statement_pdf_path(statement_id: str) -> str:
    return os.path.join(STATEMENTS_DIR, statement_pdf_filename(statement_id))


class StatementPDFGenerator:
    """Generate owner statement PDFs"""

    def __init__(self, statement: Statement):
        self.statement = statement
        self.currency = statement.display_currency

        self.page_width, self.page_height = A4
        self.margin = 0.75 * inch

        self.brand_color = colors.HexColor(THEME["primary"])
        self.dark_gray = colors.HexColor("#1e293b")
        self.light_gray = colors.HexColor("#f1f5f9")

    def _money(self, amount) -> str:
        return format_currency(amount, self.currency)

    def generate(self) -> bytes:
        """Render the statement and return the PDF bytes"""
        statement = self.statement
        logger.info(f"📄 Generating PDF for statement {statement.id}")

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=f"Owner Statement - {statement.owner.name if statement.owner else statement.owner_id}",
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "StatementTitle",
            parent=styles["Heading1"],
            fontSize=22,
            textColor=self.brand_color,
            spaceAfter=12,
        )
        heading_style = ParagraphStyle(
            "StatementHeading",
            parent=styles["Heading2"],
            fontSize=14,
            textColor=self.dark_gray,
            spaceAfter=8,
            spaceBefore=16,
        )
        small_style = ParagraphStyle(
            "StatementSmall",
            parent=styles["Normal"],
            fontSize=8,
            textColor=colors.grey,
            alignment=1,
        )

        story = [Paragraph("OWNER STATEMENT", title_style)]

        info_data = [
            ["Owner:", statement.owner.name if statement.owner else "N/A"],
            [
                "Period:",
                f"{statement.period_start:%Y-%m-%d} to {statement.period_end:%Y-%m-%d}",
            ],
            ["Currency:", self.currency],
            ["Status:", statement.status],
            ["Generated:", datetime.utcnow().strftime("%B %d, %Y")],
        ]
        info_table = Table(info_data, colWidths=[1.5 * inch, 4.5 * inch])
        info_table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (0, -1), "Helvetica-Bold", 10),
                    ("FONT", (1, 0), (1, -1), "Helvetica", 10),
                    ("TEXTCOLOR", (0, 0), (-1, -1), self.dark_gray),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        story.append(info_table)

        story.append(Paragraph("Summary", heading_style))
        summary_data = [
            ["Gross Revenue", self._money(statement.gross_revenue)],
            ["Received by Company", self._money(statement.company_revenue)],
            ["Received by Owner", self._money(statement.owner_revenue)],
            ["Management Commission", self._money(statement.commission_amount)],
            ["Total Expenses", self._money(statement.total_expenses)],
            ["Net to Owner", self._money(statement.net_to_owner)],
        ]
        summary_table = Table(summary_data, colWidths=[4 * inch, 2 * inch])
        summary_table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (-1, -2), "Helvetica", 10),
                    ("FONT", (0, -1), (-1, -1), "Helvetica-Bold", 11),
                    ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                    ("LINEABOVE", (0, -1), (-1, -1), 1, self.dark_gray),
                    ("ROWBACKGROUNDS", (0, 0), (-1, -2), [colors.white, self.light_gray]),
                    ("TOPPADDING", (0, 0), (-1, -1), 6),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        story.append(summary_table)

        if statement.lines:
            story.append(Paragraph("Details", heading_style))
            rows = [["Type", "Description", "Amount"]]
            for line in statement.lines:
                rows.append(
                    [
                        LINE_TYPE_LABELS.get(line.type, line.type),
                        Paragraph(line.description or "-", styles["Normal"]),
                        self._money(line.amount_in_display_currency),
                    ]
                )
            lines_table = Table(rows, colWidths=[1.1 * inch, 3.9 * inch, 1.5 * inch], repeatRows=1)
            lines_table.setStyle(
                TableStyle(
                    [
                        ("BACKGROUND", (0, 0), (-1, 0), self.brand_color),
                        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                        ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 10),
                        ("FONT", (0, 1), (-1, -1), "Helvetica", 9),
                        ("ALIGN", (2, 0), (2, -1), "RIGHT"),
                        ("VALIGN", (0, 0), (-1, -1), "TOP"),
                        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, self.light_gray]),
                        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                    ]
                )
            )
            story.append(lines_table)

        story.append(Spacer(1, 0.5 * inch))
        story.append(Paragraph("<i>Hosthub by Aura Realty</i>", small_style))

        doc.build(story, onFirstPage=self._add_page_number, onLaterPages=self._add_page_number)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"✅ Generated statement PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def _add_page_number(self, canvas_obj, doc):
        canvas_obj.setFont("Helvetica", 9)
        canvas_obj.setFillColor(colors.grey)
        canvas_obj.drawRightString(
            self.page_width - self.margin, self.margin / 2, f"Page {canvas_obj.getPageNumber()}"
        )


def write_statement_pdf(statement: Statement) -> bytes:
    """Render the statement and store it under STATEMENTS_DIR"""
    pdf_bytes = StatementPDFGenerator(statement).generate()
    os.makedirs(STATEMENTS_DIR, exist_ok=True)
    with open(statement_pdf_path(statement.id), "wb") as f:
        f.write(pdf_bytes)
    return pdf_bytes
