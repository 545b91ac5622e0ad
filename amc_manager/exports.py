"""
amc_manager/exports.py

PDF (reportlab) and Excel (openpyxl) renderings of contracts and purchase orders.

All functions return an in-memory BytesIO positioned at 0, ready for send_file().
"""

from __future__ import annotations

import logging
from decimal import Decimal
from io import BytesIO
from typing import Iterable, List, Sequence
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .models import Contract, PurchaseOrder, to_money, utcnow

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIMETYPE = "application/pdf"

CONTRACT_COLUMNS = [
    ("Contract #", 16),
    ("Title", 32),
    ("Vendor", 24),
    ("Customer", 24),
    ("Start", 12),
    ("End", 12),
    ("Value", 14),
    ("Billing", 12),
    ("Status", 11),
    ("Days left", 10),
]

PO_COLUMNS = [
    ("PO #", 18),
    ("Vendor", 28),
    ("Contract #", 16),
    ("Order date", 12),
    ("Delivery", 12),
    ("Status", 11),
    ("Items", 8),
    ("Subtotal", 14),
    ("VAT", 12),
    ("Total", 14),
]

_HEADER_FONT = Font(bold=True, color="FFFFFF")
_HEADER_FILL = PatternFill("solid", fgColor="1F4E78")

# Text starting with one of these is treated as a formula by spreadsheet apps
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _date_str(value) -> str:
    return value.isoformat() if value else ""


# ---------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------
def _write_sheet(ws, columns: Sequence[tuple], rows: Iterable[list]) -> int:
    for idx, (label, width) in enumerate(columns, start=1):
        cell = ws.cell(row=1, column=idx, value=label)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center")
        ws.column_dimensions[get_column_letter(idx)].width = width

    ws.freeze_panes = "A2"

    count = 0
    for row_idx, row in enumerate(rows, start=2):
        for col_idx, value in enumerate(row, start=1):
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            if isinstance(value, Decimal):
                cell.number_format = "#,##0.00"
            elif isinstance(value, str) and value.startswith(_FORMULA_PREFIXES):
                # User text is never exported as a formula
                cell.data_type = "s"
        count += 1
    return count


def contracts_to_xlsx(contracts: Iterable[Contract]) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Contracts"

    rows = (
        [
            c.contract_number,
            c.title,
            c.vendor_name,
            c.customer_name or "",
            c.start_date,
            c.end_date,
            to_money(c.contract_value),
            c.billing_cycle,
            c.status,
            c.days_remaining,
        ]
        for c in contracts
    )
    count = _write_sheet(ws, CONTRACT_COLUMNS, rows)

    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Exported %s contracts to XLSX", count)
    return buf


def purchase_orders_to_xlsx(orders: Iterable[PurchaseOrder]) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Purchase Orders"

    rows = (
        [
            po.po_number,
            po.vendor_name,
            po.contract.contract_number if po.contract else "",
            po.order_date,
            po.expected_delivery_date,
            po.status,
            len(po.items),
            to_money(po.subtotal),
            to_money(po.vat_amount),
            to_money(po.grand_total),
        ]
        for po in orders
    )
    count = _write_sheet(ws, PO_COLUMNS, rows)

    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Exported %s purchase orders to XLSX", count)
    return buf


# ---------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------
def _table_style(header_rows: int = 1) -> TableStyle:
    return TableStyle(
        [
            ("BACKGROUND", (0, 0), (-1, header_rows - 1), colors.HexColor("#1F4E78")),
            ("TEXTCOLOR", (0, 0), (-1, header_rows - 1), colors.white),
            ("FONTNAME", (0, 0), (-1, header_rows - 1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("ROWBACKGROUNDS", (0, header_rows), (-1, -1), [colors.white, colors.HexColor("#F2F2F2")]),
        ]
    )


def contracts_to_pdf(contracts: Iterable[Contract], title: str = "Maintenance Contracts") -> BytesIO:
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=landscape(A4),
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=title,
    )
    styles = getSampleStyleSheet()
    cell_style = styles["BodyText"]
    cell_style.fontSize = 8
    cell_style.leading = 10

    data: List[list] = [[label for label, _ in CONTRACT_COLUMNS]]
    total = Decimal("0.00")
    for c in contracts:
        value = to_money(c.contract_value)
        total += value
        data.append(
            [
                c.contract_number,
                Paragraph(escape(c.title or ""), cell_style),
                Paragraph(escape(c.vendor_name or ""), cell_style),
                Paragraph(escape(c.customer_name or ""), cell_style),
                _date_str(c.start_date),
                _date_str(c.end_date),
                f"{value:,.2f}",
                c.billing_cycle,
                c.status,
                "" if c.days_remaining is None else str(c.days_remaining),
            ]
        )

    story = [
        Paragraph(title, styles["Title"]),
        Paragraph(f"Generated {utcnow():%Y-%m-%d %H:%M} UTC | {len(data) - 1} contracts | total value {total:,.2f}", styles["Normal"]),
        Spacer(1, 6 * mm),
    ]

    table = Table(data, repeatRows=1, colWidths=[w * 1.6 * mm for _, w in CONTRACT_COLUMNS])
    table.setStyle(_table_style())
    story.append(table)

    doc.build(story)
    buf.seek(0)
    logger.info("Exported %s contracts to PDF", len(data) - 1)
    return buf


def purchase_order_to_pdf(po: PurchaseOrder, company_name: str = "AMC Manager") -> BytesIO:
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=f"Purchase Order {po.po_number}",
    )
    styles = getSampleStyleSheet()

    story = [
        Paragraph(company_name, styles["Heading2"]),
        Paragraph(f"Purchase Order {po.po_number}", styles["Title"]),
        Spacer(1, 4 * mm),
    ]

    header = [
        ["Vendor", po.vendor_name, "Order date", _date_str(po.order_date)],
        ["Contract", po.contract.contract_number if po.contract else "-", "Delivery", _date_str(po.expected_delivery_date) or "-"],
        ["Status", po.status, "VAT rate", f"{po.vat_percent}%"],
    ]
    header_table = Table(header, colWidths=[25 * mm, 65 * mm, 25 * mm, 65 * mm])
    header_table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )
    story.extend([header_table, Spacer(1, 6 * mm)])

    item_style = styles["BodyText"]
    data: List[list] = [["#", "Description", "Unit", "Qty", "Unit price", "Line total"]]
    for item in po.items:
        # Same precision as the API shows, so printed lines add up to the totals
        shown = item.to_dict()
        data.append(
            [
                str(item.line_no),
                Paragraph(escape(item.description or ""), item_style),
                item.unit or "",
                shown["quantity"],
                shown["unit_price"],
                f"{item.line_total:,.2f}",
            ]
        )

    data.append(["", "", "", "", "Subtotal", f"{to_money(po.subtotal):,.2f}"])
    data.append(["", "", "", "", "VAT", f"{to_money(po.vat_amount):,.2f}"])
    data.append(["", "", "", "", "Total", f"{to_money(po.grand_total):,.2f}"])

    items_table = Table(data, repeatRows=1, colWidths=[10 * mm, 80 * mm, 20 * mm, 20 * mm, 25 * mm, 25 * mm])
    style = _table_style()
    style.add("ALIGN", (3, 1), (-1, -1), "RIGHT")
    style.add("FONTNAME", (4, -3), (-1, -1), "Helvetica-Bold")
    items_table.setStyle(style)
    story.append(items_table)

    if po.notes:
        story.extend([Spacer(1, 6 * mm), Paragraph("Notes", styles["Heading4"]), Paragraph(escape(po.notes), styles["BodyText"])])

    doc.build(story)
    buf.seek(0)
    logger.info("Rendered PDF for purchase order %s", po.po_number)
    return buf
