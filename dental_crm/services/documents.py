"""
Document rendering: tabular exports (CSV/XLSX/PDF) with pandas and reportlab,
the quotation PDF and the delivery note (guía de despacho) PDF.
"""

from __future__ import annotations

import html
import io
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape, letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MEDIA_TYPE = "application/pdf"


# PUBLIC_INTERFACE
def format_clp(amount: Optional[float]) -> str:
    """Chilean peso amount with dot thousands separators: 1234567 -> '$ 1.234.567'."""
    value = int(round(amount or 0))
    sign = "-" if value < 0 else ""
    return f"$ {sign}{abs(value):,}".replace(",", ".")


def _format_date(value) -> str:
    if isinstance(value, datetime):
        return value.date().strftime("%d-%m-%Y")
    if isinstance(value, date):
        return value.strftime("%d-%m-%Y")
    return str(value or "")


def _esc(value) -> str:
    return html.escape(str(value)) if value not in (None, "") else "---"


# PUBLIC_INTERFACE
def export_dataframe(df: pd.DataFrame, filename_base: str, export_format: str) -> Tuple[bytes, str, str]:
    """
    Convert a DataFrame to the requested format.

    Returns ``(content, media_type, filename)``. Supported formats are csv,
    xlsx and pdf (simple tabular rendering); anything else falls back to csv.
    """
    export_format = (export_format or "csv").lower()

    if export_format in ("xlsx", "excel", "xls"):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Report")
        return buffer.getvalue(), XLSX_MEDIA_TYPE, f"{filename_base}.xlsx"

    if export_format == "pdf":
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18
        )
        styles = getSampleStyleSheet()
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        elements: list = [Paragraph(f"{filename_base.replace('_', ' ').title()} ({stamp})", styles["Title"])]

        data = [list(df.columns)] + df.astype(str).values.tolist()
        table = Table(data, repeatRows=1)
        table.setStyle(_grid_style())
        elements.append(table)
        doc.build(elements)
        return buffer.getvalue(), PDF_MEDIA_TYPE, f"{filename_base}.pdf"

    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    return buffer.getvalue().encode("utf-8"), CSV_MEDIA_TYPE, f"{filename_base}.csv"


@dataclass
class QuotationLine:
    code: Optional[str]
    detail: str
    qty: float
    unit: Optional[str]
    price: float
    discount: float
    total: float
    sub_detail: Optional[str] = None


@dataclass
class QuotationDocument:
    """Everything printed on a quotation."""

    folio: int
    issue_date: date
    expiry_date: date
    client_name: str
    client_rut: Optional[str]
    client_address: Optional[str]
    client_comuna: Optional[str]
    client_giro: Optional[str]
    payment_terms: str
    seller_name: str
    subtotal: float
    tax: float
    total: float
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    client_contact: Optional[str] = None
    comments: Optional[str] = None
    lines: List[QuotationLine] = field(default_factory=list)


def _grid_style(header_bg=colors.HexColor("#EEF2FF")) -> TableStyle:
    return TableStyle(
        [
            ("BACKGROUND", (0, 0), (-1, 0), header_bg),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.lightgrey),
        ]
    )


# PUBLIC_INTERFACE
def render_quotation_pdf(doc_data: QuotationDocument, company_name: str) -> bytes:
    """Render a quotation as an A4 PDF and return its bytes."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=A4, leftMargin=15 * mm, rightMargin=15 * mm, topMargin=15 * mm, bottomMargin=15 * mm
    )
    styles = getSampleStyleSheet()
    small = styles["BodyText"].clone("Small")
    small.fontSize = 8
    small.leading = 10

    elements: list = [
        Paragraph(html.escape(company_name), styles["Title"]),
        Paragraph(f"COTIZACIÓN N° {doc_data.folio}", styles["Heading2"]),
        Spacer(1, 4 * mm),
    ]

    header = [
        ["Señor(es)", _esc(doc_data.client_name), "R.U.T", _esc(doc_data.client_rut)],
        ["Dirección", _esc(doc_data.client_address), "Comuna", _esc(doc_data.client_comuna)],
        ["Giro", _esc(doc_data.client_giro), "Condición de pago", _esc(doc_data.payment_terms)],
        ["Vendedor", _esc(doc_data.seller_name), "Tipo de Cambio", "PESO"],
        ["Fecha Emisión", _format_date(doc_data.issue_date), "Fecha Vencimiento", _format_date(doc_data.expiry_date)],
    ]
    if doc_data.client_contact or doc_data.client_phone or doc_data.client_email:
        header.append(["Atención Dr/Clínica", _esc(doc_data.client_contact), "Teléfono", _esc(doc_data.client_phone)])
        header.append(["Email Contacto", _esc(doc_data.client_email), "", ""])
    header_table = Table(
        [[Paragraph(str(cell), small) for cell in row] for row in header],
        colWidths=[30 * mm, 60 * mm, 32 * mm, 58 * mm],
    )
    header_table.setStyle(TableStyle([("FONTSIZE", (0, 0), (-1, -1), 8), ("VALIGN", (0, 0), (-1, -1), "TOP")]))
    elements += [header_table, Spacer(1, 6 * mm)]

    rows = [["Ítem", "Código", "Detalle", "Cant", "P. Unitario", "Desc. %", "Total"]]
    for idx, line in enumerate(doc_data.lines, start=1):
        detail = html.escape(line.detail)
        if line.sub_detail:
            detail += f"<br/><i>Desc. Detallada: {html.escape(line.sub_detail)}</i>"
        rows.append(
            [
                str(idx),
                line.code or "",
                Paragraph(detail, small),
                f"{line.qty:g} {line.unit or ''}".strip(),
                format_clp(line.price),
                f"{line.discount:g}",
                format_clp(line.total),
            ]
        )
    items_table = Table(rows, colWidths=[10 * mm, 22 * mm, 66 * mm, 18 * mm, 24 * mm, 16 * mm, 24 * mm], repeatRows=1)
    style = _grid_style()
    style.add("ALIGN", (3, 0), (-1, -1), "RIGHT")
    items_table.setStyle(style)
    elements += [items_table, Spacer(1, 6 * mm)]

    totals = Table(
        [
            ["Afecto", format_clp(doc_data.subtotal)],
            ["Exento", format_clp(0)],
            ["19% IVA", format_clp(doc_data.tax)],
            ["Total", format_clp(doc_data.total)],
        ],
        colWidths=[30 * mm, 35 * mm],
        hAlign="RIGHT",
    )
    totals.setStyle(
        TableStyle(
            [
                ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("LINEABOVE", (0, -1), (-1, -1), 0.5, colors.black),
            ]
        )
    )
    elements += [
        totals,
        Spacer(1, 6 * mm),
        Paragraph("Comentario", styles["Heading4"]),
        Paragraph(html.escape(doc_data.comments or "Sin comentarios adicionales."), small),
    ]
    doc.build(elements)
    return buffer.getvalue()


@dataclass
class DeliveryNoteDocument:
    folio: int
    route_name: Optional[str]
    driver_name: Optional[str]
    client_name: str
    client_rut: Optional[str]
    client_address: Optional[str]
    client_phone: Optional[str]
    delivery_status: str
    issued_at: datetime
    lines: List[QuotationLine] = field(default_factory=list)


# PUBLIC_INTERFACE
def render_delivery_note_pdf(note: DeliveryNoteDocument, company_name: str) -> bytes:
    """Guía de despacho: order lines without prices plus a reception box."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=15 * mm, rightMargin=15 * mm, topMargin=15 * mm)
    styles = getSampleStyleSheet()

    elements: list = [
        Paragraph(html.escape(company_name), styles["Title"]),
        Paragraph(f"GUÍA DE DESPACHO - Pedido N° {note.folio}", styles["Heading2"]),
        Spacer(1, 4 * mm),
    ]
    info = Table(
        [
            ["Cliente", _esc(note.client_name), "R.U.T", _esc(note.client_rut)],
            ["Dirección", _esc(note.client_address), "Teléfono", _esc(note.client_phone)],
            ["Ruta", _esc(note.route_name), "Conductor", _esc(note.driver_name)],
            ["Emitida", _format_date(note.issued_at), "Estado", _esc(note.delivery_status)],
        ],
        colWidths=[25 * mm, 65 * mm, 25 * mm, 65 * mm],
    )
    info.setStyle(TableStyle([("FONTSIZE", (0, 0), (-1, -1), 9)]))
    elements += [info, Spacer(1, 6 * mm)]

    rows = [["Ítem", "Código", "Detalle", "Cantidad"]]
    for idx, line in enumerate(note.lines, start=1):
        rows.append([str(idx), line.code or "", line.detail, f"{line.qty:g} {line.unit or ''}".strip()])
    items = Table(rows, colWidths=[12 * mm, 30 * mm, 108 * mm, 30 * mm], repeatRows=1)
    items.setStyle(_grid_style())
    elements += [
        items,
        Spacer(1, 20 * mm),
        Paragraph("Recibí conforme: ______________________  RUT: ____________  Fecha: ________", styles["BodyText"]),
    ]
    doc.build(elements)
    return buffer.getvalue()
