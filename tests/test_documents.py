from __future__ import annotations

import io
from datetime import date, datetime, timezone

import pandas as pd

from dental_crm.services.documents import (
    CSV_MEDIA_TYPE,
    PDF_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    DeliveryNoteDocument,
    QuotationDocument,
    QuotationLine,
    export_dataframe,
    format_clp,
    render_delivery_note_pdf,
    render_quotation_pdf,
)


def _line(**overrides) -> QuotationLine:
    values = dict(code="RES-01", detail="Resina A2 <4g>", qty=2, unit="UN", price=15000, discount=5, total=28500)
    values.update(overrides)
    return QuotationLine(**values)


def test_format_clp():
    assert format_clp(1234567) == "$ 1.234.567"
    assert format_clp(0) == "$ 0"
    assert format_clp(None) == "$ 0"
    assert format_clp(-1500) == "$ -1.500"


def test_export_csv_is_default():
    df = pd.DataFrame([{"name": "Clínica Sonrisa", "zone": "Santiago"}])
    content, media_type, filename = export_dataframe(df, "clients", "unknown")
    assert media_type == CSV_MEDIA_TYPE
    assert filename == "clients.csv"
    assert content.decode("utf-8").splitlines() == ["name,zone", "Clínica Sonrisa,Santiago"]


def test_export_xlsx_reads_back():
    df = pd.DataFrame([{"folio": 1001, "total_amount": 4760}])
    content, media_type, filename = export_dataframe(df, "quotations", "xlsx")
    assert media_type == XLSX_MEDIA_TYPE
    assert filename == "quotations.xlsx"
    back = pd.read_excel(io.BytesIO(content))
    assert back.to_dict(orient="records") == [{"folio": 1001, "total_amount": 4760}]


def test_export_pdf():
    df = pd.DataFrame([{"a": 1}])
    content, media_type, filename = export_dataframe(df, "visits", "pdf")
    assert media_type == PDF_MEDIA_TYPE
    assert filename == "visits.pdf"
    assert content.startswith(b"%PDF")


def test_quotation_pdf():
    doc = QuotationDocument(
        folio=1001,
        issue_date=date(2024, 1, 20),
        expiry_date=date(2024, 2, 4),
        client_name="Clínica Sonrisa & Co",
        client_rut="76111111-6",
        client_address="Av. Providencia 2000",
        client_comuna="Providencia",
        client_giro="Servicios odontológicos",
        payment_terms="CREDITO - 30 DÍAS",
        seller_name="Ana Pérez",
        subtotal=28500,
        tax=5415,
        total=33915,
        comments="Entrega en horario AM",
        lines=[_line(), _line(code=None, detail="Guantes", sub_detail="Talla M", discount=0, total=4990, qty=1, price=4990)],
    )
    content = render_quotation_pdf(doc, "3Dental Digital")
    assert content.startswith(b"%PDF")


def test_delivery_note_pdf():
    note = DeliveryNoteDocument(
        folio=1001,
        route_name="Ruta 05-03-2024",
        driver_name="Pedro Chofer",
        client_name="Clínica Sonrisa",
        client_rut="76111111-6",
        client_address="Av. Providencia 2000",
        client_phone=None,
        delivery_status="out_for_delivery",
        issued_at=datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc),
        lines=[_line()],
    )
    assert render_delivery_note_pdf(note, "3Dental Digital").startswith(b"%PDF")
