"""HTML rendering for receipts (Jinja2)."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from feeledger.receipts.builder import PaymentReceiptDocument, ReceiptDocument
from feeledger.receipts.formatting import (
    date_time,
    format_inr,
    format_signed_inr,
    long_date,
    month_year,
    short_date,
)

TEMPLATES_DIR = Path(__file__).parent / "templates"
COPY_LABELS = ("SCHOOL COPY", "STUDENT COPY")

env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
env.filters["inr"] = format_inr
env.filters["signed_inr"] = format_signed_inr
env.filters["long_date"] = long_date
env.filters["short_date"] = short_date
env.filters["month_year"] = month_year
env.filters["date_time"] = date_time


def render_fee_receipt(doc: ReceiptDocument) -> str:
    return env.get_template("fee_receipt.html").render(doc=doc, copies=COPY_LABELS)


def render_payment_receipt(doc: PaymentReceiptDocument) -> str:
    return env.get_template("payment_receipt.html").render(doc=doc, copies=COPY_LABELS)
