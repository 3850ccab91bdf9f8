from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from io import BytesIO

from flask import current_app
from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont, TTFError
from reportlab.pdfgen import canvas

from .shared.errors import FontMissing, RenderInputInvalid, TemplateMissing

PAGE_WIDTH = 842
PAGE_HEIGHT = 595
PAGE_SIZE = (PAGE_WIDTH, PAGE_HEIGHT)

NAME_CENTER_X = 490
NAME_BASELINE_Y = 283
NAME_FONT_SIZE = 65
# width estimate uses 58pt; the name itself is drawn at 65pt
NAME_WIDTH_ESTIMATE_SIZE = 58

BODY_FONT = "Helvetica"
BODY_FONT_SIZE = 14.5
BODY_LINE_HEIGHT = 22
BODY_CENTER_X = 485
BODY_CENTER_Y = 230

FOOTER_FONT = "Helvetica-Bold"
FOOTER_FONT_SIZE = 10
CERTIFICATE_ID_POS = (150, 27)
UNIQUE_ID_POS = (530, 27)

DEDICATION_LINE = " showing exceptional dedication, professionalism, and contributions"

_PDF_TEMPLATE_EXTENSIONS = (".pdf",)


@dataclass(frozen=True)
class CertificateData:
    full_name: str
    certificate_number: str
    unique_id: str = ""
    start_month: str = ""
    end_month: str = ""
    domain: str = ""
    duration: str = ""
    email: str = ""


def certificate_data_for(submission, certificate_number: str | None) -> CertificateData:
    """Assemble render input from a submission's denormalized fields."""
    return CertificateData(
        full_name=submission.intern_name or "",
        certificate_number=certificate_number or "",
        unique_id=submission.unique_id or "",
        start_month=submission.start_month or "",
        end_month=submission.end_month or "",
        domain=submission.domain or "",
        duration=submission.duration or "",
        email=submission.intern_email or "",
    )


def estimate_text_width(text: str, font_size: float) -> float:
    """Width approximation: every glyph counts as 0.6 of the font size."""
    return len(text) * (font_size * 0.6)


def body_lines(data: CertificateData, organization: str) -> list[str]:
    return [
        f"Has completed the internship program from {data.start_month} to {data.end_month}",
        DEDICATION_LINE,
        f"in the {data.domain} Department at {organization}.",
    ]


def _register_name_font(font_path: str) -> str:
    digest = hashlib.sha1(os.path.abspath(font_path).encode()).hexdigest()[:8]
    font_name = f"CertName-{digest}"
    if font_name in pdfmetrics.getRegisteredFontNames():
        return font_name
    try:
        pdfmetrics.registerFont(TTFont(font_name, font_path))
    except TTFError as exc:
        raise FontMissing(f"Font could not be loaded: {font_path}", detail=str(exc)) from exc
    return font_name


def _check_template(template_path: str) -> bool:
    """Return True for PDF templates, False for raster images."""
    if not template_path or not os.path.isfile(template_path):
        raise TemplateMissing(f"Certificate template not found at: {template_path}")
    if template_path.lower().endswith(_PDF_TEMPLATE_EXTENSIONS):
        return True
    try:
        with Image.open(template_path) as img:
            img.verify()
    except (UnidentifiedImageError, OSError) as exc:
        raise TemplateMissing(
            f"Certificate template is not a readable image: {template_path}",
            detail=str(exc),
        ) from exc
    return False


def render_certificate_pdf(
    data: CertificateData,
    *,
    template_path: str,
    font_path: str,
    organization: str,
) -> bytes:
    """Render the certificate and return the PDF bytes.

    The output depends only on ``data`` and the two asset files, so repeated
    calls with the same input produce identical bytes.
    """
    if not (data.certificate_number or "").strip():
        raise RenderInputInvalid("Certificate number is required but was not provided")

    is_pdf_template = _check_template(template_path)
    if not font_path or not os.path.isfile(font_path):
        raise FontMissing(f"Font not found at: {font_path}")
    name_font = _register_name_font(font_path)

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=PAGE_SIZE, invariant=1)

    if not is_pdf_template:
        c.drawImage(
            ImageReader(template_path), 0, 0, width=PAGE_WIDTH, height=PAGE_HEIGHT
        )

    c.setFillColorRGB(0, 0, 0)

    name = data.full_name or ""
    name_width = estimate_text_width(name, NAME_WIDTH_ESTIMATE_SIZE)
    c.setFont(name_font, NAME_FONT_SIZE)
    c.drawString(NAME_CENTER_X - name_width / 2, NAME_BASELINE_Y, name)

    lines = body_lines(data, organization)
    total_height = len(lines) * BODY_LINE_HEIGHT
    start_y = BODY_CENTER_Y + total_height / 2 - BODY_LINE_HEIGHT
    c.setFont(BODY_FONT, BODY_FONT_SIZE)
    for index, line in enumerate(lines):
        line_width = estimate_text_width(line, BODY_FONT_SIZE)
        c.drawString(
            BODY_CENTER_X - line_width / 2,
            start_y - index * BODY_LINE_HEIGHT,
            line,
        )

    c.setFont(FOOTER_FONT, FOOTER_FONT_SIZE)
    c.drawString(*CERTIFICATE_ID_POS, f"Certificate ID: {data.certificate_number}")
    c.drawString(*UNIQUE_ID_POS, f"Unique ID: {data.unique_id}")

    c.showPage()
    c.save()

    if not is_pdf_template:
        return buffer.getvalue()

    buffer.seek(0)
    base_page = PdfReader(template_path).pages[0]
    base_page.scale_to(PAGE_WIDTH, PAGE_HEIGHT)
    base_page.merge_page(PdfReader(buffer).pages[0])
    writer = PdfWriter()
    writer.add_page(base_page)
    out_buffer = BytesIO()
    writer.write(out_buffer)
    return out_buffer.getvalue()


def render_certificate(data: CertificateData) -> bytes:
    """Render with the assets configured on the current application."""
    from .app import asset_path

    config = current_app.config
    pdf_bytes = render_certificate_pdf(
        data,
        template_path=asset_path(current_app, config["CERT_TEMPLATE_PATH"]),
        font_path=asset_path(current_app, config["CERT_NAME_FONT_PATH"]),
        organization=config["CERT_ORGANIZATION"],
    )
    current_app.logger.info(
        "[CERT] rendered number=%s unique_id=%s bytes=%s",
        data.certificate_number,
        data.unique_id,
        len(pdf_bytes),
    )
    return pdf_bytes
