from io import BytesIO

import pytest
from PyPDF2 import PdfReader
from reportlab.pdfgen import canvas

from certflow.certgen import (
    CertificateData,
    DEDICATION_LINE,
    PAGE_HEIGHT,
    PAGE_WIDTH,
    body_lines,
    certificate_data_for,
    estimate_text_width,
    render_certificate,
    render_certificate_pdf,
)
from certflow.shared.errors import FontMissing, RenderInputInvalid, TemplateMissing

from conftest import make_submission


def _data(**overrides) -> CertificateData:
    values = dict(
        full_name="Jane Doe",
        certificate_number="100483921",
        unique_id="ATH-001",
        start_month="January 2025",
        end_month="March 2025",
        domain="Web Development",
        duration="3 Months",
        email="jane@example.com",
    )
    values.update(overrides)
    return CertificateData(**values)


def _render(cert_assets, data=None, **kwargs) -> bytes:
    return render_certificate_pdf(
        data or _data(),
        template_path=kwargs.get("template_path", cert_assets["template"]),
        font_path=kwargs.get("font_path", cert_assets["font"]),
        organization="Athenura",
    )


def _text(pdf_bytes: bytes) -> str:
    return PdfReader(BytesIO(pdf_bytes)).pages[0].extract_text()


def test_render_produces_single_landscape_page(cert_assets):
    pdf_bytes = _render(cert_assets)

    assert pdf_bytes.startswith(b"%PDF")
    reader = PdfReader(BytesIO(pdf_bytes))
    assert len(reader.pages) == 1
    box = reader.pages[0].mediabox
    assert float(box.width) == PAGE_WIDTH
    assert float(box.height) == PAGE_HEIGHT


def test_render_writes_ids_and_body_text(cert_assets):
    text = _text(_render(cert_assets))

    assert "Certificate ID: 100483921" in text
    assert "Unique ID: ATH-001" in text
    assert "Has completed the internship program from January 2025 to March 2025" in text
    assert "Web Development Department at Athenura." in text


def test_render_is_deterministic(cert_assets):
    assert _render(cert_assets) == _render(cert_assets)


def test_render_differs_per_certificate_number(cert_assets):
    assert _render(cert_assets) != _render(
        cert_assets, _data(certificate_number="100000001")
    )


@pytest.mark.parametrize("number", ["", "   "])
def test_render_requires_certificate_number(cert_assets, number):
    with pytest.raises(RenderInputInvalid):
        _render(cert_assets, _data(certificate_number=number))


def test_render_missing_template(cert_assets, tmp_path):
    with pytest.raises(TemplateMissing) as exc:
        _render(cert_assets, template_path=str(tmp_path / "missing.png"))
    assert "missing.png" in str(exc.value)


def test_render_unreadable_template(cert_assets, tmp_path):
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")
    with pytest.raises(TemplateMissing):
        _render(cert_assets, template_path=str(broken))


def test_render_missing_font(cert_assets, tmp_path):
    with pytest.raises(FontMissing):
        _render(cert_assets, font_path=str(tmp_path / "Rancho-Regular.ttf"))


def test_render_merges_pdf_template(cert_assets, tmp_path):
    template_pdf = tmp_path / "certificate-template.pdf"
    c = canvas.Canvas(str(template_pdf), pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
    c.setFont("Helvetica", 12)
    c.drawString(40, 560, "Athenura Internship Program")
    c.save()

    pdf_bytes = _render(cert_assets, template_path=str(template_pdf))

    text = _text(pdf_bytes)
    assert "Athenura Internship Program" in text
    assert "Certificate ID: 100483921" in text
    box = PdfReader(BytesIO(pdf_bytes)).pages[0].mediabox
    assert round(float(box.width)) == PAGE_WIDTH
    assert round(float(box.height)) == PAGE_HEIGHT


def test_estimate_text_width_uses_fixed_ratio():
    assert estimate_text_width("abcd", 10) == pytest.approx(24.0)
    assert estimate_text_width("", 65) == 0


def test_body_lines_layout():
    lines = body_lines(_data(domain="Data Science"), "Athenura")
    assert lines == [
        "Has completed the internship program from January 2025 to March 2025",
        DEDICATION_LINE,
        "in the Data Science Department at Athenura.",
    ]


def test_certificate_data_for_submission(app):
    submission = make_submission()

    data = certificate_data_for(submission, "100222333")

    assert data.full_name == "Jane Doe"
    assert data.certificate_number == "100222333"
    assert data.unique_id == "ATH-001"
    assert data.domain == "Web Development"
    assert data.start_month == "January 2025"
    assert data.end_month == "March 2025"


def test_render_certificate_uses_app_assets(app, caplog):
    caplog.set_level("INFO")

    pdf_bytes = render_certificate(_data())

    assert "Certificate ID: 100483921" in _text(pdf_bytes)
    assert "[CERT] rendered number=100483921" in caplog.text


def test_render_certificate_reports_missing_configured_template(app, tmp_path):
    app.config["CERT_TEMPLATE_PATH"] = str(tmp_path / "nowhere.png")
    with pytest.raises(TemplateMissing):
        render_certificate(_data())
