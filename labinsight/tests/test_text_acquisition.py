import pytest

from labinsight.services.text_acquisition import (
    MIN_TEXT_CHARS,
    acquire_text,
    is_pdf,
    normalize_plain_text,
    normalize_text,
    scan_hex_literals,
    scan_parenthesized,
    scan_streams,
    scan_text_blocks,
)
from labinsight.utils.exceptions import EmptyInputError, InsufficientTextError


PDF_BLOB = (
    b"%PDF-1.4\n1 0 obj\n<< /Length 60 >>\n"
    b"BT /F1 12 Tf (Total Cholesterol 230 mg/dL) Tj ET\nendobj\n%%EOF"
)


def test_empty_blob_raises():
    with pytest.raises(EmptyInputError):
        acquire_text(b"")


def test_whitespace_text_raises():
    with pytest.raises(EmptyInputError):
        normalize_plain_text("   \n\t ")


def test_plain_text_blob_is_only_normalized():
    out = acquire_text(b"Glucose   95 mg/dL\r\n\r\nHbA1c 5.4 %", declared_type="text/plain")
    assert out.methods_used == ["plain_text"]
    assert out.source == "text"
    assert out.text == "Glucose 95 mg/dL\nHbA1c 5.4 %"


def test_declared_pdf_with_text_bytes_is_read_as_text():
    blob = b"Total Cholesterol 190 mg/dL from the clinic"
    assert not is_pdf(blob, "application/pdf", "report.pdf")
    assert acquire_text(blob, "application/pdf", "report.pdf").methods_used == ["plain_text"]


def test_pdf_magic_wins_over_declared_type():
    assert is_pdf(PDF_BLOB, "text/plain", "notes.txt")


def test_pdf_heuristics_recover_text():
    out = acquire_text(PDF_BLOB, "application/pdf", "lab.pdf")
    assert out.source == "pdf"
    assert "parenthesized" in out.methods_used
    assert "text_blocks" in out.methods_used
    assert "Total Cholesterol 230 mg/dL" in out.text
    assert out.method_chars["parenthesized"] > 0
    # Primary scans came up short, so the raw fallback was attempted too
    assert "raw_fallback" in out.methods_attempted


def test_pdf_with_too_little_text_reports_attempts():
    with pytest.raises(InsufficientTextError) as info:
        acquire_text(b"%PDF-1.4 (ab)", "application/pdf")
    details = info.value.details
    assert details["minimumLength"] == MIN_TEXT_CHARS
    assert details["methodsAttempted"] == ["parenthesized", "text_blocks", "streams", "hex_literals", "raw_fallback"]
    assert details["textLength"] < MIN_TEXT_CHARS


def test_scans_return_empty_on_nothing():
    for scan in (scan_parenthesized, scan_text_blocks, scan_streams, scan_hex_literals):
        assert scan("no markers here at all") == ""


def test_hex_literal_decoding():
    assert scan_hex_literals("<48656C6C6F20576F726C64>") == "Hello World"
    # Non-printable bytes are rejected
    assert scan_hex_literals("<0001020304050607>") == ""


def test_pdf_string_escapes_are_neutralized():
    assert scan_parenthesized(r"(LDL\(calc\) 130)") == "LDL(calc) 130"


def test_stream_scan_keeps_wordlike_runs():
    raw = "stream\nxx\x01\x02 Hemoglobin 13.2 g/dL \x03\x04\nendstream"
    assert "Hemoglobin 13.2 g/dL" in scan_streams(raw)


def test_normalize_text_collapses_whitespace():
    assert normalize_text("a \t b\n\n  c  ", keep_lines=True) == "a b\nc"
    assert normalize_text("a \t b\n\n  c  ", keep_lines=False) == "a b c"


def test_truncate_marks_result():
    out = normalize_plain_text("Glucose 95 mg/dL and some more words")
    cut = out.truncate(10)
    assert cut.truncated and len(cut.text) == 10
    assert out.truncate(1000) is out
