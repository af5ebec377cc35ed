"""Best-effort text acquisition from uploaded lab reports.

PDFs are not parsed properly (no font tables, no stream decompression).
Instead a handful of independent byte-pattern scans pull out whatever
literal text the file carries, and their outputs are concatenated. Plain
text uploads skip the scans and are only whitespace-normalized.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Tuple

from labinsight.utils.exceptions import EmptyInputError, InsufficientTextError

logger = logging.getLogger("labinsight")

MIN_TEXT_CHARS = 15
RAW_FALLBACK_THRESHOLD = 100

_PDF_MAGIC = b"%PDF-"

_PAREN_RE = re.compile(r"\(((?:[^()\\]|\\.){2,})\)", re.DOTALL)
_BLOCK_RE = re.compile(r"\bBT\b(.*?)\bET\b", re.DOTALL)
_SHOW_TEXT_RE = re.compile(r"\(((?:[^()\\]|\\.)*)\)\s*Tj")
_STREAM_RE = re.compile(r"stream\r?\n?(.*?)endstream", re.DOTALL)
_WORDISH_RE = re.compile(r"[A-Za-z][A-Za-z0-9 .,:;%/()<>=\-]{4,}")
_HEX_RE = re.compile(r"(?<!<)<([0-9A-Fa-f\s]{4,})>(?!>)")
_RAW_RUN_RE = re.compile(r"[\x20-\x7E]{15,}")

_ESCAPES = (("\\n", " "), ("\\r", " "), ("\\t", " "), ("\\(", "("), ("\\)", ")"), ("\\\\", "\\"))
_DISALLOWED_RE = re.compile(r"[^\w\s.,:;%/()\[\]<>=+\-–≤≥±µ°^#'\"&*]")
_HSPACE_RE = re.compile(r"[ \t\f\v\xa0]+")
_ALNUM_RE = re.compile(r"[A-Za-z0-9]")


@dataclass(frozen=True)
class ExtractedText:
    text: str
    methods_used: List[str]
    methods_attempted: List[str] = field(default_factory=list)
    method_chars: Dict[str, int] = field(default_factory=dict)
    source: str = "text"
    truncated: bool = False

    def truncate(self, max_chars: int) -> "ExtractedText":
        if max_chars <= 0 or len(self.text) <= max_chars:
            return self
        return replace(self, text=self.text[:max_chars], truncated=True)

    def diagnostics(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "methodsUsed": list(self.methods_used),
            "methodsAttempted": list(self.methods_attempted),
            "methodChars": dict(self.method_chars),
            "truncated": self.truncated,
        }


def _unescape(fragment: str) -> str:
    for raw, repl in _ESCAPES:
        fragment = fragment.replace(raw, repl)
    return fragment


def scan_parenthesized(raw: str) -> str:
    found = []
    for match in _PAREN_RE.finditer(raw):
        fragment = _unescape(match.group(1))
        if len(fragment.strip()) >= 2 and _ALNUM_RE.search(fragment):
            found.append(fragment)
    return " ".join(found)


def scan_text_blocks(raw: str) -> str:
    found = []
    for block in _BLOCK_RE.finditer(raw):
        for shown in _SHOW_TEXT_RE.finditer(block.group(1)):
            fragment = _unescape(shown.group(1))
            if fragment.strip():
                found.append(fragment)
    return " ".join(found)


def scan_streams(raw: str) -> str:
    found = []
    for stream in _STREAM_RE.finditer(raw):
        found.extend(m.group(0).strip() for m in _WORDISH_RE.finditer(stream.group(1)))
    return " ".join(f for f in found if len(f) >= 5)


def scan_hex_literals(raw: str) -> str:
    found = []
    for match in _HEX_RE.finditer(raw):
        digits = re.sub(r"\s+", "", match.group(1))
        if len(digits) % 2:
            digits += "0"
        try:
            decoded = bytes.fromhex(digits)
        except ValueError:
            continue
        if len(decoded) > 5 and all(0x20 <= b <= 0x7E for b in decoded):
            found.append(decoded.decode("ascii"))
    return " ".join(found)


def scan_raw_runs(raw: str) -> str:
    return " ".join(m.group(0).strip() for m in _RAW_RUN_RE.finditer(raw))


_PRIMARY_SCANS: Tuple[Tuple[str, Callable[[str], str]], ...] = (
    ("parenthesized", scan_parenthesized),
    ("text_blocks", scan_text_blocks),
    ("streams", scan_streams),
    ("hex_literals", scan_hex_literals),
)


def _run_scan(name: str, scan: Callable[[str], str], raw: str) -> str:
    try:
        return scan(raw) or ""
    except Exception:
        logger.warning({"function": "acquire_text", "scan": name, "stage": "scan_failed"}, exc_info=True)
        return ""


def normalize_text(text: str, keep_lines: bool = True) -> str:
    """Strip unexpected characters and collapse whitespace.

    With ``keep_lines`` line breaks survive (one per non-empty line) so row
    structure stays visible to the table detector.
    """
    text = _DISALLOWED_RE.sub(" ", text.replace("\r\n", "\n").replace("\r", "\n"))
    if not keep_lines:
        return re.sub(r"\s+", " ", text).strip()
    lines = (_HSPACE_RE.sub(" ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def _looks_like_text(blob: bytes) -> bool:
    try:
        decoded = blob.decode("utf-8")
    except UnicodeDecodeError:
        return False
    printable = sum(1 for ch in decoded if ch.isprintable() or ch in "\r\n\t")
    return printable / max(1, len(decoded)) >= 0.95


def is_pdf(blob: bytes, declared_type: str = "", filename: str = "") -> bool:
    if _PDF_MAGIC in blob[:1024]:
        return True
    claims_pdf = "pdf" in (declared_type or "").lower() or (filename or "").lower().endswith(".pdf")
    # A declared type alone is not trusted when the bytes read as plain text
    return claims_pdf and not _looks_like_text(blob)


def _require_text(text: str, methods_attempted: List[str]) -> None:
    if len(text) < MIN_TEXT_CHARS:
        raise InsufficientTextError(methods_attempted, text, MIN_TEXT_CHARS)


def normalize_plain_text(text: str) -> ExtractedText:
    if not text or not text.strip():
        raise EmptyInputError()
    normalized = normalize_text(text)
    _require_text(normalized, ["plain_text"])
    return ExtractedText(
        text=normalized,
        methods_used=["plain_text"],
        methods_attempted=["plain_text"],
        method_chars={"plain_text": len(normalized)},
        source="text",
    )


def acquire_text(blob: bytes, declared_type: str = "", filename: str = "") -> ExtractedText:
    """Produce normalized text from an uploaded blob.

    Raises EmptyInputError for an empty blob and InsufficientTextError when
    fewer than MIN_TEXT_CHARS survive normalization.
    """
    if not blob:
        raise EmptyInputError()

    if not is_pdf(blob, declared_type, filename):
        return normalize_plain_text(blob.decode("utf-8", errors="replace"))

    raw = blob.decode("latin-1")
    attempted: List[str] = []
    chars: Dict[str, int] = {}
    outputs: List[str] = []

    for name, scan in _PRIMARY_SCANS:
        attempted.append(name)
        out = _run_scan(name, scan, raw).strip()
        chars[name] = len(out)
        if out:
            outputs.append(out)

    if sum(chars.values()) < RAW_FALLBACK_THRESHOLD:
        attempted.append("raw_fallback")
        out = _run_scan("raw_fallback", scan_raw_runs, raw).strip()
        chars["raw_fallback"] = len(out)
        if out:
            outputs.append(out)

    text = normalize_text(" ".join(outputs), keep_lines=False)
    used = [name for name in attempted if chars.get(name)]
    logger.info({
        "function": "acquire_text",
        "source": "pdf",
        "bytes": len(blob),
        "chars": len(text),
        "methods_used": used,
    })
    _require_text(text, attempted)
    return ExtractedText(text=text, methods_used=used, methods_attempted=attempted, method_chars=chars, source="pdf")
