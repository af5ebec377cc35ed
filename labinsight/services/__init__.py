# Expose the LLM-facing service modules so tests can monkeypatch them.

from . import gemini as gemini  # noqa: F401
from . import summarizer as summarizer  # noqa: F401

__all__ = [
    "gemini",
    "summarizer",
]
