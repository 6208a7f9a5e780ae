from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from labreview.config import Settings


@dataclass
class PatientContext:
    name: str
    age: int
    gender: str


@dataclass
class InterpretationDraft:
    text: str
    model: str


class InterpretationBackend(Protocol):
    """Protocol for backends that draft an interpretation of lab-report text.

    Drafts are never shown to patients directly; a doctor reviews and approves
    them first.
    """

    def interpret(self, text: str, patient: PatientContext) -> InterpretationDraft:  # pragma: no cover - interface
        raise NotImplementedError


class PdfTextExtractor(Protocol):
    """Protocol for turning uploaded PDF bytes into plain text."""

    def extract_text(self, content: bytes) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class DemoInterpretationBackend:
    """Deterministic interpretation backend used for tests and local runs.

    It does not read the lab values; it only records what was received so that
    the review workflow has a draft to work with offline.
    """

    model_name = "demo-interpreter"

    def interpret(self, text: str, patient: PatientContext) -> InterpretationDraft:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        summary = (
            f"Automated draft for {patient.name} (age {patient.age}, {patient.gender}). "
            f"{len(lines)} line(s) of lab text were extracted and await doctor review."
        )
        return InterpretationDraft(text=summary, model=self.model_name)


class LLMInterpretationBackend:
    """Interpretation backend that uses an LLM via the OpenAI Python client.

    If the `OPENAI_API_KEY` environment variable is not set or the `openai`
    package is missing, it will raise at runtime.
    """

    def __init__(self, *, api_key: Optional[str], model: str) -> None:
        self._api_key = api_key
        self._model = model

    def interpret(self, text: str, patient: PatientContext) -> InterpretationDraft:  # pragma: no cover - depends on external service
        if not self._api_key:
            raise RuntimeError("OPENAI_API_KEY must be set to use LLMInterpretationBackend")

        try:
            from openai import OpenAI
        except ImportError as exc:
            raise RuntimeError(
                "LLMInterpretationBackend requires the 'openai' package. "
                "Install it with 'pip install openai'"
            ) from exc

        client = OpenAI(api_key=self._api_key)
        prompt = (
            "You assist a physician reviewing laboratory results. Summarize the "
            "following lab report for a patient aged "
            f"{patient.age} ({patient.gender}). List values outside their reference "
            "ranges, group findings by system, and suggest follow-up tests. Do not "
            f"give a diagnosis.\n\n{text}"
        )
        response = client.responses.create(
            model=self._model,
            input=[{"role": "user", "content": prompt}],
        )
        for output in response.output:
            for item in output.content:
                if item.type == "output_text" and item.text:
                    return InterpretationDraft(text=item.text, model=self._model)
        raise RuntimeError("LLM response did not contain any text output")


class DemoPdfTextExtractor:
    """Decodes whatever printable text the raw bytes contain.

    Real PDFs are compressed, so this is only useful for tests and for
    plain-text fixtures.
    """

    def extract_text(self, content: bytes) -> str:
        return content.decode("utf-8", errors="ignore").strip()


class PyMuPdfTextExtractor:
    """Extract text page by page with PyMuPDF.

    To use it, install the pymupdf package and set `PDF_TEXT_BACKEND=pymupdf`.
    """

    def extract_text(self, content: bytes) -> str:  # pragma: no cover - depends on external lib
        try:
            import fitz  # PyMuPDF
        except ImportError as exc:
            raise RuntimeError(
                "PyMuPdfTextExtractor requires the 'pymupdf' package. "
                "Install it with 'pip install pymupdf'"
            ) from exc

        doc = fitz.open(stream=content, filetype="pdf")
        try:
            return "\n".join(doc.load_page(i).get_text() for i in range(len(doc)))
        finally:
            doc.close()


def get_interpretation_backend(config: Settings) -> InterpretationBackend:
    """Select an interpretation backend based on INTERPRETATION_BACKEND.

    - INTERPRETATION_BACKEND=llm → LLMInterpretationBackend
    - Anything else (or unset) → DemoInterpretationBackend
    """

    if config.interpretation_backend.lower() == "llm":
        return LLMInterpretationBackend(api_key=config.openai_api_key, model=config.llm_model)
    return DemoInterpretationBackend()


def get_pdf_text_extractor(config: Settings) -> PdfTextExtractor:
    """Select a text extractor based on PDF_TEXT_BACKEND (pymupdf or demo)."""

    if config.pdf_text_backend.lower() == "pymupdf":
        return PyMuPdfTextExtractor()
    return DemoPdfTextExtractor()
