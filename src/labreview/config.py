from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Session store selection: "memory" (default) keeps identities in-process,
    # "gotrue" talks to a hosted GoTrue/Supabase auth endpoint.
    session_backend: str = os.getenv("SESSION_BACKEND", "memory")

    # Remote function selection: "local" (default) runs generate-report and
    # process-pdf in-process, "http" calls hosted edge functions.
    functions_backend: str = os.getenv("FUNCTIONS_BACKEND", "local")

    # AI interpretation backend used by the in-process process-pdf function:
    # "demo" (default) or "llm".
    interpretation_backend: str = os.getenv("INTERPRETATION_BACKEND", "demo")

    # PDF text extraction backend: "demo" (default) or "pymupdf".
    pdf_text_backend: str = os.getenv("PDF_TEXT_BACKEND", "demo")

    # Hosted backend coordinates, required for the gotrue/http backends.
    supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
    supabase_anon_key: Optional[str] = os.getenv("SUPABASE_ANON_KEY")
    remote_timeout_seconds: float = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "30"))

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Directory where uploaded lab-report PDFs are stored.
    pdf_upload_dir: Path = Path(os.getenv("PDF_UPLOAD_DIR", "uploads"))

    # Upload size limit in bytes (20 MiB, matching the patient portal limit).
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))

    # Optional settings for the LLM interpretation backend.
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4.1-mini")

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")


settings = Settings()
