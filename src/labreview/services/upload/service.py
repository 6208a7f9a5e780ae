from __future__ import annotations

import base64
import logging
from datetime import date
from typing import Any, Callable, Dict, Optional

from starlette.concurrency import run_in_threadpool

from labreview.errors import RemoteFunctionError, UploadFailedError, UploadRejectedError
from labreview.infra.db.repositories import Repositories
from labreview.infra.functions.invoker import PROCESS_PDF, FunctionInvoker
from labreview.infra.functions.local import PDF_DATA_URL_PREFIX

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DEFAULT_PATIENT_NAME = "Patient"
DEFAULT_PATIENT_GENDER = "unknown"


def derive_age(birth_date: Optional[date], today: date) -> int:
    """Completed years of age on ``today``, 0 when the birth date is unknown."""

    if birth_date is None:
        return 0
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def encode_pdf_data_url(content: bytes) -> str:
    return PDF_DATA_URL_PREFIX + base64.b64encode(content).decode("ascii")


class UploadWorkflowController:
    def __init__(
        self,
        repositories: Repositories,
        invoker: FunctionInvoker,
        *,
        max_upload_bytes: int,
        access_token: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._repos = repositories
        self._invoker = invoker
        self._max_upload_bytes = max_upload_bytes
        self._access_token = access_token
        self._today = today

    def _check_file(self, content: bytes, filename: str, content_type: Optional[str]) -> None:
        if content_type is not None and content_type != PDF_CONTENT_TYPE:
            raise UploadRejectedError("Only PDF files are accepted")
        if not filename:
            raise UploadRejectedError("A file name is required")
        if not content:
            raise UploadRejectedError("The uploaded file is empty")
        if len(content) > self._max_upload_bytes:
            limit_mb = self._max_upload_bytes // (1024 * 1024)
            raise UploadRejectedError(f"File exceeds the {limit_mb} MB limit")

    async def upload(
        self,
        content: bytes,
        filename: str,
        patient_id: str,
        *,
        content_type: Optional[str] = PDF_CONTENT_TYPE,
    ) -> Dict[str, Any]:
        """Send a lab-report PDF to ``process-pdf`` on behalf of a patient.

        Returns the function's response once the request is accepted. The
        caller keeps ``content`` and may retry after UploadFailedError.
        """

        self._check_file(content, filename, content_type)
        pdf_data = encode_pdf_data_url(content)

        patient = await run_in_threadpool(self._repos.patients.get, patient_id)
        if patient is None:
            logger.warning("Upload for patient %s without a profile", patient_id)
        body = {
            "pdfData": pdf_data,
            "fileName": filename,
            "patientId": patient_id,
            "patientName": (patient.name if patient is not None else None) or DEFAULT_PATIENT_NAME,
            "patientAge": derive_age(patient.birth_date if patient is not None else None, self._today()),
            "patientGender": (patient.gender if patient is not None else None) or DEFAULT_PATIENT_GENDER,
        }
        try:
            return await self._invoker.invoke(PROCESS_PDF, body, access_token=self._access_token)
        except RemoteFunctionError as exc:
            raise UploadFailedError(exc.message) from exc
