from __future__ import annotations


class LabReviewError(Exception):
    """Base class for errors raised by the review workflows.

    Messages are passed through to API callers unchanged, so they must not
    contain PHI.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthError(LabReviewError):
    """Bad credentials, duplicate sign-up or an otherwise rejected auth call."""


class PersistenceError(LabReviewError):
    """A read or write against the workflow store failed."""


class DuplicateRecordError(PersistenceError):
    pass


class RecordNotFoundError(PersistenceError):
    pass


class ProfileInsertError(LabReviewError):
    """The doctor/patient profile row could not be created after sign-up."""


class RemoteFunctionError(LabReviewError):
    """A remote function (generate-report, process-pdf) returned an error."""


class ReviewValidationError(LabReviewError):
    """An approval was attempted without satisfying its preconditions."""


class ApprovalFailedError(LabReviewError):
    pass


class UploadRejectedError(LabReviewError):
    """The uploaded file was refused before any remote call was made."""


class UploadFailedError(LabReviewError):
    pass
