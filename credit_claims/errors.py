"""
errors.py — Exception taxonomy for the claim pipeline.

Every error carries the pipeline stage it was raised in so the API layer
(and the run record) can report where a claim stopped.
"""


class ClaimError(Exception):
    """Base class for every error raised by the claim pipeline."""

    stage = "unknown"

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.run = None  # PipelineRun, attached by the pipeline on failure


# ──────────────────────────────────────────────────────────────
# Archive ingestion
# ──────────────────────────────────────────────────────────────

class ArchiveError(ClaimError):
    stage = "ingesting"


class NoMarkupFileFound(ArchiveError):
    def __init__(self, message: str = "No KML file found in the archive"):
        super().__init__(message)


class MultipleMarkupFilesFound(ArchiveError):
    def __init__(self, names: list[str]):
        super().__init__(
            f"Archive contains {len(names)} KML files ({', '.join(names)}); "
            "upload an archive with exactly one"
        )
        self.names = names


# ──────────────────────────────────────────────────────────────
# Geometry extraction
# ──────────────────────────────────────────────────────────────

class ParseError(ClaimError):
    stage = "extracting"


class MissingCoordinates(ParseError):
    def __init__(self, message: str = "Invalid KML structure: No coordinates found"):
        super().__init__(message)


class MissingSiteName(ParseError):
    def __init__(self, message: str = "Invalid KML structure: No location name found"):
        super().__init__(message)


class InvalidCoordinateFormat(ParseError):
    def __init__(self, token: str, reason: str):
        super().__init__(f"Invalid coordinate {token!r}: {reason}")
        self.token = token


# ──────────────────────────────────────────────────────────────
# Input validation
# ──────────────────────────────────────────────────────────────

class ValidationError(ClaimError):
    stage = "estimating"


# ──────────────────────────────────────────────────────────────
# Estimation service
# ──────────────────────────────────────────────────────────────

class ServiceError(ClaimError):
    stage = "estimating"


class EstimationServiceUnavailable(ServiceError):
    pass


class EstimationServiceError(ServiceError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


# ──────────────────────────────────────────────────────────────
# Ledger
# ──────────────────────────────────────────────────────────────

class LedgerError(ClaimError):
    stage = "allocating"


class LedgerConnectionError(LedgerError):
    pass


class LedgerWriteError(LedgerError):
    """
    A create-credit call failed part-way through an allocation.

    Calls 1..failed_at-1 were applied on the ledger and are not rolled back.
    """

    def __init__(self, failed_at: int, succeeded: int, credit_ids: list, reason: str):
        super().__init__(
            f"Ledger write {failed_at} failed after {succeeded} credit(s) "
            f"were created: {reason}"
        )
        self.failed_at = failed_at
        self.succeeded = succeeded
        self.credit_ids = credit_ids
