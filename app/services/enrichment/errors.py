from __future__ import annotations


class EnrichmentError(RuntimeError):
    """Base error for the enrichment pipeline."""

    def __init__(self, message: str, code: str = "ENRICHMENT_ERROR") -> None:
        super().__init__(message)
        self.code = code


class EnrichmentConfigurationError(EnrichmentError):
    """Raised when required provider credentials are missing or rejected."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="E_ENRICHMENT_CONFIG")


class EnrichmentPipelineError(EnrichmentError):
    """Raised when a mandatory stage fails; carries the domain and stage for retry."""

    def __init__(self, domain: str, stage: str, message: str, code: str = "E_ENRICHMENT_STAGE") -> None:
        super().__init__(f"[{domain}] {stage}: {message}", code=code)
        self.domain = domain
        self.stage = stage


class StoreError(EnrichmentError):
    """Raised when the company store cannot be read or written."""
