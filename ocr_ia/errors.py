"""
Error Taxonomy

Every failure the pipeline can surface carries a stable ``kind`` string and a
human-readable message. Recoverable kinds (geometry, OCR, cache, resources)
are normally logged and folded into degraded results; the others reach the
caller.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class OCRIAError(Exception):
    """Base class for all pipeline errors."""

    kind: str = 'ocr_ia_error'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'message': self.message,
            'details': self.details,
        }


class GeometryDetectionFailure(OCRIAError):
    """Line, border or table detection produced nothing usable."""
    kind = 'geometry_detection_failure'


class OCRFailure(OCRIAError):
    """A region could not be recognized."""
    kind = 'ocr_failure'


class OCRUnavailable(OCRFailure):
    """The OCR worker could not be initialized."""
    kind = 'ocr_unavailable'


class MappingDataMissing(OCRIAError):
    """Mapping was attempted without structured data to map from."""
    kind = 'mapping_data_missing'


class ValidationRuleError(OCRIAError):
    """A custom validator raised while checking a value."""
    kind = 'validation_rule_error'

    def __init__(self, rule_id: str, message: str):
        super().__init__(message, {'rule_id': rule_id})
        self.rule_id = rule_id


class CacheOverflow(OCRIAError):
    """The cache ceiling is still exceeded after eviction."""
    kind = 'cache_overflow'


class ResourceExhausted(OCRIAError):
    """Concurrency or memory ceiling persistently exceeded."""
    kind = 'resource_exhausted'


class UnsupportedFormat(OCRIAError):
    """The input type has no registered processing path."""
    kind = 'unsupported_format'

    def __init__(self, source: str, accepted_types: Sequence[str]):
        self.accepted_types: List[str] = list(accepted_types)
        super().__init__(
            f"Unsupported input format: {source} "
            f"(accepted: {', '.join(self.accepted_types)})",
            {'source': source, 'accepted_types': self.accepted_types},
        )


class CorruptDocument(OCRIAError):
    """The document could not be decoded."""
    kind = 'corrupt_document'


class JobCancelled(OCRIAError):
    """A job was cancelled and reached a stage boundary."""
    kind = 'job_cancelled'

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} was cancelled", {'job_id': job_id})
        self.job_id = job_id
