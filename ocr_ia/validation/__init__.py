"""
Validation: Algerian locale rules and the data quality report.
"""

from .data_validator import (
    ConsistencyCheck,
    DataQualityReport,
    DataValidator,
    FieldValidation,
    ImprovementSuggestion,
    ValidationConfig,
    Violation,
)
from .rules import ALGERIAN_RULES, ValidationRule, get_rule

__all__ = [
    'DataValidator',
    'DataQualityReport',
    'ValidationConfig',
    'FieldValidation',
    'Violation',
    'ConsistencyCheck',
    'ImprovementSuggestion',
    'ValidationRule',
    'ALGERIAN_RULES',
    'get_rule',
]
