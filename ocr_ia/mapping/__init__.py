"""
Form mapping: schema model and registry, the multi-strategy form mapper and
its learning history.
"""

from .bundle import ExtractionBundle
from .field_mapper import (
    Alternative,
    AmbiguousField,
    FormMapper,
    MappingConfig,
    MappingResult,
    MappingSuggestion,
    rank_suggestions,
)
from .history import MappingFeedback, MappingHistory, word_similarity
from .registry import GENERIC_SCHEMA_ID, SchemaRegistry
from .schema import FieldConstraints, FormField, FormSchema, FormSection, load_schemas

__all__ = [
    'ExtractionBundle',
    'FormMapper',
    'MappingConfig',
    'MappingResult',
    'MappingSuggestion',
    'Alternative',
    'AmbiguousField',
    'rank_suggestions',
    'MappingFeedback',
    'MappingHistory',
    'word_similarity',
    'SchemaRegistry',
    'GENERIC_SCHEMA_ID',
    'FormSchema',
    'FormSection',
    'FormField',
    'FieldConstraints',
    'load_schemas',
]
