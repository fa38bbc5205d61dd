"""
OCR-IA

Structured extraction from Algerian legal and administrative documents
(Journal Officiel publications, decrees, administrative procedures).

Features:
- Page geometry: rules, decorative borders, column separators, ruled tables
- Region-type aware OCR for French and Arabic text
- Legal, procedural and named-entity recognition with normalization
- Relationships between legal texts (vu, modifie, abroge, ...)
- Multi-strategy form mapping with feedback learning
- Algerian locale validation and data quality reports
- Job manager with caching, cancellation and bounded concurrency

Quick Start:
    from ocr_ia import OCRIAPipeline

    pipeline = OCRIAPipeline()
    document = pipeline.extract_document('journal_officiel.pdf')
    result = pipeline.process_text(document.full_text, 'legal_publication')
    print(result.mapping.values())
    print(result.report.overall_score)

CLI Usage:
    ocr-ia extract journal_officiel.pdf -o journal.json
    ocr-ia entities decret.txt
    ocr-ia relations decret.txt
    ocr-ia map procedure.txt --schema administrative_procedure
    ocr-ia schemas
"""

__version__ = '1.0.0'

# Main pipeline
from .config import PipelineConfig
from .pipeline import (
    DocumentResult,
    ExtractedDocument,
    OCRIAPipeline,
    PageExtraction,
)

# Errors
from .errors import (
    CacheOverflow,
    CorruptDocument,
    GeometryDetectionFailure,
    JobCancelled,
    MappingDataMissing,
    OCRFailure,
    OCRIAError,
    OCRUnavailable,
    ResourceExhausted,
    UnsupportedFormat,
    ValidationRuleError,
)

# Geometry
from .layout import (
    BorderRemover,
    BoundingBox,
    ContentRegion,
    DetectedLine,
    LineDetector,
    PageImage,
    SeparatorDetector,
    TextColumn,
)
from .tables import GridBuilder, TableCell, TableDetector, TableRegion

# OCR
from .ocr import ContentExtractor, OCRCapability, OCRText, OCRWorkerPool, PageContent, PageRasterizer

# Recognition
from .patterns import (
    Entity,
    EntityExtractionResult,
    EntityType,
    LegalDocumentRef,
    LegalRelationship,
    NamedEntityRecognizer,
    ProcedureAnalyzer,
    RelationshipAnalyzer,
    RelationType,
    recognize_legal_patterns,
)

# Mapping and validation
from .mapping import (
    ExtractionBundle,
    FormMapper,
    FormSchema,
    MappingConfig,
    MappingResult,
    MappingSuggestion,
    SchemaRegistry,
)
from .validation import DataQualityReport, DataValidator, ValidationConfig

# Jobs
from .performance import JobManager, OptimizationConfig, ResultCache

__all__ = [
    '__version__',

    # Pipeline
    'OCRIAPipeline',
    'PipelineConfig',
    'ExtractedDocument',
    'PageExtraction',
    'DocumentResult',

    # Errors
    'OCRIAError',
    'GeometryDetectionFailure',
    'OCRFailure',
    'OCRUnavailable',
    'MappingDataMissing',
    'ValidationRuleError',
    'CacheOverflow',
    'ResourceExhausted',
    'UnsupportedFormat',
    'CorruptDocument',
    'JobCancelled',

    # Geometry
    'BoundingBox',
    'PageImage',
    'DetectedLine',
    'LineDetector',
    'BorderRemover',
    'ContentRegion',
    'SeparatorDetector',
    'TextColumn',
    'TableDetector',
    'GridBuilder',
    'TableRegion',
    'TableCell',

    # OCR
    'PageRasterizer',
    'OCRCapability',
    'OCRText',
    'OCRWorkerPool',
    'ContentExtractor',
    'PageContent',

    # Recognition
    'Entity',
    'EntityType',
    'EntityExtractionResult',
    'NamedEntityRecognizer',
    'recognize_legal_patterns',
    'ProcedureAnalyzer',
    'RelationshipAnalyzer',
    'RelationType',
    'LegalDocumentRef',
    'LegalRelationship',

    # Mapping and validation
    'ExtractionBundle',
    'FormMapper',
    'FormSchema',
    'MappingConfig',
    'MappingResult',
    'MappingSuggestion',
    'SchemaRegistry',
    'DataValidator',
    'DataQualityReport',
    'ValidationConfig',

    # Jobs
    'JobManager',
    'OptimizationConfig',
    'ResultCache',
]
