"""
OCR-IA Pipeline

Main orchestration module: page geometry, region OCR, pattern recognition,
form mapping and validation behind one entry point.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from .config import PipelineConfig
from .errors import GeometryDetectionFailure, OCRIAError

# Geometry
from .layout.borders import BorderRemover, ContentRegion
from .layout.columns import SeparatorAnalysis, SeparatorDetector
from .layout.lines import LineBackend, LineDetectionResult, LineDetector
from .layout.page import PageImage

# Tables
from .tables.grid import GridBuilder, TableRegion
from .tables.table_detector import TableDetector

# OCR
from .ocr.content_extractor import ContentExtractor, PageContent
from .ocr.ocr_engine import OCRCapability, OCRWorkerPool
from .ocr.preprocessor import OCRPreprocessor
from .ocr.rasterizer import PageRasterizer

# Recognition
from .patterns.entity_rules import NamedEntityRecognizer
from .patterns.legal_rules import recognize_legal_patterns
from .patterns.procedure_rules import ProcedureAnalyzer
from .patterns.recognizer import EntityExtractionResult, RecognizerConfig
from .patterns.relationships import LegalDocumentRef, LegalRelationship, RelationshipAnalyzer

# Mapping and validation
from .mapping.bundle import ExtractionBundle
from .mapping.field_mapper import FormMapper, MappingConfig, MappingResult
from .mapping.history import MappingHistory
from .mapping.registry import SchemaRegistry
from .mapping.schema import FormSchema
from .validation.data_validator import DataQualityReport, DataValidator, ValidationConfig

# Performance
from .performance.cache import file_fingerprint, make_cache_key
from .performance.jobs import JobContext, JobManager, JobType, ProgressCallback

logger = logging.getLogger(__name__)


# Progress share of each stage within one document
RASTERIZE_END = 10.0
PAGES_END = 95.0


@dataclass
class PageExtraction:
    """Geometry and content of one page."""
    page_number: int
    width: int
    height: int
    lines: LineDetectionResult
    region: ContentRegion
    separators: SeparatorAnalysis
    tables: List[TableRegion] = field(default_factory=list)
    content: Optional[PageContent] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.content.full_text if self.content else ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page_number': self.page_number,
            'width': self.width,
            'height': self.height,
            'lines': self.lines.to_dict(),
            'content_region': self.region.to_dict(),
            'separators': self.separators.to_dict(),
            'tables': [t.to_dict() for t in self.tables],
            'content': self.content.to_dict() if self.content else None,
            'warnings': self.warnings,
        }


@dataclass
class ExtractedDocument:
    """Result of extract_document."""
    source: str
    pages: List[PageExtraction] = field(default_factory=list)
    processing_time: float = 0.0
    job_id: Optional[str] = None

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def full_text(self) -> str:
        return '\n\n'.join(p.text for p in self.pages if p.text)

    @property
    def tables(self) -> List[TableRegion]:
        if any(p.content for p in self.pages):
            return [t for p in self.pages if p.content for t in p.content.tables]
        return [t for p in self.pages for t in p.tables]

    @property
    def confidence(self) -> float:
        scores = [p.content.confidence for p in self.pages if p.content and p.content.full_text]
        return sum(scores) / len(scores) if scores else 0.0

    @property
    def warnings(self) -> List[str]:
        collected = []
        for page in self.pages:
            collected.extend(f"page {page.page_number}: {w}" for w in page.warnings)
        return collected

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source,
            'page_count': self.page_count,
            'pages': [p.to_dict() for p in self.pages],
            'full_text': self.full_text,
            'confidence': round(self.confidence, 3),
            'warnings': self.warnings,
            'processing_time': round(self.processing_time, 3),
            'job_id': self.job_id,
        }


@dataclass
class DocumentResult:
    """End-to-end result: extraction, recognition, mapping and validation."""
    document: Optional[ExtractedDocument]
    bundle: ExtractionBundle
    mapping: MappingResult
    report: DataQualityReport

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document': self.document.to_dict() if self.document else None,
            'recognition': self.bundle.to_dict(),
            'mapping': self.mapping.to_dict(),
            'quality': self.report.to_dict(),
        }


class OCRIAPipeline:
    """
    Main pipeline for Algerian legal and administrative documents.

    Usage:
        pipeline = OCRIAPipeline()
        document = pipeline.extract_document('journal_officiel.pdf')
        bundle = pipeline.build_bundle(document.full_text)
        mapping = pipeline.map_to_form(bundle, 'legal_publication')
        report = pipeline.validate_mapping(mapping, bundle)
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        ocr_factory: Optional[Callable[[str], OCRCapability]] = None,
        line_backend: Optional[LineBackend] = None,
        job_manager: Optional[JobManager] = None,
        registry: Optional[SchemaRegistry] = None,
        history: Optional[MappingHistory] = None,
    ):
        """
        Args:
            config: Pipeline configuration
            ocr_factory: Builds one OCR capability per language; Tesseract by default
            line_backend: Line segment source; morphological detection by default
            job_manager: Shared job manager (cache, concurrency ceiling)
            registry: Form schema registry
            history: Mapping feedback history
        """
        self.config = config or PipelineConfig()
        self.ocr_factory = ocr_factory
        self.line_backend = line_backend
        self.job_manager = job_manager or JobManager(self.config.optimization)
        self.registry = registry or SchemaRegistry()
        self.history = history if history is not None else MappingHistory()

        self._init_components()

    def _init_components(self) -> None:
        cfg = self.config
        self.rasterizer = PageRasterizer(dpi=cfg.dpi)
        self.line_detector = LineDetector(cfg.lines, self.line_backend)
        self.border_remover = BorderRemover(cfg.borders)
        self.separator_detector = SeparatorDetector(cfg.separators)
        self.table_detector = TableDetector(cfg.tables)
        self.grid_builder = GridBuilder(cfg.tables)
        self.mapper = FormMapper(cfg.mapping, self.history)
        self.validator = DataValidator(cfg.validation)
        self.relationship_analyzer = RelationshipAnalyzer()

        logger.info("Pipeline components initialized")

    # Document extraction

    def extract_document(
        self,
        path_or_pages: Union[str, Path, Sequence[PageImage]],
        config: Optional[PipelineConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ExtractedDocument:
        """
        Rasterize a document and extract the geometry and text of every page.

        Progress is reported as ``callback(percent, stage, details)`` with
        non-decreasing percentages; the first report carries the job id.

        Raises:
            UnsupportedFormat: For file types the rasterizer does not accept
            CorruptDocument: When the document cannot be decoded
            JobCancelled: When the job is cancelled while running
        """
        pipeline = self if config is None else OCRIAPipeline(
            config, self.ocr_factory, self.line_backend, self.job_manager, self.registry, self.history,
        )

        cache_key = None
        if isinstance(path_or_pages, (str, Path)):
            source = str(path_or_pages)
            path = Path(path_or_pages)
            if path.is_file():
                cache_key = make_cache_key(
                    'extract_document', file_fingerprint(path.read_bytes()), pipeline.config.to_dict(),
                )
        else:
            source = '<pages>'

        def work(ctx: JobContext) -> ExtractedDocument:
            return pipeline._extract(path_or_pages, source, ctx)

        job = self.job_manager.create_job(JobType.PDF_EXTRACTION)
        document = self.job_manager.run(
            JobType.PDF_EXTRACTION,
            work,
            progress_callback=progress_callback,
            cache_key=cache_key,
            job=job,
        )
        if document.job_id != job.job_id:
            # Cached result: hand out a private copy stamped with this job
            document = copy.deepcopy(document)
            document.job_id = job.job_id
        return document

    def _extract(
        self,
        path_or_pages: Union[str, Path, Sequence[PageImage]],
        source: str,
        ctx: JobContext,
    ) -> ExtractedDocument:
        start_time = time.time()
        document = ExtractedDocument(source=source, job_id=ctx.job.job_id)

        ctx.checkpoint(0.0, 'rasterize', {'job_id': ctx.job.job_id, 'source': source})
        if isinstance(path_or_pages, (str, Path)):
            pages = self.rasterizer.rasterize(path_or_pages)
        else:
            pages = list(path_or_pages)
        ctx.checkpoint(RASTERIZE_END, 'rasterized', {'pages': len(pages)})

        pool = OCRWorkerPool(self.ocr_factory, size=self.config.content.pool_size)
        extractor = ContentExtractor(self.config.content, pool, OCRPreprocessor(self.config.preprocessing))

        def process_pages(chunk: Sequence[PageImage]) -> List[PageExtraction]:
            extractions = []
            for page in chunk:
                ctx.checkpoint(ctx.job.progress, 'geometry', {'page': page.page_number})
                extraction = self.analyze_geometry(page)

                ctx.checkpoint(ctx.job.progress, 'ocr', {'page': page.page_number})
                extraction.content = extractor.extract_page(page, extraction.separators.columns, extraction.tables)
                extraction.warnings.extend(extraction.content.warnings)
                extractions.append(extraction)
            return extractions

        try:
            extracted = self.job_manager.process_chunks(
                pages,
                process_pages,
                context=ctx,
                progress_callback=ctx.sub_progress(RASTERIZE_END, PAGES_END),
            )
        finally:
            extractor.close()

        document.pages = sorted(extracted, key=lambda p: p.page_number)

        document.processing_time = time.time() - start_time
        logger.info(
            f"Extracted {document.page_count} page(s) from {source} "
            f"in {document.processing_time:.2f}s"
        )
        return document

    def analyze_geometry(self, page: PageImage) -> PageExtraction:
        """
        Lines, borders, separators and tables of one page.

        Geometry failures are recovered here: a page without usable lines is
        treated as a single column spanning the default content region.
        """
        lines = self.line_detector.detect(page)
        warnings = list(lines.warnings)

        if self.config.enable_border_removal:
            region = self.border_remover.remove_borders(lines.horizontal, lines.vertical, page.width, page.height)
        else:
            region = ContentRegion(0, 0, page.width, page.height, confidence=1.0)

        horizontal = [l for l in lines.horizontal if not region.is_border(l)]
        vertical = [l for l in lines.vertical if not region.is_border(l)]

        separators = self.separator_detector.detect(vertical, horizontal, region)

        tables: List[TableRegion] = []
        if self.config.enable_table_detection:
            detection = self.table_detector.detect(horizontal, vertical, region)
            for candidate in detection.tables:
                try:
                    tables.append(self.grid_builder.build(candidate, page.page_number))
                except GeometryDetectionFailure as e:
                    logger.warning(f"Skipping table on page {page.page_number}: {e}")
                    warnings.append(f"table skipped: {e}")

        return PageExtraction(
            page_number=page.page_number,
            width=page.width,
            height=page.height,
            lines=lines,
            region=region,
            separators=separators,
            tables=tables,
            warnings=warnings,
        )

    # Recognition

    def recognize_entities(self, text: str, config: Optional[RecognizerConfig] = None) -> EntityExtractionResult:
        """Named entities of a text, cached by text and settings."""
        config = config or self.config.recognizer
        cache_key = make_cache_key('recognize_entities', text, config.__dict__)

        def work(ctx: JobContext) -> EntityExtractionResult:
            return NamedEntityRecognizer(config).recognize(text)

        return self.job_manager.run(JobType.PATTERN_RECOGNITION, work, cache_key=cache_key)

    def analyze_relationships(self, text: str, source: Optional[LegalDocumentRef] = None) -> List[LegalRelationship]:
        return self.relationship_analyzer.analyze(text, source)

    def build_bundle(self, text: str, config: Optional[RecognizerConfig] = None) -> ExtractionBundle:
        """Run every recognizer over a text."""
        config = config or self.config.recognizer
        return ExtractionBundle(
            full_text=text,
            entities=self.recognize_entities(text, config),
            legal=recognize_legal_patterns(text, config),
            procedure=ProcedureAnalyzer(config).analyze(text),
            relationships=self.analyze_relationships(text),
        )

    # Mapping and validation

    def get_schema(self, schema: Union[str, FormSchema]) -> FormSchema:
        if isinstance(schema, FormSchema):
            return schema
        return self.registry.get_schema(schema)

    def map_to_form(
        self,
        bundle: ExtractionBundle,
        schema: Union[str, FormSchema],
        config: Optional[MappingConfig] = None,
    ) -> MappingResult:
        """
        Map recognized data onto a form schema (or a schema id or document type).

        Raises:
            MappingDataMissing: When the bundle carries neither text nor results
        """
        return self.mapper.map_to_form(bundle, self.get_schema(schema), config)

    def validate_mapping(
        self,
        results: Union[MappingResult, Iterable[MappingResult]],
        bundle: Optional[ExtractionBundle] = None,
        config: Optional[ValidationConfig] = None,
    ) -> DataQualityReport:
        return self.validator.validate(results, bundle, config)

    def record_feedback(
        self,
        form_id: str,
        field_id: str,
        suggested: str,
        actual: str,
        accepted: bool,
        confidence: float,
    ) -> None:
        self.mapper.record_feedback(form_id, field_id, suggested, actual, accepted, confidence)

    # End to end

    def process_text(self, text: str, schema: Optional[Union[str, FormSchema]] = None) -> DocumentResult:
        """Recognize, map and validate a text; the schema is detected when not given."""
        bundle = self.build_bundle(text)
        form = self.get_schema(schema) if schema is not None else self.registry.detect(text)
        mapping = self.map_to_form(bundle, form)
        report = self.validate_mapping(mapping, bundle)
        return DocumentResult(document=None, bundle=bundle, mapping=mapping, report=report)

    def process_document(
        self,
        path: Union[str, Path],
        schema: Optional[Union[str, FormSchema]] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> DocumentResult:
        """
        Extract, recognize, map and validate one document file.

        Raises:
            OCRIAError: On unrecoverable extraction failures
        """
        try:
            document = self.extract_document(path, progress_callback=progress_callback)
        except OCRIAError as e:
            logger.error(f"Failed to process {path}: {e}")
            raise

        result = self.process_text(document.full_text, schema)
        result.document = document
        return result

    # Jobs

    def cancel_job(self, job_id: str) -> bool:
        return self.job_manager.cancel_job(job_id)

    def get_metrics(self) -> Dict[str, Any]:
        return self.job_manager.get_metrics()

    def clear_cache(self) -> None:
        self.job_manager.clear_cache()
