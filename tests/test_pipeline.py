"""
End-to-end tests for the pipeline and its configuration.

Pages come from synthetic images, lines from a fixture backend and text from
a fake OCR capability, so no Tesseract install is needed.
"""

import pytest
from PIL import Image

from ocr_ia import OCRIAPipeline, PipelineConfig
from ocr_ia.errors import JobCancelled, MappingDataMissing, UnsupportedFormat
from ocr_ia.layout import PageImage
from ocr_ia.layout.lines import FixtureLineBackend, HoughLineBackend
from ocr_ia.mapping import ExtractionBundle
from ocr_ia.ocr import ContentExtractionConfig, OCRCapability, OCRText
from ocr_ia.ocr.preprocessor import DenoiseMethod
from ocr_ia.performance import JobManager, OptimizationConfig


PAGE_TEXT = "Loi n° 12-34 du 5 janvier 2020 portant code des douanes."


class StaticOCR(OCRCapability):
    def __init__(self, text):
        self.text = text
        self.closed = False

    def recognize(self, image, language, segmentation=None, whitelist=None):
        return OCRText(self.text, 0.9)

    def close(self):
        self.closed = True


class FlakyLineBackend(FixtureLineBackend):
    """Fails on the first page it sees."""

    def __init__(self, segments):
        super().__init__(segments)
        self.calls = 0

    def find_segments(self, pixels, config):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("scanner glitch")
        return super().find_segments(pixels, config)


class TestPipelineExtraction:
    """Tests for document extraction."""

    def setup_method(self):
        self.workers = []
        config = PipelineConfig(content=ContentExtractionConfig(preprocess=False, pool_size=2))
        # One central column separator on a 1000 x 1400 page
        self.pipeline = OCRIAPipeline(
            config,
            ocr_factory=self.make_ocr,
            line_backend=FixtureLineBackend([(500, 100, 500, 1300)]),
        )

    def make_ocr(self, language):
        worker = StaticOCR(PAGE_TEXT)
        self.workers.append(worker)
        return worker

    def test_extract_pages(self):
        document = self.pipeline.extract_document([PageImage.blank(1000, 1400)])

        assert document.page_count == 1
        page = document.pages[0]
        assert len(page.separators.columns) == 2
        assert [c.text for c in page.separators.columns] == [PAGE_TEXT, PAGE_TEXT]
        assert document.full_text == f"{PAGE_TEXT}\n\n{PAGE_TEXT}"
        assert document.confidence == pytest.approx(0.9)
        assert document.job_id is not None

    def test_ocr_workers_released(self):
        self.pipeline.extract_document([PageImage.blank(1000, 1400)])
        assert self.workers
        assert all(w.closed for w in self.workers)

    def test_progress(self):
        reports = []
        document = self.pipeline.extract_document(
            [PageImage.blank(1000, 1400), PageImage.blank(1000, 1400, page_number=2)],
            progress_callback=lambda percent, stage, details: reports.append((percent, stage, details)),
        )

        percents = [p for p, _, _ in reports]
        assert percents == sorted(percents)
        assert reports[0][2]['job_id'] == document.job_id
        assert reports[-1][:2] == (100.0, 'completed')
        assert 'ocr' in [s for _, s, _ in reports]

    def test_cancellation(self):
        def cancel_on_start(percent, stage, details):
            if details and 'job_id' in details:
                self.pipeline.cancel_job(details['job_id'])

        with pytest.raises(JobCancelled):
            self.pipeline.extract_document([PageImage.blank(1000, 1400)], progress_callback=cancel_on_start)
        assert self.workers == []

    def test_image_file_is_cached(self, tmp_path):
        path = tmp_path / "scan.png"
        Image.new('RGB', (1000, 1400), 'white').save(path)

        first = self.pipeline.extract_document(path)
        created = len(self.workers)
        reports = []
        second = self.pipeline.extract_document(
            path, progress_callback=lambda percent, stage, details: reports.append((stage, details)),
        )

        assert first.page_count == 1
        assert len(self.workers) == created
        assert self.pipeline.get_metrics()['cache']['hits'] == 1
        assert second is not first
        assert second.full_text == first.full_text
        assert second.job_id != first.job_id
        assert [stage for stage, _ in reports] == ['cached']
        assert reports[0][1]['job_id'] == second.job_id

        second.pages.clear()
        assert self.pipeline.extract_document(path).page_count == 1

    def test_pages_processed_in_chunks(self):
        stages = []
        pages = [PageImage.blank(1000, 1400, page_number=n) for n in (3, 1, 2)]

        document = self.pipeline.extract_document(
            pages, progress_callback=lambda percent, stage, details: stages.append(stage),
        )

        assert [p.page_number for p in document.pages] == [1, 2, 3]
        assert len([s for s in stages if s.startswith('chunk')]) == 3

    def test_failed_chunk_is_retried(self):
        sleeps = []
        backend = FlakyLineBackend([(500, 100, 500, 1300)])
        pipeline = OCRIAPipeline(
            PipelineConfig(content=ContentExtractionConfig(preprocess=False)),
            ocr_factory=self.make_ocr,
            line_backend=backend,
            job_manager=JobManager(OptimizationConfig(), sleep=sleeps.append),
        )

        document = pipeline.extract_document([PageImage.blank(1000, 1400)])

        assert document.page_count == 1
        assert len(document.pages[0].separators.columns) == 2
        assert backend.calls == 2
        assert sleeps == [1.0]

    def test_unsupported_file(self, tmp_path):
        path = tmp_path / "document.docx"
        path.write_bytes(b"not a document")
        with pytest.raises(UnsupportedFormat):
            self.pipeline.extract_document(path)

    def test_config_override(self):
        override = PipelineConfig(
            content=ContentExtractionConfig(preprocess=False, pool_size=1),
            enable_border_removal=False,
        )
        document = self.pipeline.extract_document([PageImage.blank(1000, 1400)], config=override)

        region = document.pages[0].region
        assert (region.x, region.y, region.width, region.height) == (0, 0, 1000, 1400)
        assert self.pipeline.config.enable_border_removal

    def test_page_without_lines(self):
        pipeline = OCRIAPipeline(
            PipelineConfig(content=ContentExtractionConfig(preprocess=False)),
            ocr_factory=self.make_ocr,
            line_backend=FixtureLineBackend([]),
        )
        document = pipeline.extract_document([PageImage.blank(600, 800)])

        page = document.pages[0]
        assert len(page.separators.columns) == 1
        assert page.warnings
        assert document.full_text == PAGE_TEXT


class TestPipelineProcessing:
    """Tests for recognition, mapping and validation from text."""

    def setup_method(self):
        self.pipeline = OCRIAPipeline()

    def test_process_text_with_schema(self):
        result = self.pipeline.process_text(PAGE_TEXT, 'loi')

        assert result.mapping.form_id == 'legal_publication'
        assert result.report.total_fields == len(result.mapping.suggestions)
        assert 0.0 <= result.report.overall_score <= 100.0
        assert result.document is None
        assert result.to_dict()['mapping']['form_id'] == 'legal_publication'

    def test_schema_detected(self):
        text = "Journal officiel de la République algérienne\nVu la loi n° 90-11 du 21 avril 1990 ;\nArticle 1er"
        result = self.pipeline.process_text(text)
        assert result.mapping.form_id == 'legal_publication'
        assert len(result.bundle.relationships) == 1

    def test_entities_cached(self):
        first = self.pipeline.recognize_entities(PAGE_TEXT)
        second = self.pipeline.recognize_entities(PAGE_TEXT)
        assert second is first
        assert self.pipeline.get_metrics()['jobs_completed'] == 2

    def test_empty_bundle_rejected(self):
        with pytest.raises(MappingDataMissing):
            self.pipeline.map_to_form(ExtractionBundle(), 'generic')

    def test_feedback_reaches_mapper(self):
        self.pipeline.record_feedback('civil_status', 'nom', 'BENALI Ahmed', 'BENALI', True, 0.9)
        bundle = self.pipeline.build_bundle("BENALI Ahmed")
        mapping = self.pipeline.map_to_form(bundle, 'civil_status')
        assert mapping.get('nom').value == 'BENALI'


class TestPipelineConfig:
    """Tests for configuration loading."""

    def test_defaults(self):
        config = PipelineConfig()
        assert config.dpi == 200
        assert config.mapping.confidence_threshold == 0.6
        assert config.optimization.max_concurrent_jobs == 3

    def test_from_dict(self):
        config = PipelineConfig.from_dict({
            'dpi': 300,
            'lines': {'min_line_length': 80, 'unknown_key': 1},
            'preprocessing': {'denoise': 'gaussian'},
            'not_a_section': {},
        })

        assert config.dpi == 300
        assert config.lines.min_line_length == 80
        assert config.preprocessing.denoise == DenoiseMethod.GAUSSIAN

    def test_line_backend_from_config(self):
        config = PipelineConfig.from_dict({'lines': {'backend': 'hough'}})
        pipeline = OCRIAPipeline(config, ocr_factory=lambda language: StaticOCR(PAGE_TEXT))
        assert isinstance(pipeline.line_detector.backend, HoughLineBackend)

    def test_unknown_enum_name(self):
        with pytest.raises(ValueError, match='denoise'):
            PipelineConfig.from_dict({'preprocessing': {'denoise': 'sharpen'}})

    def test_bad_section(self):
        with pytest.raises(ValueError):
            PipelineConfig.from_dict({'mapping': 'strict'})

    def test_yaml_round_trip(self, tmp_path):
        config = PipelineConfig.from_dict({'dpi': 150, 'recognizer': {'confidence_threshold': 0.75}})
        path = tmp_path / "config.yaml"
        path.write_text(config.to_yaml(), encoding='utf-8')

        loaded = PipelineConfig.from_yaml(path)

        assert loaded.to_dict() == config.to_dict()
        assert loaded.recognizer.confidence_threshold == 0.75

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- dpi\n- 300\n", encoding='utf-8')
        with pytest.raises(ValueError):
            PipelineConfig.from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PipelineConfig.from_yaml(tmp_path / "absent.yaml")
