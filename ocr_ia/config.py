"""
Pipeline configuration.

Aggregates the per-stage configuration dataclasses and loads them from a
YAML file. Each top-level YAML section maps onto one stage:

    dpi: 200
    lines:        {min_line_length: 60}
    borders:      {top_lines: 3, bottom_lines: 2}
    separators:   {center_tolerance: 50}
    tables:       {min_table_width: 120}
    preprocessing: {denoise: median}
    content:      {languages: fra+ara}
    recognizer:   {confidence_threshold: 0.7}
    mapping:      {confidence_threshold: 0.6}
    validation:   {strict_mode: false}
    optimization: {max_concurrent_jobs: 3}
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .layout.borders import BorderConfig
from .layout.columns import SeparatorConfig
from .layout.lines import LineDetectionConfig
from .mapping.field_mapper import MappingConfig
from .ocr.content_extractor import ContentExtractionConfig
from .ocr.preprocessor import PreprocessingConfig
from .patterns.recognizer import RecognizerConfig
from .performance.jobs import OptimizationConfig
from .tables.table_detector import TableDetectionConfig
from .validation.data_validator import ValidationConfig

logger = logging.getLogger(__name__)


SECTIONS = {
    'lines': LineDetectionConfig,
    'borders': BorderConfig,
    'separators': SeparatorConfig,
    'tables': TableDetectionConfig,
    'preprocessing': PreprocessingConfig,
    'content': ContentExtractionConfig,
    'recognizer': RecognizerConfig,
    'mapping': MappingConfig,
    'validation': ValidationConfig,
    'optimization': OptimizationConfig,
}

# Fields that only make sense when built in Python
NOT_LOADABLE = {'custom_rules'}


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.name.lower()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def _enum_member(enum_cls: type, value: Any, key: str) -> Enum:
    try:
        return enum_cls[str(value).upper()]
    except KeyError:
        choices = ', '.join(m.name.lower() for m in enum_cls)
        raise ValueError(f"Invalid value '{value}' for '{key}' (expected one of {choices})") from None


def section_to_dict(config: Any) -> Dict[str, Any]:
    """Plain dict of a stage config, enums as their lowercase names."""
    return {
        f.name: _plain(getattr(config, f.name))
        for f in dataclasses.fields(config)
        if f.name not in NOT_LOADABLE
    }


def build_section(cls: type, data: Optional[Dict[str, Any]], section: str) -> Any:
    """
    Instantiate a stage config from a mapping, ignoring unknown keys.

    Enum-typed fields accept member names in any case.
    """
    if not data:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Configuration section '{section}' must be a mapping, got {type(data).__name__}")

    defaults = cls()
    known = {f.name for f in dataclasses.fields(cls)} - NOT_LOADABLE
    kwargs = {}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown configuration key '{section}.{key}'")
            continue
        current = getattr(defaults, key)
        if isinstance(current, Enum) and not isinstance(value, Enum):
            value = _enum_member(type(current), value, f"{section}.{key}")
        kwargs[key] = value
    return cls(**kwargs)


@dataclass
class PipelineConfig:
    """Configuration for the whole extraction pipeline."""

    dpi: int = 200
    lines: LineDetectionConfig = field(default_factory=LineDetectionConfig)
    borders: BorderConfig = field(default_factory=BorderConfig)
    separators: SeparatorConfig = field(default_factory=SeparatorConfig)
    tables: TableDetectionConfig = field(default_factory=TableDetectionConfig)
    preprocessing: PreprocessingConfig = field(default_factory=PreprocessingConfig)
    content: ContentExtractionConfig = field(default_factory=ContentExtractionConfig)
    recognizer: RecognizerConfig = field(default_factory=RecognizerConfig)
    mapping: MappingConfig = field(default_factory=MappingConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    optimization: OptimizationConfig = field(default_factory=OptimizationConfig)

    # Stage switches
    enable_table_detection: bool = True
    enable_border_removal: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PipelineConfig':
        data = dict(data or {})
        kwargs: Dict[str, Any] = {}

        for name, section_cls in SECTIONS.items():
            if name in data:
                kwargs[name] = build_section(section_cls, data.pop(name), name)

        for key in ('dpi', 'enable_table_detection', 'enable_border_removal'):
            if key in data:
                kwargs[key] = data.pop(key)

        for key in data:
            logger.warning(f"Ignoring unknown configuration key '{key}'")

        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'PipelineConfig':
        """
        Load a configuration file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the document is not a mapping
        """
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        logger.info(f"Loaded configuration from {path}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'dpi': self.dpi,
            'enable_table_detection': self.enable_table_detection,
            'enable_border_removal': self.enable_border_removal,
        }
        for name in SECTIONS:
            result[name] = section_to_dict(getattr(self, name))
        return result

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)
