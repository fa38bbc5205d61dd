"""
Form Schema Model

A form schema is the target shape extracted data is mapped into: an ordered
list of sections, each an ordered list of fields. Fields carry the hints the
mapper searches for (name, synonyms, keywords) and the constraints strict
mapping checks suggestions against.

Schemas are pydantic models so that schemas declared in YAML are validated on
load exactly like the built-in ones.
"""

import re
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator


FIELD_TYPES = ('text', 'number', 'date', 'email', 'phone', 'select', 'checkbox', 'textarea')
SCHEMA_TYPES = ('administrative', 'legal', 'financial', 'personal', 'business', 'generic')

EMAIL_FORMAT = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_FORMAT = re.compile(r'^(?:\+213|0)?[567]\d{8}$')
DATE_FORMATS = (
    re.compile(r'^\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}$'),
    re.compile(r'^\d{1,2}(?:er)?\s+\w+\s+\d{4}$'),
)


class FieldConstraints(BaseModel):
    """Validation constraints declared on a form field."""
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    @field_validator('pattern')
    @classmethod
    def validate_pattern(cls, v):
        """Patterns must compile."""
        if v is None:
            return None
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f'Invalid pattern {v!r}: {e}')
        return v


class FormField(BaseModel):
    """One field of a form."""
    id: str
    name: str
    label: str = ''
    field_type: str = 'text'
    required: bool = False
    options: list[str] = Field(default_factory=list)
    constraints: FieldConstraints = Field(default_factory=FieldConstraints)
    synonyms: list[str] = Field(default_factory=list)   # Mapping hints
    keywords: list[str] = Field(default_factory=list)
    category: Optional[str] = None

    @field_validator('id', 'name')
    @classmethod
    def validate_identifier(cls, v):
        v = str(v).strip()
        if not v:
            raise ValueError('Field id and name must be non-empty')
        return v

    @field_validator('field_type')
    @classmethod
    def validate_field_type(cls, v):
        v = str(v).lower()
        if v not in FIELD_TYPES:
            raise ValueError(f"Unknown field type '{v}' (expected one of {', '.join(FIELD_TYPES)})")
        return v

    @property
    def display_label(self) -> str:
        return self.label or self.name

    def search_terms(self) -> list[str]:
        """Name, label and synonyms, lowercased, without duplicates."""
        terms = []
        for term in [self.name.replace('_', ' '), self.label, *self.synonyms]:
            term = term.strip().lower()
            if term and term not in terms:
                terms.append(term)
        return terms

    def check_value(self, value: str) -> list[str]:
        """
        Check a candidate value against the field type and constraints.

        Returns:
            List of problems, empty when the value fits the field
        """
        problems = []
        value = str(value).strip()

        if self.field_type == 'number':
            try:
                number = float(value.replace(' ', '').replace(',', '.'))
            except ValueError:
                problems.append('not a number')
                number = None
            if number is not None:
                if self.constraints.minimum is not None and number < self.constraints.minimum:
                    problems.append(f'below minimum {self.constraints.minimum}')
                if self.constraints.maximum is not None and number > self.constraints.maximum:
                    problems.append(f'above maximum {self.constraints.maximum}')
        elif self.field_type == 'email' and not EMAIL_FORMAT.match(value):
            problems.append('not an email address')
        elif self.field_type == 'phone' and not PHONE_FORMAT.match(re.sub(r'[\s.\-]', '', value)):
            problems.append('not a phone number')
        elif self.field_type == 'date' and not any(p.match(value) for p in DATE_FORMATS):
            problems.append('not a date')
        elif self.field_type == 'select' and self.options and value not in self.options:
            problems.append('not one of the options')

        if self.constraints.pattern and not re.search(self.constraints.pattern, value):
            problems.append('does not match pattern')
        if self.constraints.min_length is not None and len(value) < self.constraints.min_length:
            problems.append('too short')
        if self.constraints.max_length is not None and len(value) > self.constraints.max_length:
            problems.append('too long')

        return problems


class FormSection(BaseModel):
    id: str
    title: str = ''
    fields: list[FormField] = Field(default_factory=list)


class FormSchema(BaseModel):
    """
    A target form.

    YAML and dict input may list ``fields`` at the top level instead of
    sections; they are wrapped in a single ``main`` section.
    """
    id: str
    name: str
    schema_type: str = 'generic'
    description: str = ''
    language: str = 'fr'
    sections: list[FormSection] = Field(default_factory=list)
    detection_keywords: list[str] = Field(default_factory=list)

    @model_validator(mode='before')
    @classmethod
    def wrap_top_level_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and 'fields' in data:
            data = dict(data)
            fields = data.pop('fields') or []
            sections = list(data.get('sections') or [])
            sections.insert(0, {'id': 'main', 'title': data.get('name', ''), 'fields': fields})
            data['sections'] = sections
        return data

    @field_validator('schema_type')
    @classmethod
    def validate_schema_type(cls, v):
        v = str(v).lower()
        if v not in SCHEMA_TYPES:
            raise ValueError(f"Unknown schema type '{v}'")
        return v

    @model_validator(mode='after')
    def check_unique_field_ids(self) -> 'FormSchema':
        seen = set()
        for form_field in self.fields:
            if form_field.id in seen:
                raise ValueError(f"Duplicate field id '{form_field.id}' in schema '{self.id}'")
            seen.add(form_field.id)
        return self

    @property
    def fields(self) -> list[FormField]:
        """All fields in section order."""
        return [f for section in self.sections for f in section.fields]

    @property
    def field_ids(self) -> list[str]:
        return [f.id for f in self.fields]

    @property
    def required_fields(self) -> list[str]:
        return [f.id for f in self.fields if f.required]

    def get_field(self, field_id: str) -> Optional[FormField]:
        for form_field in self.fields:
            if form_field.id == field_id:
                return form_field
        return None

    def detection_score(self, text: str) -> float:
        """Share of detection keywords present in ``text``."""
        if not self.detection_keywords:
            return 0.0
        text_lower = text.lower()
        hits = sum(1 for keyword in self.detection_keywords if keyword.lower() in text_lower)
        return hits / len(self.detection_keywords)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


def load_schemas(path: Union[str, Path]) -> list[FormSchema]:
    """
    Load form schemas from a YAML file.

    The file holds either one schema mapping or a ``schemas`` list.

    Raises:
        pydantic.ValidationError: If a schema is malformed
    """
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    if isinstance(data, dict) and 'schemas' in data:
        items = data['schemas'] or []
    elif isinstance(data, list):
        items = data
    else:
        items = [data]

    schemas = [FormSchema.model_validate(item) for item in items]
    logger.info(f"Loaded {len(schemas)} form schema(s) from {path}")
    return schemas
