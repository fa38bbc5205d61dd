"""
Extraction bundle: everything recognized in one document that the form
mapper and the data validator consume.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from ..patterns import (
    EntityExtractionResult,
    LegalRelationship,
    NamedEntityRecognizer,
    ProcedureAnalyzer,
    ProcedureResult,
    RecognizerConfig,
    RelationshipAnalyzer,
    recognize_legal_patterns,
)
from ..patterns.recognizer import Entity


@dataclass
class ExtractionBundle:
    """Full text plus named-entity, legal, procedure and relationship results."""
    full_text: str = ''
    entities: Optional[EntityExtractionResult] = None       # Named entities
    legal: Optional[EntityExtractionResult] = None          # Legal-pattern entities
    procedure: Optional[ProcedureResult] = None
    relationships: list[LegalRelationship] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        """True when there is text or at least one recognition result to map from."""
        return bool(self.full_text.strip()) or any(
            r is not None for r in (self.entities, self.legal, self.procedure)
        )

    def all_entities(self) -> list[Entity]:
        entities = []
        for result in (self.entities, self.legal):
            if result is not None:
                entities.extend(result.entities)
        if self.procedure is not None:
            entities.extend(self.procedure.entities.entities)
        return entities

    @classmethod
    def from_text(cls, text: str, config: Optional[RecognizerConfig] = None) -> 'ExtractionBundle':
        """Run every recognizer over ``text``."""
        return cls(
            full_text=text,
            entities=NamedEntityRecognizer(config).recognize(text),
            legal=recognize_legal_patterns(text, config),
            procedure=ProcedureAnalyzer(config).analyze(text),
            relationships=RelationshipAnalyzer().analyze(text),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'full_text': self.full_text,
            'entities': self.entities.to_dict() if self.entities else None,
            'legal': self.legal.to_dict() if self.legal else None,
            'procedure': self.procedure.to_dict() if self.procedure else None,
            'relationships': [r.to_dict() for r in self.relationships],
        }
