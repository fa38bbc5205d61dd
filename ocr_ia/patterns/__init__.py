"""
Pattern recognition: rule-table recognizer, rule libraries, normalizers,
reference knowledge and legal relationship analysis.
"""

from .entity_rules import ENTITY_LIBRARY, NamedEntityRecognizer, extract_relations, recognize_named_entities
from .knowledge import (
    WILAYAS,
    commune_wilaya,
    is_known_document,
    is_known_ministry,
    is_known_wilaya,
    wilaya_code,
    wilaya_name,
)
from .legal_rules import LEGAL_LIBRARY, recognize_legal_patterns
from .normalizers import (
    detect_language,
    normalize_date,
    normalize_law_number,
    normalize_money,
    normalize_phone,
    parse_amount,
    parse_date,
)
from .procedure_rules import (
    PROCEDURE_LIBRARY,
    ContactInfo,
    CostElement,
    ProcedureAnalyzer,
    ProcedureResult,
    ProcedureStep,
    RequiredDocument,
    TimelineElement,
    analyze_procedure,
)
from .recognizer import (
    Entity,
    EntityExtractionResult,
    EntityRelation,
    EntityType,
    PatternRecognizer,
    PatternRule,
    RecognizerConfig,
    RuleLibrary,
)
from .relationships import (
    DocumentCluster,
    LegalDocumentRef,
    LegalRelationship,
    RelationshipAnalyzer,
    RelationshipGraph,
    RelationType,
)

__all__ = [
    # Recognizer
    'Entity',
    'EntityExtractionResult',
    'EntityRelation',
    'EntityType',
    'PatternRecognizer',
    'PatternRule',
    'RecognizerConfig',
    'RuleLibrary',
    # Libraries
    'LEGAL_LIBRARY',
    'ENTITY_LIBRARY',
    'PROCEDURE_LIBRARY',
    'recognize_legal_patterns',
    'recognize_named_entities',
    'NamedEntityRecognizer',
    'extract_relations',
    'ProcedureAnalyzer',
    'ProcedureResult',
    'ProcedureStep',
    'RequiredDocument',
    'TimelineElement',
    'CostElement',
    'ContactInfo',
    'analyze_procedure',
    # Relationships
    'RelationType',
    'LegalDocumentRef',
    'LegalRelationship',
    'DocumentCluster',
    'RelationshipGraph',
    'RelationshipAnalyzer',
    # Normalizers and knowledge
    'detect_language',
    'normalize_date',
    'normalize_law_number',
    'normalize_money',
    'normalize_phone',
    'parse_amount',
    'parse_date',
    'WILAYAS',
    'wilaya_code',
    'wilaya_name',
    'commune_wilaya',
    'is_known_wilaya',
    'is_known_ministry',
    'is_known_document',
]
