"""
Pattern Recognizer Module

Generic rule-table recognizer shared by the legal, procedure and named
entity libraries. A library is data: a list of PatternRule objects, the
context keywords used for confidence bonuses, and the entity type pairs
that get linked when they appear close together.

Per rule:
1. Scan the text for all non-overlapping matches
2. Normalize the value (dates, amounts, law numbers, ...)
3. Score it: base + context keywords + format check ± reference list
4. Drop it below the threshold, emit sub-entities for captured fields

Afterwards entities are deduplicated by normalized value (best confidence
wins) and linked by proximity.
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from loguru import logger

from ..confidence import SUB_ENTITY_FACTOR, clamp, entity_confidence, mean
from .normalizers import (
    detect_language,
    normalize_date,
    normalize_location,
    normalize_money,
    normalize_person,
    normalize_whitespace,
)


class EntityType(Enum):
    """Closed set of entity types."""
    LAW = 'LAW'
    DECREE = 'DECREE'
    INSTITUTION = 'INSTITUTION'
    DATE = 'DATE'
    MONEY = 'MONEY'
    PERCENT = 'PERCENT'
    TITLE = 'TITLE'
    LOCATION = 'LOC'
    PERSON = 'PERSON'
    ORGANIZATION = 'ORG'
    MISC = 'MISC'


SUB_ENTITY_NORMALIZERS: dict[EntityType, Callable[[str], Optional[str]]] = {
    EntityType.DATE: normalize_date,
    EntityType.MONEY: normalize_money,
    EntityType.LOCATION: normalize_location,
    EntityType.PERSON: normalize_person,
}


@dataclass
class PatternRule:
    """
    One recognition rule.
    """
    rule_id: str                                    # Stable id, e.g. "law_reference"
    name: str                                       # Human-readable name
    pattern: re.Pattern                             # Compiled regex
    entity_type: EntityType
    subtype: str = ''
    label: str = ''                                 # Library-specific category (procedure element kind)
    fields: tuple = ()                              # Names of capture groups, in order
    value_group: int = 0                            # Group holding the entity value (0 = whole match)
    base_confidence: float = 0.6
    context_category: Optional[str] = None          # Key into the library's context keywords
    well_formed: Optional[re.Pattern] = None        # Format check on the matched text
    reference: Optional[Callable[[str], bool]] = None   # Closed-list lookup on the value text
    reference_penalty: bool = True                  # Unknown reference lowers confidence
    normalizer: Optional[Callable[[str], Optional[str]]] = None
    validator: Optional[Callable[[re.Match], bool]] = None
    sub_entities: dict = field(default_factory=dict)    # field name -> EntityType


def rule(rule_id: str, name: str, pattern: str, entity_type: EntityType,
         flags: int = re.IGNORECASE, **kwargs) -> PatternRule:
    """Build a PatternRule from a pattern string."""
    well_formed = kwargs.pop('well_formed', None)
    if isinstance(well_formed, str):
        well_formed = re.compile(well_formed, re.IGNORECASE)
    return PatternRule(
        rule_id=rule_id,
        name=name,
        pattern=re.compile(pattern, flags),
        entity_type=entity_type,
        well_formed=well_formed,
        **kwargs,
    )


def keywords(*patterns: str) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


@dataclass
class RuleLibrary:
    """A named set of rules with its context vocabulary."""
    name: str
    rules: list[PatternRule]
    context_keywords: dict[str, list[re.Pattern]] = field(default_factory=dict)
    link_pairs: set = field(default_factory=set)    # frozensets of two EntityTypes
    id_prefix: str = 'entity'
    default_config: Optional['RecognizerConfig'] = None

    def get_rule(self, rule_id: str) -> Optional[PatternRule]:
        for r in self.rules:
            if r.rule_id == rule_id:
                return r
        return None

    def links(self, first: EntityType, second: EntityType) -> bool:
        return frozenset((first, second)) in self.link_pairs


@dataclass
class RecognizerConfig:
    """Recognition settings."""
    confidence_threshold: float = 0.6
    context_radius: int = 100
    context_validation: bool = True
    use_reference_lists: bool = True
    strict_mode: bool = False                      # Unknown references are dropped outright
    entity_linking: bool = True
    link_distance: int = 50
    deduplicate: bool = True


@dataclass
class Entity:
    """
    A typed span of recognized text.
    """
    entity_id: str
    entity_type: EntityType
    text: str                                       # Raw matched text
    value: str                                      # Normalized value
    confidence: float
    start: int
    end: int
    context: str = ''
    language: str = 'fr'
    subtype: str = ''
    label: str = ''
    rule_id: str = ''
    fields: dict[str, str] = field(default_factory=dict)
    parent_id: Optional[str] = None
    linked_ids: list[str] = field(default_factory=list)
    validated: bool = False

    @property
    def span(self) -> tuple[int, int]:
        return (self.start, self.end)

    def link(self, other: 'Entity') -> None:
        if other.entity_id not in self.linked_ids:
            self.linked_ids.append(other.entity_id)
        if self.entity_id not in other.linked_ids:
            other.linked_ids.append(self.entity_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.entity_id,
            'type': self.entity_type.value,
            'subtype': self.subtype,
            'label': self.label,
            'text': self.text,
            'value': self.value,
            'confidence': round(self.confidence, 3),
            'position': {'start': self.start, 'end': self.end},
            'context': self.context,
            'language': self.language,
            'fields': self.fields,
            'parent_id': self.parent_id,
            'linked_ids': self.linked_ids,
            'validated': self.validated,
        }


@dataclass
class EntityRelation:
    """A typed link between two entities (WORKS_FOR, LOCATED_IN, SIGNED_BY)."""
    relation_id: str
    source_id: str
    target_id: str
    relation_type: str
    confidence: float
    context: str = ''

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.relation_id,
            'source': self.source_id,
            'target': self.target_id,
            'type': self.relation_type,
            'confidence': round(self.confidence, 3),
            'context': self.context,
        }


@dataclass
class EntityExtractionResult:
    """Entities found in one text."""
    entities: list[Entity] = field(default_factory=list)
    relations: list[EntityRelation] = field(default_factory=list)
    processing_time: float = 0.0
    library: str = ''
    warnings: list[str] = field(default_factory=list)

    def by_type(self, entity_type: EntityType) -> list[Entity]:
        return [e for e in self.entities if e.entity_type == entity_type]

    def by_label(self, label: str) -> list[Entity]:
        return [e for e in self.entities if e.label == label]

    def get(self, entity_id: str) -> Optional[Entity]:
        for entity in self.entities:
            if entity.entity_id == entity_id:
                return entity
        return None

    def find_by_value(self, value: str) -> list[Entity]:
        needle = value.lower()
        return [e for e in self.entities if needle in e.value.lower() or needle in e.text.lower()]

    @property
    def summary(self) -> dict[str, Any]:
        by_type: dict[str, int] = {}
        by_language: dict[str, int] = {}
        for entity in self.entities:
            by_type[entity.entity_type.value] = by_type.get(entity.entity_type.value, 0) + 1
            by_language[entity.language] = by_language.get(entity.language, 0) + 1
        return {
            'total_entities': len(self.entities),
            'entities_by_type': by_type,
            'entities_by_language': by_language,
            'average_confidence': mean(e.confidence for e in self.entities),
            'validated_entities': sum(1 for e in self.entities if e.validated),
            'total_relations': len(self.relations),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            'library': self.library,
            'entities': [e.to_dict() for e in self.entities],
            'relations': [r.to_dict() for r in self.relations],
            'summary': self.summary,
            'processing_time': round(self.processing_time, 4),
            'warnings': self.warnings,
        }


class PatternRecognizer:
    """
    Runs a rule library over text.

    Usage:
        recognizer = PatternRecognizer(LEGAL_LIBRARY)
        result = recognizer.recognize("Loi n° 12-34 du 5 janvier 2020")
        for entity in result.entities:
            print(entity.entity_type, entity.value, entity.confidence)
    """

    def __init__(self, library: RuleLibrary, config: Optional[RecognizerConfig] = None):
        self.library = library
        self.config = config or library.default_config or RecognizerConfig()

    def recognize(self, text: str) -> EntityExtractionResult:
        start_time = time.perf_counter()
        result = EntityExtractionResult(library=self.library.name)
        if not text or not text.strip():
            logger.warning(f"Empty text provided to {self.library.name} recognizer")
            return result

        entities: list[Entity] = []
        counter = 0
        for pattern_rule in self.library.rules:
            for match in pattern_rule.pattern.finditer(text):
                created = self._entities_from_match(text, match, pattern_rule, counter)
                counter += len(created)
                entities.extend(created)

        if self.config.deduplicate:
            entities = deduplicate_entities(entities)
        if self.config.entity_linking:
            self._link_entities(entities)

        entities.sort(key=lambda e: (e.start, e.parent_id is not None, e.entity_id))
        result.entities = entities
        result.processing_time = time.perf_counter() - start_time

        logger.debug(
            f"{self.library.name}: {len(entities)} entities in {result.processing_time * 1000:.1f}ms"
        )
        return result

    def score(self, pattern_rule: PatternRule, match: re.Match, value_text: str, context: str) -> float:
        """Confidence of one match, 0 when strict mode rejects it."""
        hits = 0
        if self.config.context_validation and pattern_rule.context_category:
            hits = sum(
                1 for kw in self.library.context_keywords.get(pattern_rule.context_category, [])
                if kw.search(context)
            )

        well_formed = bool(pattern_rule.well_formed and pattern_rule.well_formed.search(match.group(0)))

        known = None
        if pattern_rule.reference and self.config.use_reference_lists:
            known = pattern_rule.reference(value_text)
            if not known and self.config.strict_mode:
                return 0.0
            if not known and not pattern_rule.reference_penalty:
                known = None

        return entity_confidence(pattern_rule.base_confidence, hits, well_formed, known)

    def _entities_from_match(self, text: str, match: re.Match, pattern_rule: PatternRule,
                             counter: int) -> list[Entity]:
        if pattern_rule.validator and not pattern_rule.validator(match):
            return []

        value_text = match.group(pattern_rule.value_group)
        if not value_text or not value_text.strip():
            return []
        normalizer = pattern_rule.normalizer or normalize_whitespace
        value = normalizer(value_text)
        if not value:
            logger.debug(f"Rule {pattern_rule.rule_id}: could not normalize '{value_text}'")
            return []

        radius = self.config.context_radius
        context = text[max(0, match.start() - radius):min(len(text), match.end() + radius)]
        confidence = self.score(pattern_rule, match, value_text, context)
        if confidence < self.config.confidence_threshold:
            return []

        fields = {}
        for index, name in enumerate(pattern_rule.fields, start=1):
            group = match.group(index)
            if group and group.strip():
                fields[name] = normalize_whitespace(group)

        entity = Entity(
            entity_id=f"{self.library.id_prefix}_{counter}",
            entity_type=pattern_rule.entity_type,
            text=normalize_whitespace(match.group(0)),
            value=value,
            confidence=confidence,
            start=match.start(),
            end=match.end(),
            context=context,
            language=detect_language(match.group(0)),
            subtype=pattern_rule.subtype,
            label=pattern_rule.label,
            rule_id=pattern_rule.rule_id,
            fields=fields,
            validated=self.config.context_validation,
        )
        created = [entity]

        for index, name in enumerate(pattern_rule.fields, start=1):
            sub_type = pattern_rule.sub_entities.get(name)
            if sub_type is None or name not in fields:
                continue
            sub_normalizer = SUB_ENTITY_NORMALIZERS.get(sub_type, normalize_whitespace)
            sub_value = sub_normalizer(fields[name])
            if not sub_value:
                continue
            sub = Entity(
                entity_id=f"{entity.entity_id}_{len(created)}",
                entity_type=sub_type,
                text=fields[name],
                value=sub_value,
                confidence=clamp(confidence * SUB_ENTITY_FACTOR),
                start=match.start(index),
                end=match.end(index),
                context=context,
                language=detect_language(fields[name]),
                subtype=name,
                label=pattern_rule.label,
                rule_id=pattern_rule.rule_id,
                parent_id=entity.entity_id,
                validated=entity.validated,
            )
            entity.link(sub)
            created.append(sub)

        return created

    def _link_entities(self, entities: list[Entity]) -> None:
        distance = self.config.link_distance
        for i, first in enumerate(entities):
            for second in entities[i + 1:]:
                if not self.library.links(first.entity_type, second.entity_type):
                    continue
                if abs(first.start - second.start) < distance:
                    first.link(second)


def dedupe_key(entity: Entity) -> tuple:
    return (entity.entity_type, entity.label, entity.value.lower())


def deduplicate_entities(entities: list[Entity]) -> list[Entity]:
    """
    Keep one entity per (type, label, normalized value): the most confident,
    earliest on ties. Links and parents pointing at dropped entities are
    redirected to the kept one.
    """
    best: dict[tuple, Entity] = {}
    for entity in entities:
        key = dedupe_key(entity)
        if key not in best or entity.confidence > best[key].confidence:
            best[key] = entity

    alias = {e.entity_id: best[dedupe_key(e)].entity_id for e in entities}
    kept = [e for e in entities if best[dedupe_key(e)] is e]

    for entity in kept:
        if entity.parent_id is not None:
            parent = alias.get(entity.parent_id, entity.parent_id)
            entity.parent_id = parent if parent != entity.entity_id else None
        linked = []
        for linked_id in entity.linked_ids:
            target = alias.get(linked_id, linked_id)
            if target != entity.entity_id and target not in linked:
                linked.append(target)
        entity.linked_ids = linked

    # Links are symmetric
    by_id = {e.entity_id: e for e in kept}
    for entity in kept:
        for linked_id in entity.linked_ids:
            other = by_id.get(linked_id)
            if other is not None and entity.entity_id not in other.linked_ids:
                other.linked_ids.append(entity.entity_id)

    dropped = len(entities) - len(kept)
    if dropped:
        logger.debug(f"Merged {dropped} duplicate entities")
    return kept
