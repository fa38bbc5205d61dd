"""
Form Mapper Module

Maps extracted document data onto the fields of a form schema.

Per field, candidate values come from up to five strategies:
1. Direct search: the field name or a synonym followed by ':' or '-' and a
   value on the same line
2. Entity compatibility: named entities whose type suits the field name
3. Legal patterns: law, decree, date and amount entities
4. Procedure patterns: costs, delays and contacts
5. Learning: values users accepted before for the same field, re-applied
   when the current text resembles the historical suggestion

Candidates are deduplicated by normalized value and ranked by confidence.
A field without candidates is unmapped; a field whose best candidate is
below the threshold is ambiguous and needs user input.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from loguru import logger

from ..confidence import mean, strategy_confidence
from ..errors import MappingDataMissing
from ..patterns import EntityType
from .bundle import ExtractionBundle
from .history import MappingHistory, word_similarity
from .schema import FormField, FormSchema


DIRECT_MATCH_CONFIDENCE = 1.0       # Evidence of a labelled value, before the strategy factor
MAX_VALUE_LENGTH = 100
LEARNING_SIMILARITY = 0.7

# Common field names and the ways documents label them
FIELD_SYNONYMS: dict[str, list[str]] = {
    'nom': ['nom', 'name', 'dénomination', 'appellation'],
    'prenom': ['prénom', 'prenom', 'first_name'],
    'date_naissance': ['date de naissance', 'né le', 'née le', 'birth_date'],
    'lieu_naissance': ['lieu de naissance', 'né à', 'née à', 'birth_place'],
    'adresse': ['adresse', 'domicile', 'résidence'],
    'telephone': ['téléphone', 'tél', 'tel', 'phone', 'portable'],
    'email': ['email', 'e-mail', 'courriel'],
    'profession': ['profession', 'métier', 'emploi'],
    'numero_identite': ["numéro d'identité", 'cin', 'carte nationale'],
    'date': ['date', 'en date du'],
    'montant': ['montant', 'somme', 'total'],
    'reference': ['référence', 'numéro', 'numero'],
}

# Entity types and the field-name keywords they can fill
ENTITY_FIELD_KEYWORDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.PERSON: ('nom', 'prenom', 'nom_prenom', 'signataire', 'demandeur'),
    EntityType.ORGANIZATION: ('organisme', 'entreprise', 'employeur', 'administration'),
    EntityType.LOCATION: ('adresse', 'lieu', 'ville', 'wilaya', 'commune'),
    EntityType.DATE: ('date', 'date_naissance', 'date_emission', 'date_expiration'),
    EntityType.MONEY: ('montant', 'prix', 'cout', 'frais', 'salaire'),
    EntityType.LAW: ('reference_legale', 'loi', 'decret', 'texte_reference'),
}

# Legal-pattern entity types: field keywords and the reason shown to users
LEGAL_FIELD_KEYWORDS: dict[EntityType, tuple[tuple[str, ...], str]] = {
    EntityType.LAW: (('reference', 'loi', 'texte'), 'Référence légale extraite du document'),
    EntityType.DECREE: (('decret', 'numero', 'reference'), 'Numéro de décret identifié'),
    EntityType.DATE: (('date',), 'Date extraite du contexte légal'),
    EntityType.MONEY: (('montant', 'cout', 'frais'), 'Montant identifié dans le document'),
}

COST_KEYWORDS = ('cout', 'frais', 'montant')
DELAY_KEYWORDS = ('delai', 'duree', 'temps')
CONTACT_KEYWORDS = {
    'phone': ('telephone', 'tel', 'contact'),
    'address': ('adresse', 'contact'),
    'email': ('email', 'courriel', 'contact'),
}


@dataclass
class MappingConfig:
    """Form mapping settings."""
    confidence_threshold: float = 0.6
    max_alternatives: int = 3
    contextual_mapping: bool = True         # Strategy 2
    multi_source_mapping: bool = True       # Strategies 3 and 4
    learning: bool = True                   # Strategy 5
    strict_validation: bool = False         # Drop candidates violating field constraints


@dataclass
class Alternative:
    value: str
    confidence: float
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {'value': self.value, 'confidence': round(self.confidence, 3), 'reasoning': self.reasoning}


@dataclass
class MappingSuggestion:
    """A proposed value for one form field."""
    field_id: str
    field_name: str
    value: str
    confidence: float
    source: str                                     # content / entity / pattern / procedure / learning
    reasoning: str
    source_data: dict[str, Any] = field(default_factory=dict)
    alternatives: list[Alternative] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            'field_id': self.field_id,
            'field_name': self.field_name,
            'value': self.value,
            'confidence': round(self.confidence, 3),
            'source': self.source,
            'reasoning': self.reasoning,
            'source_data': self.source_data,
            'alternatives': [a.to_dict() for a in self.alternatives],
        }


@dataclass
class AmbiguousField:
    field_id: str
    possible_values: list[str]
    needs_user_input: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            'field_id': self.field_id,
            'possible_values': self.possible_values,
            'needs_user_input': self.needs_user_input,
        }


@dataclass
class MappingResult:
    """Mapping of one document onto one form schema."""
    form_id: str
    suggestions: list[MappingSuggestion] = field(default_factory=list)
    completeness: float = 0.0                       # Percentage of fields mapped
    overall_confidence: float = 0.0
    unmapped_fields: list[str] = field(default_factory=list)
    ambiguous_fields: list[AmbiguousField] = field(default_factory=list)
    processing_time: float = 0.0
    warnings: list[str] = field(default_factory=list)
    error: Optional[dict[str, Any]] = None

    def get(self, field_id: str) -> Optional[MappingSuggestion]:
        for suggestion in self.suggestions:
            if suggestion.field_id == field_id:
                return suggestion
        return None

    def values(self) -> dict[str, str]:
        return {s.field_id: s.value for s in self.suggestions}

    @property
    def ambiguous_field_ids(self) -> list[str]:
        return [a.field_id for a in self.ambiguous_fields]

    def to_dict(self) -> dict[str, Any]:
        return {
            'form_id': self.form_id,
            'suggestions': [s.to_dict() for s in self.suggestions],
            'completeness': round(self.completeness, 2),
            'overall_confidence': round(self.overall_confidence, 3),
            'unmapped_fields': self.unmapped_fields,
            'ambiguous_fields': [a.to_dict() for a in self.ambiguous_fields],
            'processing_time': round(self.processing_time, 4),
            'warnings': self.warnings,
            'error': self.error,
        }


def _plain(text: str) -> str:
    """Lowercase without the accents that field names never carry."""
    return (
        text.lower()
        .replace('é', 'e').replace('è', 'e').replace('ê', 'e')
        .replace('à', 'a').replace('ç', 'c').replace('û', 'u').replace('ô', 'o')
    )


def _field_mentions(form_field: FormField, keywords: Iterable[str]) -> Optional[str]:
    """First keyword contained in the field name or one of its synonyms."""
    names = [_plain(form_field.name)] + [_plain(s) for s in form_field.synonyms]
    for keyword in keywords:
        if any(keyword in name for name in names):
            return keyword
    return None


def find_in_text(term: str, text: str) -> Optional[str]:
    """Value following ``term`` (and an optional ':' or '-') on the first matching line."""
    regex = re.compile(rf"(?<!\w){re.escape(term)}\s*[:\-]?\s*([^\n]{{1,{MAX_VALUE_LENGTH}}})", re.IGNORECASE)
    for line in text.split('\n'):
        match = regex.search(line)
        if match:
            value = match.group(1).strip()
            if 0 < len(value) < MAX_VALUE_LENGTH:
                return value
    return None


class FormMapper:
    """
    Maps an extraction bundle onto form schemas.

    Usage:
        mapper = FormMapper()
        result = mapper.map_to_form(bundle, schema)
        mapper.record_feedback(schema.id, 'nom', 'BENALI', 'BENALI', True, 0.8)
    """

    def __init__(self, config: Optional[MappingConfig] = None, history: Optional[MappingHistory] = None):
        self.config = config or MappingConfig()
        self.history = history if history is not None else MappingHistory()

    def map_to_forms(
        self,
        bundle: ExtractionBundle,
        schemas: list[FormSchema],
        config: Optional[MappingConfig] = None,
    ) -> list[MappingResult]:
        """
        Map one bundle onto several schemas.

        A schema that cannot be mapped yields a result carrying the error and
        every field unmapped; the other schemas are unaffected.
        """
        results = []
        for schema in schemas:
            try:
                results.append(self.map_to_form(bundle, schema, config))
            except MappingDataMissing as e:
                logger.warning(f"Mapping to form '{schema.id}' failed: {e}")
                results.append(MappingResult(
                    form_id=schema.id,
                    unmapped_fields=schema.field_ids,
                    error=e.to_dict(),
                ))
        return results

    def map_to_form(
        self,
        bundle: Optional[ExtractionBundle],
        schema: FormSchema,
        config: Optional[MappingConfig] = None,
    ) -> MappingResult:
        """
        Map a bundle onto one schema.

        Raises:
            MappingDataMissing: If there is no bundle, or it holds neither
                text nor any recognition result
        """
        config = config or self.config
        if bundle is None or not bundle.has_data:
            raise MappingDataMissing(
                f"No extracted data to map onto form '{schema.id}'",
                {'form_id': schema.id},
            )

        start_time = time.perf_counter()
        result = MappingResult(form_id=schema.id)

        for form_field in schema.fields:
            try:
                candidates = self.suggest(form_field, bundle, config)
            except Exception as e:
                logger.warning(f"Field '{form_field.id}' could not be mapped: {e}")
                result.warnings.append(f"{form_field.id}: {e}")
                candidates = []

            if not candidates:
                result.unmapped_fields.append(form_field.id)
                continue

            best = candidates[0]
            if best.confidence < config.confidence_threshold:
                result.ambiguous_fields.append(AmbiguousField(
                    field_id=form_field.id,
                    possible_values=[c.value for c in candidates[:config.max_alternatives]],
                ))
                continue

            best.alternatives = [
                Alternative(c.value, c.confidence, c.reasoning)
                for c in candidates[1:config.max_alternatives + 1]
            ]
            result.suggestions.append(best)

        total = len(schema.fields)
        result.completeness = len(result.suggestions) / total * 100 if total else 0.0
        result.overall_confidence = mean(s.confidence for s in result.suggestions)
        result.processing_time = time.perf_counter() - start_time

        logger.info(
            f"Mapped form '{schema.id}': {len(result.suggestions)}/{total} fields, "
            f"{len(result.ambiguous_fields)} ambiguous, completeness {result.completeness:.0f}%"
        )
        return result

    def suggest(
        self,
        form_field: FormField,
        bundle: ExtractionBundle,
        config: Optional[MappingConfig] = None,
    ) -> list[MappingSuggestion]:
        """All candidates for one field, deduplicated and ranked."""
        config = config or self.config
        candidates = self.find_direct_matches(form_field, bundle.full_text)
        if config.contextual_mapping and bundle.entities is not None:
            candidates.extend(self.find_entity_matches(form_field, bundle.entities.entities))
        if config.multi_source_mapping and bundle.legal is not None:
            candidates.extend(self.find_legal_matches(form_field, bundle.legal.entities))
        if config.multi_source_mapping and bundle.procedure is not None:
            candidates.extend(self.find_procedure_matches(form_field, bundle.procedure))
        if config.learning:
            candidates.extend(self.find_learned_matches(form_field, bundle.full_text))

        ranked = rank_suggestions(candidates)
        if config.strict_validation:
            ranked = [s for s in ranked if not form_field.check_value(s.value)]
        return ranked

    # -- strategies -------------------------------------------------------------

    def find_direct_matches(self, form_field: FormField, text: str) -> list[MappingSuggestion]:
        if not text:
            return []
        terms = list(FIELD_SYNONYMS.get(form_field.name.lower(), []))
        for term in form_field.search_terms():
            if term not in terms:
                terms.append(term)

        suggestions = []
        for term in terms:
            value = find_in_text(term, text)
            if value:
                suggestions.append(self._suggestion(
                    form_field, value, 'content', DIRECT_MATCH_CONFIDENCE,
                    f'Correspondance directe avec "{term}" dans le texte',
                    {'term': term},
                ))
        return suggestions

    def find_entity_matches(self, form_field: FormField, entities) -> list[MappingSuggestion]:
        suggestions = []
        for entity in entities:
            keywords = ENTITY_FIELD_KEYWORDS.get(entity.entity_type)
            if not keywords or not _field_mentions(form_field, keywords):
                continue
            suggestions.append(self._suggestion(
                form_field, entity.value or entity.text, 'entity', entity.confidence,
                f"Entité {entity.entity_type.value} correspondant au champ {form_field.name}",
                {'entity_id': entity.entity_id},
            ))
        return suggestions

    def find_legal_matches(self, form_field: FormField, entities) -> list[MappingSuggestion]:
        suggestions = []
        for entity in entities:
            rule = LEGAL_FIELD_KEYWORDS.get(entity.entity_type)
            if rule is None:
                continue
            keywords, reasoning = rule
            if not _field_mentions(form_field, keywords):
                continue
            suggestions.append(self._suggestion(
                form_field, entity.value, 'pattern', entity.confidence, reasoning,
                {'entity_id': entity.entity_id},
            ))
        return suggestions

    def find_procedure_matches(self, form_field: FormField, procedure) -> list[MappingSuggestion]:
        suggestions = []
        if _field_mentions(form_field, COST_KEYWORDS):
            for cost in procedure.costs:
                suggestions.append(self._suggestion(
                    form_field, cost.display, 'procedure', cost.confidence,
                    f"Coût identifié dans la procédure: {cost.description}",
                    {'cost_id': cost.cost_id},
                ))

        if _field_mentions(form_field, DELAY_KEYWORDS):
            for element in procedure.timeline:
                suggestions.append(self._suggestion(
                    form_field, element.value, 'procedure', element.confidence,
                    f"Délai extrait de la procédure ({element.kind})",
                    {'timeline_id': element.timeline_id},
                ))

        for contact in procedure.contacts:
            keywords = CONTACT_KEYWORDS.get(contact.kind)
            if keywords and _field_mentions(form_field, keywords):
                suggestions.append(self._suggestion(
                    form_field, contact.value, 'procedure', contact.confidence,
                    f"Information de contact extraite ({contact.contact_type})",
                    {'contact_id': contact.contact_id},
                ))
        return suggestions

    def find_learned_matches(self, form_field: FormField, text: str) -> list[MappingSuggestion]:
        accepted = [e for e in self.history.entries(form_field.id) if e.accepted]
        if not accepted or not text:
            return []

        rate = self.history.acceptance_rate(form_field.id)
        average = mean(e.confidence for e in accepted)
        lines = [line for line in text.split('\n') if line.strip()]

        suggestions = []
        for entry in accepted:
            similarity = max(word_similarity(line, entry.suggested_value) for line in lines) if lines else 0.0
            if similarity > LEARNING_SIMILARITY:
                suggestions.append(self._suggestion(
                    form_field, entry.actual_value, 'learning', average * rate * similarity,
                    f"Basé sur l'apprentissage: {len(accepted)} mappings réussis similaires",
                    {'similarity': round(similarity, 3)},
                ))
        return suggestions

    @staticmethod
    def _suggestion(form_field: FormField, value: str, source: str, evidence: float,
                    reasoning: str, source_data: dict[str, Any]) -> MappingSuggestion:
        return MappingSuggestion(
            field_id=form_field.id,
            field_name=form_field.name,
            value=str(value).strip(),
            confidence=strategy_confidence(source, evidence),
            source=source,
            reasoning=reasoning,
            source_data=source_data,
        )

    # -- learning ---------------------------------------------------------------

    def record_feedback(self, form_id: str, field_id: str, suggested: str, actual: str,
                        accepted: bool, confidence: float) -> None:
        self.history.record(form_id, field_id, suggested, actual, accepted, confidence)

    def learning_statistics(self) -> dict[str, Any]:
        return self.history.statistics()

    def export_learning_data(self) -> list[dict[str, Any]]:
        return self.history.export()

    def import_learning_data(self, records) -> int:
        return self.history.import_entries(records)


def rank_suggestions(suggestions: list[MappingSuggestion]) -> list[MappingSuggestion]:
    """
    Keep the best suggestion per normalized value, noting every strategy
    that proposed it, sorted by descending confidence.
    """
    groups: dict[str, list[MappingSuggestion]] = {}
    for suggestion in suggestions:
        key = suggestion.value.strip().lower()
        if key:
            groups.setdefault(key, []).append(suggestion)

    ranked = []
    for group in groups.values():
        best = max(group, key=lambda s: s.confidence)
        sources = list(dict.fromkeys(s.source for s in group))
        best.reasoning = f"{best.reasoning} (Sources: {', '.join(sources)})"
        ranked.append(best)

    ranked.sort(key=lambda s: s.confidence, reverse=True)
    return ranked
