"""
Procedure Rule Library

Rules for administrative procedure texts: steps, required documents,
timelines, costs and contacts. ProcedureAnalyzer turns the raw entities
into structured elements and a summary (total cost, total duration).
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from ..confidence import mean
from .knowledge import KNOWN_DOCUMENTS, fold, is_known_document
from .normalizers import (
    duration_in_days,
    format_amount,
    normalize_duration_unit,
    normalize_money,
    normalize_phone,
    normalize_whitespace,
    parse_amount,
)
from .recognizer import (
    Entity,
    EntityExtractionResult,
    EntityType,
    PatternRecognizer,
    RecognizerConfig,
    RuleLibrary,
    keywords,
    rule,
)


UNITS = r"jours?|semaines?|mois|ann[ée]es?|ans?|heures?"
BREAK = r"(?=\s*[,;.()\n]|$)"
COPIES = r"(?:\s+(original|copie))?(?:\s*\((\d+)\s*copies?\))?"

ORDINALS = {
    'premierement': 1, 'deuxiemement': 2, 'troisiemement': 3,
    'quatriemement': 4, 'cinquiemement': 5,
}


def document_name(text: str) -> str:
    """Lowercase document name without the original/copies qualifiers."""
    name = re.sub(r'\(\s*\d+\s*copies?\s*\)', '', text, flags=re.IGNORECASE)
    name = re.sub(r'\s+(?:original|copie)\s*$', '', name.strip(), flags=re.IGNORECASE)
    return normalize_whitespace(name).lower()


def duration_text(text: str) -> Optional[str]:
    """'délai de 15 jours' → '15 jours'; ranges keep both ends ('10-15 jours')."""
    match = re.search(rf'(\d+)(?:\s*(?:à|-)\s*(\d+))?\s*({UNITS})\b', text, re.IGNORECASE)
    if not match:
        return None
    amount = match.group(1) if not match.group(2) else f"{match.group(1)}-{match.group(2)}"
    return f"{amount} {match.group(3).lower()}"


def free_of_charge(text: str) -> str:
    return format_amount(0)


PROCEDURE_RULES = [
    # Steps
    rule(
        'step_keyword', 'Étape numérotée',
        r"\b(?:[ée]tape|phase|stade)\s*(\d+)\s*[:\-]?\s*(.{1,200}?)(?=\n|[ée]tape|phase|$)",
        EntityType.MISC,
        label='step',
        fields=('step_number', 'description'),
        value_group=2,
        context_category='step',
    ),
    rule(
        'step_numbered', 'Liste numérotée',
        r"^[ \t]*(\d{1,2})[.\-)]\s+(.{1,200}?)(?=\n|$)",
        EntityType.MISC,
        flags=re.IGNORECASE | re.MULTILINE,
        label='step',
        fields=('step_number', 'description'),
        value_group=2,
        context_category='step',
        well_formed=r'^\s*\d+[.\-)]',
    ),
    rule(
        'step_ordinal', 'Étape ordinale',
        r"\b(premi[èe]rement|deuxi[èe]mement|troisi[èe]mement|quatri[èe]mement|cinqui[èe]mement|ensuite|puis|enfin|finalement)[:,\s]+(.{1,200}?)(?=\n|$)",
        EntityType.MISC,
        label='step',
        fields=('ordinal', 'description'),
        value_group=2,
        context_category='step',
    ),

    # Required documents
    rule(
        'document_birth', 'Acte de naissance',
        rf"\b(?:acte|extrait)\s+de\s+naissance{COPIES}",
        EntityType.MISC,
        label='document',
        subtype='certificate',
        fields=('original_copy', 'copies'),
        normalizer=document_name,
        well_formed=r'original|copie',
        reference=is_known_document,
        reference_penalty=False,
    ),
    rule(
        'document_identity', "Pièce d'identité",
        rf"\b(?:carte\s+d['’]identit[ée](?:\s+nationale)?|carte\s+nationale|CIN|passeport|permis\s+de\s+conduire)\b{COPIES}",
        EntityType.MISC,
        label='document',
        subtype='identification',
        fields=('original_copy', 'copies'),
        normalizer=document_name,
        well_formed=r'original|copie',
        reference=is_known_document,
        reference_penalty=False,
    ),
    rule(
        'document_certificate', 'Certificat ou attestation',
        rf"\b(?:certificat|attestation)\s+(?:de\s+|d['’])?([^\W\d_][\w'’ -]{{0,49}}?){COPIES}{BREAK}",
        EntityType.MISC,
        label='document',
        subtype='certificate',
        fields=('document_name', 'original_copy', 'copies'),
        normalizer=document_name,
        well_formed=r'original|copie',
        reference=is_known_document,
        reference_penalty=False,
    ),
    rule(
        'document_form', 'Formulaire',
        rf"\bformulaire\s+([^\W\d_][\w'’ -]{{0,49}}?)(?:\s+(?:d[ûu]ment\s+)?(?:rempli|compl[ée]t[ée]))?{BREAK}",
        EntityType.MISC,
        label='document',
        subtype='form',
        fields=('form_name',),
        normalizer=document_name,
        reference=is_known_document,
        reference_penalty=False,
    ),
    rule(
        'document_proof', 'Justificatif',
        rf"\b(?:justificatif|preuve)\s+(?:de\s+|d['’])?([^\W\d_][\w'’ -]{{0,49}}?){BREAK}",
        EntityType.MISC,
        label='document',
        subtype='proof',
        fields=('proof_type',),
        normalizer=document_name,
        reference=is_known_document,
        reference_penalty=False,
    ),

    # Timelines
    rule(
        'timeline_delay', 'Délai',
        rf"\b(?:d[ée]lai|dur[ée]e|p[ée]riode)\s*(?:de\s+|d['’])?(\d+)\s*({UNITS})\b",
        EntityType.MISC,
        label='timeline',
        fields=('duration', 'unit'),
        base_confidence=0.7,
        normalizer=duration_text,
        context_category='timeline',
    ),
    rule(
        'timeline_within', 'Échéance',
        rf"\b(?:dans\s+(?:les\s+|un\s+d[ée]lai\s+de\s+)?|sous\s+|avant\s+)(\d+)\s*({UNITS})\b",
        EntityType.MISC,
        label='timeline',
        fields=('duration', 'unit'),
        base_confidence=0.7,
        normalizer=duration_text,
        context_category='timeline',
    ),
    rule(
        'timeline_validity', 'Validité',
        rf"\b(?:validit[ée]|valable)\s*(?:de\s+|pendant\s+)?(\d+)\s*({UNITS})\b",
        EntityType.MISC,
        label='timeline',
        fields=('duration', 'unit'),
        base_confidence=0.7,
        normalizer=duration_text,
        context_category='timeline',
    ),
    rule(
        'timeline_range', 'Fourchette',
        r"\b(\d+)\s*(?:à|-)\s*(\d+)\s*(jours?|semaines?|mois)(?:\s*(?:ouvrables?|ouvr[ée]s?))?\b",
        EntityType.MISC,
        label='timeline',
        fields=('duration', 'max_duration', 'unit'),
        base_confidence=0.7,
        normalizer=duration_text,
        context_category='timeline',
    ),

    # Costs
    rule(
        'cost_labelled', 'Frais',
        r"\b(frais|co[ûu]t|tarif|prix)\s*(?:de\s+|d['’])?([^\n:]{0,50}?)\s*[:\-]?\s*(\d{1,6}(?:[.,]\d{2})?)\s*(?:da|dinars?|dzd)\b",
        EntityType.MONEY,
        label='cost',
        fields=('kind', 'description', 'amount'),
        value_group=3,
        base_confidence=0.7,
        normalizer=normalize_money,
        well_formed=r'\d+(?:[.,]\d{2})?\s*(?:da|dinars?)',
    ),
    rule(
        'cost_for', 'Montant pour',
        r"(?<![\d.,])(\d{1,6}(?:[.,]\d{2})?)\s*(?:da|dinars?|dzd)\s+(?:pour|de)\s+([^\n.,;]{1,50})",
        EntityType.MONEY,
        label='cost',
        fields=('amount', 'description'),
        value_group=1,
        base_confidence=0.7,
        normalizer=normalize_money,
        well_formed=r'\d+(?:[.,]\d{2})?\s*(?:da|dinars?)',
    ),
    rule(
        'cost_stamp', 'Timbre fiscal',
        r"\btimbre\s*(?:fiscal\s*)?(?:de\s+)?(\d+)\s*(?:da|dinars?)\b",
        EntityType.MONEY,
        label='cost',
        subtype='stamp',
        fields=('amount',),
        value_group=1,
        base_confidence=0.7,
        normalizer=normalize_money,
        well_formed=r'\d+\s*(?:da|dinars?)',
    ),
    rule(
        'cost_free', 'Gratuit',
        r"\b(?:gratuit(?:e|s|es)?|sans\s+frais|aucun\s+co[ûu]t)\b",
        EntityType.MONEY,
        label='cost',
        subtype='free',
        base_confidence=0.7,
        normalizer=free_of_charge,
        well_formed=r'gratuit|sans\s+frais',
    ),

    # Contacts
    rule(
        'contact_address', 'Adresse',
        r"\b(?:adresse|bureau|service)\s*[:\-]\s*([^\n]{1,100}?)(?=\n|\s*t[ée]l|\s*e-?mail|$)",
        EntityType.MISC,
        label='contact',
        subtype='address',
        fields=('address',),
        value_group=1,
        well_formed=r'\b(?:rue|avenue|boulevard|cit[ée])\b',
    ),
    rule(
        'contact_phone', 'Téléphone',
        r"\b(?:t[ée]l[ée]phone|t[ée]l\.?|phone)\s*[:\-]?\s*((?:\+213\s*)?(?:\d{2,3}[\s\-]?){2,4}\d{2,4})",
        EntityType.MISC,
        label='contact',
        subtype='phone',
        fields=('phone',),
        value_group=1,
        normalizer=lambda text: normalize_phone(text) or normalize_whitespace(text),
        well_formed=r'\+213|\b0\d',
    ),
    rule(
        'contact_email', 'Email',
        r"\b(?:email|e-mail|courriel)\s*[:\-]?\s*([A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,})",
        EntityType.MISC,
        label='contact',
        subtype='email',
        fields=('email',),
        value_group=1,
        normalizer=lambda text: text.strip().lower(),
        well_formed=r'@',
    ),
    rule(
        'contact_hours', 'Horaires',
        r"\b(?:horaires?|heures\s+d['’]ouverture)\s*[:\-]?\s*([^\n]{1,100}?)(?=\n|$)",
        EntityType.MISC,
        label='contact',
        subtype='hours',
        fields=('hours',),
        value_group=1,
    ),
]

PROCEDURE_CONTEXT = {
    'step': keywords(r'[ée]tape', r'phase', r'stade', r'proc[ée]dure'),
    'timeline': keywords(r'd[ée]lai', r'dur[ée]e', r'p[ée]riode', r'\bdans\b', r'\bsous\b', r'\bavant\b'),
}

PROCEDURE_LIBRARY = RuleLibrary(
    name='procedure',
    rules=PROCEDURE_RULES,
    context_keywords=PROCEDURE_CONTEXT,
    id_prefix='proc',
    default_config=RecognizerConfig(confidence_threshold=0.6, context_radius=150, entity_linking=False),
)


@dataclass
class ProcedureStep:
    step_id: str
    number: int
    title: str
    description: str
    confidence: float
    start: int
    end: int
    duration: Optional[str] = None
    cost: Optional[str] = None
    responsible: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.step_id,
            'number': self.number,
            'title': self.title,
            'description': self.description,
            'duration': self.duration,
            'cost': self.cost,
            'responsible': self.responsible,
            'confidence': round(self.confidence, 3),
            'position': {'start': self.start, 'end': self.end},
        }


@dataclass
class RequiredDocument:
    doc_id: str
    name: str
    category: str                   # certificate / identification / form / proof / other
    is_original: bool
    confidence: float
    start: int
    end: int
    copies: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.doc_id,
            'name': self.name,
            'category': self.category,
            'is_original': self.is_original,
            'copies': self.copies,
            'confidence': round(self.confidence, 3),
            'position': {'start': self.start, 'end': self.end},
        }


@dataclass
class TimelineElement:
    timeline_id: str
    kind: str                       # validity_period / deadline / waiting_period / duration
    value: str                      # "<n> <unit as written>"
    amount: float
    unit: str                       # days / weeks / months / years / hours
    confidence: float
    start: int
    end: int
    max_amount: Optional[float] = None

    @property
    def days(self) -> float:
        return duration_in_days(self.amount, self.unit)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.timeline_id,
            'kind': self.kind,
            'value': self.value,
            'amount': self.amount,
            'max_amount': self.max_amount,
            'unit': self.unit,
            'days': self.days,
            'confidence': round(self.confidence, 3),
            'position': {'start': self.start, 'end': self.end},
        }


@dataclass
class CostElement:
    cost_id: str
    description: str
    amount: float
    cost_type: str                  # stamp / tax / fee / service_charge
    confidence: float
    start: int
    end: int
    currency: str = 'DZD'

    @property
    def display(self) -> str:
        return format_amount(self.amount, self.currency)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.cost_id,
            'description': self.description,
            'amount': self.amount,
            'currency': self.currency,
            'display': self.display,
            'type': self.cost_type,
            'confidence': round(self.confidence, 3),
            'position': {'start': self.start, 'end': self.end},
        }


@dataclass
class ContactInfo:
    contact_id: str
    kind: str                       # address / phone / email / hours
    value: str
    contact_type: str               # office / hotline / service
    confidence: float
    start: int
    end: int

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.contact_id,
            'kind': self.kind,
            'value': self.value,
            'type': self.contact_type,
            'confidence': round(self.confidence, 3),
            'position': {'start': self.start, 'end': self.end},
        }


@dataclass
class ProcedureResult:
    """Structured view of a procedure text."""
    steps: list[ProcedureStep] = field(default_factory=list)
    documents: list[RequiredDocument] = field(default_factory=list)
    timeline: list[TimelineElement] = field(default_factory=list)
    costs: list[CostElement] = field(default_factory=list)
    contacts: list[ContactInfo] = field(default_factory=list)
    entities: EntityExtractionResult = field(default_factory=EntityExtractionResult)
    processing_time: float = 0.0

    @property
    def total_cost(self) -> float:
        return sum(c.amount for c in self.costs)

    @property
    def total_duration_days(self) -> Optional[float]:
        durations = [t.days for t in self.timeline if t.kind == 'duration']
        return sum(durations) if durations else None

    @property
    def summary(self) -> dict[str, Any]:
        confidences = [x.confidence for group in (self.steps, self.documents, self.timeline, self.costs, self.contacts)
                       for x in group]
        total_days = self.total_duration_days
        return {
            'total_steps': len(self.steps),
            'documents_count': len(self.documents),
            'average_confidence': mean(confidences),
            'total_cost': format_amount(self.total_cost) if self.total_cost > 0 else None,
            'total_duration_days': total_days,
            'estimated_total_duration': describe_duration(total_days) if total_days else None,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            'steps': [s.to_dict() for s in self.steps],
            'documents': [d.to_dict() for d in self.documents],
            'timeline': [t.to_dict() for t in self.timeline],
            'costs': [c.to_dict() for c in self.costs],
            'contacts': [c.to_dict() for c in self.contacts],
            'summary': self.summary,
            'processing_time': round(self.processing_time, 4),
        }


def describe_duration(days: float) -> str:
    if days < 7:
        return f"{days:g} jours"
    if days < 30:
        return f"{-(-days // 7):g} semaines"
    return f"{-(-days // 30):g} mois"


def timeline_kind(context: str) -> str:
    lowered = context.lower()
    if re.search(r'validit[ée]|valable', lowered):
        return 'validity_period'
    if re.search(r'd[ée]lai|avant|sous', lowered):
        return 'deadline'
    if re.search(r'attente|attendre', lowered):
        return 'waiting_period'
    return 'duration'


def cost_type(text: str) -> str:
    lowered = text.lower()
    if 'timbre' in lowered:
        return 'stamp'
    if 'taxe' in lowered:
        return 'tax'
    if 'frais' in lowered:
        return 'fee'
    return 'service_charge'


def contact_type(text: str) -> str:
    if '@' in text:
        return 'service'
    if re.search(r'\+213|\b0\d{8,9}\b', re.sub(r'[\s\-]', '', text)):
        return 'hotline'
    if re.search(r'\b(?:rue|avenue|boulevard)\b', text, re.IGNORECASE):
        return 'office'
    return 'service'


def document_category(name: str, default: str) -> str:
    folded = fold(name)
    for category, terms in KNOWN_DOCUMENTS.items():
        if any(fold(term) in folded for term in terms):
            return category
    return default


class ProcedureAnalyzer:
    """
    Procedure recognizer producing structured steps, documents, timeline,
    costs and contacts.

    Usage:
        result = ProcedureAnalyzer().analyze(text)
        print(result.summary['total_cost'])
    """

    def __init__(self, config: Optional[RecognizerConfig] = None):
        self.recognizer = PatternRecognizer(PROCEDURE_LIBRARY, config)

    def analyze(self, text: str) -> ProcedureResult:
        start_time = time.perf_counter()
        entities = self.recognizer.recognize(text)
        result = ProcedureResult(entities=entities)

        result.steps = self._steps(entities.by_label('step'), text)
        result.documents = self._documents(entities.by_label('document'))
        result.timeline = self._timeline(entities.by_label('timeline'))
        result.costs = self._costs(entities.by_label('cost'))
        result.contacts = self._contacts(entities.by_label('contact'))
        result.processing_time = time.perf_counter() - start_time

        logger.info(
            f"Procedure analysis: {len(result.steps)} steps, {len(result.documents)} documents, "
            f"{len(result.costs)} costs"
        )
        return result

    def _steps(self, entities: list[Entity], text: str) -> list[ProcedureStep]:
        steps = []
        next_number = 1
        for entity in entities:
            number = None
            if 'step_number' in entity.fields:
                number = int(entity.fields['step_number'])
            elif 'ordinal' in entity.fields:
                number = ORDINALS.get(fold(entity.fields['ordinal']))
            if number is None:
                number = next_number
            next_number = max(next_number, number + 1)

            context = entity.context
            duration = re.search(r'(\d+)\s*(jours?|semaines?|mois)', context, re.IGNORECASE)
            cost = re.search(r'(\d+(?:[.,]\d{2})?)\s*(?:da|dinars?)\b', context, re.IGNORECASE)
            responsible = re.search(r'(?:aupr[èe]s\s+(?:de|du)|chez)\s+([^.!?\n]*)', context, re.IGNORECASE)
            steps.append(ProcedureStep(
                step_id=f"step_{len(steps)}",
                number=number,
                title=re.split(r'[.!?]', entity.value)[0].strip()[:100],
                description=entity.value,
                confidence=entity.confidence,
                start=entity.start,
                end=entity.end,
                duration=f"{duration.group(1)} {duration.group(2)}" if duration else None,
                cost=normalize_money(cost.group(0)) if cost else None,
                responsible=responsible.group(1).strip() if responsible else None,
            ))
        steps.sort(key=lambda s: s.number)
        return steps

    def _documents(self, entities: list[Entity]) -> list[RequiredDocument]:
        documents = []
        seen = set()
        for entity in entities:
            if entity.value in seen:
                continue
            seen.add(entity.value)
            copies = entity.fields.get('copies')
            documents.append(RequiredDocument(
                doc_id=f"doc_{len(documents)}",
                name=entity.value,
                category=document_category(entity.value, entity.subtype or 'other'),
                is_original='original' in entity.text.lower(),
                copies=int(copies) if copies else None,
                confidence=entity.confidence,
                start=entity.start,
                end=entity.end,
            ))
        return documents

    def _timeline(self, entities: list[Entity]) -> list[TimelineElement]:
        timeline = []
        for entity in entities:
            max_duration = entity.fields.get('max_duration')
            timeline.append(TimelineElement(
                timeline_id=f"time_{len(timeline)}",
                kind=timeline_kind(entity.context),
                value=entity.value,
                amount=float(entity.fields['duration']),
                unit=normalize_duration_unit(entity.fields.get('unit', '')),
                confidence=entity.confidence,
                start=entity.start,
                end=entity.end,
                max_amount=float(max_duration) if max_duration else None,
            ))
        return timeline

    def _costs(self, entities: list[Entity]) -> list[CostElement]:
        costs = []
        for entity in entities:
            amount = parse_amount(entity.value) or 0.0
            description = entity.fields.get('description') or entity.text
            costs.append(CostElement(
                cost_id=f"cost_{len(costs)}",
                description=description,
                amount=amount,
                cost_type=cost_type(entity.text),
                confidence=entity.confidence,
                start=entity.start,
                end=entity.end,
            ))
        return costs

    def _contacts(self, entities: list[Entity]) -> list[ContactInfo]:
        return [
            ContactInfo(
                contact_id=f"contact_{index}",
                kind=entity.subtype,
                value=entity.value,
                contact_type=contact_type(entity.text),
                confidence=entity.confidence,
                start=entity.start,
                end=entity.end,
            )
            for index, entity in enumerate(entities)
        ]


def analyze_procedure(text: str, config: Optional[RecognizerConfig] = None) -> ProcedureResult:
    return ProcedureAnalyzer(config).analyze(text)
