"""
Named Entity Library

PERSON / ORG / LOC / DATE / MONEY / PERCENT / LAW / TITLE rules tuned for
Algerian administrative French, with Arabic-script names, the 48 wilayas
as city names, and simple typed relations between nearby entities.
"""

import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from .knowledge import WILAYAS, is_known_ministry, is_known_wilaya
from .normalizers import (
    MONTH_NAMES,
    format_amount,
    normalize_date,
    normalize_law_number,
    normalize_location,
    normalize_money,
    normalize_percent,
    normalize_person,
    parse_amount,
)
from .recognizer import (
    Entity,
    EntityExtractionResult,
    EntityRelation,
    EntityType,
    PatternRecognizer,
    RecognizerConfig,
    RuleLibrary,
    keywords,
    rule,
)


UPPER = 'A-ZÀ-ÖØ-Þ'
LOWER = 'a-zß-öø-ÿ'
CAPITALIZED = re.compile(rf'^[{UPPER}]')
NAME_WORD = rf'[{UPPER}][{LOWER}]+'

OF_ARTICLE = r"(?:de\s+la\s+|de\s+l['’]|des\s+|du\s+|de\s+|d['’])"
NAME_UNTIL_BREAK = r"([^\W\d_][\w'’ -]*?)(?=\s+et\s+|\s*[,;.()\n]|$)"
NUMBER_MARK = r"n\s*°|n[o°]\.?|num[ée]ro|num\."
DATE_TEXT = rf"\d{{1,2}}(?:er)?\s+(?:{MONTH_NAMES})\s+\d{{4}}"
LAW_NUMBER = r"\d{2}[-/]\d{2,3}"

HIJRI_MONTHS = (
    r"Ramadan|Muharram|Safar|Rajab|Shawwal|Chaoual|Cha['’]?bane?|Sha['’]ban|"
    r"Rabi['’]\s+al-awwal|Rabi['’]\s+al-thani|Rabie?\s+El\s+Aouel|Rabie?\s+Ethani|"
    r"Jumada\s+al-awwal|Jumada\s+al-thani|Joumada\s+El\s+Oula|Joumada\s+Ethania|"
    r"Dhu\s+al-Hijjah|Dhou\s+El\s+Hidja|Dhu\s+al-Qi['’]dah|Dhou\s+El\s+Kaada"
)

CITY_PATTERN = '|'.join(
    re.escape(name).replace(r'\ ', r'\s+')
    for name in sorted(WILAYAS, key=len, reverse=True)
)

CURRENCY_CODES = {
    '€': 'EUR', 'euro': 'EUR', 'euros': 'EUR', 'eur': 'EUR',
    '$': 'USD', 'dollar': 'USD', 'dollars': 'USD', 'usd': 'USD',
}


def foreign_money(text: str) -> Optional[str]:
    """'1 200 euros' → '1200 EUR'."""
    amount = parse_amount(text)
    if amount is None:
        return None
    match = re.search(r'(€|\$|euros?|eur|dollars?|usd)\s*$', text.strip(), re.IGNORECASE)
    currency = CURRENCY_CODES.get(match.group(1).lower(), 'EUR') if match else 'EUR'
    return format_amount(amount, currency)


ENTITY_RULES = [
    # Persons
    rule(
        'person_formal', 'Nom avec civilité',
        rf"\b(?:M\.|Mme|Mlle|Monsieur|Madame|Dr\.?|Professeur)\s+({NAME_WORD}(?:[ \t]+{NAME_WORD})*)",
        EntityType.PERSON,
        flags=0,
        subtype='formal_name',
        value_group=1,
        normalizer=normalize_person,
        context_category='person',
        well_formed=CAPITALIZED,
    ),
    rule(
        'person_algerian', 'Nom avec filiation',
        rf"\b({NAME_WORD}\s+(?:ben|ibn|ould|bent)\s+{NAME_WORD})",
        EntityType.PERSON,
        flags=0,
        subtype='algerian_name',
        value_group=1,
        normalizer=normalize_person,
        context_category='person',
        well_formed=CAPITALIZED,
    ),
    rule(
        'person_arabic', 'Nom en arabe',
        r"([\u0600-\u06FF]+(?:[ \t]+[\u0600-\u06FF]+)*)",
        EntityType.PERSON,
        subtype='arabic_name',
        value_group=1,
        base_confidence=0.5,
        context_category='person',
    ),

    # Organizations
    rule(
        'org_ministry', 'Ministère',
        rf"\b(minist[èe]re\s+{OF_ARTICLE}?[^\W\d_][\w'’ -]*?)(?=\s+et\s+|\s*[,;.()\n]|$)",
        EntityType.ORGANIZATION,
        subtype='ministry',
        value_group=1,
        context_category='org',
        well_formed=CAPITALIZED,
        reference=is_known_ministry,
        reference_penalty=False,
    ),
    rule(
        'org_direction', 'Direction',
        rf"\b(direction\s+{OF_ARTICLE}?[^\W\d_][\w'’ -]*?)(?=\s+et\s+|\s*[,;.()\n]|$)",
        EntityType.ORGANIZATION,
        subtype='direction',
        value_group=1,
        context_category='org',
        well_formed=CAPITALIZED,
    ),
    rule(
        'org_parliament', 'Parlement',
        r"\b(Assembl[ée]e\s+Populaire\s+Nationale|APN|Conseil\s+de\s+la\s+Nation|S[ée]nat)\b",
        EntityType.ORGANIZATION,
        subtype='parliament',
        value_group=1,
        context_category='org',
        well_formed=CAPITALIZED,
    ),
    rule(
        'org_public', 'Institution publique',
        r"\b(Banque\s+(?:d['’])?Alg[ée]rie|Banque\s+Centrale|Office\s+National\s+[^\W\d_][\w'’ -]*?)(?=\s*[,;.()\n]|$)",
        EntityType.ORGANIZATION,
        subtype='public_institution',
        value_group=1,
        context_category='org',
        well_formed=CAPITALIZED,
    ),

    # Locations
    rule(
        'loc_wilaya', 'Wilaya',
        rf"\bwilaya\s+{OF_ARTICLE}?{NAME_UNTIL_BREAK}",
        EntityType.LOCATION,
        subtype='wilaya',
        value_group=1,
        normalizer=normalize_location,
        context_category='loc',
        well_formed=CAPITALIZED,
        reference=is_known_wilaya,
    ),
    rule(
        'loc_daira', 'Daïra',
        rf"\bda[iï]ra\s+{OF_ARTICLE}?{NAME_UNTIL_BREAK}",
        EntityType.LOCATION,
        subtype='daira',
        value_group=1,
        normalizer=normalize_location,
        context_category='loc',
        well_formed=CAPITALIZED,
    ),
    rule(
        'loc_commune', 'Commune',
        rf"\bcommune\s+{OF_ARTICLE}?{NAME_UNTIL_BREAK}",
        EntityType.LOCATION,
        subtype='commune',
        value_group=1,
        normalizer=normalize_location,
        context_category='loc',
        well_formed=CAPITALIZED,
    ),
    rule(
        'loc_city', 'Ville',
        rf"\b({CITY_PATTERN})\b",
        EntityType.LOCATION,
        subtype='city',
        value_group=1,
        normalizer=normalize_location,
        context_category='loc',
        well_formed=CAPITALIZED,
    ),

    # Dates
    rule(
        'date_french', 'Date en toutes lettres',
        rf"\b{DATE_TEXT}\b",
        EntityType.DATE,
        subtype='full_date_fr',
        normalizer=normalize_date,
        context_category='date',
        well_formed=DATE_TEXT,
    ),
    rule(
        'date_numeric', 'Date numérique',
        r"\b\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}\b",
        EntityType.DATE,
        subtype='numeric_date',
        normalizer=normalize_date,
        context_category='date',
        well_formed=r'\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}',
    ),
    rule(
        'date_hijri', 'Date hégirienne',
        rf"\b(?:(\d{{1,2}}|aouel|1er)\s+)?({HIJRI_MONTHS})\s+(\d{{4}})\b",
        EntityType.DATE,
        subtype='hijri_date',
        fields=('day', 'month', 'year'),
        context_category='date',
    ),

    # Amounts
    rule(
        'money_dinar', 'Montant en dinars',
        r"(?<![\d.,])(\d+(?:[. ]\d{3})*(?:,\d{1,2})?\s*(?:DA|dinars?|DZD|centimes?))\b",
        EntityType.MONEY,
        subtype='algerian_dinar',
        value_group=1,
        normalizer=normalize_money,
        well_formed=r'\d+(?:[.,]\d{2})?\s*(?:DA|DZD|dinars?)',
    ),
    rule(
        'money_foreign', 'Montant en devises',
        r"(?<![\d.,])(\d+(?:[. ]\d{3})*(?:,\d{1,2})?\s*(?:€|euros?|EUR|\$|dollars?|USD))",
        EntityType.MONEY,
        subtype='foreign_currency',
        value_group=1,
        normalizer=foreign_money,
    ),
    rule(
        'percentage', 'Pourcentage',
        r"(?<![\d.,])(\d+(?:,\d+)?)\s*(?:%|pour\s+cent|pourcent)",
        EntityType.PERCENT,
        subtype='percentage',
        normalizer=normalize_percent,
        well_formed=r'\d+(?:,\d+)?\s*%',
    ),

    # Legal references
    rule(
        'law_reference', 'Loi',
        rf"\bloi\s+(?:organique\s+)?(?:{NUMBER_MARK})\s*({LAW_NUMBER})(?:\s*du\s+({DATE_TEXT}))?",
        EntityType.LAW,
        subtype='law_reference',
        fields=('number', 'date'),
        value_group=1,
        normalizer=normalize_law_number,
        context_category='law',
        well_formed=LAW_NUMBER,
    ),
    rule(
        'law_decree', 'Décret exécutif',
        rf"\bd[ée]cret\s+ex[ée]cutif\s*(?:{NUMBER_MARK})\s*({LAW_NUMBER})(?:\s*du\s+({DATE_TEXT}))?",
        EntityType.LAW,
        subtype='decree',
        fields=('number', 'date'),
        value_group=1,
        normalizer=normalize_law_number,
        context_category='law',
        well_formed=LAW_NUMBER,
    ),
    rule(
        'law_order', 'Arrêté',
        rf"\barr[êe]t[ée]\s+(?:(?:inter)?minist[ée]riel\s+)?(?:{NUMBER_MARK})\s*(\d+[-/]\d+)",
        EntityType.LAW,
        subtype='ministerial_order',
        fields=('number',),
        value_group=1,
        context_category='law',
        well_formed=LAW_NUMBER,
    ),

    # Titles
    rule(
        'title', 'Titre officiel',
        r"(?<!-)\b(Ministre|Secr[ée]taire\s+g[ée]n[ée]ral|Directeur\s+g[ée]n[ée]ral|Wali|Pr[ée]sident|"
        r"Vice-pr[ée]sident|Chef\s+de\s+cabinet|Inspecteur\s+g[ée]n[ée]ral)\b",
        EntityType.TITLE,
        subtype='official_title',
        value_group=1,
        context_category='person',
    ),
]

ENTITY_CONTEXT = {
    'person': keywords(r'monsieur', r'madame', r'\bm\.', r'\bmme\b', r'pr[ée]sident', r'ministre', r'directeur'),
    'org': keywords(r'minist[èe]re', r'direction', r'service', r'bureau', r'administration'),
    'loc': keywords(r'wilaya', r'commune', r'da[iï]ra', r'ville', r'r[ée]gion', r'situ[ée]'),
    'law': keywords(r'promulgu', r'publi[ée]', r'journal\s+officiel', r'adopt[ée]'),
    'date': keywords(r'\bdu\b', r'\ble\b', r'en\s+date', r'sign[ée]', r'publi[ée]'),
}

ENTITY_LIBRARY = RuleLibrary(
    name='entities',
    rules=ENTITY_RULES,
    context_keywords=ENTITY_CONTEXT,
    link_pairs={
        frozenset((EntityType.PERSON, EntityType.ORGANIZATION)),
        frozenset((EntityType.PERSON, EntityType.TITLE)),
        frozenset((EntityType.ORGANIZATION, EntityType.LOCATION)),
        frozenset((EntityType.LAW, EntityType.DATE)),
        frozenset((EntityType.LAW, EntityType.PERSON)),
    },
    id_prefix='ent',
    default_config=RecognizerConfig(confidence_threshold=0.6, context_radius=100, link_distance=100),
)


@dataclass
class RelationRule:
    relation_type: str
    source_type: EntityType
    target_type: EntityType
    trigger: re.Pattern
    confidence: float


RELATION_RULES = [
    RelationRule('WORKS_FOR', EntityType.PERSON, EntityType.ORGANIZATION,
                 re.compile(r'ministre|directeur|chef|pr[ée]sident'), 0.8),
    RelationRule('LOCATED_IN', EntityType.ORGANIZATION, EntityType.LOCATION,
                 re.compile(r"\bde\s+|\bd['’]|situ[ée]e?\s+[àa]|bas[ée]e?\s+[àa]"), 0.7),
    RelationRule('SIGNED_BY', EntityType.LAW, EntityType.PERSON,
                 re.compile(r'(?:sign[ée]|promulgu[ée]|adopt[ée])e?\s+par'), 0.8),
]

RELATION_DISTANCE = 200


def extract_relations(entities: list[Entity], text: str,
                      confidence_threshold: float = 0.6,
                      max_distance: int = RELATION_DISTANCE) -> list[EntityRelation]:
    """Typed relations between entities whose starts are within ``max_distance``."""
    relations = []
    for i, first in enumerate(entities):
        for second in entities[i + 1:]:
            if abs(first.start - second.start) > max_distance:
                continue
            for source, target in ((first, second), (second, first)):
                relation = _match_relation(source, target, text)
                if relation and relation.confidence >= confidence_threshold:
                    relation.relation_id = f"rel_{len(relations)}"
                    relations.append(relation)
    return relations


def _match_relation(source: Entity, target: Entity, text: str) -> Optional[EntityRelation]:
    start = min(source.start, target.start)
    end = max(source.end, target.end)
    context = text[start:end].lower()
    for relation_rule in RELATION_RULES:
        if source.entity_type != relation_rule.source_type or target.entity_type != relation_rule.target_type:
            continue
        if relation_rule.trigger.search(context):
            return EntityRelation(
                relation_id='',
                source_id=source.entity_id,
                target_id=target.entity_id,
                relation_type=relation_rule.relation_type,
                confidence=relation_rule.confidence,
                context=context,
            )
    return None


class NamedEntityRecognizer(PatternRecognizer):
    """
    Named-entity recognizer: the generic recognizer over the entity library,
    plus relation extraction.

    Usage:
        result = NamedEntityRecognizer().recognize(text)
        persons = result.by_type(EntityType.PERSON)
    """

    def __init__(self, config: Optional[RecognizerConfig] = None, extract_relations: bool = True):
        super().__init__(ENTITY_LIBRARY, config)
        self.extract_relations = extract_relations

    def recognize(self, text: str) -> EntityExtractionResult:
        result = super().recognize(text)
        if self.extract_relations and result.entities:
            result.relations = extract_relations(
                result.entities, text, self.config.confidence_threshold,
            )
            logger.debug(f"Found {len(result.relations)} entity relations")
        return result


def recognize_named_entities(text: str, config: Optional[RecognizerConfig] = None) -> EntityExtractionResult:
    return NamedEntityRecognizer(config).recognize(text)
