"""
Legal Rule Library

Rules for Algerian legal and administrative references: laws, ordinances
and codes, decrees and arrêtés, institutions (ministries, wilayas,
directions), dates, amounts, official titles and article numbers.
"""

import re
from typing import Optional

from .knowledge import is_known_ministry, is_known_wilaya
from .normalizers import (
    MONTH_NAMES,
    normalize_date,
    normalize_law_number,
    normalize_location,
    normalize_money,
    normalize_percent,
    normalize_whitespace,
)
from .recognizer import (
    EntityType,
    PatternRecognizer,
    RecognizerConfig,
    RuleLibrary,
    keywords,
    rule,
)


NUMBER_MARK = r"n\s*°|n[o°]\.?|num[ée]ro|num\."
DATE_TEXT = rf"\d{{1,2}}(?:er)?\s+(?:{MONTH_NAMES})\s+\d{{4}}"
LAW_NUMBER = r"\d{2}[-/]\d{2,3}"
OF_ARTICLE = r"(?:de\s+la\s+|de\s+l['’]|des\s+|du\s+|de\s+|d['’])"
NAME_UNTIL_BREAK = r"([^\W\d_][\w'’ -]*?)(?=\s+et\s+|\s*[,;.()\n]|$)"


def reference_number(text: str) -> Optional[str]:
    """Law-style number when possible, otherwise the number as written."""
    return normalize_law_number(text) or normalize_whitespace(text).replace('/', '-')


def article_value(text: str) -> str:
    match = re.search(r'(\d+)(?:\s*(bis|ter|quater))?', text, re.IGNORECASE)
    if not match:
        return normalize_whitespace(text)
    suffix = f" {match.group(2).lower()}" if match.group(2) else ''
    return f"article {match.group(1)}{suffix}"


def _decree_rules():
    kinds = (
        ('executif', r'ex[ée]cutif'),
        ('presidentiel', r'pr[ée]sidentiel'),
        ('legislatif', r'l[ée]gislatif'),
    )
    return [
        rule(
            f'decree_{subtype}', f'Décret {subtype}',
            rf"\bd[ée]cret\s+{word}\s*(?:{NUMBER_MARK})\s*({LAW_NUMBER})(?:\s*du\s+({DATE_TEXT}))?",
            EntityType.DECREE,
            subtype=subtype,
            fields=('number', 'date'),
            value_group=1,
            normalizer=normalize_law_number,
            context_category='decree',
            well_formed=LAW_NUMBER,
            sub_entities={'date': EntityType.DATE},
        )
        for subtype, word in kinds
    ]


LEGAL_RULES = [
    rule(
        'law_reference', 'Loi avec numéro',
        rf"\bloi\s+(?:organique\s+)?(?:{NUMBER_MARK})\s*({LAW_NUMBER})(?:\s*du\s+({DATE_TEXT}))?",
        EntityType.LAW,
        subtype='loi',
        fields=('number', 'date'),
        value_group=1,
        normalizer=normalize_law_number,
        context_category='law',
        well_formed=LAW_NUMBER,
        sub_entities={'date': EntityType.DATE},
    ),
    rule(
        'ordinance_reference', 'Ordonnance avec numéro',
        rf"\bordonnance\s+(?:{NUMBER_MARK})\s*({LAW_NUMBER})(?:\s*du\s+({DATE_TEXT}))?",
        EntityType.LAW,
        subtype='ordonnance',
        fields=('number', 'date'),
        value_group=1,
        normalizer=normalize_law_number,
        context_category='law',
        well_formed=LAW_NUMBER,
        sub_entities={'date': EntityType.DATE},
    ),
    rule(
        'code_reference', 'Code',
        rf"\bcode\s+{OF_ARTICLE}?([^\W\d_]+(?:[ \t]+[^\W\d_]+){{0,2}}?)(?:\s*(?:{NUMBER_MARK})\s*(\d+[-/]\d+))?(?=\s*[,;.()\n]|$)",
        EntityType.LAW,
        subtype='code',
        fields=('code_name', 'number'),
        value_group=0,
        context_category='law',
        well_formed=LAW_NUMBER,
    ),
    *_decree_rules(),
    rule(
        'arrete_reference', 'Arrêté ministériel',
        rf"\barr[êe]t[ée]\s+(?:(?:inter)?minist[ée]riel\s+)?(?:{NUMBER_MARK})\s*(\d+[-/]\d+)(?:\s*du\s+({DATE_TEXT}))?",
        EntityType.DECREE,
        subtype='arrete',
        fields=('number', 'date'),
        value_group=1,
        normalizer=reference_number,
        context_category='decree',
        well_formed=LAW_NUMBER,
        sub_entities={'date': EntityType.DATE},
    ),
    rule(
        'ministry', 'Ministère',
        rf"\bminist[èe]re\s+{OF_ARTICLE}?{NAME_UNTIL_BREAK}",
        EntityType.INSTITUTION,
        subtype='ministry',
        fields=('ministry_name',),
        context_category='ministry',
        reference=is_known_ministry,
        reference_penalty=False,
    ),
    rule(
        'wilaya', 'Wilaya',
        rf"\bwilaya\s+{OF_ARTICLE}?{NAME_UNTIL_BREAK}",
        EntityType.LOCATION,
        subtype='wilaya',
        fields=('wilaya_name',),
        value_group=1,
        normalizer=normalize_location,
        context_category='institution',
        reference=is_known_wilaya,
    ),
    rule(
        'direction', 'Direction',
        rf"\bdirection\s+{OF_ARTICLE}?{NAME_UNTIL_BREAK}",
        EntityType.INSTITUTION,
        subtype='direction',
        fields=('direction_name',),
        context_category='institution',
    ),
    rule(
        'date_french', 'Date en toutes lettres',
        rf"\b{DATE_TEXT}\b",
        EntityType.DATE,
        base_confidence=0.7,
        normalizer=normalize_date,
    ),
    rule(
        'date_numeric', 'Date numérique',
        r"\b\d{1,2}/\d{1,2}/\d{2,4}\b",
        EntityType.DATE,
        base_confidence=0.7,
        normalizer=normalize_date,
    ),
    rule(
        'amount_dinars', 'Montant en dinars',
        r"(?<![\d.,])(\d+(?:[. ]\d{3})*(?:,\d{1,2})?)\s*(?:da|dinars?|dzd)\b",
        EntityType.MONEY,
        fields=('amount',),
        value_group=1,
        base_confidence=0.7,
        normalizer=normalize_money,
    ),
    rule(
        'percentage', 'Pourcentage',
        r"(?<![\d.,])(\d+(?:[.,]\d+)?)\s*%",
        EntityType.PERCENT,
        base_confidence=0.7,
        normalizer=normalize_percent,
    ),
    rule(
        'official_title', 'Titre administratif',
        rf"\b(monsieur|madame)\s+(?:le\s+|la\s+)?(ministre|directeur|directrice|chef|secr[ée]taire\s+g[ée]n[ée]ral|wali|pr[ée]sident|vice-pr[ée]sident)(?:\s+{OF_ARTICLE}([^\W\d_][\w'’ -]*?))?(?=\s*[,;.()\n]|$)",
        EntityType.TITLE,
        fields=('honorific', 'title', 'department'),
        value_group=2,
        base_confidence=0.7,
        sub_entities={'department': EntityType.INSTITUTION},
    ),
    rule(
        'article', 'Article avec numéro',
        r"\b(?:article|art\.)\s*(\d+)(?:\s*(bis|ter|quater))?\b",
        EntityType.MISC,
        subtype='article',
        fields=('article_number', 'suffix'),
        base_confidence=0.7,
        normalizer=article_value,
    ),
]

LEGAL_CONTEXT = {
    'ministry': keywords(r'r[ée]publique', r'alg[ée]rie', r'gouvernement', r'cabinet', r'secr[ée]tariat'),
    'law': keywords(r'journal\s+officiel', r'\bjo\b', r'promulgu', r'publi[ée]', r'adopt[ée]'),
    'decree': keywords(r'ex[ée]cution', r'application', r'fixant', r'portant', r'relatif'),
    'institution': keywords(r'administration', r'service', r'bureau', r'd[ée]partement'),
}

LEGAL_LIBRARY = RuleLibrary(
    name='legal',
    rules=LEGAL_RULES,
    context_keywords=LEGAL_CONTEXT,
    link_pairs={
        frozenset((EntityType.LAW, EntityType.DATE)),
        frozenset((EntityType.DECREE, EntityType.DATE)),
    },
    id_prefix='legal',
    default_config=RecognizerConfig(confidence_threshold=0.7, context_radius=100, link_distance=50),
)


def recognize_legal_patterns(text: str, config: Optional[RecognizerConfig] = None):
    """Legal references, institutions, dates and amounts in ``text``."""
    return PatternRecognizer(LEGAL_LIBRARY, config).recognize(text)
