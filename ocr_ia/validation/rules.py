"""
Validation Rules

Locale rules for Algerian administrative data. Each rule is tagged with a
type, a severity and a domain category, and declares the field-name keywords
it applies to. A rule checks a value with a regex, a validator function, or
a plain non-empty test (``required``), and may propose a corrected value.

Rule types:
- format: the value must match a pattern
- range: a validator checks bounds
- required: the value must be non-empty
- consistency / business / regulatory: custom validators
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from ..errors import ValidationRuleError
from ..patterns.knowledge import wilaya_code

logger = logging.getLogger(__name__)


RULE_TYPES = ('format', 'range', 'required', 'consistency', 'business', 'regulatory')
SEVERITIES = ('error', 'warning', 'info')
CATEGORIES = ('administrative', 'legal', 'financial', 'personal', 'technical')

SEPARATORS = re.compile(r'[\s.\-()]')


@dataclass
class ValidationRule:
    """A single validation rule."""
    rule_id: str
    name: str
    rule_type: str
    message: str
    severity: str = 'error'
    category: str = 'administrative'
    description: str = ''
    keywords: Tuple[str, ...] = ()              # Field-name keywords; defaults to the rule id parts
    pattern: Optional[Pattern] = None
    validator: Optional[Callable[[str, Dict[str, Any]], bool]] = None
    fixer: Optional[Callable[[str], Optional[str]]] = None
    preprocess: Optional[Callable[[str], str]] = None

    def __post_init__(self):
        if not self.keywords:
            self.keywords = tuple(self.rule_id.lower().split('_'))

    def applies_to(self, field_name: str) -> bool:
        """Keyword match between the field name parts and the rule keywords."""
        parts = [p for p in re.split(r'[\s_\-]+', field_name.lower()) if p]
        for keyword in self.keywords:
            for part in parts:
                if keyword in part or (len(part) >= 3 and part in keyword):
                    return True
        return False

    def check(self, value: str, context: Optional[Dict[str, Any]] = None) -> bool:
        """
        Run the rule on a value.

        Raises:
            ValidationRuleError: If the validator itself fails
        """
        text = '' if value is None else str(value).strip()
        if self.preprocess is not None:
            text = self.preprocess(text)

        if self.pattern is not None:
            return bool(self.pattern.search(text))

        if self.validator is not None:
            try:
                return bool(self.validator(text, context or {}))
            except ValidationRuleError:
                raise
            except Exception as e:
                raise ValidationRuleError(self.rule_id, f"Rule {self.rule_id} failed on {text!r}: {e}") from e

        if self.rule_type == 'required':
            return len(text) > 0

        return True

    def suggest_fix(self, value: str) -> Optional[str]:
        if self.fixer is None:
            return None
        return self.fixer(str(value))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.rule_id,
            'name': self.name,
            'type': self.rule_type,
            'severity': self.severity,
            'category': self.category,
            'message': self.message,
        }


# -- fixes ----------------------------------------------------------------------

def fix_phone(value: str) -> str:
    digits = re.sub(r'\D', '', value)
    if len(digits) == 10 and digits.startswith('0'):
        return f"+213{digits[1:]}"
    if len(digits) == 12 and digits.startswith('213'):
        return f"+{digits}"
    return '+213XXXXXXXXX'


def fix_cin(value: str) -> Optional[str]:
    digits = re.sub(r'\D', '', value)
    if digits and len(digits) < 18:
        return digits.zfill(18)
    return None


def fix_date(value: str) -> Optional[str]:
    match = re.search(r'(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2,4})', value)
    if match:
        day, month, year = match.groups()
        return f"{day.zfill(2)}/{month.zfill(2)}/{year}"
    return None


def fix_amount(value: str) -> Optional[str]:
    match = re.search(r'(\d+(?:[.,]\d{2})?)', value.replace(' ', ''))
    if match:
        return f"{match.group(1).replace(',', '.')} DA"
    return None


def valid_wilaya(value: str, context: Dict[str, Any]) -> bool:
    """A wilaya code 01-48 or a wilaya name."""
    return wilaya_code(value) is not None


def strip_separators(value: str) -> str:
    return SEPARATORS.sub('', value)


ALGERIAN_RULES: List[ValidationRule] = [
    ValidationRule(
        rule_id='cin_format',
        name="Format Carte d'Identité Nationale",
        rule_type='format',
        description='Numéro national d\'identité algérien (18 chiffres)',
        pattern=re.compile(r'^\d{18}$'),
        message='Le numéro CIN doit contenir exactement 18 chiffres',
        severity='error',
        category='administrative',
        keywords=('cin', 'nin', 'identite'),
        preprocess=strip_separators,
        fixer=fix_cin,
    ),
    ValidationRule(
        rule_id='phone_algeria',
        name='Numéro de téléphone algérien',
        rule_type='format',
        pattern=re.compile(r'^(?:\+213|0)[567]\d{8}$'),
        message='Format téléphone invalide. Attendu: +213XXXXXXXXX ou 0XXXXXXXXX',
        severity='error',
        category='personal',
        keywords=('phone', 'telephone', 'tel', 'mobile', 'portable'),
        preprocess=strip_separators,
        fixer=fix_phone,
    ),
    ValidationRule(
        rule_id='postal_code_algeria',
        name='Code postal algérien',
        rule_type='format',
        pattern=re.compile(r'^\d{5}$'),
        message='Le code postal doit contenir 5 chiffres',
        severity='warning',
        category='administrative',
        keywords=('postal',),
    ),
    ValidationRule(
        rule_id='law_reference_format',
        name='Format référence légale',
        rule_type='format',
        pattern=re.compile(r'^\d{2}[-/]\d{2,3}$'),
        message='Format de référence légale invalide. Attendu: XX/XXX ou XX-XXX',
        severity='warning',
        category='legal',
        keywords=('loi', 'legale', 'decret'),
    ),
    ValidationRule(
        rule_id='wilaya_code',
        name='Code wilaya',
        rule_type='range',
        validator=valid_wilaya,
        message='Code wilaya invalide. Doit être entre 01 et 48',
        severity='error',
        category='administrative',
        keywords=('wilaya',),
    ),
    ValidationRule(
        rule_id='amount_format',
        name='Format montant en dinars',
        rule_type='format',
        pattern=re.compile(r'^\d{1,10}(?:[.,]\d{2})?(?:\s*(?:DA|DZD|dinars?))?$', re.IGNORECASE),
        message='Format de montant invalide. Exemple: 1000.00 DA',
        severity='warning',
        category='financial',
        keywords=('montant', 'amount', 'frais', 'cout', 'prix'),
        preprocess=lambda v: re.sub(r'(?<=\d) (?=\d{3}\b)', '', v),
        fixer=fix_amount,
    ),
    ValidationRule(
        rule_id='fiscal_number',
        name="Numéro d'identification fiscale",
        rule_type='format',
        pattern=re.compile(r'^\d{15}$'),
        message='Le NIF doit contenir exactement 15 chiffres',
        severity='error',
        category='financial',
        keywords=('fiscal', 'nif'),
        preprocess=strip_separators,
    ),
    ValidationRule(
        rule_id='date_format',
        name='Format de date',
        rule_type='format',
        pattern=re.compile(r'^(?:\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}|\d{1,2}(?:er)?\s+\w+\s+\d{4})$'),
        message='Format de date invalide. Utilisez JJ/MM/AAAA ou JJ mois AAAA',
        severity='warning',
        category='administrative',
        keywords=('date',),
        fixer=fix_date,
    ),
    ValidationRule(
        rule_id='required_administrative',
        name='Champs obligatoires administratifs',
        rule_type='required',
        message='Ce champ est obligatoire pour les procédures administratives',
        severity='error',
        category='administrative',
        keywords=('obligatoire', 'required', 'administrative'),
    ),
]


def get_rule(rule_id: str, rules: Optional[List[ValidationRule]] = None) -> Optional[ValidationRule]:
    for r in rules or ALGERIAN_RULES:
        if r.rule_id == rule_id:
            return r
    return None
