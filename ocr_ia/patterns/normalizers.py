"""
Normalizers Module

Canonical forms for values recognized in Algerian legal text.

What normalization does:
- Dates → dd/mm/yyyy (French month names, "1er", numeric dates)
- Amounts → float, displayed as "<amount> DZD"
- Law/decree numbers → "NN-NNN"
- Locations and persons → administrative prefixes and honorifics stripped
- Durations → unit names (days, weeks, months, years, hours) and day counts
- Phones → "+213XXXXXXXXX"

The mapper and the validator compare values through these forms, so
"5 janvier 2020" and "05/01/2020" are the same date.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from dateutil import parser as date_parser
from loguru import logger


FRENCH_MONTHS = {
    'janvier': 1, 'février': 2, 'fevrier': 2, 'mars': 3, 'avril': 4,
    'mai': 5, 'juin': 6, 'juillet': 7, 'août': 8, 'aout': 8,
    'septembre': 9, 'octobre': 10, 'novembre': 11, 'décembre': 12, 'decembre': 12,
}

MONTH_NAMES = (
    'janvier|février|fevrier|mars|avril|mai|juin|juillet|août|aout|'
    'septembre|octobre|novembre|décembre|decembre'
)

DURATION_UNITS = {
    'jour': 'days', 'jours': 'days',
    'semaine': 'weeks', 'semaines': 'weeks',
    'mois': 'months',
    'an': 'years', 'ans': 'years', 'année': 'years', 'années': 'years',
    'heure': 'hours', 'heures': 'hours',
}

DAYS_PER_UNIT = {
    'hours': 1 / 24,
    'days': 1,
    'weeks': 7,
    'months': 30,
    'years': 365,
}


class FrenchParserInfo(date_parser.parserinfo):
    """dateutil vocabulary for French dates."""
    MONTHS = [
        ('janvier', 'janv'),
        ('février', 'fevrier', 'févr', 'fevr'),
        ('mars',),
        ('avril', 'avr'),
        ('mai',),
        ('juin',),
        ('juillet', 'juil'),
        ('août', 'aout'),
        ('septembre', 'sept'),
        ('octobre', 'oct'),
        ('novembre', 'nov'),
        ('décembre', 'decembre', 'déc', 'dec'),
    ]
    JUMP = [' ', '.', ',', ';', '-', '/', "'", 'le', 'du', 'au', 'en', 'de', 'er']

    def __init__(self):
        super().__init__(dayfirst=True)


_PARSER_INFO = FrenchParserInfo()

FRENCH_DATE = re.compile(rf'(\d{{1,2}})(?:er)?\s+({MONTH_NAMES})\s+(\d{{4}})', re.IGNORECASE)
NUMERIC_DATE = re.compile(r'(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2,4})')


def parse_date(text: str) -> Optional[date]:
    """
    Parse a French or numeric (day first) date.

    Returns:
        date or None when the text holds no valid date
    """
    if not text:
        return None
    text = str(text).strip()

    match = FRENCH_DATE.search(text)
    if match:
        day, month, year = int(match.group(1)), FRENCH_MONTHS[match.group(2).lower()], int(match.group(3))
        try:
            return date(year, month, day)
        except ValueError:
            logger.debug(f"Invalid calendar date: {match.group(0)}")
            return None

    match = NUMERIC_DATE.search(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        if year < 100:
            year += 2000 if year < 50 else 1900
        try:
            return date(year, month, day)
        except ValueError:
            logger.debug(f"Invalid calendar date: {match.group(0)}")
            return None

    # Abbreviated forms such as "15 janv. 2020"; needs a word and a year
    if not (re.search(r'[^\W\d_]{3,}', text) and re.search(r'\b\d{4}\b', text)):
        return None
    try:
        return date_parser.parse(text, parserinfo=_PARSER_INFO, fuzzy=True, default=datetime(2000, 1, 1)).date()
    except (ValueError, OverflowError):
        return None


def normalize_date(text: str) -> Optional[str]:
    """'5 janvier 2020' → '05/01/2020'."""
    parsed = parse_date(text)
    return parsed.strftime('%d/%m/%Y') if parsed else None


def parse_amount(text: str) -> Optional[float]:
    """
    Numeric value of an amount.

    Handles "1.500,00 DA", "1 500 dinars", "2500,5" and "12.000".
    """
    if not text:
        return None
    match = re.search(r'\d[\d\s., ]*', str(text))
    if not match:
        return None
    raw = re.sub(r'[\s ]', '', match.group(0)).rstrip('.,')

    if ',' in raw and '.' in raw:
        raw = raw.replace('.', '').replace(',', '.')
    elif ',' in raw:
        head, _, tail = raw.rpartition(',')
        raw = f"{head.replace(',', '')}.{tail}" if len(tail) <= 2 else raw.replace(',', '')
    elif raw.count('.') == 1:
        head, _, tail = raw.partition('.')
        if len(tail) == 3:
            raw = head + tail
    elif raw.count('.') > 1:
        raw = raw.replace('.', '')

    try:
        return float(Decimal(raw))
    except InvalidOperation:
        logger.debug(f"Could not parse amount: {text}")
        return None


def format_amount(amount: float, currency: str = 'DZD') -> str:
    if float(amount).is_integer():
        return f"{int(amount)} {currency}"
    return f"{amount:.2f} {currency}"


def normalize_money(text: str) -> Optional[str]:
    """'1.500,00 DA' → '1500 DZD'."""
    amount = parse_amount(text)
    if amount is None:
        return None
    return format_amount(amount)


def normalize_law_number(text: str) -> Optional[str]:
    """'12/34' or 'n° 12-34' → '12-34'."""
    match = re.search(r'(\d{2,4})\s*[-/]\s*(\d{1,4})', text or '')
    if not match:
        return None
    return f"{match.group(1)}-{match.group(2)}"


def normalize_whitespace(text: str) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def normalize_location(text: str) -> str:
    """Strip "Wilaya de", "Commune de", "Daïra de" prefixes."""
    return re.sub(
        r"^(?:wilaya|commune|da[iï]ra)\s+(?:de\s+(?:la\s+)?|d')?",
        '',
        normalize_whitespace(text),
        flags=re.IGNORECASE,
    ).strip()


def normalize_person(text: str) -> str:
    """Strip honorifics such as "M.", "Mme", "Monsieur", "Dr"."""
    return re.sub(
        r'^(?:M\.|Mme|Mlle|Monsieur|Madame|Mademoiselle|Dr\.?|Professeur)\s+',
        '',
        normalize_whitespace(text),
        flags=re.IGNORECASE,
    ).strip()


def normalize_duration_unit(unit: str) -> str:
    return DURATION_UNITS.get((unit or '').strip().lower(), 'days')


def duration_in_days(value: float, unit: str) -> float:
    """Length in days; week = 7, month = 30, year = 365."""
    return value * DAYS_PER_UNIT.get(unit, 1)


def normalize_phone(text: str) -> Optional[str]:
    """Algerian mobile/landline number in international form, or None."""
    digits = re.sub(r'[^\d+]', '', text or '')
    if digits.startswith('+213'):
        local = digits[4:]
    elif digits.startswith('00213'):
        local = digits[5:]
    elif digits.startswith('0'):
        local = digits[1:]
    else:
        return None
    if len(local) in (8, 9) and local.isdigit():
        return f"+213{local}"
    return None


def normalize_value(text: str) -> str:
    """Comparison key: lowercase, single spaces."""
    return normalize_whitespace(text).lower()


ARABIC_SCRIPT = re.compile(r'[\u0600-\u06FF]')
LATIN_SCRIPT = re.compile(r'[A-Za-zÀ-ÿ]')


def detect_language(text: str) -> str:
    """Dominant script tag: 'ar', 'fr' or 'mixed'; 'fr' for empty text."""
    has_arabic = bool(ARABIC_SCRIPT.search(text or ''))
    has_latin = bool(LATIN_SCRIPT.search(text or ''))
    if has_arabic and has_latin:
        return 'mixed'
    if has_arabic:
        return 'ar'
    return 'fr'


def normalize_percent(text: str) -> Optional[str]:
    """'15,5 %' → '15.5%'."""
    match = re.search(r'\d+(?:[.,]\d+)?', text or '')
    if not match:
        return None
    return f"{match.group(0).replace(',', '.')}%"
