"""
Reference Knowledge

Closed reference lists used to confirm or penalize recognized values:
the 48 wilayas with their official codes, ministry names, a commune table
for geographic consistency, and known administrative document names.
"""

import re
import unicodedata
from typing import Optional


# Official order: position + 1 is the wilaya code
WILAYAS = [
    'Adrar', 'Chlef', 'Laghouat', 'Oum El Bouaghi', 'Batna', 'Béjaïa', 'Biskra',
    'Béchar', 'Blida', 'Bouira', 'Tamanrasset', 'Tébessa', 'Tlemcen', 'Tiaret',
    'Tizi Ouzou', 'Alger', 'Djelfa', 'Jijel', 'Sétif', 'Saïda', 'Skikda',
    'Sidi Bel Abbès', 'Annaba', 'Guelma', 'Constantine', 'Médéa', 'Mostaganem',
    "M'Sila", 'Mascara', 'Ouargla', 'Oran', 'El Bayadh', 'Illizi', 'Bordj Bou Arréridj',
    'Boumerdès', 'El Tarf', 'Tindouf', 'Tissemsilt', 'El Oued', 'Khenchela',
    'Souk Ahras', 'Tipaza', 'Mila', 'Aïn Defla', 'Naâma', 'Aïn Témouchent',
    'Ghardaïa', 'Relizane',
]

MINISTRIES = [
    'Affaires étrangères', 'Intérieur', 'Justice', 'Défense nationale',
    'Finances', 'Éducation nationale', 'Enseignement supérieur',
    'Santé', 'Agriculture', 'Industrie', 'Commerce', 'Travail',
    'Transport', 'Habitat', 'Énergie', 'Tourisme', 'Culture',
    'Jeunesse et Sports', 'Solidarité nationale', 'Communication',
]

# Communes other than the wilaya seats, keyed to their wilaya code
COMMUNES = {
    'Bab El Oued': 16, 'Hussein Dey': 16, 'Bir Mourad Raïs': 16, 'El Harrach': 16,
    'Kouba': 16, 'Bab Ezzouar': 16, 'Chéraga': 16, 'Dar El Beïda': 16,
    'Es Senia': 31, 'Arzew': 31, 'Bir El Djir': 31, 'Aïn El Turck': 31,
    'El Khroub': 25, 'Hamma Bouziane': 25, 'Aïn Smara': 25,
    'Boufarik': 9, 'Mouzaïa': 9, 'Larbaa': 9,
    'Akbou': 6, 'Amizour': 6, 'Kherrata': 6,
    'El Eulma': 19, 'Aïn Oulmene': 19,
    'Azazga': 15, 'Draâ Ben Khedda': 15, 'Larbaâ Nath Irathen': 15,
    'El Bouni': 23, 'El Hadjar': 23,
    'Maghnia': 13, 'Ghazaouet': 13,
    'Hassi Messaoud': 30, 'Touggourt': 30,
    'Barika': 5, 'Aïn Touta': 5,
    'Aïn Oussera': 17, 'Messaad': 17,
    'Tolga': 7, 'Sidi Okba': 7,
    'Bou Saâda': 28,
    'Metlili': 47,
    'Kolea': 42, 'Cherchell': 42,
}

KNOWN_DOCUMENTS = {
    'certificate': [
        'acte de naissance', 'extrait de naissance', 'certificat de nationalité',
        'certificat de résidence', 'certificat médical', 'certificat de scolarité',
        'certificat de travail', 'attestation de salaire', 'attestation de domicile',
    ],
    'form': [
        'formulaire de demande', 'imprimé', 'bordereau', 'déclaration',
        'demande manuscrite', 'lettre de motivation',
    ],
    'identification': [
        "carte d'identité", 'carte nationale', 'passeport', 'permis de conduire',
    ],
    'proof': [
        'justificatif de revenus', 'justificatif de domicile', 'preuve de paiement',
        'quittance', 'facture', 'relevé bancaire',
    ],
}


def fold(text: str) -> str:
    """Lowercase, accent-free, single-spaced form used for lookups."""
    decomposed = unicodedata.normalize('NFKD', text or '')
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    stripped = stripped.replace('’', "'").replace('-', ' ')
    return re.sub(r'\s+', ' ', stripped).strip().lower()


_WILAYA_CODES = {fold(name): code for code, name in enumerate(WILAYAS, start=1)}
_COMMUNE_WILAYAS = {fold(name): code for name, code in COMMUNES.items()}


def wilaya_code(value: str) -> Optional[int]:
    """Code 1-48 for a wilaya name or numeric code, None if unknown."""
    if value is None:
        return None
    text = str(value).strip()
    if text.isdigit():
        code = int(text)
        return code if 1 <= code <= len(WILAYAS) else None
    return _WILAYA_CODES.get(fold(re.sub(r"^(?:wilaya\s+)?(?:de\s+|d')?(?:la\s+)?", '', text, flags=re.IGNORECASE)))


def wilaya_name(code: int) -> Optional[str]:
    if 1 <= code <= len(WILAYAS):
        return WILAYAS[code - 1]
    return None


def is_known_wilaya(text: str) -> bool:
    folded = fold(text)
    return any(name in folded for name in _WILAYA_CODES)


def is_known_ministry(text: str) -> bool:
    folded = fold(text)
    return any(fold(m) in folded for m in MINISTRIES)


def commune_wilaya(commune: str) -> Optional[int]:
    """
    Wilaya code of a commune. Seat communes share their wilaya's name.
    """
    folded = fold(re.sub(r"^(?:commune\s+)?(?:de\s+|d')?", '', str(commune).strip(), flags=re.IGNORECASE))
    if folded in _COMMUNE_WILAYAS:
        return _COMMUNE_WILAYAS[folded]
    return _WILAYA_CODES.get(folded)


def is_known_document(text: str) -> bool:
    folded = fold(text)
    return any(fold(term) in folded for terms in KNOWN_DOCUMENTS.values() for term in terms)
