"""
Form Schema Registry

Provides form schemas by id or document type, with keyword-based detection
of the best schema for a text and a generic fallback when nothing specific
is registered.

Usage:
    registry = SchemaRegistry()
    schema = registry.get_schema('legal_publication')
    schema = registry.get_schema('decret')        # legal_publication
    schema = registry.get_schema('circulaire')    # falls back to 'generic'
    best = registry.detect(document_text)
"""

from pathlib import Path
from typing import Optional, Union

from loguru import logger

from .schema import FormSchema, load_schemas


GENERIC_SCHEMA_ID = 'generic'


def _field(field_id: str, label: str, field_type: str = 'text', required: bool = False, **kwargs) -> dict:
    return {'id': field_id, 'name': field_id, 'label': label, 'field_type': field_type, 'required': required, **kwargs}


LEGAL_PUBLICATION_SCHEMA = FormSchema.model_validate({
    'id': 'legal_publication',
    'name': 'Texte juridique publié au Journal officiel',
    'schema_type': 'legal',
    'description': 'Loi, ordonnance, décret ou arrêté publié au Journal officiel',
    'detection_keywords': [
        'journal officiel', 'république algérienne', 'loi', 'décret', 'ordonnance',
        'arrêté', 'vu la', 'promulgue', 'article',
    ],
    'sections': [
        {
            'id': 'identification',
            'title': 'Identification du texte',
            'fields': [
                _field('type_texte', 'Type de texte', 'select', True,
                       options=['loi', 'ordonnance', 'décret', 'arrêté', 'décision', 'circulaire']),
                _field('reference_legale', 'Référence légale', required=True,
                       synonyms=['loi n°', 'ordonnance n°', 'référence']),
                _field('numero_decret', 'Numéro de décret', synonyms=['décret n°', 'décret exécutif n°']),
                _field('date_emission', "Date d'émission", 'date', True, synonyms=['en date du', 'daté du']),
                _field('date_publication', 'Date de publication', 'date', synonyms=['publié le']),
            ],
        },
        {
            'id': 'origine',
            'title': 'Origine',
            'fields': [
                _field('administration', 'Institution émettrice', required=True,
                       synonyms=['ministère', 'présidence', 'direction']),
                _field('signataire', 'Signataire', synonyms=['signé', 'fait à alger']),
                _field('wilaya', 'Wilaya'),
            ],
        },
        {
            'id': 'contenu',
            'title': 'Contenu',
            'fields': [
                _field('objet', 'Objet', 'textarea', synonyms=['portant', 'relatif à', 'fixant']),
                _field('montant', 'Montant', synonyms=['somme', 'total']),
            ],
        },
    ],
})

PROCEDURE_SCHEMA = FormSchema.model_validate({
    'id': 'administrative_procedure',
    'name': 'Procédure administrative',
    'schema_type': 'administrative',
    'description': 'Fiche de procédure : étapes, pièces, délais, frais et contacts',
    'detection_keywords': [
        'procédure', 'étape', 'dossier', 'pièces', 'documents requis', 'délai',
        'frais', 'guichet', 'demande',
    ],
    'sections': [
        {
            'id': 'procedure',
            'title': 'Procédure',
            'fields': [
                _field('nom_procedure', 'Intitulé de la procédure', required=True,
                       synonyms=['procédure', 'intitulé', 'demande de']),
                _field('organisme', 'Organisme responsable', synonyms=['administration', 'service']),
                _field('demandeur', 'Demandeur'),
            ],
        },
        {
            'id': 'conditions',
            'title': 'Délais et frais',
            'fields': [
                _field('delai', 'Délai de traitement', synonyms=['délai', 'durée']),
                _field('frais', 'Frais', synonyms=['coût', 'montant', 'tarif']),
            ],
        },
        {
            'id': 'contact',
            'title': 'Contact',
            'fields': [
                _field('adresse', 'Adresse'),
                _field('telephone', 'Téléphone', 'phone'),
                _field('email', 'Courriel', 'email'),
            ],
        },
    ],
})

CIVIL_STATUS_SCHEMA = FormSchema.model_validate({
    'id': 'civil_status',
    'name': "Demande d'état civil",
    'schema_type': 'personal',
    'description': 'Identité du demandeur pour un acte administratif',
    'detection_keywords': [
        'état civil', 'acte de naissance', 'né le', 'né à', 'carte nationale',
        'extrait', 'commune de',
    ],
    'fields': [
        _field('nom', 'Nom', required=True),
        _field('prenom', 'Prénom', required=True),
        _field('date_naissance', 'Date de naissance', 'date', True),
        _field('lieu_naissance', 'Lieu de naissance'),
        _field('numero_identite', "Numéro d'identité nationale", constraints={'pattern': r'^\d{18}$'}),
        _field('adresse', 'Adresse'),
        _field('commune', 'Commune'),
        _field('wilaya', 'Wilaya'),
        _field('telephone', 'Téléphone', 'phone'),
    ],
})

GENERIC_SCHEMA = FormSchema.model_validate({
    'id': GENERIC_SCHEMA_ID,
    'name': 'Formulaire générique',
    'schema_type': 'generic',
    'description': 'Champs communs utilisés quand aucun formulaire spécifique ne correspond',
    'fields': [
        _field('reference', 'Référence'),
        _field('date', 'Date', 'date'),
        _field('nom', 'Nom'),
        _field('organisme', 'Organisme'),
        _field('adresse', 'Adresse'),
        _field('montant', 'Montant'),
    ],
})

BUILTIN_SCHEMAS = [LEGAL_PUBLICATION_SCHEMA, PROCEDURE_SCHEMA, CIVIL_STATUS_SCHEMA, GENERIC_SCHEMA]

# Document types with a dedicated built-in form
DOCUMENT_TYPE_SCHEMAS = {
    'loi': 'legal_publication',
    'ordonnance': 'legal_publication',
    'decret': 'legal_publication',
    'décret': 'legal_publication',
    'arrete': 'legal_publication',
    'arrêté': 'legal_publication',
    'procedure': 'administrative_procedure',
    'procédure': 'administrative_procedure',
    'etat_civil': 'civil_status',
}


class SchemaRegistry:
    """
    Registry of form schemas.

    Provides:
    - Registration of schemas (built-in, Python or YAML)
    - Lookup by id, falling back to a schema of the same type, then generic
    - Detection of the best schema from document text
    """

    def __init__(self, include_builtin: bool = True):
        self._schemas: dict[str, FormSchema] = {}
        if include_builtin:
            for schema in BUILTIN_SCHEMAS:
                self.register(schema)

    def register(self, schema: FormSchema, overwrite: bool = False) -> None:
        """
        Register a schema.

        Raises:
            ValueError: If the id is taken and overwrite=False
        """
        if schema.id in self._schemas and not overwrite:
            raise ValueError(f"Form schema '{schema.id}' already registered")
        self._schemas[schema.id] = schema
        logger.debug(f"Registered form schema: {schema.id}")

    def unregister(self, schema_id: str) -> bool:
        if schema_id == GENERIC_SCHEMA_ID:
            return False
        return self._schemas.pop(schema_id, None) is not None

    def get(self, schema_id: str) -> Optional[FormSchema]:
        return self._schemas.get(schema_id)

    def get_schema(self, id_or_type: str) -> FormSchema:
        """
        Schema for a form id or document type.

        Document types (loi, décret, ...) resolve to their built-in form.
        Otherwise falls back to the first schema of the same ``schema_type``
        and then to the generic schema.
        """
        key = (id_or_type or '').strip().lower()
        if key in self._schemas:
            return self._schemas[key]

        alias = DOCUMENT_TYPE_SCHEMAS.get(key)
        if alias and alias in self._schemas:
            return self._schemas[alias]

        for schema in self._schemas.values():
            if schema.schema_type == key and schema.id != GENERIC_SCHEMA_ID:
                return schema

        logger.info(f"No form schema registered for '{id_or_type}', using generic schema")
        return self._schemas.get(GENERIC_SCHEMA_ID, GENERIC_SCHEMA)

    def list_schemas(self) -> list[FormSchema]:
        return list(self._schemas.values())

    def list_ids(self) -> list[str]:
        return list(self._schemas.keys())

    def detect_all(self, text: str, threshold: float = 0.2) -> list[tuple[FormSchema, float]]:
        """All schemas scoring at least ``threshold``, best first."""
        matches = []
        for schema in self._schemas.values():
            score = schema.detection_score(text)
            if score >= threshold:
                matches.append((schema, score))
        matches.sort(key=lambda x: x[1], reverse=True)
        return matches

    def detect(self, text: str, threshold: float = 0.3) -> FormSchema:
        """
        Best schema for a document text.

        Returns:
            The highest-scoring schema, or the generic schema when none
            reaches ``threshold``
        """
        matches = self.detect_all(text, threshold)
        if matches:
            schema, score = matches[0]
            logger.debug(f"Detected form schema: {schema.id} (score: {score:.2f})")
            return schema
        return self._schemas.get(GENERIC_SCHEMA_ID, GENERIC_SCHEMA)

    def load_yaml(self, path: Union[str, Path], overwrite: bool = True) -> int:
        """Register every schema declared in a YAML file."""
        count = 0
        for schema in load_schemas(path):
            self.register(schema, overwrite=overwrite)
            count += 1
        return count
