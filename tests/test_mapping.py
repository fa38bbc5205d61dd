"""
Tests for form schemas, the schema registry and the form mapper.
"""

import pytest
from pydantic import ValidationError

from ocr_ia.errors import MappingDataMissing
from ocr_ia.mapping import (
    ExtractionBundle,
    FormField,
    FormMapper,
    FormSchema,
    MappingConfig,
    MappingHistory,
    MappingSuggestion,
    SchemaRegistry,
    load_schemas,
    rank_suggestions,
    word_similarity,
)
from ocr_ia.patterns import EntityExtractionResult


IDENTITY_TEXT = "Nom: BENALI\nPrénom: Ahmed"


def phone_schema():
    return FormSchema.model_validate({
        'id': 'contact',
        'name': 'Contact',
        'fields': [{'id': 'telephone', 'name': 'telephone', 'label': 'Téléphone', 'field_type': 'phone'}],
    })


class TestFormSchema:
    """Tests for the pydantic schema model."""

    def test_top_level_fields_wrapped(self):
        schema = phone_schema()
        assert [s.id for s in schema.sections] == ['main']
        assert schema.field_ids == ['telephone']

    def test_unknown_field_type(self):
        with pytest.raises(ValidationError):
            FormField(id='x', name='x', field_type='color')

    def test_invalid_pattern(self):
        with pytest.raises(ValidationError):
            FormField(id='x', name='x', constraints={'pattern': '(unclosed'})

    def test_duplicate_field_ids(self):
        with pytest.raises(ValidationError):
            FormSchema.model_validate({
                'id': 'dup',
                'name': 'Dup',
                'fields': [{'id': 'nom', 'name': 'nom'}, {'id': 'nom', 'name': 'nom'}],
            })

    def test_search_terms(self):
        form_field = FormField(id='date_naissance', name='date_naissance',
                               label='Date de naissance', synonyms=['Né le'])
        assert form_field.search_terms() == ['date naissance', 'date de naissance', 'né le']

    def test_check_value(self):
        amount = FormField(id='montant', name='montant', field_type='number', constraints={'minimum': 0})
        assert amount.check_value("1 500,50") == []
        assert amount.check_value("-3") == ['below minimum 0.0']
        assert amount.check_value("beaucoup") == ['not a number']

        phone = FormField(id='tel', name='tel', field_type='phone')
        assert phone.check_value("0551 23 45 67") == []
        assert phone.check_value("inconnu") == ['not a phone number']

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "forms.yaml"
        path.write_text(
            "schemas:\n"
            "  - id: permis\n"
            "    name: Permis de construire\n"
            "    schema_type: administrative\n"
            "    detection_keywords: [permis, construire]\n"
            "    fields:\n"
            "      - id: demandeur\n"
            "        name: demandeur\n"
            "        required: true\n",
            encoding='utf-8',
        )

        schemas = load_schemas(path)

        assert len(schemas) == 1
        assert schemas[0].id == 'permis'
        assert schemas[0].required_fields == ['demandeur']

    def test_load_invalid_yaml(self, tmp_path):
        path = tmp_path / "forms.yaml"
        path.write_text("id: broken\nname: Broken\nschema_type: astrology\n", encoding='utf-8')
        with pytest.raises(ValidationError):
            load_schemas(path)


class TestSchemaRegistry:
    """Tests for schema lookup and detection."""

    def setup_method(self):
        self.registry = SchemaRegistry()

    def test_builtin_schemas(self):
        assert self.registry.list_ids() == [
            'legal_publication', 'administrative_procedure', 'civil_status', 'generic',
        ]

    def test_document_type_alias(self):
        assert self.registry.get_schema('décret').id == 'legal_publication'
        assert self.registry.get_schema('Loi').id == 'legal_publication'

    def test_schema_type_fallback(self):
        assert self.registry.get_schema('personal').id == 'civil_status'

    def test_generic_fallback(self):
        assert self.registry.get_schema('circulaire').id == 'generic'
        assert self.registry.get_schema('').id == 'generic'

    def test_detect(self):
        text = "Journal officiel de la République algérienne\nVu la loi n° 12-34 ;\nArticle 1er"
        assert self.registry.detect(text).id == 'legal_publication'
        assert self.registry.detect("texte sans rapport").id == 'generic'

    def test_register_duplicate(self):
        with pytest.raises(ValueError):
            self.registry.register(phone_schema().model_copy(update={'id': 'generic'}))

    def test_generic_cannot_be_removed(self):
        assert not self.registry.unregister('generic')
        assert self.registry.unregister('civil_status')
        assert 'civil_status' not in self.registry.list_ids()

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "permis.yaml"
        path.write_text(
            "id: permis\nname: Permis\nfields:\n  - id: demandeur\n    name: demandeur\n",
            encoding='utf-8',
        )
        assert self.registry.load_yaml(path) == 1
        assert self.registry.get_schema('permis').field_ids == ['demandeur']


class TestMappingHistory:
    """Tests for the learning history."""

    def setup_method(self):
        self.history = MappingHistory(max_entries=3)

    def test_acceptance_rate(self):
        self.history.record('f', 'nom', 'A', 'A', True, 0.8)
        self.history.record('f', 'nom', 'B', 'C', False, 0.6)
        assert self.history.acceptance_rate('nom') == pytest.approx(0.5)
        assert self.history.acceptance_rate('prenom') == 0.0

    def test_oldest_evicted(self):
        for i in range(5):
            self.history.record('f', 'nom', str(i), str(i), True, 0.9)
        assert len(self.history) == 3
        assert [e.suggested_value for e in self.history.entries()] == ['2', '3', '4']

    def test_export_import(self):
        self.history.record('f', 'nom', 'BENALI', 'BENALI', True, 0.9)
        exported = self.history.export()

        restored = MappingHistory()
        assert restored.import_entries(exported) == 1
        entry = restored.entries('nom')[0]
        assert entry.actual_value == 'BENALI'
        assert entry.accepted

    def test_statistics(self):
        self.history.record('f', 'nom', 'A', 'A', True, 0.8)
        self.history.record('f', 'prenom', 'B', 'C', False, 0.4)

        stats = self.history.statistics()

        assert stats['total_mappings'] == 2
        assert stats['acceptance_rate'] == pytest.approx(0.5)
        assert stats['average_confidence'] == pytest.approx(0.6)
        assert stats['top_performing_fields'][0]['field_id'] == 'nom'

    def test_word_similarity(self):
        assert word_similarity("Loi de finances", "loi de finances") == 1.0
        assert word_similarity("", "") == 0.0


class TestRankSuggestions:
    """Tests for candidate deduplication."""

    def make(self, value, confidence, source):
        return MappingSuggestion('nom', 'nom', value, confidence, source, 'raison')

    def test_dedup_keeps_best(self):
        ranked = rank_suggestions([
            self.make("BENALI", 0.72, 'entity'),
            self.make("benali", 0.8, 'content'),
            self.make("Ahmed", 0.9, 'pattern'),
        ])

        assert [s.value for s in ranked] == ["Ahmed", "benali"]
        assert "entity" in ranked[1].reasoning
        assert "content" in ranked[1].reasoning

    def test_empty_values_dropped(self):
        assert rank_suggestions([self.make("  ", 0.9, 'content')]) == []


class TestFormMapper:
    """Tests for multi-strategy form mapping."""

    def setup_method(self):
        self.mapper = FormMapper()
        self.registry = SchemaRegistry()
        self.civil = self.registry.get_schema('civil_status')

    def test_direct_matches(self):
        result = self.mapper.map_to_form(ExtractionBundle(full_text=IDENTITY_TEXT), self.civil)

        assert result.values() == {'nom': 'BENALI', 'prenom': 'Ahmed'}
        assert result.get('nom').source == 'content'
        assert result.get('nom').confidence == pytest.approx(0.8)
        assert result.completeness == pytest.approx(2 / 9 * 100)
        assert result.overall_confidence == pytest.approx(0.8)
        assert 'date_naissance' in result.unmapped_fields

    def test_empty_result_maps_nothing(self):
        bundle = ExtractionBundle(entities=EntityExtractionResult())
        result = self.mapper.map_to_form(bundle, self.civil)

        assert result.completeness == 0.0
        assert result.suggestions == []
        assert result.unmapped_fields == self.civil.field_ids

    def test_missing_data(self):
        with pytest.raises(MappingDataMissing):
            self.mapper.map_to_form(None, self.civil)
        with pytest.raises(MappingDataMissing):
            self.mapper.map_to_form(ExtractionBundle(full_text="   "), self.civil)

    def test_map_to_forms_isolates_errors(self):
        schemas = [self.civil, self.registry.get_schema('generic')]
        results = self.mapper.map_to_forms(ExtractionBundle(), schemas)

        assert [r.form_id for r in results] == ['civil_status', 'generic']
        assert all(r.error is not None for r in results)
        assert results[0].unmapped_fields == self.civil.field_ids

    def test_more_data_never_lowers_completeness(self):
        partial = self.mapper.map_to_form(ExtractionBundle(full_text="Nom: BENALI"), self.civil)
        full = self.mapper.map_to_form(ExtractionBundle(full_text=IDENTITY_TEXT), self.civil)
        assert full.completeness >= partial.completeness

    def test_below_threshold_is_ambiguous(self):
        config = MappingConfig(confidence_threshold=0.9)
        result = self.mapper.map_to_form(ExtractionBundle(full_text=IDENTITY_TEXT), self.civil, config)

        assert result.suggestions == []
        assert 'nom' in result.ambiguous_field_ids
        ambiguous = [a for a in result.ambiguous_fields if a.field_id == 'nom'][0]
        assert ambiguous.possible_values == ['BENALI']
        assert ambiguous.needs_user_input

    def test_strict_validation(self):
        bundle = ExtractionBundle(full_text="Téléphone: inconnu")

        lenient = self.mapper.map_to_form(bundle, phone_schema())
        strict = self.mapper.map_to_form(bundle, phone_schema(), MappingConfig(strict_validation=True))

        assert lenient.get('telephone') is not None
        assert strict.get('telephone') is None
        assert strict.unmapped_fields == ['telephone']

    def test_learning(self):
        self.mapper.record_feedback('civil_status', 'nom', 'BENALI Ahmed', 'BENALI', True, 0.9)
        bundle = ExtractionBundle(full_text="BENALI Ahmed\nAlger")

        result = self.mapper.map_to_form(bundle, self.civil)

        suggestion = result.get('nom')
        assert suggestion.value == 'BENALI'
        assert suggestion.source == 'learning'
        assert suggestion.confidence == pytest.approx(0.9)

        disabled = self.mapper.map_to_form(bundle, self.civil, MappingConfig(learning=False))
        assert disabled.get('nom') is None

    def test_rejected_feedback_not_reapplied(self):
        self.mapper.record_feedback('civil_status', 'nom', 'BENALI Ahmed', 'BENALI', False, 0.9)
        result = self.mapper.map_to_form(ExtractionBundle(full_text="BENALI Ahmed"), self.civil)
        assert result.get('nom') is None

    def test_learning_data_round_trip(self):
        self.mapper.record_feedback('civil_status', 'nom', 'A', 'A', True, 0.7)
        other = FormMapper()
        assert other.import_learning_data(self.mapper.export_learning_data()) == 1
        assert other.learning_statistics()['total_mappings'] == 1

    def test_legal_reference_from_recognizers(self):
        bundle = ExtractionBundle.from_text("Loi n° 12-34 du 5 janvier 2020 portant code des douanes.")
        schema = self.registry.get_schema('legal_publication')

        result = self.mapper.map_to_form(bundle, schema)

        suggestion = result.get('reference_legale')
        assert suggestion is not None
        values = [suggestion.value] + [a.value for a in suggestion.alternatives]
        assert "12-34" in values
        assert result.to_dict()['form_id'] == 'legal_publication'
