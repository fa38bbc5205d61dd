"""
Tests for legal, procedural and named-entity recognition.
"""

import pytest

from ocr_ia.patterns import (
    EntityType,
    NamedEntityRecognizer,
    ProcedureAnalyzer,
    RecognizerConfig,
    commune_wilaya,
    detect_language,
    is_known_ministry,
    normalize_date,
    normalize_law_number,
    normalize_money,
    normalize_phone,
    parse_amount,
    recognize_legal_patterns,
    wilaya_code,
)


class TestNormalizers:
    """Tests for value normalization."""

    def test_french_date(self):
        assert normalize_date("5 janvier 2020") == "05/01/2020"

    def test_first_of_month(self):
        assert normalize_date("1er mars 2021") == "01/03/2021"

    def test_numeric_date_is_day_first(self):
        assert normalize_date("15/01/2024") == "15/01/2024"

    def test_abbreviated_month(self):
        assert normalize_date("15 janv. 2020") == "15/01/2020"

    def test_invalid_dates(self):
        assert normalize_date("31 février 2020") is None
        assert normalize_date("not a date") is None
        assert normalize_date("") is None

    def test_amounts(self):
        assert parse_amount("1.500,00 DA") == 1500.0
        assert parse_amount("1 500 dinars") == 1500.0
        assert parse_amount("2500,5") == 2500.5
        assert parse_amount("12.000") == 12000.0
        assert parse_amount("gratuit") is None

    def test_money(self):
        assert normalize_money("1.500,00 DA") == "1500 DZD"

    def test_law_number(self):
        assert normalize_law_number("n° 12/34") == "12-34"
        assert normalize_law_number("sans numéro") is None

    def test_phone(self):
        assert normalize_phone("0551 23 45 67") == "+213551234567"
        assert normalize_phone("+213 551 23 45 67") == "+213551234567"
        assert normalize_phone("12345") is None

    def test_language(self):
        assert detect_language("Journal officiel") == 'fr'
        assert detect_language("الجريدة الرسمية") == 'ar'
        assert detect_language("Loi قانون") == 'mixed'
        assert detect_language("") == 'fr'


class TestKnowledge:
    """Tests for the reference lists."""

    def test_wilaya_codes(self):
        assert wilaya_code("Oran") == 31
        assert wilaya_code("16") == 16
        assert wilaya_code("49") is None
        assert wilaya_code("Wilaya de Béjaïa") == 6
        assert wilaya_code("bejaia") == 6

    def test_communes(self):
        assert commune_wilaya("Bab El Oued") == 16
        assert commune_wilaya("Oran") == 31
        assert commune_wilaya("Atlantis") is None

    def test_ministry(self):
        assert is_known_ministry("Ministère des Finances")
        assert not is_known_ministry("Ministère de la Magie")


class TestLegalPatterns:
    """Tests for the legal rule library."""

    def setup_method(self):
        self.text = "Loi n° 12-34 du 5 janvier 2020 publiée au Journal officiel."

    def test_law_with_date(self):
        result = recognize_legal_patterns(self.text)

        laws = result.by_type(EntityType.LAW)
        assert len(laws) == 1
        law = laws[0]
        assert law.value == "12-34"
        assert law.fields['number'] == "12-34"
        assert law.confidence >= 0.7

        dates = result.by_type(EntityType.DATE)
        assert "05/01/2020" in [d.value for d in dates]
        linked = [d for d in dates if d.entity_id in law.linked_ids]
        assert linked

    def test_sub_entity_confidence(self):
        result = recognize_legal_patterns(self.text)
        law = result.by_type(EntityType.LAW)[0]
        children = [e for e in result.entities if e.parent_id == law.entity_id]

        assert len(children) == 1
        assert children[0].confidence == pytest.approx(law.confidence * 0.9)

    def test_decree(self):
        result = recognize_legal_patterns("Décret exécutif n° 21-105 du 10 mars 2021 fixant les modalités.")
        decrees = result.by_type(EntityType.DECREE)
        assert [d.value for d in decrees] == ["21-105"]
        assert decrees[0].subtype == 'executif'

    def test_amount_and_article(self):
        result = recognize_legal_patterns("Article 5 bis : une amende de 10.000 DA est appliquée.")
        assert "10000 DZD" in [e.value for e in result.by_type(EntityType.MONEY)]
        assert "article 5 bis" in [e.value for e in result.by_type(EntityType.MISC)]

    def test_threshold_filters_everything(self):
        result = recognize_legal_patterns(self.text, RecognizerConfig(confidence_threshold=1.01))
        assert result.entities == []

    def test_every_entity_meets_threshold(self):
        config = RecognizerConfig(confidence_threshold=0.8)
        result = recognize_legal_patterns(self.text, config)
        assert all(e.confidence >= 0.8 for e in result.entities)

    def test_empty_text(self):
        assert recognize_legal_patterns("   ").entities == []


class TestNamedEntityRecognizer:
    """Tests for the named-entity library."""

    def setup_method(self):
        self.recognizer = NamedEntityRecognizer()

    def test_law_and_date_linked(self):
        result = self.recognizer.recognize("Loi n° 12-34 du 5 janvier 2020")

        law = result.by_type(EntityType.LAW)[0]
        date = result.by_type(EntityType.DATE)[0]
        assert law.value == "12-34"
        assert date.value == "05/01/2020"
        assert date.entity_id in law.linked_ids
        assert law.entity_id in date.linked_ids

    def test_person(self):
        result = self.recognizer.recognize("Monsieur Ahmed Benali a signé le registre.")
        persons = result.by_type(EntityType.PERSON)
        assert [p.value for p in persons] == ["Ahmed Benali"]

    def test_known_wilaya_kept_unknown_dropped(self):
        known = self.recognizer.recognize("Résidant dans la wilaya d'Oran.")
        unknown = self.recognizer.recognize("Résidant dans la wilaya de Atlantis.")

        assert "Oran" in [e.value for e in known.by_type(EntityType.LOCATION)]
        assert [e for e in unknown.by_type(EntityType.LOCATION) if e.subtype == 'wilaya'] == []

    def test_money(self):
        result = self.recognizer.recognize("Le montant est de 5.000 DA.")
        assert [e.value for e in result.by_type(EntityType.MONEY)] == ["5000 DZD"]

    def test_deduplicated(self):
        result = self.recognizer.recognize("le 5 janvier 2020 et encore le 5 janvier 2020")
        assert len(result.by_type(EntityType.DATE)) == 1

    def test_summary(self):
        result = self.recognizer.recognize("Loi n° 12-34 du 5 janvier 2020")
        summary = result.summary
        assert summary['total_entities'] == len(result.entities)
        assert summary['entities_by_type']['LAW'] == 1


class TestProcedureAnalyzer:
    """Tests for procedure analysis."""

    def setup_method(self):
        self.analyzer = ProcedureAnalyzer()

    def test_stamp_cost(self):
        result = self.analyzer.analyze("Timbre fiscal de 200 DA.")
        assert len(result.costs) == 1
        cost = result.costs[0]
        assert cost.amount == 200
        assert cost.cost_type == 'stamp'
        assert result.summary['total_cost'] == "200 DZD"

    def test_free_service(self):
        result = self.analyzer.analyze("Le service est gratuit.")
        assert len(result.costs) == 1
        assert result.costs[0].amount == 0
        assert result.total_cost == 0

    def test_deadline(self):
        result = self.analyzer.analyze("Délai de 15 jours ouvrables.")
        assert len(result.timeline) == 1
        element = result.timeline[0]
        assert element.value == "15 jours"
        assert element.unit == 'days'
        assert element.days == 15
        assert element.kind == 'deadline'

    def test_steps(self):
        result = self.analyzer.analyze("Étape 1: Déposer le dossier\nÉtape 2: Retirer le récépissé")
        assert [s.number for s in result.steps] == [1, 2]
        assert result.steps[0].description == "Déposer le dossier"

    def test_required_document(self):
        result = self.analyzer.analyze("Acte de naissance (2 copies)")
        assert len(result.documents) == 1
        document = result.documents[0]
        assert document.name == "acte de naissance"
        assert document.copies == 2
        assert document.category == 'certificate'

    def test_phone_contact(self):
        result = self.analyzer.analyze("Téléphone: 021 23 45 67")
        phones = [c for c in result.contacts if c.kind == 'phone']
        assert [c.value for c in phones] == ["+21321234567"]

    def test_empty(self):
        result = self.analyzer.analyze("")
        assert result.steps == [] and result.costs == []
        assert result.summary['total_cost'] is None
