"""
Tests for locale validation rules and the data quality report.
"""

import pytest

from ocr_ia.mapping import ExtractionBundle, MappingResult, MappingSuggestion
from ocr_ia.validation import ALGERIAN_RULES, DataValidator, ValidationConfig, ValidationRule, get_rule


def mapping(values, unmapped=()):
    return MappingResult(
        form_id='test',
        suggestions=[MappingSuggestion(k, k, v, 0.9, 'content', 'test') for k, v in values.items()],
        unmapped_fields=list(unmapped),
    )


class TestValidationRules:
    """Tests for the individual rules."""

    def test_rule_ids(self):
        ids = [r.rule_id for r in ALGERIAN_RULES]
        assert 'cin_format' in ids
        assert 'phone_algeria' in ids
        assert len(ids) == len(set(ids))

    def test_applies_to(self):
        phone = get_rule('phone_algeria')
        assert phone.applies_to('telephone')
        assert phone.applies_to('tel_mobile')
        assert not phone.applies_to('adresse')

    def test_separators_ignored(self):
        assert get_rule('phone_algeria').check("0551 23 45 67")
        assert get_rule('phone_algeria').check("+213.551.23.45.67")
        assert get_rule('cin_format').check("1234 5678 9012 345678")

    def test_amount(self):
        rule = get_rule('amount_format')
        assert rule.check("1 500,00 DA")
        assert rule.check("2000 dinars")
        assert not rule.check("deux mille")

    def test_wilaya_names_and_codes(self):
        rule = get_rule('wilaya_code')
        assert rule.check("16")
        assert rule.check("Oran")
        assert not rule.check("49")
        assert not rule.check("Atlantis")

    def test_required(self):
        rule = get_rule('required_administrative')
        assert rule.check("valeur")
        assert not rule.check("   ")

    def test_fixes(self):
        assert get_rule('phone_algeria').suggest_fix("0551234567") == "+213551234567"
        assert get_rule('phone_algeria').suggest_fix("12345") == "+213XXXXXXXXX"
        assert get_rule('cin_format').suggest_fix("1234") == "000000000000001234"
        assert get_rule('date_format').suggest_fix("5.1.2020") == "05/01/2020"
        assert get_rule('postal_code_algeria').suggest_fix("1600") is None

    def test_unknown_rule(self):
        assert get_rule('no_such_rule') is None


class TestFieldValidation:
    """Tests for validating single values."""

    def setup_method(self):
        self.validator = DataValidator()

    def test_valid_phone(self):
        result = self.validator.validate_field('telephone', "0551234567")

        assert result.is_valid
        assert result.violations == []
        assert result.applied_rules == ['phone_algeria']
        assert result.confidence == 1.0

    def test_invalid_phone(self):
        result = self.validator.validate_field('telephone', "12345")

        assert not result.is_valid
        assert len(result.violations) == 1
        violation = result.violations[0]
        assert violation.severity == 'error'
        assert violation.suggested_fix
        assert result.confidence == pytest.approx(0.5)

    def test_deterministic(self):
        first = self.validator.validate_field('numero_identite', "1234")
        second = self.validator.validate_field('numero_identite', "1234")
        assert first.to_dict() == second.to_dict()
        assert first.violations[0].suggested_fix == "000000000000001234"

    def test_valid_cin(self):
        assert self.validator.validate_field('numero_identite', "123456789012345678").is_valid

    def test_wilaya(self):
        assert self.validator.validate_field('wilaya', "Oran").is_valid
        assert not self.validator.validate_field('wilaya', "Atlantis").is_valid

    def test_warnings_only_in_strict_mode(self):
        lenient = self.validator.validate_field('date_naissance', "5.1.2020")
        strict = self.validator.validate_field(
            'date_naissance', "5.1.2020", config=ValidationConfig(strict_mode=True),
        )

        assert lenient.violations == []
        assert strict.is_valid
        assert [v.rule_id for v in strict.violations] == ['date_format']
        assert strict.violations[0].suggested_fix == "05/01/2020"
        assert strict.confidence == pytest.approx(0.8)

    def test_confidence_floor(self):
        rules = [
            ValidationRule(rule_id=f'r{i}', name='r', rule_type='required', message='m', keywords=('champ',))
            for i in range(6)
        ]
        result = DataValidator(rules=rules).validate_field('champ', "")
        assert result.confidence == pytest.approx(0.1)

    def test_failing_rule_is_counted(self):
        broken = ValidationRule(
            rule_id='siege_check',
            name='Siège',
            rule_type='business',
            message='Siège invalide',
            keywords=('siege',),
            validator=lambda value, context: 1 / 0,
        )
        result = self.validator.validate_field('siege', "Alger", config=ValidationConfig(custom_rules=[broken]))

        assert not result.is_valid
        assert result.violations[0].rule_id == 'siege_check'
        assert self.validator.rule_failures == 1


class TestCrossChecks:
    """Tests for checks against extracted entities."""

    def setup_method(self):
        self.validator = DataValidator()

    def test_name_matches_person(self):
        bundle = ExtractionBundle.from_text("Monsieur Ahmed Benali a signé le registre.")

        matching = self.validator.validate_field('nom', "Benali", bundle=bundle)
        mismatch = self.validator.validate_field('nom', "Mansouri", bundle=bundle)

        assert matching.violations == []
        assert [v.rule_id for v in mismatch.violations] == ['entity_consistency']
        assert "Benali" in mismatch.violations[0].suggested_fix
        assert mismatch.is_valid

    def test_reference_matches_legal_entity(self):
        bundle = ExtractionBundle.from_text("Loi n° 12-34 du 5 janvier 2020")

        matching = self.validator.validate_field('reference_legale', "12-34", bundle=bundle)
        mismatch = self.validator.validate_field('reference_legale', "texte inconnu", bundle=bundle)

        assert matching.violations == []
        assert mismatch.violations[0].rule_id == 'legal_format_consistency'
        assert mismatch.violations[0].suggested_fix == "12-34"

    def test_cross_checks_disabled(self):
        bundle = ExtractionBundle.from_text("Monsieur Ahmed Benali a signé le registre.")
        config = ValidationConfig(entity_checks=False)
        assert self.validator.validate_field('nom', "Mansouri", bundle=bundle, config=config).violations == []


class TestDataQualityReport:
    """Tests for the full report."""

    def setup_method(self):
        self.validator = DataValidator()

    def test_scores(self):
        report = self.validator.validate(mapping({'telephone': "0551234567"}, unmapped=['email']))

        assert report.total_fields == 1
        assert report.valid_fields == 1
        assert report.completeness_score == pytest.approx(50.0)
        assert report.conformity_score == pytest.approx(100.0)
        assert report.overall_score == pytest.approx(85.0)

    def test_error_penalty(self):
        report = self.validator.validate(mapping({'telephone': "12345"}, unmapped=['email']))

        assert report.errors == 1
        assert report.invalid_fields == 1
        # 0.3 x 50 completeness, minus one error penalty
        assert report.overall_score == pytest.approx(10.0)
        types = [s.suggestion_type for s in report.suggestions]
        assert 'correction' in types

    def test_empty(self):
        report = self.validator.validate([])
        assert report.total_fields == 0
        assert report.overall_score == 0.0

    def test_score_within_bounds(self):
        values = {'telephone': "x", 'numero_identite': "y", 'wilaya': "z", 'nif': "w"}
        report = self.validator.validate(mapping(values, unmapped=['a', 'b', 'c']))
        assert 0.0 <= report.overall_score <= 100.0

    def test_location_mismatch(self):
        report = self.validator.validate(mapping({'wilaya': "Oran", 'commune': "Bab El Oued"}))

        checks = [c for c in report.consistency_checks if c.check_name == 'Cohérence géographique']
        assert len(checks) == 1
        assert not checks[0].passed
        assert checks[0].affected_fields == ['wilaya', 'commune']

    def test_unknown_commune_is_unverifiable(self):
        report = self.validator.validate(mapping({'wilaya': "Oran", 'commune': "Atlantis"}))
        check = report.consistency_checks[0]
        assert check.passed

    def test_birth_after_issue(self):
        report = self.validator.validate(mapping({
            'date_naissance': "15/01/2030",
            'date_emission': "01/01/2020",
        }))

        assert not report.consistency_checks[0].passed
        assert report.consistency_checks[0].affected_fields == ['date_naissance', 'date_emission']

    def test_several_results(self):
        report = self.validator.validate([
            mapping({'telephone': "0551234567"}),
            mapping({'wilaya': "Oran"}),
        ])
        assert report.total_fields == 2
        assert report.to_dict()['valid_fields'] == 2
