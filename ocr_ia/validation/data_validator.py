"""
Data Validator

Validates mapped form values and produces a data quality report.

Per mapped field:
1. Select the locale rules whose keywords match the field name
2. Run them, collecting violations with severity and suggested fixes
3. Cross-check against extracted entities (names vs PERSON entities,
   references vs legal references)
4. Down-weight the confidence once per violation

Across fields:
- Date ordering (birth before issue)
- Wilaya/commune agreement
- Identity fields present together

The overall score blends validity (40%), completeness (30%) and conformity
(30%), minus capped penalties for errors and warnings.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from ..confidence import adjusted_confidence, quality_score
from ..errors import ValidationRuleError
from ..mapping.bundle import ExtractionBundle
from ..mapping.field_mapper import MappingResult, MappingSuggestion
from ..patterns import EntityType
from ..patterns.knowledge import commune_wilaya, wilaya_code, wilaya_name
from ..patterns.normalizers import parse_date
from .rules import ALGERIAN_RULES, ValidationRule

logger = logging.getLogger(__name__)


LAW_NUMBER = re.compile(r'\d{2}[-/]\d{2,3}')


@dataclass
class ValidationConfig:
    """Validation settings."""
    strict_mode: bool = False           # Also apply warning-level rules
    regulatory: bool = True             # Legal rules and the conformity score
    consistency: bool = True            # Cross-field checks
    completeness: bool = True           # Completeness score
    entity_checks: bool = True          # Names against PERSON entities
    legal_checks: bool = True           # References against legal entities
    custom_rules: List[ValidationRule] = field(default_factory=list)


@dataclass
class Violation:
    rule_id: str
    rule_name: str
    severity: str
    message: str
    suggested_fix: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule_id': self.rule_id,
            'rule_name': self.rule_name,
            'severity': self.severity,
            'message': self.message,
            'suggested_fix': self.suggested_fix,
        }


@dataclass
class FieldValidation:
    """Outcome of validating one mapped field."""
    field_id: str
    field_name: str
    value: str
    is_valid: bool
    confidence: float
    applied_rules: List[str] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def has_severity(self, severity: str) -> bool:
        return any(v.severity == severity for v in self.violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field_id': self.field_id,
            'field_name': self.field_name,
            'value': self.value,
            'is_valid': self.is_valid,
            'confidence': round(self.confidence, 3),
            'applied_rules': self.applied_rules,
            'violations': [v.to_dict() for v in self.violations],
            'metadata': self.metadata,
        }


@dataclass
class ConsistencyCheck:
    check_name: str
    passed: bool
    message: str
    affected_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'check_name': self.check_name,
            'passed': self.passed,
            'message': self.message,
            'affected_fields': self.affected_fields,
        }


@dataclass
class ImprovementSuggestion:
    suggestion_type: str                # correction / addition / improvement
    priority: str                       # high / medium / low
    description: str
    affected_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.suggestion_type,
            'priority': self.priority,
            'description': self.description,
            'affected_fields': self.affected_fields,
        }


@dataclass
class DataQualityReport:
    """Quality report over one or more mapping results."""
    overall_score: float
    total_fields: int
    valid_fields: int
    invalid_fields: int
    warnings: int
    errors: int
    field_results: List[FieldValidation] = field(default_factory=list)
    consistency_checks: List[ConsistencyCheck] = field(default_factory=list)
    completeness_score: float = 100.0
    conformity_score: float = 100.0
    suggestions: List[ImprovementSuggestion] = field(default_factory=list)
    rule_failures: int = 0
    processing_time: float = 0.0

    def get(self, field_id: str) -> Optional[FieldValidation]:
        for result in self.field_results:
            if result.field_id == field_id:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall_score': round(self.overall_score, 2),
            'total_fields': self.total_fields,
            'valid_fields': self.valid_fields,
            'invalid_fields': self.invalid_fields,
            'warnings': self.warnings,
            'errors': self.errors,
            'completeness_score': round(self.completeness_score, 2),
            'conformity_score': round(self.conformity_score, 2),
            'field_results': [r.to_dict() for r in self.field_results],
            'consistency_checks': [c.to_dict() for c in self.consistency_checks],
            'suggestions': [s.to_dict() for s in self.suggestions],
            'rule_failures': self.rule_failures,
            'processing_time': round(self.processing_time, 4),
        }


class DataValidator:
    """
    Validates mapping results against the locale rule set.

    Usage:
        validator = DataValidator()
        report = validator.validate(mapping_result, bundle)
        print(report.overall_score)
    """

    def __init__(self, config: Optional[ValidationConfig] = None, rules: Optional[List[ValidationRule]] = None):
        self.config = config or ValidationConfig()
        self.rules = list(rules) if rules is not None else list(ALGERIAN_RULES)
        self.rule_failures = 0

    def validate(
        self,
        results: Union[MappingResult, Iterable[MappingResult]],
        bundle: Optional[ExtractionBundle] = None,
        config: Optional[ValidationConfig] = None,
    ) -> DataQualityReport:
        """
        Validate every primary suggestion of the mapping results.

        Args:
            results: One mapping result or several
            bundle: Extraction context for entity and legal cross-checks
            config: Overrides the validator configuration for this call
        """
        config = config or self.config
        if isinstance(results, MappingResult):
            results = [results]
        results = list(results)

        start_time = time.perf_counter()
        self.rule_failures = 0

        field_results = []
        for mapping in results:
            for suggestion in mapping.suggestions:
                field_results.append(self.validate_suggestion(suggestion, bundle, config))

        total = len(field_results)
        valid = sum(1 for r in field_results if r.is_valid)
        errors = sum(1 for r in field_results for v in r.violations if v.severity == 'error')
        warnings = sum(1 for r in field_results for v in r.violations if v.severity == 'warning')

        checks = self.consistency_checks(field_results) if config.consistency else []
        completeness = completeness_score(results) if config.completeness else 100.0
        conformity = conformity_score(field_results) if config.regulatory else 100.0

        if total:
            overall = quality_score(valid / total * 100, completeness, conformity, errors, warnings)
        else:
            overall = 0.0

        report = DataQualityReport(
            overall_score=overall,
            total_fields=total,
            valid_fields=valid,
            invalid_fields=total - valid,
            warnings=warnings,
            errors=errors,
            field_results=field_results,
            consistency_checks=checks,
            completeness_score=completeness,
            conformity_score=conformity,
            suggestions=improvement_suggestions(field_results, checks, completeness, conformity),
            rule_failures=self.rule_failures,
            processing_time=time.perf_counter() - start_time,
        )
        logger.info(
            f"Validated {total} fields: {valid} valid, {errors} errors, {warnings} warnings, "
            f"score {overall:.1f}/100"
        )
        return report

    def validate_suggestion(
        self,
        suggestion: MappingSuggestion,
        bundle: Optional[ExtractionBundle] = None,
        config: Optional[ValidationConfig] = None,
    ) -> FieldValidation:
        result = self.validate_field(
            suggestion.field_name,
            suggestion.value,
            confidence=suggestion.confidence,
            field_id=suggestion.field_id,
            bundle=bundle,
            config=config,
        )
        result.metadata.update({
            'original_confidence': suggestion.confidence,
            'source': suggestion.source,
            'reasoning': suggestion.reasoning,
        })
        return result

    def validate_field(
        self,
        field_name: str,
        value: str,
        confidence: float = 1.0,
        field_id: Optional[str] = None,
        bundle: Optional[ExtractionBundle] = None,
        config: Optional[ValidationConfig] = None,
    ) -> FieldValidation:
        """
        Validate one value. Deterministic: the same value, field name and
        rule set always yield the same violations and confidence.
        """
        config = config or self.config
        applied = []
        violations = []

        for rule in self.rules + list(config.custom_rules):
            if not self._should_apply(rule, field_name, config):
                continue
            applied.append(rule.rule_id)

            try:
                passed = rule.check(value, {'field_name': field_name, 'bundle': bundle})
            except ValidationRuleError as e:
                logger.warning(f"Validation rule {e.rule_id} failed: {e.message}")
                self.rule_failures += 1
                passed = False

            if not passed:
                violations.append(Violation(
                    rule_id=rule.rule_id,
                    rule_name=rule.name,
                    severity=rule.severity,
                    message=rule.message,
                    suggested_fix=rule.suggest_fix(value),
                ))

        if bundle is not None:
            if config.entity_checks:
                violation = check_against_entities(field_name, value, bundle)
                if violation:
                    violations.append(violation)
            if config.legal_checks:
                violation = check_against_legal_patterns(field_name, value, bundle)
                if violation:
                    violations.append(violation)

        return FieldValidation(
            field_id=field_id or field_name,
            field_name=field_name,
            value=value,
            is_valid=not any(v.severity == 'error' for v in violations),
            confidence=adjusted_confidence(confidence, (v.severity for v in violations)),
            applied_rules=applied,
            violations=violations,
        )

    @staticmethod
    def _should_apply(rule: ValidationRule, field_name: str, config: ValidationConfig) -> bool:
        if not config.strict_mode and rule.severity == 'warning':
            return False
        if not config.regulatory and rule.category == 'legal':
            return False
        return rule.applies_to(field_name)

    # -- cross-field checks -----------------------------------------------------

    def consistency_checks(self, field_results: List[FieldValidation]) -> List[ConsistencyCheck]:
        checks = []

        date_fields = [r for r in field_results if 'date' in r.field_name.lower()]
        if len(date_fields) >= 2:
            checks.append(check_dates(date_fields))

        location_fields = [
            r for r in field_results
            if any(k in r.field_name.lower() for k in ('adresse', 'wilaya', 'commune'))
        ]
        if len(location_fields) >= 2:
            check = check_location(location_fields)
            if check:
                checks.append(check)

        identity_fields = [
            r for r in field_results
            if any(k in r.field_name.lower() for k in ('nom', 'prenom', 'cin'))
        ]
        if len(identity_fields) >= 2:
            checks.append(ConsistencyCheck(
                check_name='Cohérence identité',
                passed=True,
                message="Informations d'identité cohérentes",
                affected_fields=[r.field_name for r in identity_fields],
            ))

        return checks


def check_against_entities(field_name: str, value: str, bundle: ExtractionBundle) -> Optional[Violation]:
    """A name field should overlap a PERSON entity of the same document."""
    name = field_name.lower()
    if 'nom' not in name and 'name' not in name:
        return None
    if bundle.entities is None:
        return None
    persons = bundle.entities.by_type(EntityType.PERSON)
    if not persons:
        return None

    needle = value.lower().strip()
    for entity in persons:
        for candidate in (entity.text.lower(), entity.value.lower()):
            if needle and (needle in candidate or candidate in needle):
                return None

    return Violation(
        rule_id='entity_consistency',
        rule_name='Cohérence avec entités extraites',
        severity='warning',
        message='La valeur suggérée ne correspond pas aux entités de type PERSON extraites du document',
        suggested_fix=persons[0].text,
    )


def check_against_legal_patterns(field_name: str, value: str, bundle: ExtractionBundle) -> Optional[Violation]:
    """A reference field should hold a recognized law or decree number."""
    name = field_name.lower()
    if 'reference' not in name and 'loi' not in name:
        return None
    if bundle.legal is None:
        return None
    references = [e for e in bundle.legal.entities if e.entity_type in (EntityType.LAW, EntityType.DECREE)]
    if not references:
        return None

    if any(e.value == value for e in references) or LAW_NUMBER.search(value):
        return None

    return Violation(
        rule_id='legal_format_consistency',
        rule_name='Format référence légale',
        severity='warning',
        message='Le format de la référence légale ne correspond pas aux standards algériens',
        suggested_fix=references[0].value,
    )


def check_dates(date_fields: List[FieldValidation]) -> ConsistencyCheck:
    parsed = [(r.field_name, parse_date(r.value)) for r in date_fields]
    parsed = [(name, value) for name, value in parsed if value is not None]

    birth = next(((n, d) for n, d in parsed if 'naissance' in n.lower()), None)
    issue = next(((n, d) for n, d in parsed if 'emission' in n.lower() or 'delivrance' in n.lower()), None)
    if birth and issue and birth[1] > issue[1]:
        return ConsistencyCheck(
            check_name='Cohérence chronologique',
            passed=False,
            message="La date de naissance est postérieure à la date d'émission",
            affected_fields=[birth[0], issue[0]],
        )

    return ConsistencyCheck(
        check_name='Cohérence des dates',
        passed=True,
        message='Toutes les dates sont cohérentes',
        affected_fields=[r.field_name for r in date_fields],
    )


def check_location(location_fields: List[FieldValidation]) -> Optional[ConsistencyCheck]:
    wilaya_field = next((r for r in location_fields if 'wilaya' in r.field_name.lower()), None)
    commune_field = next((r for r in location_fields if 'commune' in r.field_name.lower()), None)
    if wilaya_field is None or commune_field is None:
        return None

    code = wilaya_code(wilaya_field.value)
    commune_code = commune_wilaya(commune_field.value)
    affected = [wilaya_field.field_name, commune_field.field_name]

    if code is None or commune_code is None:
        return ConsistencyCheck(
            check_name='Cohérence géographique',
            passed=True,
            message='Cohérence géographique non vérifiable (wilaya ou commune inconnue)',
            affected_fields=affected,
        )

    if code != commune_code:
        return ConsistencyCheck(
            check_name='Cohérence géographique',
            passed=False,
            message=(
                f"Incohérence entre wilaya et commune: {commune_field.value} relève de "
                f"la wilaya de {wilaya_name(commune_code)}"
            ),
            affected_fields=affected,
        )

    return ConsistencyCheck(
        check_name='Cohérence géographique',
        passed=True,
        message='Cohérence géographique vérifiée',
        affected_fields=affected,
    )


def completeness_score(results: List[MappingResult]) -> float:
    mapped = sum(len(r.suggestions) for r in results)
    total = mapped + sum(len(r.unmapped_fields) for r in results)
    return mapped / total * 100 if total else 100.0


def conformity_score(field_results: List[FieldValidation]) -> float:
    if not field_results:
        return 100.0
    return sum(1 for r in field_results if r.is_valid) / len(field_results) * 100


def improvement_suggestions(
    field_results: List[FieldValidation],
    checks: List[ConsistencyCheck],
    completeness: float,
    conformity: float,
) -> List[ImprovementSuggestion]:
    suggestions = []

    error_fields = [r.field_name for r in field_results if r.has_severity('error')]
    if error_fields:
        suggestions.append(ImprovementSuggestion(
            'correction', 'high',
            f"Corriger {len(error_fields)} champ(s) avec erreurs de validation",
            error_fields,
        ))

    if completeness < 80:
        suggestions.append(ImprovementSuggestion(
            'addition', 'medium',
            'Compléter les champs manquants pour améliorer la complétude du formulaire',
        ))

    if conformity < 90:
        suggestions.append(ImprovementSuggestion(
            'improvement', 'medium',
            'Réviser les formats et valeurs pour améliorer la conformité réglementaire',
            [r.field_name for r in field_results if not r.is_valid],
        ))

    failed = [c for c in checks if not c.passed]
    if failed:
        suggestions.append(ImprovementSuggestion(
            'correction', 'high',
            'Résoudre les incohérences détectées entre les champs',
            [name for c in failed for name in c.affected_fields],
        ))

    return suggestions
