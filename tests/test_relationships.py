"""
Tests for relationships between legal texts.
"""

import pytest

from ocr_ia.patterns import LegalDocumentRef, RelationshipAnalyzer, RelationType


VU_TEXT = (
    "Vu la loi n° 22-24 du Aouel Joumada Ethania 1444 correspondant au "
    "25 décembre 2022 portant loi de finances pour 2023 ;"
)


class TestRelationshipAnalyzer:
    """Tests for relationship extraction."""

    def setup_method(self):
        self.analyzer = RelationshipAnalyzer()

    def test_vu_reference(self):
        relationships = self.analyzer.analyze(VU_TEXT)

        assert len(relationships) == 1
        rel = relationships[0]
        assert rel.relation_type == RelationType.VU
        assert rel.target.doc_type == 'loi'
        assert rel.target.number == '22-24'
        assert rel.target.gregorian_date == "25 décembre 2022"
        assert rel.target.hijri_date == "Aouel Joumada Ethania 1444"
        assert rel.target.title == "loi de finances pour 2023"
        assert rel.target.year == '2022'

    def test_vu_confidence(self):
        rel = self.analyzer.analyze(VU_TEXT)[0]
        # well-formed number, primary type and the vu bonus
        assert rel.confidence == pytest.approx(0.95)

    def test_source_defaults_to_current_document(self):
        rel = self.analyzer.analyze(VU_TEXT)[0]
        assert rel.source.key == 'unknown_current'

        source = LegalDocumentRef(doc_type='décret exécutif', number='23-01')
        rel = self.analyzer.analyze(VU_TEXT, source)[0]
        assert rel.source is source

    def test_modification(self):
        text = "L'ordonnance n° 75-58 est modifiée et complétée par la loi n° 05-10."
        relationships = self.analyzer.analyze(text)

        assert {r.relation_type for r in relationships} == {RelationType.MODIFICATION}
        assert {r.target.key for r in relationships} == {'ordonnance_75-58', 'loi_05-10'}

    def test_partial_abrogation(self):
        text = "Sont abrogés les articles 5 et 6 de la loi n° 84-11."
        relationships = self.analyzer.analyze(text)

        assert len(relationships) == 1
        rel = relationships[0]
        assert rel.relation_type == RelationType.ABROGATION
        assert rel.target.key == 'loi_84-11'
        assert rel.details['partial_abrogation'] is True
        assert rel.details['articles_affected'] == ['5', '6']

    def test_sorted_by_position(self):
        text = (
            "Vu la loi n° 90-11 du 21 avril 1990 ;\n"
            "Vu le décret exécutif n° 17-20 du 10 janvier 2017 ;"
        )
        relationships = self.analyzer.analyze(text)

        assert [r.target.number for r in relationships] == ['90-11', '17-20']
        assert relationships[1].target.doc_type == 'décret exécutif'

    def test_empty_text(self):
        assert self.analyzer.analyze("") == []

    def test_no_reference(self):
        assert self.analyzer.analyze("Le présent texte entre en vigueur immédiatement.") == []

    def only(self, text):
        relationships = self.analyzer.analyze(text)
        assert len(relationships) == 1
        return relationships[0]

    def test_approbation(self):
        rel = self.only("Le plan d'aménagement est approuvé par le décret exécutif n° 19-45.")
        assert rel.relation_type == RelationType.APPROBATION
        assert rel.target.key == 'décret exécutif_19-45'

    def test_extension(self):
        rel = self.only(
            "Les dispositions de la loi n° 11-10 du 22 juin 2011 sont étendues aux communes du Sud."
        )
        assert rel.relation_type == RelationType.EXTENSION
        assert rel.target.key == 'loi_11-10'
        assert rel.details['extension_domain'] == "communes du Sud"

    def test_annexe(self):
        rel = self.only("Annexe au décret exécutif n° 21-104 fixant la liste des produits.")
        assert rel.relation_type == RelationType.ANNEXE
        assert rel.target.number == '21-104'

    def test_constitutional_control(self):
        rel = self.only("Contrôle de la constitutionnalité de la loi organique n° 16-10.")
        assert rel.relation_type == RelationType.CONTROLE
        assert rel.target.doc_type == 'loi organique'
        assert rel.details['conformity_level'] == 'constitutional'

    def test_legal_control(self):
        rel = self.only("Contrôle de la légalité du décret exécutif n° 20-39.")
        assert rel.relation_type == RelationType.CONTROLE
        assert rel.details['conformity_level'] == 'legal'

    def test_regulatory_control(self):
        rel = self.only("Contrôle de la conformité de l'arrêté n° 12-05 aux dispositions en vigueur.")
        assert rel.relation_type == RelationType.CONTROLE
        assert rel.target.number == '12-05'
        assert rel.details['conformity_level'] == 'regulatory'

    def test_control_verb_form(self):
        rel = self.only("Le Conseil constitutionnel contrôle la conformité de la loi n° 18-11 à la Constitution.")
        assert rel.relation_type == RelationType.CONTROLE
        assert rel.target.key == 'loi_18-11'
        assert rel.details['conformity_level'] == 'constitutional'


class TestRelationshipGraph:
    """Tests for the relationship graph."""

    def setup_method(self):
        self.analyzer = RelationshipAnalyzer()
        text = (
            "Vu la loi n° 90-11 du 21 avril 1990 ;\n"
            "Vu la loi n° 90-12 du 21 avril 1990 ;\n"
            "Vu la loi n° 90-13 du 22 avril 1990 ;\n"
            "Vu la loi n° 90-14 du 23 avril 1990 ;"
        )
        self.relationships = self.analyzer.analyze(text)
        self.graph = self.analyzer.build_graph(self.relationships)

    def test_documents(self):
        assert len(self.relationships) == 4
        assert 'unknown_current' in self.graph.documents
        assert len(self.graph.documents) == 5

    def test_related(self):
        related = self.graph.related('unknown_current')
        assert related == ['loi_90-11', 'loi_90-12', 'loi_90-13', 'loi_90-14']

    def test_statistics(self):
        stats = self.graph.statistics
        assert stats['total_relationships'] == 4
        assert stats['relationships_by_type'] == {'vu': 4}

    def test_clusters(self):
        types = {c.cluster_type for c in self.graph.clusters}
        assert types == {'thematic', 'chronological'}
        chronological = [c for c in self.graph.clusters if c.cluster_type == 'chronological']
        assert chronological[0].documents == ['loi_90-11', 'loi_90-12', 'loi_90-13', 'loi_90-14']
