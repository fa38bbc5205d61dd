"""
Relationship Analyzer Module

Finds the seven kinds of cross-references between Algerian legal texts:
vu, modification, abrogation, approbation, controle, extension, annexe.

Each match names a target document (type + number). The date (gregorian
and hijri) and the issuing authority are searched in a ±200 character
window around the match; relation-specific details are extracted from the
matched phrase (abrogated articles, extension domain, conformity level).

The graph step groups documents into thematic clusters (documents linked
by relations, more than 2 per cluster) and chronological clusters (same
year, more than 3 per cluster).
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from loguru import logger

from ..confidence import mean, relationship_confidence
from .normalizers import MONTH_NAMES, normalize_whitespace


class RelationType(Enum):
    VU = 'vu'
    MODIFICATION = 'modification'
    ABROGATION = 'abrogation'
    APPROBATION = 'approbation'
    CONTROLE = 'controle'
    EXTENSION = 'extension'
    ANNEXE = 'annexe'


CONTEXT_WINDOW = 200
PRIMARY_TYPES = ('loi', 'décret', 'decret', 'ordonnance')
WELL_FORMED_NUMBER = re.compile(r'\d{2,}-\d{2,}')

DOC_TYPE = (
    r"(?P<type>loi(?:\s+organique)?|ordonnance|code|d[ée]cision|circulaire|instruction|"
    r"d[ée]cret(?:\s+(?:l[ée]gislatif|pr[ée]sidentiel|ex[ée]cutif))?|"
    r"arr[êe]t[ée](?:\s+(?:inter)?minist[ée]riel(?:le)?)?)"
)
ARTICLE = r"(?:la|le|les|l['’]|au|aux|du|de\s+la|de\s+l['’])\s*"
NUMBER = r"(?:n\s*°|n[o°]\.?|num[ée]ro)\s*(?P<number>\d[\d/-]*\d|\d)"
REFERENCE = rf"{ARTICLE}{DOC_TYPE}\s+{NUMBER}"
DATED = r"(?:\s+du\s+[^,;.\n]{1,80}?)?"
PAST = r"[ée]e?s?"

RELATIONSHIP_PATTERNS = {
    RelationType.VU: [
        rf"\bvu\s+{REFERENCE}[^;\n]*",
    ],
    RelationType.MODIFICATION: [
        rf"\bmodifi{PAST}\s+(?:et\s+compl[ée]t{PAST}\s+)?(?:par\s+)?{REFERENCE}",
        rf"\bmodification\s+(?:de\s+)?{REFERENCE}",
        rf"\b{REFERENCE}{DATED}\s+(?:est\s+|sont\s+)?modifi{PAST}",
    ],
    RelationType.ABROGATION: [
        rf"\babrog{PAST}\s+(?:les?\s+)?(?P<articles>articles?\s+[\d,\s\-et]+?)\s+(?:de\s+|du\s+)?{REFERENCE}",
        rf"\babrog{PAST}\s+{REFERENCE}",
        rf"\b{REFERENCE}{DATED}\s+(?:est\s+|sont\s+)?abrog{PAST}",
        rf"\bannul{PAST}\s+{REFERENCE}",
    ],
    RelationType.APPROBATION: [
        rf"\bapprouv{PAST}\s+(?:par\s+)?{REFERENCE}",
        rf"\b{REFERENCE}{DATED}\s+(?:est\s+)?approuv{PAST}",
        rf"\bendoss{PAST}\s+(?:par\s+)?{REFERENCE}",
    ],
    RelationType.CONTROLE: [
        rf"\bcontr[ôo]le(?:nt)?\s+(?:de\s+)?(?:la\s+)?(?:conformit[ée]|constitutionnalit[ée]|l[ée]galit[ée])\s+(?:de\s+|à\s+)?{REFERENCE}",
        rf"\b[ée]valuation\s+constitutionnelle?\s+(?:de\s+)?{REFERENCE}",
    ],
    RelationType.EXTENSION: [
        rf"\bapplication\s+(?:de\s+)?{REFERENCE}{DATED}\s+(?:à|aux?)\s+[^.\n]*",
        rf"\b[ée]largissement\s+(?:de\s+la\s+)?port[ée]e\s+(?:de\s+)?{REFERENCE}",
        rf"\b(?:les\s+dispositions\s+de\s+)?{REFERENCE}{DATED}\s+(?:est\s+|sont\s+)?(?:[ée]tendu(?:e|s|es)?|applicables?)\s+(?:à|aux?)\s+[^.\n]*",
    ],
    RelationType.ANNEXE: [
        rf"\bannexes?\s+(?:à\s+)?{REFERENCE}",
        rf"\blistes?\s+(?:compl[ée]mentaires?\s+)?(?:à\s+|de\s+)?{REFERENCE}",
        rf"\bclassifications?\s+(?:de\s+)?{REFERENCE}",
    ],
}

COMPILED_PATTERNS = {
    relation_type: [re.compile(p, re.IGNORECASE) for p in patterns]
    for relation_type, patterns in RELATIONSHIP_PATTERNS.items()
}

GREGORIAN_DATE = re.compile(rf'(\d{{1,2}})(?:er)?\s+({MONTH_NAMES})\s+(\d{{4}})', re.IGNORECASE)
CORRESPONDING_DATE = re.compile(
    rf'correspondant\s+(?:au\s+)?(\d{{1,2}})(?:er)?\s+({MONTH_NAMES})\s+(\d{{4}})', re.IGNORECASE,
)
HIJRI_DATE = re.compile(
    r"(?:\d{1,2}|aouel|1er)\s+(?:moharram|safar|rabi['’]?e?\s*(?:el\s+)?(?:aouel|ethani)|"
    r"joumada\s+(?:el\s+)?(?:oula|ethania)|rajab|cha['’]?bane?|ramadhan|ramadan|chaoual|"
    r"dhou\s+el\s+(?:kaada|hidja))\s+\d{3,4}",
    re.IGNORECASE,
)

AUTHORITY_PATTERNS = [
    re.compile(r"minist[èe]re\s+(?:de\s+la\s+|de\s+l['’]|du\s+|des\s+|de\s+)?[^,.;\n]+", re.IGNORECASE),
    re.compile(r"pr[ée]sid(?:ent|ence)\s+de\s+la\s+r[ée]publique", re.IGNORECASE),
    re.compile(r"premier\s+ministre", re.IGNORECASE),
    re.compile(r"assembl[ée]e\s+populaire\s+nationale", re.IGNORECASE),
    re.compile(r"conseil\s+(?:constitutionnel|d['’]?[ée]tat|des\s+ministres)", re.IGNORECASE),
    re.compile(r"autorit[ée]\s+(?:nationale\s+)?[^,.;\n]+", re.IGNORECASE),
]

TITLE_PATTERN = re.compile(r"\b(?:portant|relatif\s+(?:à|aux?)|relative\s+(?:à|aux?)|fixant)\s+([^,;\n]{3,120})", re.IGNORECASE)
ARTICLE_NUMBERS = re.compile(r'articles?\s+([\d,\s\-et]+)', re.IGNORECASE)
EXTENSION_DOMAIN = re.compile(r'\b(?:à|aux?)\s+([^.\n]+)', re.IGNORECASE)


@dataclass
class LegalDocumentRef:
    """A legal text identified by type and number."""
    doc_type: str
    number: str
    gregorian_date: Optional[str] = None
    hijri_date: Optional[str] = None
    title: Optional[str] = None
    issuing_authority: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.doc_type}_{self.number}"

    @property
    def year(self) -> Optional[str]:
        if not self.gregorian_date:
            return None
        return self.gregorian_date.split()[-1]

    def to_dict(self) -> dict[str, Any]:
        date = {}
        if self.gregorian_date:
            date['gregorian'] = self.gregorian_date
        if self.hijri_date:
            date['hijri'] = self.hijri_date
        return {
            'type': self.doc_type,
            'number': self.number,
            'date': date or None,
            'title': self.title,
            'issuing_authority': self.issuing_authority,
        }


def current_document() -> LegalDocumentRef:
    return LegalDocumentRef(doc_type='unknown', number='current')


@dataclass
class LegalRelationship:
    """Directed link from the analyzed document to a referenced one."""
    relation_type: RelationType
    source: LegalDocumentRef
    target: LegalDocumentRef
    description: str
    confidence: float
    start: int
    end: int
    page: Optional[int] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            'type': self.relation_type.value,
            'source': self.source.to_dict(),
            'target': self.target.to_dict(),
            'description': self.description,
            'confidence': round(self.confidence, 3),
            'position': {'start': self.start, 'end': self.end, 'page': self.page},
            'details': self.details or None,
        }


@dataclass
class DocumentCluster:
    cluster_id: str
    documents: list[str]
    cluster_type: str               # thematic / chronological
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.cluster_id,
            'documents': self.documents,
            'type': self.cluster_type,
            'description': self.description,
        }


@dataclass
class RelationshipGraph:
    documents: dict[str, LegalDocumentRef] = field(default_factory=dict)
    relationships: list[LegalRelationship] = field(default_factory=list)
    clusters: list[DocumentCluster] = field(default_factory=list)

    def related(self, key: str) -> list[str]:
        """Keys of documents directly linked to ``key``."""
        linked = []
        for rel in self.relationships:
            if rel.source.key == key and rel.target.key not in linked:
                linked.append(rel.target.key)
            elif rel.target.key == key and rel.source.key not in linked:
                linked.append(rel.source.key)
        return linked

    @property
    def statistics(self) -> dict[str, Any]:
        by_type = Counter(rel.relation_type.value for rel in self.relationships)
        referenced = Counter(rel.target.key for rel in self.relationships)
        return {
            'total_documents': len(self.documents),
            'total_relationships': len(self.relationships),
            'relationships_by_type': dict(by_type),
            'average_confidence': mean(rel.confidence for rel in self.relationships),
            'most_referenced': referenced.most_common(5),
            'clusters': {
                'thematic': sum(1 for c in self.clusters if c.cluster_type == 'thematic'),
                'chronological': sum(1 for c in self.clusters if c.cluster_type == 'chronological'),
            },
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            'documents': {key: ref.to_dict() for key, ref in self.documents.items()},
            'relationships': [rel.to_dict() for rel in self.relationships],
            'clusters': [c.to_dict() for c in self.clusters],
            'statistics': self.statistics,
        }


class RelationshipAnalyzer:
    """
    Extracts legal relationships from document text.

    Usage:
        analyzer = RelationshipAnalyzer()
        relationships = analyzer.analyze(text)
        graph = analyzer.build_graph(relationships)
    """

    def __init__(self, window: int = CONTEXT_WINDOW):
        self.window = window

    def analyze(self, text: str, source: Optional[LegalDocumentRef] = None) -> list[LegalRelationship]:
        if not text or not text.strip():
            logger.warning("Empty text provided to relationship analysis")
            return []

        relationships = []
        seen = set()
        for relation_type, patterns in COMPILED_PATTERNS.items():
            for pattern in patterns:
                for match in pattern.finditer(text):
                    key = (relation_type, match.start('number'))
                    if key in seen:
                        continue
                    seen.add(key)
                    relationships.append(self._build(match, relation_type, text, source))

        relationships.sort(key=lambda r: (r.start, r.relation_type.value))
        logger.info(f"Found {len(relationships)} legal relationships")
        return relationships

    def _build(self, match: re.Match, relation_type: RelationType, text: str,
               source: Optional[LegalDocumentRef]) -> LegalRelationship:
        doc_type = normalize_whitespace(match.group('type')).lower()
        number = match.group('number')
        target = self._resolve_target(doc_type, number, match, text)

        confidence = relationship_confidence(
            well_formed_number=bool(WELL_FORMED_NUMBER.search(number)),
            primary_type=doc_type.split()[0] in PRIMARY_TYPES,
            relation_type=relation_type.value,
        )
        return LegalRelationship(
            relation_type=relation_type,
            source=source or current_document(),
            target=target,
            description=normalize_whitespace(match.group(0)),
            confidence=confidence,
            start=match.start(),
            end=match.end(),
            details=self._details(match, relation_type, text),
        )

    def _resolve_target(self, doc_type: str, number: str, match: re.Match, text: str) -> LegalDocumentRef:
        """Target reference with date and authority from the surrounding window."""
        before = text[max(0, match.start() - self.window):match.start()]
        after = text[match.end():match.end() + self.window]
        # The phrase itself first, then what follows, then what precedes
        candidates = (match.group(0), after, before)

        target = LegalDocumentRef(doc_type=doc_type, number=number)
        target.gregorian_date = first_result(self._gregorian, candidates)
        target.hijri_date = first_result(self._hijri, candidates)
        target.issuing_authority = first_result(self._authority, candidates)

        title = TITLE_PATTERN.search(match.group(0)[match.end('number') - match.start():])
        if title:
            target.title = normalize_whitespace(title.group(1))
        return target

    @staticmethod
    def _gregorian(text: str) -> Optional[str]:
        found = CORRESPONDING_DATE.search(text) or GREGORIAN_DATE.search(text)
        if not found:
            return None
        return f"{int(found.group(1))} {found.group(2).lower()} {found.group(3)}"

    @staticmethod
    def _hijri(text: str) -> Optional[str]:
        found = HIJRI_DATE.search(text)
        return normalize_whitespace(found.group(0)) if found else None

    @staticmethod
    def _authority(text: str) -> Optional[str]:
        for pattern in AUTHORITY_PATTERNS:
            found = pattern.search(text)
            if found:
                return normalize_whitespace(found.group(0))
        return None

    @staticmethod
    def _details(match: re.Match, relation_type: RelationType, text: str) -> dict[str, Any]:
        phrase = match.group(0)
        details: dict[str, Any] = {}
        if relation_type == RelationType.ABROGATION:
            articles = match.groupdict().get('articles')
            found = ARTICLE_NUMBERS.search(articles) if articles else None
            if found:
                details['articles_affected'] = [a for a in re.split(r'[,\s\-]+|\bet\b', found.group(1)) if a.strip()]
                details['partial_abrogation'] = True
            else:
                details['partial_abrogation'] = False
        elif relation_type == RelationType.EXTENSION:
            tail = phrase[match.end('number') - match.start():]
            domain = EXTENSION_DOMAIN.search(tail)
            if domain:
                details['extension_domain'] = normalize_whitespace(domain.group(1))
        elif relation_type == RelationType.CONTROLE:
            # The controlling body may precede the verb in the same sentence
            sentence_start = max(text.rfind('.', 0, match.start()), text.rfind('\n', 0, match.start())) + 1
            scope = text[sentence_start:match.end()]
            if re.search(r'constitution', scope, re.IGNORECASE):
                details['conformity_level'] = 'constitutional'
            elif re.search(r'l[ée]gal', scope, re.IGNORECASE):
                details['conformity_level'] = 'legal'
            else:
                details['conformity_level'] = 'regulatory'
        return details

    def build_graph(self, relationships: list[LegalRelationship]) -> RelationshipGraph:
        graph = RelationshipGraph(relationships=list(relationships))
        for rel in relationships:
            graph.documents.setdefault(rel.source.key, rel.source)
            graph.documents.setdefault(rel.target.key, rel.target)

        graph.clusters.extend(thematic_clusters(graph))
        graph.clusters.extend(chronological_clusters(graph.documents.values()))
        logger.info(
            f"Graph built: {len(graph.documents)} documents, {len(relationships)} relationships, "
            f"{len(graph.clusters)} clusters"
        )
        return graph


def first_result(extract, candidates) -> Optional[str]:
    for candidate in candidates:
        value = extract(candidate)
        if value:
            return value
    return None


def thematic_clusters(graph: RelationshipGraph, min_size: int = 3) -> list[DocumentCluster]:
    """One cluster per document linked to at least ``min_size - 1`` others."""
    clusters = []
    processed = set()
    for rel in graph.relationships:
        if rel.source.key in processed or rel.target.key in processed:
            continue
        members = [rel.source.key] + [k for k in graph.related(rel.source.key) if k != rel.source.key]
        if len(members) >= min_size:
            clusters.append(DocumentCluster(
                cluster_id=f"thematic_{len(clusters) + 1}",
                documents=members,
                cluster_type='thematic',
                description=f"Cluster thématique autour de {rel.source.doc_type} {rel.source.number}",
            ))
            processed.update(members)
    return clusters


def chronological_clusters(documents, min_size: int = 4) -> list[DocumentCluster]:
    """Documents grouped by gregorian year; groups of ``min_size`` or more."""
    by_year: dict[str, list[str]] = {}
    for ref in documents:
        if ref.year:
            by_year.setdefault(ref.year, []).append(ref.key)
    return [
        DocumentCluster(
            cluster_id=f"chronological_{year}",
            documents=keys,
            cluster_type='chronological',
            description=f"Documents de l'année {year}",
        )
        for year, keys in sorted(by_year.items())
        if len(keys) >= min_size
    ]
