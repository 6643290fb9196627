"""
Document type classification from keywords, structure and layout.

Runs fully offline and is deterministic: the same text always yields the
same classification.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import regex

from ..preprocessing.language import detect_language
from ..safe_regex import compile_pattern, safe_finditer, safe_search

logger = logging.getLogger(__name__)


class DocumentType(str, Enum):
    INVOICE = "INVOICE"
    LETTER = "LETTER"
    FORM = "FORM"
    CONTRACT = "CONTRACT"
    MEDICAL = "MEDICAL"
    LEGAL = "LEGAL"
    CORRESPONDENCE = "CORRESPONDENCE"
    REPORT = "REPORT"
    UNKNOWN = "UNKNOWN"


# Score at which confidence reaches 1.0
MAX_SCORE = 3.0
STRUCTURAL_PATTERN_WEIGHT = 0.15
POSITION_LINES = 5


# ============================================================================
# Keywords per type and language
# ============================================================================

DOCUMENT_KEYWORDS: Dict[DocumentType, Dict[str, List[str]]] = {
    DocumentType.INVOICE: {
        "en": ["invoice", "bill", "payment due", "amount due", "subtotal", "total", "vat", "qty",
               "quantity", "unit price", "invoice number", "invoice date", "due date",
               "payment terms", "remittance"],
        "fr": ["facture", "montant", "total", "tva", "quantité", "prix unitaire",
               "numéro de facture", "date de facture", "échéance", "règlement", "net à payer", "ttc"],
        "de": ["rechnung", "rechnungsnummer", "betrag", "mwst", "mehrwertsteuer", "gesamtbetrag",
               "menge", "einzelpreis", "rechnungsdatum", "zahlbar", "fällig", "netto", "brutto",
               "total", "zahlungsfrist"],
        "it": ["fattura", "importo", "totale", "iva", "quantità", "prezzo unitario",
               "numero fattura", "data fattura", "scadenza"],
    },
    DocumentType.LETTER: {
        "en": ["dear", "sincerely", "regards", "yours truly", "yours faithfully", "best regards",
               "kind regards", "to whom it may concern", "enclosed", "please find", "i am writing"],
        "fr": ["cher", "chère", "madame", "monsieur", "cordialement", "salutations",
               "veuillez agréer", "je vous prie", "meilleures salutations", "bien à vous", "ci-joint"],
        "de": ["sehr geehrte", "sehr geehrter", "liebe", "lieber", "mit freundlichen grüßen",
               "mit freundlichen grüssen", "hochachtungsvoll", "beste grüsse", "anbei"],
        "it": ["gentile", "egregio", "caro", "cara", "cordiali saluti", "distinti saluti",
               "cordialmente", "in allegato", "le scrivo"],
    },
    DocumentType.FORM: {
        "en": ["please fill", "please complete", "checkbox", "select one", "enter your", "your name",
               "your address", "date of birth", "sign here", "required field", "not applicable"],
        "fr": ["veuillez remplir", "cochez", "case à cocher", "sélectionnez", "votre nom",
               "votre adresse", "date de naissance", "champ obligatoire", "facultatif"],
        "de": ["bitte ausfüllen", "ankreuzen", "kontrollkästchen", "wählen sie", "ihr name",
               "ihre adresse", "geburtsdatum", "pflichtfeld", "nicht zutreffend"],
        "it": ["compilare", "casella", "selezionare", "inserire", "data di nascita",
               "obbligatorio", "facoltativo"],
    },
    DocumentType.CONTRACT: {
        "en": ["agreement", "contract", "parties", "whereas", "hereby", "herein", "clause",
               "terms and conditions", "effective date", "termination", "obligations",
               "governing law", "jurisdiction", "binding"],
        "fr": ["contrat", "accord", "parties", "attendu que", "par les présentes", "ci-après",
               "clause", "conditions générales", "résiliation", "obligations", "loi applicable",
               "juridiction"],
        "de": ["vertrag", "vereinbarung", "parteien", "vertragsparteien", "hiermit", "klausel",
               "allgemeine geschäftsbedingungen", "inkrafttreten", "kündigung", "pflichten",
               "gewährleistung", "anwendbares recht", "gerichtsstand"],
        "it": ["contratto", "accordo", "parti", "premesso", "con la presente", "clausola",
               "condizioni generali", "risoluzione", "obblighi", "legge applicabile",
               "foro competente"],
    },
    DocumentType.MEDICAL: {
        "en": ["patient", "diagnosis", "treatment", "medication", "prescription", "physician",
               "hospital", "clinic", "symptoms", "medical history", "allergies", "dosage"],
        "fr": ["patient", "patiente", "diagnostic", "traitement", "médicament", "ordonnance",
               "médecin", "hôpital", "clinique", "symptômes", "antécédents"],
        "de": ["patient", "patientin", "diagnose", "behandlung", "medikament", "rezept", "arzt",
               "ärztin", "spital", "krankenhaus", "klinik", "symptome", "anamnese", "befund",
               "krankenkasse"],
        "it": ["paziente", "diagnosi", "trattamento", "farmaco", "ricetta", "medico", "ospedale",
               "clinica", "sintomi", "anamnesi"],
    },
    DocumentType.LEGAL: {
        "en": ["court", "plaintiff", "defendant", "judgment", "ruling", "appeal", "lawsuit",
               "attorney", "counsel", "verdict", "hearing", "case number"],
        "fr": ["tribunal", "demandeur", "défendeur", "jugement", "arrêt", "recours", "avocat",
               "audience", "procédure"],
        "de": ["gericht", "kläger", "klägerin", "beklagte", "beklagter", "urteil", "beschluss",
               "berufung", "beschwerde", "rechtsanwalt", "verhandlung", "verfahren",
               "aktenzeichen"],
        "it": ["tribunale", "attore", "convenuto", "sentenza", "ricorso", "avvocato", "udienza",
               "procedimento"],
    },
    DocumentType.CORRESPONDENCE: {
        "en": ["from:", "to:", "cc:", "sent:", "subject:", "forwarded message", "reply", "wrote:"],
        "fr": ["de :", "à :", "envoyé :", "objet :", "message transféré", "a écrit"],
        "de": ["von:", "an:", "gesendet:", "betreff:", "weitergeleitete nachricht", "schrieb:"],
        "it": ["da:", "a:", "inviato:", "oggetto:", "messaggio inoltrato", "ha scritto"],
    },
    DocumentType.REPORT: {
        "en": ["executive summary", "introduction", "conclusion", "findings", "recommendations",
               "analysis", "methodology", "results", "appendix", "table of contents", "abstract",
               "overview", "background", "objectives"],
        "fr": ["résumé exécutif", "introduction", "conclusion", "résultats", "recommandations",
               "analyse", "méthodologie", "annexe", "table des matières", "sommaire", "contexte"],
        "de": ["zusammenfassung", "einleitung", "fazit", "ergebnisse", "empfehlungen", "analyse",
               "methodik", "anhang", "inhaltsverzeichnis", "überblick", "hintergrund", "ziele"],
        "it": ["sommario", "introduzione", "conclusione", "risultati", "raccomandazioni",
               "analisi", "metodologia", "allegato", "indice", "panoramica"],
    },
}

# Layout signals; matched case-insensitively, MULTILINE for the anchored ones
STRUCTURAL_PATTERNS: Dict[DocumentType, List[str]] = {
    DocumentType.INVOICE: [
        r"(?:invoice|rechnung|facture|fattura)\s*(?:no\.?|nr\.?|#|:|n°)\s*[\w-]+",
        r"(?:total|montant|betrag)\s*[:=]?\s*(?:chf|eur|usd|€|£|\$)?\s*[\d',.\s]+",
        r"(?:qty|menge|quantité)\s+(?:unit|preis|prix)",
        r"(?:chf|eur|usd)\s*[\d',.\s]+",
        r"\d+[.,]\d{2}\s*(?:chf|eur|usd|€)",
    ],
    DocumentType.LETTER: [
        r"^(?:dear|sehr geehrte[r]?|cher|chère|madame|monsieur|gentile)",
        r"(?:sincerely|regards|cordialement|grüße|grüssen|salutations|saluti)\s*,?\s*$",
        r"^(?:re:|betreff:|objet:|subject:|oggetto:)",
        r"(?:enclosed|anbei|ci-joint|in allegato)",
    ],
    DocumentType.FORM: [
        r"\[\s*\]|\(\s*\)|□|☐|☑|☒",
        r"(?:name|nom|nome):\s*_{2,}|_{5,}",
        r"(?:yes|no|oui|non|ja|nein)\s*(?:\[\s*\]|\(\s*\))",
        r"please\s+(?:check|tick|fill|complete)",
        r"\*\s*(?:required|obligatoire|pflichtfeld)",
    ],
    DocumentType.CONTRACT: [
        r"(?:between|entre|zwischen)\s+(?:the\s+)?(?:parties|parteien|les parties)",
        r"(?:article|clause|section|artikel|art\.)\s+\d+",
        r"(?:whereas|attendu que|in anbetracht)",
        r"(?:hereby|par les présentes|hiermit)\s+(?:agree|conviennent|vereinbaren)",
    ],
    DocumentType.MEDICAL: [
        r"(?:diagnos(?:is|e|tic)|befund)\s*:",
        r"(?:patient(?:in|e)?|paziente)\s*:",
        r"\d+\s*(?:mg|ml|µg)\b",
        r"(?:icd-?10|ahv-?nr|avs)\b",
    ],
    DocumentType.LEGAL: [
        r"(?:aktenzeichen|az\.|case\s+no\.?|dossier\s+n°)\s*:?\s*[\w/-]+",
        r"(?:kläger(?:in)?|plaintiff|demandeur)\s+(?:gegen|v\.?|vs\.?|contre)",
        r"(?:art\.|§)\s*\d+\s*(?:abs\.|al\.|para\.)",
    ],
    DocumentType.CORRESPONDENCE: [
        r"^(?:from|von|de|da)\s*:\s*\S+@\S+",
        r"^(?:to|an|à|a)\s*:\s*\S+@\S+",
        r"^(?:sent|gesendet|envoyé|inviato)\s*:",
        r"^-{2,}\s*(?:original message|forwarded message|ursprüngliche nachricht)",
    ],
    DocumentType.REPORT: [
        r"(?:table\s+of\s+contents|inhaltsverzeichnis|table\s+des\s+matières)",
        r"(?:executive\s+summary|zusammenfassung|résumé)",
        r"^(?:\d+\.|\d+\))\s+(?:introduction|methodology|results|conclusion|einleitung)",
        r"(?:appendix|anhang|annexe)\s+[a-z\d]",
        r"(?:figure|table|abbildung|tabelle)\s+\d+",
    ],
}

# (type, feature name, pattern, weight, first lines?)
POSITION_BOOSTS = [
    (DocumentType.INVOICE, "invoice_header", r"invoice|rechnung|facture|fattura", 0.2, True),
    (DocumentType.LETTER, "salutation_start", r"dear|sehr geehrte|cher|madame|monsieur|gentile", 0.2, True),
    (DocumentType.LETTER, "signature_end", r"sincerely|regards|grüß|grüss|cordialement|salutations|saluti", 0.15, False),
    (DocumentType.CONTRACT, "parties_clause", r"between|entre|zwischen|parties|parteien", 0.2, True),
    (DocumentType.REPORT, "toc_header", r"table of contents|inhaltsverzeichnis|table des matières", 0.25, True),
]

_FLAGS = regex.IGNORECASE | regex.MULTILINE


@dataclass
class ClassificationFeature:
    name: str
    weight: float
    match: Optional[str] = None
    position: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "weight": round(self.weight, 4),
                "match": self.match, "position": self.position}


@dataclass
class DocumentClassification:
    """
    Attributes:
        type: Primary document type (UNKNOWN below the minimum confidence)
        confidence: min(score / 3.0, 1.0) of the best-scoring type
        language: Detected language code
        secondary_type: Runner-up type when it scored above 0.2
        features: Strongest features, highest weight first
    """
    type: DocumentType
    confidence: float
    language: Optional[str] = None
    secondary_type: Optional[DocumentType] = None
    features: List[ClassificationFeature] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": round(self.confidence, 4),
            "language": self.language,
            "secondaryType": self.secondary_type.value if self.secondary_type else None,
            "features": [f.to_dict() for f in self.features],
        }


def keyword_weight(keyword: str, count: int) -> float:
    """Longer and more frequent keywords weigh more."""
    length_factor = min(len(keyword) / 8, 1.5)
    count_factor = 1 + math.log2(count + 1) * 0.5
    return 0.08 * length_factor * count_factor


def _keyword_pattern(keyword: str) -> "regex.Pattern":
    return compile_pattern(rf"(?<!\w){regex.escape(keyword)}(?!\w)", _FLAGS)


class DocumentClassifier:
    """
    Classify a document as invoice, letter, form, contract and so on.

    Args:
        min_confidence: Below this the type is UNKNOWN
        detect_language: Pick keyword lists by detected language (else English)
        analyze_structure: Score structural patterns
    """

    def __init__(self, min_confidence: float = 0.25, detect_language: bool = True,
                 analyze_structure: bool = True):
        self.min_confidence = min_confidence
        self.detect_language = detect_language
        self.analyze_structure = analyze_structure

    def classify(self, text: str) -> DocumentClassification:
        language = detect_language(text, default="en") if self.detect_language else "en"
        scores: Dict[DocumentType, float] = {t: 0.0 for t in DOCUMENT_KEYWORDS}
        features: List[ClassificationFeature] = []

        self._score_keywords(text, language, scores, features)
        if self.analyze_structure:
            self._score_structure(text, scores, features)
        self._score_positions(text, scores, features)

        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        primary_type, primary_score = ranked[0]
        secondary_type, secondary_score = ranked[1]
        confidence = min(primary_score / MAX_SCORE, 1.0)
        if confidence < self.min_confidence or primary_score <= 0:
            primary_type = DocumentType.UNKNOWN

        features.sort(key=lambda f: f.weight, reverse=True)
        classification = DocumentClassification(
            type=primary_type,
            confidence=confidence,
            language=language,
            secondary_type=secondary_type if secondary_score > 0.2 else None,
            features=features[:10],
        )
        logger.debug("Classified document as %s (%.2f, %s)",
                     classification.type.value, confidence, language)
        return classification

    def is_type(self, text: str, doc_type: DocumentType, min_confidence: float = 0.5) -> bool:
        classification = self.classify(text)
        return classification.type == doc_type and classification.confidence >= min_confidence

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def _score_keywords(text: str, language: str, scores: Dict[DocumentType, float],
                        features: List[ClassificationFeature]) -> None:
        for doc_type, by_language in DOCUMENT_KEYWORDS.items():
            keywords = by_language.get(language) or by_language.get("en", [])
            for keyword in keywords:
                matches = safe_finditer(_keyword_pattern(keyword), text)
                if not matches:
                    continue
                weight = keyword_weight(keyword, len(matches))
                scores[doc_type] += weight
                features.append(ClassificationFeature(f"keyword:{keyword}", weight, matches[0].group()))

    @staticmethod
    def _score_structure(text: str, scores: Dict[DocumentType, float],
                         features: List[ClassificationFeature]) -> None:
        length = max(len(text), 1)
        for doc_type, patterns in STRUCTURAL_PATTERNS.items():
            for pattern in patterns:
                match = safe_search(compile_pattern(pattern, _FLAGS), text)
                if match is None:
                    continue
                scores[doc_type] += STRUCTURAL_PATTERN_WEIGHT
                features.append(ClassificationFeature(
                    f"pattern:{doc_type.value.lower()}", STRUCTURAL_PATTERN_WEIGHT,
                    match.group()[:50], round(match.start() / length, 2)))

    @staticmethod
    def _score_positions(text: str, scores: Dict[DocumentType, float],
                         features: List[ClassificationFeature]) -> None:
        lines = text.split("\n")
        first_lines = "\n".join(lines[:POSITION_LINES])
        last_lines = "\n".join(lines[-POSITION_LINES:])
        for doc_type, name, pattern, weight, at_start in POSITION_BOOSTS:
            region = first_lines if at_start else last_lines
            if safe_search(compile_pattern(pattern, _FLAGS), region):
                scores[doc_type] += weight
                features.append(ClassificationFeature(
                    f"position:{name}", weight, position=0.0 if at_start else 1.0))
