"""
Replace selected entities with session tokens and describe the result.

apply_anonymization() produces the redacted text, generate_mapping() the
table that links every token back to its original value, and restore_text()
undoes the redaction from that table.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from ..entities import Entity, EntitySource
from ..preprocessing.text_normalizer import find_code_spans, is_in_spans
from .session import AddressEntry, AnonymizationSession, get_session, normalize_entity_type

logger = logging.getLogger(__name__)

MAPPING_VERSION = "2.0"


# =============================================================================
# REDACTION
# =============================================================================

def _is_grouped_address(entity: Entity) -> bool:
    return bool(entity.metadata.get("isGroupedAddress"))


def apply_anonymization(content: str, entities: List[Entity],
                        session: Optional[AnonymizationSession] = None,
                        protect_code_blocks: bool = False) -> str:
    """
    Replace every selected entity with its "[TYPE_N]" token.

    Tokens are assigned in document order so the first occurrence of a type
    gets _1. Splicing then runs from the end of the text backwards so that
    earlier offsets stay valid. An entity overlapping a span that is already
    being replaced is skipped.

    Args:
        content: Text the entity offsets refer to
        entities: Detected entities; only selected ones are replaced
        session: Token session (defaults to the module session)
        protect_code_blocks: Leave fenced and inline code untouched

    Returns:
        The redacted text
    """
    session = session or get_session()
    selected = sorted((e for e in entities if e.selected), key=lambda e: (e.start, -e.end))
    code_spans = find_code_spans(content) if protect_code_blocks else []
    session.redaction_applied = True

    planned: List[Tuple[int, int, str]] = []
    for entity in selected:
        if entity.end > len(content):
            logger.warning("Entity %s [%d, %d) lies outside the text; skipped",
                           entity.entity_type, entity.start, entity.end)
            continue
        if code_spans and is_in_spans(entity.start, entity.end, code_spans):
            continue
        if any(entity.start < end and start < entity.end for start, end, _ in planned):
            continue
        if _is_grouped_address(entity):
            token = session.register_grouped_address(entity)
        else:
            token = session.get_or_create_token(entity.text, entity.entity_type)
            session.mark_anonymized(entity.start, entity.end, token)
        planned.append((entity.start, entity.end, token))

    result = content
    for start, end, token in sorted(planned, key=lambda p: p[0], reverse=True):
        result = result[:start] + token + result[end:]

    logger.debug("Replaced %d of %d selected entities", len(planned), len(selected))
    return result


# =============================================================================
# MAPPING
# =============================================================================

@dataclass
class MappingEntry:
    """One anonymized instance."""
    original: str
    token: str
    entity_type: str
    confidence: float
    source: str
    start: int
    end: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original": self.original,
            "token": self.token,
            "type": self.entity_type,
            "confidence": round(self.confidence, 4),
            "source": self.source,
            "start": self.start,
            "end": self.end,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MappingEntry":
        return cls(
            original=data["original"],
            token=data["token"],
            entity_type=data["type"],
            confidence=data.get("confidence", 0.0),
            source=data.get("source", EntitySource.RULE.value),
            start=data["start"],
            end=data["end"],
        )


@dataclass
class MappingStatistics:
    total: int = 0
    anonymized: int = 0
    skipped: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_source: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "anonymized": self.anonymized,
            "skipped": self.skipped,
            "byType": dict(self.by_type),
            "bySource": dict(self.by_source),
        }


@dataclass
class Mapping:
    """
    Token table for one redacted document.

    Attributes:
        filename: Name of the source document
        entries: One row per replaced instance, in document order
        addresses: Component breakdown of grouped addresses
        statistics: Summary counts
        document_type: Classified document type, if known
        detection_methods: Sources that contributed entries
        version: Mapping format version
        timestamp: ISO timestamp of generation
    """
    filename: str
    entries: List[MappingEntry] = field(default_factory=list)
    addresses: List[AddressEntry] = field(default_factory=list)
    statistics: MappingStatistics = field(default_factory=MappingStatistics)
    document_type: Optional[str] = None
    detection_methods: List[str] = field(default_factory=list)
    version: str = MAPPING_VERSION
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "filename": self.filename,
            "documentType": self.document_type,
            "detectionMethods": list(self.detection_methods),
            "entries": [e.to_dict() for e in self.entries],
            "addresses": [a.to_dict() for a in self.addresses],
            "statistics": self.statistics.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def to_markdown(self) -> str:
        lines = [
            f"# PII Mapping: {self.filename}",
            "",
            f"Generated: {self.timestamp}",
        ]
        if self.document_type:
            lines.append(f"Document type: {self.document_type}")
        lines += ["", "## Anonymized PII", ""]

        if self.entries:
            lines.append("| Original | Replacement | Type | Source | Confidence |")
            lines.append("|----------|-------------|------|--------|------------|")
            for entry in self.entries:
                confidence = "100%" if entry.source == EntitySource.MANUAL.value \
                    else f"{round(entry.confidence * 100)}%"
                lines.append(f"| {_md_cell(entry.original)} | {entry.token} | {entry.entity_type} "
                             f"| {entry.source} | {confidence} |")
        else:
            lines.append("No PII was anonymized in this document.")

        if self.addresses:
            lines += ["", "## Grouped Addresses", ""]
            lines.append("| Replacement | Street | Number | Postal | City | Country | Pattern |")
            lines.append("|-------------|--------|--------|--------|------|---------|---------|")
            for address in self.addresses:
                parts = [_md_cell(address.components.get(key) or "-")
                         for key in ("street", "number", "postal", "city", "country")]
                lines.append(f"| {address.placeholder} | {' | '.join(parts)} "
                             f"| {address.pattern_matched or '-'} |")

        stats = self.statistics
        lines += [
            "",
            "## Statistics",
            "",
            f"- Total entities detected: {stats.total}",
            f"- Entities anonymized: {stats.anonymized}",
            f"- Entities skipped: {stats.skipped}",
        ]
        if stats.by_type:
            lines += ["", "### By Type", ""]
            lines += [f"- {name}: {count}" for name, count in stats.by_type.items()]
        if stats.by_source:
            lines += ["", "### By Source", ""]
            lines += [f"- {name}: {count}" for name, count in stats.by_source.items()]
        return "\n".join(lines) + "\n"


def _md_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\r", " ").replace("\n", " ")


def _folded_into_group(entity: Entity, groups: List[Entity]) -> bool:
    for group in groups:
        if group is entity:
            continue
        if any(c.id == entity.id for c in group.components) or group.contains(entity):
            return True
    return False


def generate_mapping(filename: str, selected_entities: List[Entity],
                     all_entities: Optional[List[Entity]] = None,
                     session: Optional[AnonymizationSession] = None,
                     document_type: Optional[str] = None) -> Mapping:
    """
    Build the token table for a document.

    When apply_anonymization() already ran with the same session, the rows
    are exactly the spans it replaced. Otherwise tokens are minted here.
    Entities folded into a selected grouped address get no row of their own.

    Args:
        filename: Source document name
        selected_entities: Entities chosen for anonymization
        all_entities: Every detected entity, for the statistics
        session: Token session (defaults to the module session)
        document_type: Classified document type

    Returns:
        Mapping
    """
    session = session or get_session()
    selected = sorted((e for e in selected_entities if e.selected), key=lambda e: (e.start, -e.end))
    groups = [e for e in selected if _is_grouped_address(e)]
    applied = session.redaction_applied

    mapping = Mapping(filename=filename, document_type=document_type)
    for entity in selected:
        if _folded_into_group(entity, groups):
            continue
        token = session.replaced_token(entity.start, entity.end)
        if token is None:
            if applied:
                # Overlapped another replacement; not in the redacted text
                continue
            token = session.get_or_create_token(entity.text, entity.entity_type)

        mapping.entries.append(MappingEntry(
            original=entity.text,
            token=token,
            entity_type=normalize_entity_type(entity.entity_type),
            confidence=entity.confidence,
            source=entity.source.value,
            start=entity.start,
            end=entity.end,
        ))
        if _is_grouped_address(entity):
            entry = session.address_entry_at(entity.start, entity.end) \
                or AddressEntry.from_entity(entity, token)
            mapping.addresses.append(entry)

    total = len(all_entities) if all_entities is not None else len(selected_entities)
    by_type = Counter(e.entity_type for e in mapping.entries)
    by_source = Counter(e.source for e in mapping.entries)
    mapping.statistics = MappingStatistics(
        total=total,
        anonymized=len(mapping.entries),
        skipped=max(0, total - len(selected)),
        by_type=dict(by_type.most_common()),
        by_source=dict(by_source.most_common()),
    )
    mapping.detection_methods = sorted(by_source)
    return mapping


# =============================================================================
# RESTORE
# =============================================================================

def restore_text(redacted: str, mapping: Union[Mapping, Dict[str, Any]]) -> str:
    """
    Put the original values back into redacted text.

    Token positions in the redacted text are derived from the entry offsets,
    then entries are replayed from the last to the first.

    Raises:
        ValueError: If a token is not where the mapping says it is
    """
    if isinstance(mapping, Mapping):
        entries = list(mapping.entries)
    else:
        entries = [MappingEntry.from_dict(d) for d in mapping.get("entries", [])]

    positions: List[Tuple[int, MappingEntry]] = []
    shift = 0
    for entry in sorted(entries, key=lambda e: e.start):
        positions.append((entry.start + shift, entry))
        shift += len(entry.token) - (entry.end - entry.start)

    result = redacted
    for position, entry in reversed(positions):
        end = position + len(entry.token)
        if result[position:end] != entry.token:
            raise ValueError(
                f"Token {entry.token} not found at offset {position}; "
                f"mapping does not match the redacted text"
            )
        result = result[:position] + entry.original + result[end:]
    return result
