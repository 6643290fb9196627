"""
Chunking of long documents for token-classification models, and merging of
the per-chunk predictions back into document offsets.

Token counts are estimated (max of chars/4 and whitespace words) so the
chunker does not depend on a particular tokenizer.
"""

import math
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence

import regex

DEFAULT_MAX_TOKENS = 512
DEFAULT_OVERLAP_TOKENS = 50

# Sentence end: ., ! or ? followed by a newline, or by whitespace and an
# uppercase letter; common abbreviations do not end a sentence.
_SENTENCE_END = regex.compile(
    r"(?<!\b(?:Mr|Mrs|Ms|Dr|Prof|Sr|Jr|vs|etc|e\.g|i\.e|Inc|Ltd|Corp|Co|Nr|St))"
    r"[.!?](?=\n|\s+(?-i:[A-ZÄÖÜÀÂÇÉÈÊËÎÏÔÛÙŸŒÆ])|\s*$)\s*",
    regex.IGNORECASE,
)


def strip_bio_prefix(label: str) -> str:
    """B-PER -> PER, I-LOC -> LOC"""
    return regex.sub(r"^[BI]-", "", label)


@dataclass
class TextChunk:
    text: str
    start: int
    end: int
    chunk_index: int


def estimate_token_count(text: str) -> int:
    return max(math.ceil(len(text) / 4), len(text.split()))


def split_into_sentences(text: str) -> List[TextChunk]:
    """Split text into sentence spans; trailing whitespace stays with the sentence."""
    spans: List[TextChunk] = []
    start = 0
    for m in _SENTENCE_END.finditer(text):
        if m.end() > start:
            spans.append(TextChunk(text[start:m.end()], start, m.end(), len(spans)))
            start = m.end()
    if start < len(text) and text[start:].strip():
        spans.append(TextChunk(text[start:], start, len(text), len(spans)))
    return spans


def chunk_text(text: str, max_tokens: int = DEFAULT_MAX_TOKENS,
               overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
               tokenizer: Optional[Callable[[str], int]] = None) -> List[TextChunk]:
    """
    Split text into sentence-aligned chunks of at most max_tokens tokens.

    Consecutive chunks share trailing sentences worth about overlap_tokens
    so entities on a chunk boundary are seen whole at least once. A single
    sentence longer than max_tokens becomes its own chunk.

    Returns:
        Chunks with offsets into text
    """
    count = tokenizer or estimate_token_count
    if not text:
        return []
    if count(text) <= max_tokens:
        return [TextChunk(text, 0, len(text), 0)]

    sentences = split_into_sentences(text)
    if not sentences:
        return [TextChunk(text, 0, len(text), 0)]

    chunks: List[TextChunk] = []
    current: List[TextChunk] = []
    current_tokens = 0

    def flush():
        start, end = current[0].start, current[-1].end
        chunks.append(TextChunk(text[start:end], start, end, len(chunks)))

    for sentence in sentences:
        tokens = count(sentence.text)
        if current and current_tokens + tokens > max_tokens:
            flush()
            overlap: List[TextChunk] = []
            overlap_count = 0
            for previous in reversed(current):
                if overlap_count >= overlap_tokens:
                    break
                overlap.insert(0, previous)
                overlap_count += count(previous.text)
            # Never restart with the whole previous chunk
            if len(overlap) == len(current):
                overlap = overlap[1:]
                overlap_count = sum(count(s.text) for s in overlap)
            current = overlap
            current_tokens = overlap_count
        current.append(sentence)
        current_tokens += tokens

    if current:
        flush()
    return chunks


def _overlaps_mostly(a, b) -> bool:
    overlap = max(0, min(a.end, b.end) - max(a.start, b.start))
    shorter = min(a.end - a.start, b.end - b.start)
    return overlap > shorter * 0.5


def merge_chunk_predictions(chunk_predictions: Sequence[Sequence], chunks: Sequence[TextChunk]) -> List:
    """
    Shift per-chunk predictions to document offsets and drop overlap duplicates.

    Args:
        chunk_predictions: One prediction list per chunk (same order as chunks);
            items need entity_label, score, start, end
        chunks: The chunks the predictions were made on

    Returns:
        Predictions sorted by start; duplicates of the same label that overlap
        by more than half the shorter span are merged, keeping the higher score
    """
    shifted = []
    for chunk, predictions in zip(chunks, chunk_predictions):
        for p in predictions:
            shifted.append(replace(p, start=p.start + chunk.start, end=p.end + chunk.start))
    shifted.sort(key=lambda p: (p.start, p.end))

    merged: List = []
    for p in shifted:
        for i, existing in enumerate(merged):
            if existing.entity_label == p.entity_label and _overlaps_mostly(existing, p):
                best = p if p.score > existing.score else existing
                merged[i] = replace(best, start=min(existing.start, p.start),
                                    end=max(existing.end, p.end))
                break
        else:
            merged.append(p)
    return merged


def merge_subword_predictions(predictions: Sequence, text: str, min_length: int = 2,
                              max_gap: int = 5) -> List:
    """
    Merge B-/I- word pieces into whole entities.

    An I- piece continues the current entity when the types agree and the
    gap is at most max_gap characters. Scores are averaged and the word is
    re-read from the text.

    Args:
        predictions: Items with word, entity_label, score, start, end
        text: Text the offsets refer to
        min_length: Merged entities shorter than this are dropped
        max_gap: Largest gap bridged between pieces

    Returns:
        Merged predictions with plain (prefix-free) labels
    """
    pieces = sorted((p for p in predictions if p.entity_label not in ("O", "")),
                    key=lambda p: p.start)
    merged = []
    current = None
    scores: List[float] = []

    def finalize():
        if current is not None:
            merged.append(replace(current, word=text[current.start:current.end],
                                  score=sum(scores) / len(scores)))

    for piece in pieces:
        label = strip_bio_prefix(piece.entity_label)
        continues = (
            current is not None
            and piece.entity_label.startswith("I-")
            and current.entity_label == label
            and piece.start - current.end <= max_gap
        )
        if continues:
            current = replace(current, end=max(current.end, piece.end))
            scores.append(piece.score)
        else:
            finalize()
            current = replace(piece, entity_label=label)
            scores = [piece.score]
    finalize()
    return [p for p in merged if len(p.word) >= min_length]
