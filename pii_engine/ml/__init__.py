"""Optional ML named-entity boundary."""

from .chunker import (
    TextChunk,
    chunk_text,
    estimate_token_count,
    merge_chunk_predictions,
    merge_subword_predictions,
    split_into_sentences,
    strip_bio_prefix,
)
from .inference import (
    ML_ENTITY_MAPPING,
    InferenceBackend,
    InferenceResult,
    MLPrediction,
    map_ml_entity_type,
    validate_ml_input,
)
from .spacy_backend import spacy_inference, spacy_loader

__all__ = [
    "TextChunk",
    "chunk_text",
    "estimate_token_count",
    "merge_chunk_predictions",
    "merge_subword_predictions",
    "split_into_sentences",
    "strip_bio_prefix",
    "ML_ENTITY_MAPPING",
    "InferenceBackend",
    "InferenceResult",
    "MLPrediction",
    "map_ml_entity_type",
    "validate_ml_input",
    "spacy_inference",
    "spacy_loader",
]
