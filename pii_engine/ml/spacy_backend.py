"""
spaCy adapter for InferenceBackend.

spaCy pipelines return whole entities without scores, so every entity gets
the same configurable score.
"""

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from .inference import MLPrediction

logger = logging.getLogger(__name__)

# Multilingual first: documents are de/fr/it/en
DEFAULT_SPACY_MODELS = ("xx_ent_wiki_sm", "de_core_news_sm", "fr_core_news_sm", "en_core_web_sm")

# spaCy does not score entities
SPACY_ENTITY_SCORE = 0.7


def spacy_inference(nlp, score: float = SPACY_ENTITY_SCORE,
                    labels: Optional[Iterable[str]] = None) -> Callable[[str], List[MLPrediction]]:
    """
    Wrap a loaded spaCy Language as a run_inference function.

    Args:
        nlp: Loaded spaCy pipeline with an NER component (or entity ruler)
        score: Score reported for every entity
        labels: Only keep these labels (default: all)
    """
    keep = {label.upper() for label in labels} if labels else None

    def run_inference(text: str) -> List[MLPrediction]:
        doc = nlp(text)
        predictions = []
        for ent in doc.ents:
            if keep is not None and ent.label_.upper() not in keep:
                continue
            predictions.append(MLPrediction(
                word=ent.text,
                entity_label=ent.label_,
                score=score,
                start=ent.start_char,
                end=ent.end_char,
            ))
        return predictions

    return run_inference


def spacy_loader(model_names: Sequence[str] = DEFAULT_SPACY_MODELS,
                 score: float = SPACY_ENTITY_SCORE) -> Callable[[], Optional[Callable]]:
    """
    Build a loader for InferenceBackend that tries models in order.

    The loader returns None when no model is installed, which puts the
    backend in fallback mode.
    """
    if isinstance(model_names, str):
        model_names = (model_names,)

    def load():
        import spacy

        for model in model_names:
            try:
                nlp = spacy.load(model, disable=["parser", "lemmatizer"])
            except OSError:
                continue
            logger.info("Loaded spaCy model: %s", model)
            return spacy_inference(nlp, score)
        logger.warning("No spaCy model found (tried %s)", ", ".join(model_names))
        return None

    return load
