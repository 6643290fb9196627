"""
Optional ML named-entity backend.

The engine never depends on a model being present. InferenceBackend wraps
an async or sync `run_inference(text) -> [prediction]` function and turns
every failure (missing model, cancelled or slow loading, inference errors,
timeouts) into a typed fallback result, so the pipeline continues with
rule-based detection only.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..detection_config import DEFAULT_ML_SETTINGS
from ..exceptions import ModelUnavailable
from .chunker import chunk_text, merge_chunk_predictions, merge_subword_predictions, strip_bio_prefix

logger = logging.getLogger(__name__)

# Inputs beyond this are rejected rather than chunked forever
MAX_INPUT_LENGTH = 100_000

# Model labels -> engine entity types
ML_ENTITY_MAPPING: Dict[str, str] = {
    "PER": "PERSON",
    "PERSON": "PERSON",
    "ORG": "ORGANIZATION",
    "ORGANIZATION": "ORGANIZATION",
    "LOC": "LOCATION",
    "GPE": "LOCATION",
    "LOCATION": "LOCATION",
    "DATE": "DATE",
    "PHONE": "PHONE",
    "EMAIL": "EMAIL",
    "ADDRESS": "ADDRESS",
    "MISC": "UNKNOWN",
}

# Failures worth retrying; anything else is fatal for the call
RETRYABLE_ERRORS = (asyncio.TimeoutError, TimeoutError, ConnectionError)

RunInference = Callable[[str], Union[List[Any], Awaitable[List[Any]]]]


def map_ml_entity_type(label: str) -> str:
    """Map a model label (with or without B-/I- prefix) to an entity type."""
    return ML_ENTITY_MAPPING.get(strip_bio_prefix(label).upper(), "UNKNOWN")


@dataclass
class MLPrediction:
    """One token-classification prediction (offsets into the analyzed text)."""
    word: str
    entity_label: str
    score: float
    start: int
    end: int

    @classmethod
    def from_raw(cls, raw: Any) -> "MLPrediction":
        """
        Accept MLPrediction, or a dict as produced by common NER pipelines
        ({word, entity | entity_group | entityLabel, score, start, end}).
        """
        if isinstance(raw, MLPrediction):
            return raw
        label = raw.get("entity_label") or raw.get("entityLabel") or raw.get("entity_group") \
            or raw.get("entity") or "O"
        return cls(
            word=str(raw.get("word", "")),
            entity_label=str(label),
            score=float(raw.get("score", 0.0)),
            start=int(raw["start"]),
            end=int(raw["end"]),
        )


@dataclass
class InferenceResult:
    """
    Attributes:
        predictions: Merged predictions with document offsets
        fallback: True when the backend could not deliver predictions
        reason: Why fallback mode was used (None on success)
    """
    predictions: List[MLPrediction] = field(default_factory=list)
    fallback: bool = False
    reason: Optional[str] = None


def validate_ml_input(text: Any, max_length: int = MAX_INPUT_LENGTH) -> Optional[str]:
    """Return an error message, or None if the text can be sent to the model."""
    if text is None:
        return "Input text is None"
    if not isinstance(text, str):
        return f"Input text must be a string, got {type(text).__name__}"
    if not text.strip():
        return "Input text is empty"
    if len(text) > max_length:
        return f"Input text exceeds maximum length of {max_length} characters (got {len(text)})"
    return None


class InferenceBackend:
    """
    Async boundary to an optional NER model.

    Args:
        run_inference: Ready inference function (sync or async)
        loader: Callable returning an inference function; run in a worker
            thread by load()
        settings: Overrides for the "ml" config section
    """

    def __init__(self, run_inference: Optional[RunInference] = None,
                 loader: Optional[Callable[[], RunInference]] = None,
                 settings: Optional[Dict[str, Any]] = None):
        self.settings = {**DEFAULT_ML_SETTINGS, **(settings or {})}
        self._run_inference = run_inference
        self._loader = loader
        self._fallback_reason: Optional[str] = None if run_inference else "model not loaded"

    @property
    def is_ready(self) -> bool:
        return self._run_inference is not None

    @property
    def is_fallback(self) -> bool:
        return self._run_inference is None

    @property
    def fallback_reason(self) -> Optional[str]:
        return self._fallback_reason

    def _enter_fallback(self, reason: str) -> bool:
        self._run_inference = None
        self._fallback_reason = reason
        logger.warning("ML backend unavailable, using rule-based detection only: %s", reason)
        return False

    async def load(self, cancel_event: Optional[asyncio.Event] = None) -> bool:
        """
        Load the model through the loader.

        Cancellation (cancel_event set), timeout and loader errors all leave
        the backend in fallback mode. Never raises.

        Returns:
            True if the backend is ready
        """
        if self.is_ready:
            return True
        if self._loader is None:
            return self._enter_fallback("no model loader configured")

        loop = asyncio.get_running_loop()
        load_task = asyncio.ensure_future(loop.run_in_executor(None, self._loader))
        waiters = {load_task}
        cancel_task = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=self.settings["timeout_seconds"],
                                         return_when=asyncio.FIRST_COMPLETED)
        finally:
            if cancel_task is not None and not cancel_task.done():
                cancel_task.cancel()

        if load_task not in done:
            # The worker thread cannot be interrupted; its result is ignored
            load_task.cancel()
            if cancel_task is not None and cancel_task in done:
                return self._enter_fallback("model loading cancelled")
            return self._enter_fallback("model loading timed out")

        try:
            run_inference = load_task.result()
        except Exception as e:
            return self._enter_fallback(f"model loading failed: {e}")
        if run_inference is None:
            return self._enter_fallback("loader returned no model")

        self._run_inference = run_inference
        self._fallback_reason = None
        logger.info("ML backend ready")
        return True

    async def _call(self, chunk: str) -> List[Any]:
        fn = self._run_inference
        if asyncio.iscoroutinefunction(fn):
            result = fn(chunk)
        else:
            loop = asyncio.get_running_loop()
            result = loop.run_in_executor(None, fn, chunk)
        return await asyncio.wait_for(result, timeout=self.settings["timeout_seconds"])

    async def _call_with_retry(self, chunk: str) -> List[Any]:
        delay = self.settings["initial_retry_delay_ms"] / 1000.0
        max_delay = self.settings["max_retry_delay_ms"] / 1000.0
        retries = self.settings["max_retries"]
        for attempt in range(retries + 1):
            try:
                return await self._call(chunk)
            except RETRYABLE_ERRORS as e:
                if attempt == retries:
                    raise ModelUnavailable(f"inference failed after {retries} retries: {e!r}") from e
                logger.debug("Inference attempt %d failed (%r), retrying in %.2fs",
                             attempt + 1, e, delay)
                await asyncio.sleep(delay)
                delay = min(delay * 2, max_delay)
            except Exception as e:
                raise ModelUnavailable(f"inference failed: {e!r}") from e
        raise ModelUnavailable("inference failed")

    async def infer(self, text: str) -> InferenceResult:
        """
        Run the model over text.

        Long texts are chunked; predictions are shifted to document offsets,
        word pieces are merged and overlap duplicates removed. Never raises.
        """
        if not self.is_ready:
            return InferenceResult([], True, self._fallback_reason or "model not loaded")

        error = validate_ml_input(text)
        if error:
            return InferenceResult([], True, error)

        chunks = chunk_text(text, self.settings["chunk_tokens"], self.settings["chunk_overlap"])
        per_chunk: List[List[MLPrediction]] = []
        try:
            for chunk in chunks:
                raw = await self._call_with_retry(chunk.text) or []
                parsed = [MLPrediction.from_raw(r) for r in raw]
                per_chunk.append(merge_subword_predictions(parsed, chunk.text))
        except ModelUnavailable as e:
            logger.warning("ML inference unavailable: %s", e)
            return InferenceResult([], True, str(e))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("ML backend returned malformed predictions: %r", e)
            return InferenceResult([], True, f"malformed predictions: {e!r}")

        predictions = [
            p for p in merge_chunk_predictions(per_chunk, chunks)
            if 0 <= p.start < p.end <= len(text)
        ]
        return InferenceResult(predictions, False, None)
