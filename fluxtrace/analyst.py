"""Reliable structured analysis of trace evidence by the LLM."""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, List, Literal, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError

from .config import ReliabilitySettings
from .errors import CircuitOpen, LLMCallError, LLMError, LLMMalformedOutput
from .models import ApiEvidence
from .prompts import build_analysis_prompt, build_repair_prompt
from .reliability import CircuitBreaker, FifoSemaphore, call_with_timeout, classify_error

logger = logging.getLogger(__name__)

DataSourceType = Literal["API", "Store", "Static", "UNKNOWN"]
HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "UNKNOWN"]


# ===================================================================
# Output schema
# ===================================================================

class DataSource(BaseModel):
    type: DataSourceType = Field(description="API / Store / Static / UNKNOWN")
    endpoint: Optional[str] = Field(default=None, description="Endpoint path; null when unknown")
    method: HttpMethod = Field(default="UNKNOWN", description="HTTP method; UNKNOWN when unknown")


class ComponentRole(BaseModel):
    file: str
    role: str = Field(description="Role of the component in the chain, e.g. container or display")
    dataMapping: str = Field(default="", description="Variable mapping at this level, e.g. res.data -> this.list")


class CategoryAnalysis(BaseModel):
    variables: List[str] = Field(default_factory=list)
    summary: str = ""


class VariableAnalysis(BaseModel):
    content: CategoryAnalysis = Field(default_factory=CategoryAnalysis)
    attributes: CategoryAnalysis = Field(default_factory=CategoryAnalysis)
    conditionals: CategoryAnalysis = Field(default_factory=CategoryAnalysis)


class TraceAnalysis(BaseModel):
    fullLinkTrace: str = Field(description="Plain-language path of the data from source to UI")
    dataSource: DataSource
    componentAnalysis: List[ComponentRole] = Field(default_factory=list)
    variableAnalysis: VariableAnalysis = Field(default_factory=VariableAnalysis)
    confidence: float = Field(ge=0, le=100, description="Confidence 0-100; below 60 needs manual review")
    relatedVariables: List[str] = Field(default_factory=list)
    suggestNextStep: Optional[str] = None


ANALYSIS_SCHEMA: Dict[str, Any] = TraceAnalysis.model_json_schema()

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text or "").strip()


def parse_analysis(raw: str) -> TraceAnalysis:
    """Validate collaborator output against the schema."""
    try:
        return TraceAnalysis.model_validate_json(strip_code_fences(raw))
    except ValidationError as exc:
        raise LLMMalformedOutput(f"Output does not match the analysis schema: {exc.error_count()} errors") from exc


def degraded_result(code: str, note: str = "") -> Dict[str, Any]:
    """Schema-shaped placeholder returned whenever the analysis cannot be produced."""
    placeholder = TraceAnalysis(
        fullLinkTrace=note or "The LLM is unavailable; a degraded result was returned. Try again later.",
        dataSource=DataSource(type="UNKNOWN"),
        confidence=0,
    )
    return {"error": "LLM analysis degraded", "errorCode": code, **placeholder.model_dump()}


# ===================================================================
# Analyst
# ===================================================================

class CompletionClient(Protocol):
    def complete(self, prompt: str) -> str: ...


class TraceAnalyst:
    """Sends trace evidence to the LLM behind a breaker, a semaphore, a timeout and retries."""

    def __init__(
        self,
        client: CompletionClient,
        settings: Optional[ReliabilitySettings] = None,
        breaker: Optional[CircuitBreaker] = None,
        semaphore: Optional[FifoSemaphore] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.settings = settings or ReliabilitySettings()
        self.breaker = breaker or CircuitBreaker(
            self.settings.failure_threshold, self.settings.circuit_open_seconds, clock
        )
        self.semaphore = semaphore or FifoSemaphore(self.settings.max_concurrency)
        self.sleep = sleep
        self.clock = clock

    def analyze(self, target_element: str, code: str, evidence: Sequence[ApiEvidence] = ()) -> Dict[str, Any]:
        if not self.breaker.allow():
            logger.warning("Circuit open; skipping LLM analysis")
            return degraded_result(CircuitOpen.code)

        prompt = build_analysis_prompt(target_element, code, evidence, ANALYSIS_SCHEMA)
        started = self.clock()
        self.semaphore.acquire()
        try:
            return self._run(prompt)
        finally:
            self.semaphore.release()
            logger.info(
                "LLM analysis took %.0fms (circuit=%s failures=%d)",
                (self.clock() - started) * 1000, self.breaker.state.value, self.breaker.failures,
            )

    def _run(self, prompt: str) -> Dict[str, Any]:
        retries = max(self.settings.max_retries, 0)
        last: LLMError = LLMCallError("no attempt made")
        for attempt in range(retries + 1):
            try:
                analysis = self._attempt(prompt)
            except LLMMalformedOutput as exc:
                # The collaborator answered, so the circuit stays healthy
                self.breaker.record_success()
                logger.warning("LLM output still malformed after repair: %s", exc)
                return degraded_result(exc.code, "The LLM answer could not be parsed, even after a repair request.")
            except LLMError as exc:
                last = exc
                if attempt >= retries or not exc.retryable:
                    break
                delay = self.settings.backoff_base_seconds * (2 ** attempt)
                logger.info("Retrying LLM call after %s (attempt %d, %.1fs)", exc.code, attempt + 1, delay)
                self.sleep(delay)
                continue
            self.breaker.record_success()
            return analysis.model_dump()

        self.breaker.record_failure()
        logger.error("LLM call failed: %s (%s)", last, last.code)
        return degraded_result(LLMCallError.code)

    def _attempt(self, prompt: str) -> TraceAnalysis:
        raw = self._call(prompt)
        try:
            return parse_analysis(raw)
        except LLMMalformedOutput as exc:
            logger.info("Requesting format repair: %s", exc)
        return parse_analysis(self._call(build_repair_prompt(strip_code_fences(raw), ANALYSIS_SCHEMA)))

    def _call(self, prompt: str) -> str:
        try:
            return call_with_timeout(lambda: self.client.complete(prompt), self.settings.timeout_seconds)
        except Exception as exc:
            error = classify_error(exc)
            if error is exc:
                raise
            raise error from exc
