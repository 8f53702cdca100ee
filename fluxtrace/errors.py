"""Error taxonomy shared by the tracing engine and the reliability layer."""

from __future__ import annotations

from typing import List, Optional, Sequence


class FluxTraceError(Exception):
    """Base class for every error raised by FluxTrace."""


# ---------------------------------------------------------------------------
# Static analysis
# ---------------------------------------------------------------------------

class FileNotFound(FluxTraceError):
    """The requested component file does not exist."""

    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path


class UnparsableComponent(FluxTraceError):
    """Every template dialect rejected the component."""

    def __init__(self, path: str, reasons: Sequence[str] = ()):
        detail = "; ".join(reasons) if reasons else "no parse strategy succeeded"
        super().__init__(f"Unable to parse component {path}: {detail}")
        self.path = path
        self.reasons: List[str] = list(reasons)


class NodeNotLocated(FluxTraceError):
    """No template element spans the requested position."""

    def __init__(self, path: str, line: int, column: int):
        super().__init__(f"No template element at {path}:{line}:{column}")
        self.path = path
        self.line = line
        self.column = column


class GraphBuildFailure(FluxTraceError):
    """A dependency graph source (cache, live build, manifest) failed."""


# ---------------------------------------------------------------------------
# Reasoning collaborator
# ---------------------------------------------------------------------------

class LLMError(FluxTraceError):
    """Failure talking to the reasoning collaborator."""

    code = "LLM_CALL_FAILED"
    retryable = False

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message or self.code)
        self.status = status


class LLMTimeout(LLMError):
    code = "LLM_TIMEOUT"
    retryable = True


class LLMRateLimited(LLMError):
    code = "LLM_RATE_LIMITED"
    retryable = True


class LLMTransient(LLMError):
    code = "LLM_TRANSIENT"
    retryable = True


class LLMCallError(LLMError):
    code = "LLM_CALL_FAILED"


class LLMMalformedOutput(LLMError):
    code = "LLM_MALFORMED_OUTPUT"


class CircuitOpen(LLMError):
    code = "LLM_CIRCUIT_OPEN"
