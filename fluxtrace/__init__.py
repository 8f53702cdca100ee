"""FluxTrace: static data-flow tracing for Vue single-file components."""

__version__ = "0.4.0"
