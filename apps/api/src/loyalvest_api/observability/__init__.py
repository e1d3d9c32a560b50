"""Runtime metrics and tracing for the loyalty engine."""
