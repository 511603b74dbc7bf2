"""Developer tooling (timing instrumentation)."""
