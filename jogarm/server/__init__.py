"""Controller runtime: shared state, scheduling, logging and the CLI."""
