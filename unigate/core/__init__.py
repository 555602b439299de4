"""Core building blocks: errors, results, configuration, logging and metrics."""
