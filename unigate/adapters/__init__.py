"""Infrastructure adapters: HTTP execution, response cache, single-flight and stream gates."""
