"""Standard library: deployment strategies, the standard stage list, and adapters."""
