"""Stage execution, approval gating, run serialization and outcome dispatch."""
