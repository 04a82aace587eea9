"""Strategy genomes: rule ASTs, their evaluator, and random generation helpers."""
