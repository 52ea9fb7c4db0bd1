"""Click commands, one module per backend family."""
