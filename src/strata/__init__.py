"""Strata — incremental source indexing with importance scoring."""
