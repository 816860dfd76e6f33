"""teamhub.core — cross-layer primitives (exception taxonomy)."""
