"""Round scheduling, rank aggregation, membership and per-item sampling."""
