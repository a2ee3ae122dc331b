"""Release labels, pipeline-run builders, predicates, lookups, syncing and metrics."""

__version__ = "0.0.1"
__all__ = ["metadata", "metrics", "pipeline_run", "predicates", "loader", "syncer"]