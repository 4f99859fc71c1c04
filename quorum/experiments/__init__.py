"""Weighted A/B experiments over routing configurations."""

from quorum.experiments.manager import ExperimentManager, build_variants

__all__ = ["ExperimentManager", "build_variants"]
