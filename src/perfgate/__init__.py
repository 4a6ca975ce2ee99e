"""
perfgate - Performance budgets for CI.

Run a command repeatedly, summarize the samples, and gate merges on
regressions against a baseline.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
