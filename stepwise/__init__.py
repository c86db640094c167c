"""
Stepwise - adaptive task decomposition.

Turns a free-text task into a tree of time-boxed, ADHD-friendly action steps.
"""

__version__ = "0.1.0"
__author__ = "Stepwise Team"

from stepwise.core.pipeline import BreakdownPipeline

__all__ = ["BreakdownPipeline", "__version__"]
