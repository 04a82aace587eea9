"""Robustness analyses for accepted strategies: Monte Carlo reshuffling and walk-forward validation."""

from stratsearch.analysis.monte_carlo import MonteCarloAnalyzer, MonteCarloResult, extract_profits
from stratsearch.analysis.walk_forward import WalkForwardResult, WalkForwardValidator

__all__ = [
    "MonteCarloAnalyzer",
    "MonteCarloResult",
    "extract_profits",
    "WalkForwardResult",
    "WalkForwardValidator",
]
