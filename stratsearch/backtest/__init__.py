"""Backtesting engine and strategy evaluation tools for stratsearch.
Provides the position-simulating engine, the closed-trade model, and performance metrics.
"""
