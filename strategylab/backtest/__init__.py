"""Backtesting engine and strategy evaluation tools for Strategy Lab.
Provides the simulation loop, virtual portfolio, performance metrics, parameter optimizers and multi-period runs.
"""
