"""
Strategy selection agent.

- `selector`: runs candidate strategies once, classifies the market regime and
  picks the strategy with the best regime-adjusted Sharpe ratio.

Import directly from the submodule:
    from strategylab.agent.selector import StrategySelector, select_best_strategy
"""
