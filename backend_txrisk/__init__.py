"""
Backend TxRisk: risk and anomaly scoring for account transaction histories.

Takes a chronological list of transactions plus a summary profile of the
account and produces explainable risk assessments: statistical outliers,
wash trading, bot behavior, coordinated activity, per-transaction analysis,
and a six-dimension composite risk score.
"""

__version__ = "0.1.0"
