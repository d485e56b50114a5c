"""
ReplayTrader - bar-by-bar replay of historical price data.
"""

__version__ = "0.2.0"
