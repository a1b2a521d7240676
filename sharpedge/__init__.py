"""
SharpEdge - sharp-bookmaker vs Polymarket signal engine.

Compares de-vigged bookmaker consensus against prediction-market prices
and surfaces tiered, deduplicated signals net of transaction costs.
"""

__version__ = "0.1.0"
