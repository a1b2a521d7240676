"""External price feeds."""

from sharpedge.feeds.clob import ClobPriceClient
from sharpedge.feeds.odds_api import OddsAPIFeed

__all__ = ["ClobPriceClient", "OddsAPIFeed"]
