"""USD price sources.

Sources:
- StaticPriceSource: fixed answers for dry-run and tests
- CoinGeckoPriceSource: CoinGecko simple/price API
"""

from gaswise.oracles.base import PriceAnswer, PriceSource, StaticPriceSource
from gaswise.oracles.coingecko import COIN_IDS, CoinGeckoPriceSource
from gaswise.oracles.feeds import PriceFeeds, TokenFeed

__all__ = [
    "PriceAnswer",
    "PriceSource",
    "StaticPriceSource",
    "CoinGeckoPriceSource",
    "COIN_IDS",
    "PriceFeeds",
    "TokenFeed",
]
