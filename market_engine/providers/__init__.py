from market_engine.providers.alphavantage import AlphaVantage, AlphaVantageDigital
from market_engine.providers.base import (
    CandleProvider, MoverSource, QuoteSource, SearchSource, Series,
)
from market_engine.providers.binance import Binance
from market_engine.providers.coingecko import CoinGecko
from market_engine.providers.geckoterminal import GeckoTerminal, GeckoTerminalContract
from market_engine.providers.http import get_json, make_client

__all__ = [
    "AlphaVantage",
    "AlphaVantageDigital",
    "Binance",
    "CandleProvider",
    "CoinGecko",
    "GeckoTerminal",
    "GeckoTerminalContract",
    "MoverSource",
    "QuoteSource",
    "SearchSource",
    "Series",
    "get_json",
    "make_client",
]
