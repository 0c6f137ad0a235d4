"""Market data collaborators: upstream feeds, option chain aggregates, caching."""

from .cache import TTLCache
from .chain import OptionContract, OptionsChainData, TermPoint
from .feeds import DarkPoolPrint, FlowData, LiveFeeds, MarketFeeds, OptionsSweep, Quote

__all__ = [
    "DarkPoolPrint",
    "FlowData",
    "LiveFeeds",
    "MarketFeeds",
    "OptionContract",
    "OptionsChainData",
    "OptionsSweep",
    "Quote",
    "TTLCache",
    "TermPoint",
]
