"""Per-indicator fetchers."""

from indec_series.fetchers.base import FetchOutput, IndicatorFetcher
from indec_series.fetchers.emae import EMAEFetcher
from indec_series.fetchers.ipc import IPCFetcher
from indec_series.fetchers.labor import LaborMarketFetcher
from indec_series.fetchers.poverty import PovertyFetcher

FETCHERS = {
    fetcher.indicator: fetcher
    for fetcher in (EMAEFetcher, IPCFetcher, LaborMarketFetcher, PovertyFetcher)
}

__all__ = [
    "FETCHERS",
    "EMAEFetcher",
    "FetchOutput",
    "IPCFetcher",
    "IndicatorFetcher",
    "LaborMarketFetcher",
    "PovertyFetcher",
]
