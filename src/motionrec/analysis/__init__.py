"""Throughput analysis for the ingestion pipeline.

:mod:`rate` turns flush cadence into instantaneous, smoothed, peak and
average sample rates. It is free of Qt and I/O so the pipeline, the CLI and
the tests can share it.
"""

from .rate import RateEstimate, RateStatistics

__all__ = ["RateEstimate", "RateStatistics"]
