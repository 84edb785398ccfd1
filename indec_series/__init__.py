"""Ingestion of INDEC statistical spreadsheets into canonical time series."""

__version__ = "1.0.0"
