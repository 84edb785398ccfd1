from indec_series.repositories.series_repository import Pagination, SeriesRepository

__all__ = ["Pagination", "SeriesRepository"]
