from .reading_filter import DEFAULT_DEADBAND, ReadingFilter, StoredReading, extract

__all__ = ["DEFAULT_DEADBAND", "ReadingFilter", "StoredReading", "extract"]
