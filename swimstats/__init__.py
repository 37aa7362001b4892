"""Import swimmers' race results from public results sites into SQLite."""

__version__ = "0.1.0"
