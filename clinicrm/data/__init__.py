from clinicrm.data.source import (
    DataSource,
    RemoteSource,
    CacheSource,
    FallbackDataSource,
    SourcedRows,
    source_for_table,
)

__all__ = [
    "DataSource",
    "RemoteSource",
    "CacheSource",
    "FallbackDataSource",
    "SourcedRows",
    "source_for_table",
]
