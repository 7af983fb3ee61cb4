"""Storage interfaces, models and backends.

``database`` holds the repository protocols and ``get_repositories``, which
builds the memory or PostgreSQL backend selected in settings. ``filters``
holds the predicate value object both backends evaluate.

Example:
    Build repositories for an application:
        >>> from gis_viewer.db import database
        >>> repos = database.get_repositories(settings)
        >>> repos.features.scan("dataset-1", limit=10)
"""
