"""Backend package for the GIS viewer web service.

Users upload point and line datasets (GeoJSON, CSV, Shapefile), browse them
as map layers, filter features by bounding box, radius or attributes, edit
single features, manage layer styles and accounts, and export datasets.

- Uploads are kept as raw blobs; GeoJSON uploads are also split into
  feature rows holding a geometry type, a bounding box and properties
- Map queries and exports rebuild a degraded point geometry from the
  stored bounding box
- Storage is either process-local memory or PostgreSQL, chosen once per
  application from settings

See module sub-docstrings for details on architecture and usage.
"""
