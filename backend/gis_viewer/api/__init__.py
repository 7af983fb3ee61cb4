"""API router subpackage for the GIS viewer backend.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - auth: Login and the current user.
    - datasets: Upload, listing and deletion of datasets.
    - maps: Bounding-box map data, radius search and feature detail.
    - search: Keyword and per-attribute feature search.
    - features: Single-feature editing.
    - styles: Layer style documents.
    - export: GeoJSON, CSV and summary exports.
    - users: Registration, profiles, preferences and administration.

Shared pieces live in ``deps`` (settings, repositories, bearer auth) and
``envelope`` (the response shape).
"""
