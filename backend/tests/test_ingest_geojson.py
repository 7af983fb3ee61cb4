"""Tests for dataset upload ingestion.

Covers the service-level rules (feature cap, payload record count, schema
from the first feature, skipped entries, parse failures) and the upload
endpoint around them (validation, size limit, roles, blob storage).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest

from gis_viewer.core import config, errors
from gis_viewer.db import database
from gis_viewer.services import ingest_geojson

if TYPE_CHECKING:
    from fastapi import testclient


def _collection(features: list[dict[str, Any]]) -> bytes:
    return json.dumps({"type": "FeatureCollection", "features": features}).encode("utf-8")


def _point(lon: float, lat: float, **properties: Any) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": properties,
    }


@pytest.fixture
def memory_repos() -> database.Repositories:
    return database.get_repositories(
        config.Settings(storage_backend="memory", blob_backend="memory")
    )


def _ingest(repos: database.Repositories, data: bytes, dataset_type: str = "geojson", limit: int = 1000):  # noqa: ANN202
    return ingest_geojson.ingest_dataset(
        repos,
        ingest_geojson.UploadedFile("upload.geojson", data, "application/geo+json"),
        name="upload",
        dataset_type=dataset_type,  # type: ignore[arg-type]
        created_by="user-001",
        feature_limit=limit,
    )


def test_cap_keeps_payload_record_count(memory_repos: database.Repositories) -> None:
    payload = _collection([_point(i * 0.001, 0.0, n=i) for i in range(1500)])
    dataset, report = _ingest(memory_repos, payload)

    stored = list(memory_repos.features.scan(dataset.id))
    assert len(stored) == 1000
    assert dataset.record_count == 1500
    assert report.to_dict() == {
        "featuresParsed": 1500,
        "featuresStored": 1000,
        "featuresSkipped": 0,
        "truncated": True,
        "parseError": None,
    }
    # The first 1000 features are the ones kept, in payload order.
    assert [f.properties["n"] for f in stored[:3]] == [0, 1, 2]
    assert stored[-1].properties["n"] == 999


def test_schema_comes_from_first_feature_only(memory_repos: database.Repositories) -> None:
    payload = _collection(
        [
            _point(0, 0, name="a", score=1, open=True, tags={"x": 1}),
            _point(1, 1, name="b", extra="ignored"),
        ]
    )
    dataset, _ = _ingest(memory_repos, payload)
    assert dataset.schema == {
        "name": "string",
        "score": "number",
        "open": "boolean",
        "tags": "object",
    }
    assert dataset.status == "active"


def test_entries_without_geometry_are_skipped(memory_repos: database.Repositories) -> None:
    payload = _collection(
        [
            _point(0, 0),
            {"type": "Feature", "geometry": None, "properties": {}},
            {"type": "Feature", "geometry": {"type": "Circle"}, "properties": {}},
            {
                "type": "Feature",
                "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
                "properties": None,
            },
        ]
    )
    dataset, report = _ingest(memory_repos, payload)
    stored = list(memory_repos.features.scan(dataset.id))
    assert dataset.record_count == 4
    assert report.features_stored == 2
    assert report.features_skipped == 2
    polygon = stored[1]
    assert polygon.geometry_type == "Polygon"
    assert polygon.bbox is None
    assert polygon.properties == {}


@pytest.mark.parametrize(
    "payload",
    [
        b"not json at all",
        b'{"type": "Feature", "geometry": null}',
        b'{"type": "FeatureCollection", "features": {}}',
        b"\xff\xfe\x00garbage",
    ],
)
def test_parse_failure_still_creates_dataset(
    memory_repos: database.Repositories,
    payload: bytes,
) -> None:
    dataset, report = _ingest(memory_repos, payload)
    assert dataset.record_count == 0
    assert dataset.schema is None
    assert report.parse_error
    assert list(memory_repos.features.scan(dataset.id)) == []
    assert memory_repos.blobs.get(dataset.storage_key) == payload  # type: ignore[arg-type]


def test_utf8_bom_is_tolerated(memory_repos: database.Repositories) -> None:
    payload = "\ufeff".encode("utf-8") + _collection([_point(139.7671, 35.6812, name="東京駅")])
    dataset, report = _ingest(memory_repos, payload)
    assert report.parse_error is None
    assert dataset.record_count == 1


def test_csv_is_stored_as_blob_only(memory_repos: database.Repositories) -> None:
    dataset, report = _ingest(memory_repos, b"lon,lat\n1,2\n", dataset_type="csv")
    assert dataset.record_count == 0
    assert report.features_parsed == 0
    assert dataset.storage_key == f"datasets/{dataset.id}/upload.geojson"
    assert memory_repos.blobs.get(dataset.storage_key) == b"lon,lat\n1,2\n"


def test_unknown_type_is_rejected(memory_repos: database.Repositories) -> None:
    with pytest.raises(errors.ValidationError):
        _ingest(memory_repos, b"{}", dataset_type="kml")


def test_blob_failure_persists_nothing(memory_repos: database.Repositories) -> None:
    class FailingBlobs:
        def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
            raise errors.StorageError("Blob storage unavailable")

    memory_repos.blobs = FailingBlobs()  # type: ignore[assignment]
    with pytest.raises(errors.StorageError):
        _ingest(memory_repos, _collection([_point(0, 0)]))
    assert memory_repos.datasets.list(1, 10) == ([], 0)


def _upload(
    client: testclient.TestClient,
    headers: dict[str, str],
    data: bytes,
    dataset_type: str = "geojson",
    filename: str = "spots.geojson",
) -> Any:
    return client.post(
        "/api/datasets/upload",
        files={"file": (filename, data, "application/geo+json")},
        data={"name": "spots", "type": dataset_type},
        headers=headers,
    )


def test_upload_endpoint_reports_ingest(
    client: testclient.TestClient,
    editor_headers: dict[str, str],
) -> None:
    response = _upload(client, editor_headers, _collection([_point(1, 2, name="x")]))
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["datasetId"].startswith("dataset-")
    assert data["name"] == "spots"
    assert data["type"] == "geojson"
    assert data["recordCount"] == 1
    assert data["ingest"]["featuresStored"] == 1


def test_malformed_upload_returns_201_with_zero_records(
    client: testclient.TestClient,
    editor_headers: dict[str, str],
) -> None:
    response = _upload(client, editor_headers, b"{broken")
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["recordCount"] == 0
    assert data["ingest"]["parseError"]


def test_upload_requires_fields(
    client: testclient.TestClient,
    editor_headers: dict[str, str],
) -> None:
    response = client.post(
        "/api/datasets/upload",
        data={"name": "spots", "type": "geojson"},
        headers=editor_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    response = _upload(client, editor_headers, b"{}", dataset_type="kml")
    assert response.status_code == 400


def test_upload_requires_editor_role(
    client: testclient.TestClient,
    viewer_headers: dict[str, str],
) -> None:
    response = _upload(client, viewer_headers, b"{}")
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_upload_size_limit(
    client: testclient.TestClient,
    app: Any,
    editor_headers: dict[str, str],
) -> None:
    app.state.settings = app.state.settings.model_copy(update={"max_upload_size_bytes": 8})
    response = _upload(client, editor_headers, b"0123456789")
    assert response.status_code == 413
    assert response.json()["error"]["code"] == "PAYLOAD_TOO_LARGE"


def test_upload_with_non_finite_coordinates_stores_null_bbox(
    client: testclient.TestClient,
    repos: database.Repositories,
    editor_headers: dict[str, str],
) -> None:
    payload = (
        b'{"type": "FeatureCollection", "features": ['
        b'{"type": "Feature", "geometry": {"type": "Point", "coordinates": [NaN, 35.0]},'
        b' "properties": {"name": "broken"}},'
        b'{"type": "Feature", "geometry": {"type": "LineString",'
        b' "coordinates": [[139.0, 35.0], [Infinity, 36.0]]}, "properties": {}},'
        b'{"type": "Feature", "geometry": {"type": "Point", "coordinates": [139.5, 35.5]},'
        b' "properties": {"name": "fine"}}]}'
    )
    response = _upload(client, editor_headers, payload)
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["ingest"]["featuresStored"] == 3

    stored = list(repos.features.scan(data["datasetId"]))
    assert [feature.bbox for feature in stored] == [
        None,
        None,
        (139.5, 35.5, 139.5, 35.5),
    ]

    unfiltered = client.get(
        "/api/map/data",
        params={"datasetId": data["datasetId"]},
        headers=editor_headers,
    )
    assert unfiltered.status_code == 200
    geometries = [f["geometry"] for f in unfiltered.json()["data"]["features"]]
    assert geometries == [None, None, {"type": "Point", "coordinates": [139.5, 35.5]}]

    boxed = client.get(
        "/api/map/data",
        params={"datasetId": data["datasetId"], "bbox": "-180,-90,180,90"},
        headers=editor_headers,
    )
    assert [f["properties"]["name"] for f in boxed.json()["data"]["features"]] == ["fine"]
