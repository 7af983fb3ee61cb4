"""API tests for GeoJSON, CSV and summary exports of the demo dataset."""

from __future__ import annotations

import csv
import io
import json
from typing import TYPE_CHECKING

from gis_viewer.services import demo_data

if TYPE_CHECKING:
    from fastapi import testclient

PARAMS = {"datasetId": demo_data.DEMO_DATASET_ID}


def test_export_geojson(
    client: testclient.TestClient,
    viewer_headers: dict[str, str],
) -> None:
    response = client.get("/api/export/geojson", params=PARAMS, headers=viewer_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/geo+json")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="')
    assert "filename*=UTF-8''%E6%9D%B1%E4%BA%AC" in disposition
    assert disposition.endswith(".geojson")

    collection = json.loads(response.content)
    assert collection["type"] == "FeatureCollection"
    assert len(collection["features"]) == 10
    station = next(f for f in collection["features"] if f["id"] == "feat-tokyo-001")
    assert station["geometry"] == {"type": "Point", "coordinates": [139.7671, 35.6812]}
    assert station["properties"]["name"] == "東京駅"


def test_export_csv(
    client: testclient.TestClient,
    viewer_headers: dict[str, str],
) -> None:
    response = client.get("/api/export/csv", params=PARAMS, headers=viewer_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")

    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == [
        "id",
        "longitude",
        "latitude",
        "geometry_type",
        "name",
        "name_en",
        "category",
        "score",
    ]
    assert len(rows) == 11
    by_id = {row[0]: row for row in rows[1:]}
    assert by_id["feat-tokyo-008"][1:] == [
        "139.7967",
        "35.7148",
        "Point",
        "浅草寺",
        "Senso-ji",
        "観光",
        "94",
    ]


def test_export_csv_without_features(
    client: testclient.TestClient,
    editor_headers: dict[str, str],
) -> None:
    upload = client.post(
        "/api/datasets/upload",
        files={"file": ("empty.geojson", b'{"type": "FeatureCollection", "features": []}')},
        data={"name": "empty", "type": "geojson"},
        headers=editor_headers,
    )
    assert upload.status_code == 201
    dataset_id = upload.json()["data"]["datasetId"]

    response = client.get(
        "/api/export/csv",
        params={"datasetId": dataset_id},
        headers=editor_headers,
    )
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_export_summary(
    client: testclient.TestClient,
    viewer_headers: dict[str, str],
) -> None:
    response = client.get("/api/export/summary", params=PARAMS, headers=viewer_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["dataset"]["id"] == demo_data.DEMO_DATASET_ID
    assert data["dataset"]["recordCount"] == 10
    assert data["dataset"]["createdBy"] == "Admin User"
    assert data["statistics"]["geometryTypes"] == [{"type": "Point", "count": 10}]
    assert data["statistics"]["boundingBox"] == {
        "minLon": 139.6993,
        "minLat": 35.658,
        "maxLon": 139.8107,
        "maxLat": 35.7148,
    }


def test_export_unknown_dataset(
    client: testclient.TestClient,
    viewer_headers: dict[str, str],
) -> None:
    for path in ("/api/export/geojson", "/api/export/csv", "/api/export/summary"):
        response = client.get(path, params={"datasetId": "nope"}, headers=viewer_headers)
        assert response.status_code == 404


def test_export_requires_token(client: testclient.TestClient) -> None:
    response = client.get("/api/export/geojson", params=PARAMS)
    assert response.status_code == 401
