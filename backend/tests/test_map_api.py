"""API tests for /api/map: bbox queries, radius search and feature detail.

Features are created through the upload endpoint where the test is about
the end-to-end flow, and written straight into the in-memory store where
only the query rules matter.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from gis_viewer.db import models as db_models
from gis_viewer.services import demo_data

if TYPE_CHECKING:
    from fastapi import testclient

    from gis_viewer.db import database


def _store(
    repos: database.Repositories,
    feature_id: str,
    geometry_type: str,
    bbox: db_models.BBox | None,
    dataset_id: str = "dataset-q",
    **properties: Any,
) -> None:
    repos.features.add(
        db_models.Feature(
            id=feature_id,
            dataset_id=dataset_id,
            geometry_type=geometry_type,  # type: ignore[arg-type]
            bbox=bbox,
            properties_json=db_models.dump_properties(properties),
        )
    )


def _map_data(client: testclient.TestClient, headers: dict[str, str], **params: Any) -> Any:
    response = client.get("/api/map/data", params=params, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


def test_tokyo_station_upload_and_bbox_query(
    client: testclient.TestClient,
    editor_headers: dict[str, str],
) -> None:
    payload = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [139.7671, 35.6812]},
                "properties": {"name": "東京駅"},
            }
        ],
    }
    upload = client.post(
        "/api/datasets/upload",
        files={"file": ("tokyo.geojson", json.dumps(payload).encode("utf-8"))},
        data={"name": "tokyo", "type": "geojson"},
        headers=editor_headers,
    )
    assert upload.status_code == 201
    dataset_id = upload.json()["data"]["datasetId"]

    hit = _map_data(client, editor_headers, datasetId=dataset_id, bbox="139.0,35.0,140.0,36.0")
    assert hit["type"] == "FeatureCollection"
    assert len(hit["features"]) == 1
    feature = hit["features"][0]
    assert feature["geometry"] == {"type": "Point", "coordinates": [139.7671, 35.6812]}
    assert feature["properties"] == {"name": "東京駅"}

    miss = _map_data(client, editor_headers, datasetId=dataset_id, bbox="0,0,1,1")
    assert miss["features"] == []


def test_separate_bbox_parameters(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    data = _map_data(
        client,
        admin_headers,
        datasetId=demo_data.DEMO_DATASET_ID,
        minLon=139.76,
        minLat=35.68,
        maxLon=139.77,
        maxLat=35.69,
    )
    assert [f["id"] for f in data["features"]] == ["feat-tokyo-001"]


def test_bbox_string_takes_precedence(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    data = _map_data(
        client,
        admin_headers,
        datasetId=demo_data.DEMO_DATASET_ID,
        bbox="0,0,1,1",
        minLon=139,
        minLat=35,
        maxLon=140,
        maxLat=36,
    )
    assert data["features"] == []


def test_shared_edge_matches(
    client: testclient.TestClient,
    repos: database.Repositories,
    admin_headers: dict[str, str],
) -> None:
    _store(repos, "line", "LineString", (1.0, 1.0, 2.0, 2.0))
    data = _map_data(client, admin_headers, datasetId="dataset-q", bbox="2,2,3,3")
    assert [f["id"] for f in data["features"]] == ["line"]
    assert data["features"][0]["geometry"] == {
        "type": "LineString",
        "coordinates": [1.5, 1.5],
    }


def test_null_bbox_only_in_unfiltered_scans(
    client: testclient.TestClient,
    repos: database.Repositories,
    admin_headers: dict[str, str],
) -> None:
    _store(repos, "point", "Point", (0.5, 0.5, 0.5, 0.5))
    _store(repos, "polygon", "Polygon", None)

    unfiltered = _map_data(client, admin_headers, datasetId="dataset-q")
    assert [f["id"] for f in unfiltered["features"]] == ["point", "polygon"]
    assert unfiltered["features"][1]["geometry"] is None

    world = _map_data(client, admin_headers, datasetId="dataset-q", bbox="-180,-90,180,90")
    assert [f["id"] for f in world["features"]] == ["point"]


def test_limit_caps_results_in_storage_order(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    data = _map_data(client, admin_headers, datasetId=demo_data.DEMO_DATASET_ID, limit=3)
    assert [f["id"] for f in data["features"]] == [
        "feat-tokyo-001",
        "feat-tokyo-002",
        "feat-tokyo-003",
    ]


def test_bad_bbox_inputs_are_rejected(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    for params in (
        {"bbox": "1,2,3"},
        {"bbox": "a,b,c,d"},
        {"minLon": 1, "minLat": 2},
        {"limit": 0},
    ):
        response = client.get(
            "/api/map/data",
            params={"datasetId": demo_data.DEMO_DATASET_ID, **params},
            headers=admin_headers,
        )
        assert response.status_code == 400, params
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_map_requires_token(client: testclient.TestClient) -> None:
    response = client.get("/api/map/data", params={"datasetId": "x"})
    assert response.status_code == 401

    response = client.get(
        "/api/map/data",
        params={"datasetId": "x"},
        headers={"Authorization": "Bearer not.a.token"},
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_TOKEN"


def test_nearby_centre_feature_has_zero_distance(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    response = client.get(
        "/api/map/nearby",
        params={
            "datasetId": demo_data.DEMO_DATASET_ID,
            "lat": 35.6812,
            "lon": 139.7671,
            "radius": 1,
        },
        headers=admin_headers,
    )
    assert response.status_code == 200
    features = response.json()["data"]["features"]
    assert [f["id"] for f in features] == ["feat-tokyo-001"]
    assert features[0]["properties"]["_distance"] == 0


def test_nearby_sorts_by_distance(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    response = client.get(
        "/api/map/nearby",
        params={
            "datasetId": demo_data.DEMO_DATASET_ID,
            "lat": 35.6812,
            "lon": 139.7671,
            "radius": 3000,
        },
        headers=admin_headers,
    )
    features = response.json()["data"]["features"]
    distances = [f["properties"]["_distance"] for f in features]
    assert distances == sorted(distances)
    assert features[0]["id"] == "feat-tokyo-001"
    # Imperial Palace is about 1.3 km away; Shinjuku is about 6 km away.
    ids = {f["id"] for f in features}
    assert "feat-tokyo-006" in ids
    assert "feat-tokyo-002" not in ids
    assert all(d <= 3000 for d in distances)


def test_nearby_uses_line_centre(
    client: testclient.TestClient,
    repos: database.Repositories,
    admin_headers: dict[str, str],
) -> None:
    _store(repos, "line", "LineString", (10.0, 10.0, 10.00002, 10.00002))
    response = client.get(
        "/api/map/nearby",
        params={"datasetId": "dataset-q", "lat": 10.00001, "lon": 10.00001, "radius": 10},
        headers=admin_headers,
    )
    features = response.json()["data"]["features"]
    assert [f["id"] for f in features] == ["line"]
    assert features[0]["properties"]["_distance"] == 0


def test_nearby_rejects_non_positive_radius(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    response = client.get(
        "/api/map/nearby",
        params={"datasetId": demo_data.DEMO_DATASET_ID, "lat": 35, "lon": 139, "radius": 0},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_feature_detail(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    response = client.get("/api/map/features/feat-tokyo-004", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == "feat-tokyo-004"
    assert data["datasetId"] == demo_data.DEMO_DATASET_ID
    assert data["geometry"] == {"type": "Point", "coordinates": [139.7454, 35.6586]}
    assert data["properties"]["name_en"] == "Tokyo Tower"

    missing = client.get("/api/map/features/nope", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"
