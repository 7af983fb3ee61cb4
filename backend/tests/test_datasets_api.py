"""API tests for dataset listing, detail and cascade deletion."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from gis_viewer.db import models as db_models
from gis_viewer.services import demo_data

if TYPE_CHECKING:
    from fastapi import testclient

    from gis_viewer.db import database


def _upload(client: testclient.TestClient, headers: dict[str, str], name: str, dataset_type: str) -> Any:
    response = client.post(
        "/api/datasets/upload",
        files={"file": (f"{name}.{dataset_type}", b"lon,lat\n1,2\n")},
        data={"name": name, "type": dataset_type},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["data"]


def test_list_datasets_paginates_newest_first(
    client: testclient.TestClient,
    editor_headers: dict[str, str],
) -> None:
    _upload(client, editor_headers, "first", "csv")
    second = _upload(client, editor_headers, "second", "csv")

    response = client.get("/api/datasets", params={"pageSize": 1}, headers=editor_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["page"] == 1
    assert data["pageSize"] == 1
    assert data["total"] == 3
    assert [item["id"] for item in data["items"]] == [second["datasetId"]]


def test_list_datasets_filters_by_type(
    client: testclient.TestClient,
    editor_headers: dict[str, str],
) -> None:
    _upload(client, editor_headers, "table", "csv")
    response = client.get("/api/datasets", params={"type": "geojson"}, headers=editor_headers)
    items = response.json()["data"]["items"]
    assert [item["id"] for item in items] == [demo_data.DEMO_DATASET_ID]
    assert items[0]["record_count"] == 10
    assert items[0]["schema"]["score"] == "number"


def test_get_dataset(
    client: testclient.TestClient,
    viewer_headers: dict[str, str],
) -> None:
    response = client.get(f"/api/datasets/{demo_data.DEMO_DATASET_ID}", headers=viewer_headers)
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "東京の主要観光スポット 2025"

    missing = client.get("/api/datasets/nope", headers=viewer_headers)
    assert missing.status_code == 404


def test_delete_dataset_cascades(
    client: testclient.TestClient,
    repos: database.Repositories,
    admin_headers: dict[str, str],
) -> None:
    uploaded = _upload(client, admin_headers, "doomed", "csv")
    dataset_id = uploaded["datasetId"]
    dataset = repos.datasets.get(dataset_id)
    assert dataset is not None and dataset.storage_key is not None
    storage_key = dataset.storage_key
    repos.features.add(
        db_models.Feature(
            id="feature-doomed",
            dataset_id=dataset_id,
            geometry_type="Point",
            bbox=(0.0, 0.0, 0.0, 0.0),
            properties_json="{}",
        )
    )
    client.post(
        "/api/styles",
        json={"datasetId": dataset_id, "name": "s", "style": {}},
        headers=admin_headers,
    )

    response = client.delete(f"/api/datasets/{dataset_id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"] == {"deleted": True}
    assert repos.datasets.get(dataset_id) is None
    assert repos.features.get("feature-doomed") is None
    assert repos.styles.list_for_dataset(dataset_id) == []
    assert repos.blobs.get(storage_key) is None


def test_delete_dataset_is_admin_only(
    client: testclient.TestClient,
    editor_headers: dict[str, str],
) -> None:
    response = client.delete(f"/api/datasets/{demo_data.DEMO_DATASET_ID}", headers=editor_headers)
    assert response.status_code == 403


def test_delete_missing_dataset(
    client: testclient.TestClient,
    admin_headers: dict[str, str],
) -> None:
    response = client.delete("/api/datasets/nope", headers=admin_headers)
    assert response.status_code == 404
