"""Demo accounts and a sample dataset for the in-memory backend.

Loaded by ``create_app`` when ``Settings.seed_demo_data`` is set, so a fresh
process has something to log in with and draw.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gis_viewer.core import security
from gis_viewer.db import models as db_models

if TYPE_CHECKING:
    from gis_viewer.db import database

logger = logging.getLogger(__name__)

DEMO_DATASET_ID = "dataset-tokyo-001"

DEMO_USERS = (
    ("admin-001", "admin@example.com", "admin123", "Admin User", "admin"),
    ("user-001", "editor@example.com", "editor123", "Editor User", "editor"),
)

# (id, lon, lat, name, name_en, category, score)
DEMO_SPOTS = (
    ("feat-tokyo-001", 139.7671, 35.6812, "東京駅", "Tokyo Station", "交通", 96),
    ("feat-tokyo-002", 139.7006, 35.6897, "新宿駅", "Shinjuku Station", "交通", 98),
    ("feat-tokyo-003", 139.7016, 35.6580, "渋谷駅", "Shibuya Station", "交通", 95),
    ("feat-tokyo-004", 139.7454, 35.6586, "東京タワー", "Tokyo Tower", "観光", 93),
    ("feat-tokyo-005", 139.8107, 35.7101, "東京スカイツリー", "Tokyo Skytree", "観光", 97),
    ("feat-tokyo-006", 139.7528, 35.6852, "皇居", "Imperial Palace", "観光", 90),
    ("feat-tokyo-007", 139.7731, 35.6984, "秋葉原", "Akihabara", "文化", 92),
    ("feat-tokyo-008", 139.7967, 35.7148, "浅草寺", "Senso-ji", "観光", 94),
    ("feat-tokyo-009", 139.6993, 35.6764, "明治神宮", "Meiji Jingu", "観光", 91),
    ("feat-tokyo-010", 139.7100, 35.6852, "新宿御苑", "Shinjuku Gyoen", "公園", 88),
)


def seed(repos: database.Repositories) -> None:
    for user_id, email, password, name, role in DEMO_USERS:
        repos.users.add(
            db_models.User(
                id=user_id,
                email=email,
                name=name,
                role=role,  # type: ignore[arg-type]
                password_hash=security.hash_password(password),
            )
        )

    features = [
        db_models.Feature(
            id=feature_id,
            dataset_id=DEMO_DATASET_ID,
            geometry_type="Point",
            bbox=(lon, lat, lon, lat),
            properties_json=db_models.dump_properties(
                {
                    "name": name,
                    "name_en": name_en,
                    "category": category,
                    "score": score,
                }
            ),
        )
        for feature_id, lon, lat, name, name_en, category, score in DEMO_SPOTS
    ]
    repos.features.add_many(features)
    repos.datasets.add(
        db_models.Dataset(
            id=DEMO_DATASET_ID,
            name="東京の主要観光スポット 2025",
            type="geojson",
            record_count=len(features),
            storage_key=None,
            schema={
                "name": "string",
                "name_en": "string",
                "category": "string",
                "score": "number",
            },
            status="active",
            created_by="admin-001",
        )
    )
    logger.info(
        "Seeded %d demo users and %d demo features",
        len(DEMO_USERS),
        len(features),
    )
