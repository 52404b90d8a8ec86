import copy

import pytest

import config
from features.listings import db as listings_db


def valid_output(**overrides) -> dict:
    data = {
        "title": "DeWalt 20V Max Cordless Drill - Good",
        "description": "I bought this drill a few years ago and have since upgraded. " * 4,
        "suggestedPrice": 60,
        "priceRangeLow": 45,
        "priceRangeHigh": 80,
        "category": "Tools",
        "condition": "Good",
        "brand": "DeWalt",
        "model": "DCD771",
        "researchNotes": "Similar drills sell for $45-80 on eBay.",
        "comparables": [
            {"title": "DeWalt DCD771 drill", "price": 55, "source": "eBay Sold",
             "url": "https://ebay.com/itm/1", "soldDate": "2024-05-01"},
            {"title": "DeWalt 20V drill kit", "price": 75.5, "source": "FB Marketplace"},
        ],
    }
    data.update(overrides)
    return data


class FakeListingsDB:
    """In-memory stand-in for features.listings.db."""

    def __init__(self):
        self.listings: dict[str, dict] = {}
        self.images: dict[str, dict] = {}
        self.updates: list[tuple[str, dict]] = []
        self.fail_agent_log_writes = False

    def add_listing(self, listing_id: str, user_id: str = "user-1", **fields) -> dict:
        row = {
            "id": listing_id, "user_id": user_id, "status": "DRAFT",
            "pipeline_step": "PENDING", "pipeline_error": None, "agent_log": [],
            "agent_transcript_url": None, "title": None, "category": None, "condition": None,
        }
        row.update(fields)
        self.listings[listing_id] = row
        return row

    def add_image(self, image_id: str, listing_id: str, type: str = "ORIGINAL", **fields) -> dict:
        row = {
            "id": image_id, "listing_id": listing_id, "type": type,
            "blob_url": f"https://blobs.test/{image_id}.jpg", "blob_key": f"{image_id}.jpg",
            "parent_image_id": None, "sort_order": 0, "is_primary": True,
            "enhancement_prompt": None,
        }
        row.update(fields)
        self.images[image_id] = row
        return row

    # ── features.listings.db surface ──

    def get_listing(self, listing_id):
        row = self.listings.get(listing_id)
        return copy.deepcopy(row) if row else None

    def get_progress(self, listing_id):
        return self.get_listing(listing_id)

    def update_listing(self, listing_id, **fields):
        if "agent_log" in fields and self.fail_agent_log_writes:
            raise RuntimeError("database unavailable")
        clean = {k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()}
        self.updates.append((listing_id, clean))
        self.listings.setdefault(listing_id, {"id": listing_id}).update(copy.deepcopy(clean))

    def get_image(self, image_id):
        row = self.images.get(image_id)
        return copy.deepcopy(row) if row else None

    def insert_image(self, image):
        if image["id"] in self.images:
            return False
        self.images[image["id"]] = dict(image)
        return True

    def count_variants(self, parent_image_id):
        return sum(1 for img in self.images.values() if img.get("parent_image_id") == parent_image_id)

    def steps(self, listing_id) -> list[str]:
        return [f["pipeline_step"] for lid, f in self.updates if lid == listing_id and "pipeline_step" in f]


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeListingsDB()
    for name in ("get_listing", "get_progress", "update_listing", "get_image",
                 "insert_image", "count_variants"):
        monkeypatch.setattr(listings_db, name, getattr(db, name))
    return db


@pytest.fixture
def api_keys(monkeypatch):
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "sk-ant-test")
    monkeypatch.setattr(config, "E2B_API_KEY", "e2b-test")
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-openai-test")
