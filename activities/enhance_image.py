"""
Activity: Enhance Image — turns an original listing photo into an enhanced
variant with an image-to-image model and records it as a derived image row.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

import httpx
from temporalio import activity

from features.listings import db as listings_db
from features.listings.models import ImageType
from models.schemas import EnhanceImageInput, EnhanceImageResult
from utils import llm
from utils.http import fetch_image
from utils.storage import LocalBlobStorage

log = logging.getLogger(__name__)


class EnhancementError(Exception):
    """The requested image cannot be enhanced."""


CATEGORY_GUIDANCE = {
    "furniture": (
        "Keep nearby objects that show scale, such as a lamp on a table or books on a shelf. "
        "Buyers judge size from them, so do not crop that context away."
    ),
    "electronics": (
        "If a screen was on in the original, keep its content readable. "
        "Ports, buttons and labels must stay sharp and legible."
    ),
    "tools": (
        "Keep working surfaces sharp: blades, bits, chuck jaws, cutting edges. "
        "Do not smooth or soften metal textures; buyers check them for wear."
    ),
    "clothing & accessories": (
        "Keep the fabric's natural texture and wrinkles. "
        "Do not smooth cloth until it looks edited, and keep its color accurate."
    ),
    "clothing": (
        "Keep the fabric's natural texture and wrinkles. "
        "Do not smooth cloth until it looks edited, and keep its color accurate."
    ),
    "kids & baby items": (
        "Keep the item looking clean and safe. Leave any safety labels, brand marks "
        "or weight-limit stickers visible."
    ),
}


def category_guidance(category: str | None) -> str:
    """First guidance entry whose key contains, or is contained in, the category."""
    if not category:
        return ""
    key = category.lower()
    for name, guidance in CATEGORY_GUIDANCE.items():
        if name in key or key in name:
            return f"\n\nCategory-specific guidance ({category}): {guidance}"
    return ""


def build_enhancement_prompt(
    category: str | None = None,
    condition: str | None = None,
    title: str | None = None,
) -> str:
    item = f"The item is: {title}." if title else "The item category is unknown."
    cond = f' The seller describes its condition as "{condition}".' if condition else ""
    return (
        f"Enhance this product photo for a second-hand marketplace listing. {item}{cond}\n\n"
        "Goals:\n"
        "- Better lighting: lift dark areas, warm natural window light, no harsh shadows or color casts\n"
        "- Calmer background: de-emphasize (never remove) clutter so the item stands out\n"
        "- Authentic look: a good phone photo in a clean spot, not a studio or stock shot\n"
        "- True color: the item must look exactly the color it is\n\n"
        "Hard rules:\n"
        "- Never hide or remove defects such as scratches, dents, stains or wear\n"
        "- Never change the item's color\n"
        "- Never add props, text, watermarks, borders or logos\n"
        "- Never apply heavy filters, HDR halos or fake bokeh"
        f"{category_guidance(category)}"
    )


def variant_image_id(request_id: str) -> str:
    """Stable id for the derived row so a retried attempt finds its own earlier insert."""
    if not request_id:
        return str(uuid.uuid4())
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"listing-image-enhance:{request_id}"))


class EnhanceActivities:
    """Holds the storage backend; register bound methods with the worker."""

    def __init__(self, storage: LocalBlobStorage | None = None, http_client: httpx.AsyncClient | None = None):
        self.storage = storage or LocalBlobStorage()
        self._http_client = http_client

    @activity.defn(name="enhance_image")
    async def enhance_image(self, req: EnhanceImageInput) -> EnhanceImageResult:
        image = await asyncio.to_thread(listings_db.get_image, req.image_id)
        if not image:
            raise EnhancementError(f"Image {req.image_id} not found")
        if image["type"] != ImageType.ORIGINAL.value:
            raise EnhancementError("Can only enhance original images")

        new_id = variant_image_id(req.request_id)
        existing = await asyncio.to_thread(listings_db.get_image, new_id) if req.request_id else None
        if existing:
            log.info("Variant %s already recorded for request %s", new_id, req.request_id)
            count = await asyncio.to_thread(listings_db.count_variants, req.image_id)
            return EnhanceImageResult(image_id=new_id, blob_url=existing["blob_url"], variant_count=count)

        listing = await asyncio.to_thread(listings_db.get_listing, req.listing_id) or {}

        client = self._http_client or httpx.AsyncClient(timeout=httpx.Timeout(30.0))
        try:
            data, mime_type = await fetch_image(client, image["blob_url"], 0)
        finally:
            if self._http_client is None:
                await client.aclose()

        prompt = build_enhancement_prompt(
            category=listing.get("category"),
            condition=listing.get("condition"),
            title=listing.get("title"),
        )
        log.info("Enhancing image %s for listing %s", req.image_id, req.listing_id)
        enhanced, enhanced_mime = await asyncio.to_thread(llm.edit_image, data, mime_type, prompt)

        key = f"listings/{req.listing_id}/enhanced-{int(time.time() * 1000)}.{llm.extension_for(enhanced_mime)}"
        blob = await self.storage.upload(key, enhanced, enhanced_mime)

        await asyncio.to_thread(listings_db.insert_image, {
            "id": new_id,
            "listing_id": req.listing_id,
            "type": ImageType.ENHANCED.value,
            "blob_url": blob.url,
            "blob_key": blob.key,
            "parent_image_id": req.image_id,
            "sort_order": image.get("sort_order", 0),
            "is_primary": False,
            "enhancement_prompt": prompt,
        })
        count = await asyncio.to_thread(listings_db.count_variants, req.image_id)
        log.info("Image %s now has %d enhanced variant(s)", req.image_id, count)
        return EnhanceImageResult(image_id=new_id, blob_url=blob.url, variant_count=count)
