"""Workspace key/value store: history, drafts, profile and notepad.

Values are serialized JSON (the notepad is raw text) kept in the
``store_entries`` table. The table stands in for browser local storage,
so writes are checked against a fixed quota and large writes fall back
through the tiers below instead of failing outright.
"""
import json
import logging
import re
import time
import uuid

from flask import current_app

from rapid_listing.errors import InvalidInput, QuotaExceeded, StorageExhausted
from rapid_listing.extensions import db, store_lock
from rapid_listing.models.store_entry import StoreEntry

logger = logging.getLogger(__name__)

HISTORY_KEY = "rapid_listing_history"
DRAFTS_KEY = "rapid_listing_drafts"
PROFILE_KEY = "rapid_listing_profile"
NOTEPAD_KEY = "rapid_listing_notepad"

EMBEDDED_IMAGE_RE = re.compile(r'src="data:image/[^";]*;base64,[^"]*"')

DEFAULT_PROFILE = {
    "business_name": "ChrisJayden",
    "location": "Oklahoma City",
    "shipping_policy": (
        "The buyer is responsible for all shipping costs associated with this item."
    ),
    "return_policy": (
        "We stand behind the accuracy of our listings. If you receive an item that is "
        "not as described, returns are accepted within 15 days of receipt."
    ),
    "about_auto": (
        "At ChrisJayden Auto Repair, our business is built on hands-on automotive "
        "experience. Based physically in Oklahoma City, we specialize in acquiring "
        "salvage vehicles and performing complete quality rebuilds. We harvest the best "
        "components, the very kind we trust in our own rebuild projects, and make them "
        "available to you."
    ),
    "about_electronics": (
        "Every device we sell is inspected and tested before listing. We are an "
        "Oklahoma City based seller of quality pre-owned electronics."
    ),
    "about_general": (
        "We are a trusted Oklahoma City based seller committed to providing quality "
        "pre-owned and surplus items. Buy with confidence."
    ),
}


# ---------------------------------------------------------------------------
# Raw key/value access
# ---------------------------------------------------------------------------

def get_item(key):
    """Return the stored text for ``key``, or None."""
    return StoreEntry.get(key)


def set_item(key, text):
    """Write ``text`` under ``key``.

    Raises:
        QuotaExceeded if the store would grow past STORE_QUOTA_BYTES
    """
    quota = current_app.config["STORE_QUOTA_BYTES"]
    used = StoreEntry.used_bytes(exclude_key=key)
    if used + len(text) > quota:
        raise QuotaExceeded(
            f"Storage quota exceeded writing {key} ({used + len(text)} > {quota})"
        )

    row = db.session.get(StoreEntry, key)
    if row:
        row.value = text
    else:
        db.session.add(StoreEntry(key=key, value=text))
    db.session.commit()


def remove_item(key):
    row = db.session.get(StoreEntry, key)
    if row:
        db.session.delete(row)
        db.session.commit()


def get_json(key, default=None):
    raw = get_item(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Stored value for %s is not valid JSON, using default", key)
        return default


def set_json(key, value):
    set_item(key, json.dumps(value, separators=(",", ":")))


def usage():
    """(used, quota) in characters."""
    return StoreEntry.used_bytes(), current_app.config["STORE_QUOTA_BYTES"]


# ---------------------------------------------------------------------------
# Tiered saves
# ---------------------------------------------------------------------------

def strip_embedded_images(html):
    """Blank out inline base64 image sources."""
    return EMBEDDED_IMAGE_RE.sub('src=""', html or "")


def _without_images(scan):
    return {**scan, "description": strip_embedded_images(scan["description"])}


def history_tiers(limit, pressure_limit):
    """Ordered (name, transform) fallbacks for a history write.

    Each transform maps (new_scan, existing_scans) to the list to store.
    """
    return [
        ("recent", lambda new, old: ([new] + old)[:limit]),
        ("pressure", lambda new, old: ([new] + old)[:pressure_limit]),
        ("strip-images", lambda new, old: ([_without_images(new)] + old)[:pressure_limit]),
        ("only-new", lambda new, old: [_without_images(new)]),
    ]


def draft_tiers(limit, pressure_limit):
    return [
        ("recent", lambda new, old: ([new] + old)[:limit]),
        ("pressure", lambda new, old: ([new] + old)[:pressure_limit]),
    ]


def save_with_fallback(key, entry, tiers):
    """Prepend ``entry`` to the list at ``key``, trying each tier in order.

    Returns the list that was stored.

    Raises:
        StorageExhausted if every tier hit the quota
    """
    with store_lock():
        existing = get_json(key, [])
        for name, transform in tiers:
            entries = transform(entry, existing)
            try:
                set_json(key, entries)
            except QuotaExceeded:
                logger.warning("Saving %s failed at tier %r, trying next", key, name)
                continue
            if name != tiers[0][0]:
                logger.info("Saved %s at fallback tier %r (%d entries)", key, name, len(entries))
            return entries

    raise StorageExhausted(
        "Storage limit reached. Please delete old drafts or history items."
    )


def _delete_from_list(key, entry_id):
    with store_lock():
        entries = get_json(key, [])
        remaining = [e for e in entries if e.get("id") != entry_id]
        if len(remaining) == len(entries):
            return False
        set_json(key, remaining)
        return True


def _now_ms():
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def new_scan(identifier, listing, supplemental_data, platform, item_kind, branded=False):
    """Build a Saved Scan record from a completed flow."""
    return {
        "id": str(uuid.uuid4()),
        "timestamp": _now_ms(),
        "identifier": identifier,
        "title": listing.title,
        "description": listing.description,
        "supplemental_data": supplemental_data,
        "platform": platform,
        "item_kind": item_kind,
        "branded": branded,
    }


def list_scans():
    return get_json(HISTORY_KEY, [])


def save_scan(scan):
    config = current_app.config
    tiers = history_tiers(config["HISTORY_LIMIT"], config["HISTORY_PRESSURE_LIMIT"])
    return save_with_fallback(HISTORY_KEY, scan, tiers)


def delete_scan(scan_id):
    return _delete_from_list(HISTORY_KEY, scan_id)


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------

def new_draft(identifier=None, style=None, platform=None, item_kind=None, images=None):
    identifier = (identifier or "").strip()
    images = [i for i in (images or []) if i]
    if not identifier and not images:
        raise InvalidInput(
            "Cannot save an empty draft. Please upload images or enter an identifier."
        )
    return {
        "id": str(uuid.uuid4()),
        "timestamp": _now_ms(),
        "identifier": identifier,
        "style": style or "professional",
        "platform": platform or "ebay",
        "item_kind": item_kind or "auto-part",
        "images": images,
    }


def list_drafts():
    return get_json(DRAFTS_KEY, [])


def get_draft(draft_id):
    for draft in list_drafts():
        if draft.get("id") == draft_id:
            return draft
    return None


def save_draft(draft):
    config = current_app.config
    tiers = draft_tiers(config["DRAFTS_LIMIT"], config["DRAFTS_PRESSURE_LIMIT"])
    return save_with_fallback(DRAFTS_KEY, draft, tiers)


def delete_draft(draft_id):
    return _delete_from_list(DRAFTS_KEY, draft_id)


# ---------------------------------------------------------------------------
# Profile & notepad
# ---------------------------------------------------------------------------

def load_profile():
    """Stored profile merged over the defaults, backfilling new fields."""
    stored = get_json(PROFILE_KEY, {})
    if not isinstance(stored, dict):
        stored = {}
    return {**DEFAULT_PROFILE, **stored}


def save_profile(fields):
    profile = load_profile()
    for name, value in fields.items():
        if name in DEFAULT_PROFILE:
            profile[name] = "" if value is None else str(value)
    with store_lock():
        set_json(PROFILE_KEY, profile)
    return profile


def reset_profile():
    with store_lock():
        remove_item(PROFILE_KEY)
    return dict(DEFAULT_PROFILE)


def get_notepad():
    return get_item(NOTEPAD_KEY) or ""


def set_notepad(text):
    with store_lock():
        set_item(NOTEPAD_KEY, text or "")


def import_listing_to_notepad(title, description):
    """Prepend a listing to the notepad and return the new text."""
    content = (
        f"TITLE:\n{title}\n\nDESCRIPTION HTML:\n{description}\n\n"
        f"-------------------\n\n{get_notepad()}"
    )
    set_notepad(content)
    return content
