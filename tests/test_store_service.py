"""Tests for the quota-bound workspace store."""
import json

import pytest

from rapid_listing.errors import InvalidInput, QuotaExceeded, StorageExhausted
from rapid_listing.services import store_service
from rapid_listing.services.ai_service import Listing

IMAGE_SRC = 'src="data:image/jpeg;base64,' + "A" * 2000 + '"'


def _size(value):
    return len(json.dumps(value, separators=(",", ":")))


def _scan(n, description="<p>plain description</p>"):
    scan = store_service.new_scan(
        f"PN-{n}", Listing(f"Listing {n}", description), "<table></table>", "ebay", "auto-part"
    )
    scan["id"] = f"scan-{n}"
    scan["timestamp"] = 1700000000000 + n
    return scan


def _seed_history(scans):
    store_service.set_json(store_service.HISTORY_KEY, scans)


# ---------------------------------------------------------------------------
# Raw key/value access
# ---------------------------------------------------------------------------

def test_set_item_enforces_quota(app):
    app.config["STORE_QUOTA_BYTES"] = 10
    store_service.set_item("a", "x" * 10)
    with pytest.raises(QuotaExceeded):
        store_service.set_item("b", "y")


def test_overwrite_does_not_count_previous_value(app):
    app.config["STORE_QUOTA_BYTES"] = 10
    store_service.set_item("a", "x" * 10)
    store_service.set_item("a", "z" * 10)
    assert store_service.get_item("a") == "z" * 10
    assert store_service.usage() == (10, 10)


def test_invalid_json_reads_as_default(app):
    store_service.set_item(store_service.HISTORY_KEY, "{not json")
    assert store_service.list_scans() == []


def test_remove_item(app):
    store_service.set_item("a", "x")
    store_service.remove_item("a")
    store_service.remove_item("a")
    assert store_service.get_item("a") is None


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def test_new_scan_fields(app):
    scan = store_service.new_scan(
        "9F593", Listing("OEM Ford Part 9F593", "<h2>x</h2>"), "<table></table>",
        "ebay", "auto-part",
    )
    assert scan["identifier"] == "9F593"
    assert scan["title"] == "OEM Ford Part 9F593"
    assert scan["description"] == "<h2>x</h2>"
    assert scan["supplemental_data"] == "<table></table>"
    assert scan["branded"] is False
    assert isinstance(scan["timestamp"], int)
    assert scan["id"]


def test_history_is_newest_first_and_capped(app):
    for n in range(55):
        store_service.save_scan(_scan(n))
    scans = store_service.list_scans()
    assert len(scans) == 50
    assert scans[0]["id"] == "scan-54"
    assert scans[-1]["id"] == "scan-5"


def test_pressure_tier_keeps_ten(app):
    old = [_scan(n) for n in range(20)]
    _seed_history(old)
    new = _scan(99)
    app.config["STORE_QUOTA_BYTES"] = _size(([new] + old)[:10])

    stored = store_service.save_scan(new)

    assert len(stored) == 10
    assert store_service.list_scans() == stored
    assert stored[0]["id"] == "scan-99"


def test_strip_images_tier_blanks_embedded_photo(app):
    old = [_scan(n) for n in range(5)]
    _seed_history(old)
    new = _scan(99, f"<img {IMAGE_SRC} /><h2>Part</h2>")
    stripped = dict(new, description='<img src="" /><h2>Part</h2>')
    app.config["STORE_QUOTA_BYTES"] = _size([stripped] + old)

    stored = store_service.save_scan(new)

    assert len(stored) == 6
    assert stored[0]["description"] == '<img src="" /><h2>Part</h2>'
    assert stored[1:] == old


def test_only_new_tier_drops_history(app):
    old = [_scan(n, "<p>" + "long " * 200 + "</p>") for n in range(5)]
    _seed_history(old)
    new = _scan(99, f"<img {IMAGE_SRC} />")
    stripped = dict(new, description='<img src="" />')
    app.config["STORE_QUOTA_BYTES"] = _size([stripped])

    stored = store_service.save_scan(new)

    assert stored == [stripped]
    assert store_service.list_scans() == [stripped]


def test_exhausted_tiers_leave_store_unchanged(app):
    old = [_scan(n) for n in range(3)]
    _seed_history(old)
    before = store_service.get_item(store_service.HISTORY_KEY)
    app.config["STORE_QUOTA_BYTES"] = _size([_scan(99)]) - 1

    with pytest.raises(StorageExhausted) as exc:
        store_service.save_scan(_scan(99))

    assert "delete old drafts or history" in str(exc.value)
    assert store_service.get_item(store_service.HISTORY_KEY) == before


def test_tiers_are_tried_in_order(app):
    attempts = []

    def tier(name, fits):
        def transform(new, old):
            attempts.append(name)
            return [new] if fits else [new] * 1000
        return (name, transform)

    app.config["STORE_QUOTA_BYTES"] = 200
    tiers = [tier("first", False), tier("second", False), tier("third", True), tier("fourth", True)]
    stored = store_service.save_with_fallback("k", {"id": "x"}, tiers)

    assert attempts == ["first", "second", "third"]
    assert stored == [{"id": "x"}]


def test_delete_scan(app):
    _seed_history([_scan(1), _scan(2)])
    assert store_service.delete_scan("scan-1") is True
    assert store_service.delete_scan("scan-1") is False
    assert [s["id"] for s in store_service.list_scans()] == ["scan-2"]


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------

def test_empty_draft_is_rejected(app):
    with pytest.raises(InvalidInput):
        store_service.new_draft(identifier="   ", images=[])


def test_draft_defaults(app):
    draft = store_service.new_draft(identifier=" 9F593 ")
    assert draft["identifier"] == "9F593"
    assert (draft["style"], draft["platform"], draft["item_kind"]) == (
        "professional", "ebay", "auto-part",
    )
    assert draft["images"] == []


def test_drafts_capped_at_ten(app):
    for n in range(12):
        store_service.save_draft(store_service.new_draft(identifier=f"D{n}"))
    drafts = store_service.list_drafts()
    assert len(drafts) == 10
    assert drafts[0]["identifier"] == "D11"


def test_drafts_fall_back_to_three(app):
    for n in range(8):
        store_service.save_draft(store_service.new_draft(identifier=f"D{n}"))
    new = store_service.new_draft(identifier="NEW", images=["data:image/jpeg;base64,AAAA"])
    existing = store_service.list_drafts()
    app.config["STORE_QUOTA_BYTES"] = _size(([new] + existing)[:3])

    stored = store_service.save_draft(new)

    assert [d["identifier"] for d in stored] == ["NEW", "D7", "D6"]


def test_get_and_delete_draft(app):
    draft = store_service.new_draft(identifier="9F593")
    store_service.save_draft(draft)
    assert store_service.get_draft(draft["id"]) == draft
    assert store_service.delete_draft(draft["id"]) is True
    assert store_service.get_draft(draft["id"]) is None


# ---------------------------------------------------------------------------
# Profile & notepad
# ---------------------------------------------------------------------------

def test_profile_defaults(app):
    assert store_service.load_profile() == store_service.DEFAULT_PROFILE


def test_stored_profile_is_backfilled(app):
    store_service.set_json(store_service.PROFILE_KEY, {"business_name": "Acme Salvage"})
    profile = store_service.load_profile()
    assert profile["business_name"] == "Acme Salvage"
    assert profile["location"] == "Oklahoma City"
    assert profile["about_general"] == store_service.DEFAULT_PROFILE["about_general"]


def test_save_profile_ignores_unknown_fields(app):
    profile = store_service.save_profile({"location": "Tulsa", "favorite_color": "teal"})
    assert profile["location"] == "Tulsa"
    assert "favorite_color" not in store_service.load_profile()


def test_reset_profile(app):
    store_service.save_profile({"business_name": "Acme"})
    assert store_service.reset_profile()["business_name"] == "ChrisJayden"
    assert store_service.get_item(store_service.PROFILE_KEY) is None


def test_import_listing_prepends_to_notepad(app):
    store_service.set_notepad("older notes")
    text = store_service.import_listing_to_notepad("OEM Ford Part", "<h2>Ford</h2>")
    assert text == (
        "TITLE:\nOEM Ford Part\n\nDESCRIPTION HTML:\n<h2>Ford</h2>\n\n"
        "-------------------\n\nolder notes"
    )
    assert store_service.get_notepad() == text
