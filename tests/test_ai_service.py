"""Tests for the Gemini gateway (model calls mocked)."""
import io
import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from PIL import Image as PILImage

from rapid_listing.errors import (
    AIServiceError,
    EmptyExtraction,
    InvalidInput,
    LookupFailed,
    MalformedResponse,
    NoImageReturned,
    UnsupportedInput,
)
from rapid_listing.services import ai_service
from rapid_listing.services.ai_service import Listing, ListingOptions
from rapid_listing.services.image_service import EncodedImage
from rapid_listing.services.listing_templates import IMAGE_MARKER

TABLE = "<table><tr><th>Make</th></tr><tr><td>Ford</td></tr></table>"


class BlockedResponse:
    candidates = []

    @property
    def text(self):
        raise ValueError("response has no text parts")


@pytest.fixture
def genai():
    with patch("rapid_listing.services.ai_service.genai") as mock_genai:
        yield mock_genai


def _reply(genai, *texts):
    model = genai.GenerativeModel.return_value
    model.generate_content.side_effect = [SimpleNamespace(text=t) for t in texts]
    return model


@pytest.fixture
def photo(make_image):
    return EncodedImage(make_image((64, 64)), "image/jpeg", 64, 64)


# ---------------------------------------------------------------------------
# extract_identifier
# ---------------------------------------------------------------------------

def test_extract_identifier_trims_output(app, genai, photo):
    model = _reply(genai, "  9F593\n")
    assert ai_service.extract_identifier(photo, "auto-part") == "9F593"

    contents = model.generate_content.call_args.args[0]
    assert contents[0] == {"mime_type": "image/jpeg", "data": photo.data}
    assert "part number" in contents[1]
    assert model.generate_content.call_args.kwargs["request_options"] == {"timeout": 60}


@pytest.mark.parametrize("reply", ["", "   \n\t", "```\n```"])
def test_extract_identifier_blank_is_empty_extraction(app, genai, photo, reply):
    _reply(genai, reply)
    with pytest.raises(EmptyExtraction):
        ai_service.extract_identifier(photo, "general-item")


def test_extract_identifier_blocked_response_is_empty_extraction(app, genai, photo):
    genai.GenerativeModel.return_value.generate_content.return_value = BlockedResponse()
    with pytest.raises(EmptyExtraction):
        ai_service.extract_identifier(photo, "electronics")


def test_extract_identifier_api_error_is_prefixed(app, genai, photo):
    genai.GenerativeModel.return_value.generate_content.side_effect = RuntimeError("quota")
    with pytest.raises(AIServiceError) as exc:
        ai_service.extract_identifier(photo, "auto-part")
    assert str(exc.value) == "Failed to extract data from image. quota"


def test_extraction_prompt_depends_on_item_kind(app, genai, photo):
    model = _reply(genai, "012345678905")
    ai_service.extract_identifier(photo, "general-item")
    assert "BARCODE" in model.generate_content.call_args.args[0][1]


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def test_fetch_supplemental_data_strips_fence_and_uses_search(app, genai):
    _reply(genai, f"```html\n{TABLE}\n```")
    assert ai_service.fetch_supplemental_data("9F593", "auto-part") == TABLE
    assert "tools" in genai.GenerativeModel.call_args.kwargs


def test_fetch_supplemental_data_removes_document_wrapper(app, genai):
    _reply(genai, f"<!DOCTYPE html><html><body>{TABLE}</body></html>")
    assert ai_service.fetch_supplemental_data("9F593", "auto-part") == TABLE


def test_fetch_supplemental_data_blank_returns_sentinel(app, genai):
    _reply(genai, "")
    html = ai_service.fetch_supplemental_data("9F593", "auto-part")
    assert html == "<p>No compatibility information found for part number 9F593.</p>"


def test_fetch_supplemental_data_general_sentinel(app, genai):
    _reply(genai, "  ")
    html = ai_service.fetch_supplemental_data("012345678905", "general-item")
    assert html == "<p>No specific product details found for ID 012345678905.</p>"


def test_fetch_supplemental_data_columns_by_kind(app, genai):
    model = _reply(genai, TABLE, TABLE)
    ai_service.fetch_supplemental_data("9F593", "auto-part")
    assert '"Make", "Model", "Year Range"' in model.generate_content.call_args_list[0].args[0]
    ai_service.fetch_supplemental_data("B07X", "general-item")
    assert '"Brand", "Model/MPN"' in model.generate_content.call_args_list[1].args[0]


def test_fetch_supplemental_data_failure_raises_lookup_failed(app, genai):
    genai.GenerativeModel.return_value.generate_content.side_effect = TimeoutError("deadline")
    with pytest.raises(LookupFailed) as exc:
        ai_service.fetch_supplemental_data("9F593", "auto-part")
    assert str(exc.value).startswith("Failed to look up data.")


def test_visual_search_sends_image(app, genai, photo):
    model = _reply(genai, TABLE)
    assert ai_service.perform_visual_search(photo, "electronics") == TABLE
    contents = model.generate_content.call_args.args[0]
    assert contents[0]["data"] == photo.data


def test_decode_vin_soft_fails(app, genai):
    genai.GenerativeModel.return_value.generate_content.side_effect = RuntimeError("down")
    assert ai_service.decode_vin("1ftfw1et5dfc10312") == "VIN details not found for 1FTFW1ET5DFC10312."


def test_decode_vin_returns_summary(app, genai):
    _reply(genai, "2013 Ford F-150 XLT, 3.5L V6 EcoBoost\n")
    assert ai_service.decode_vin("1FTFW1ET5DFC10312") == "2013 Ford F-150 XLT, 3.5L V6 EcoBoost"


def test_decode_vin_requires_input(app, genai):
    with pytest.raises(InvalidInput):
        ai_service.decode_vin("  ")
    genai.GenerativeModel.assert_not_called()


# ---------------------------------------------------------------------------
# Background replacement
# ---------------------------------------------------------------------------

def _image_response(data):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type="image/png"))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


def test_optimize_image_background_returns_jpeg(app, genai, photo, make_image):
    genai.GenerativeModel.return_value.generate_content.return_value = _image_response(
        make_image((120, 80), fmt="PNG")
    )
    result = ai_service.optimize_image_background(photo, "studio")
    assert result.mime_type == "image/jpeg"
    assert PILImage.open(io.BytesIO(result.data)).size == (120, 80)
    genai.GenerativeModel.assert_called_with("gemini-2.0-flash-exp")
    call = genai.GenerativeModel.return_value.generate_content.call_args
    assert call.kwargs["generation_config"] == {"response_modalities": ["TEXT", "IMAGE"]}


def test_optimize_image_background_without_image_fails(app, genai, photo):
    text_part = SimpleNamespace(inline_data=None, text="Sorry, I can't do that.")
    genai.GenerativeModel.return_value.generate_content.return_value = SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=[text_part]))]
    )
    with pytest.raises(NoImageReturned):
        ai_service.optimize_image_background(photo)


# ---------------------------------------------------------------------------
# Listing generation
# ---------------------------------------------------------------------------

def test_parse_listing_accepts_fenced_json():
    listing = ai_service.parse_listing('```json\n{"title": "T", "description": "<p>D</p>"}\n```')
    assert listing == Listing("T", "<p>D</p>")


@pytest.mark.parametrize("text", [
    '{"title": "only a title"}',
    '{"description": "only a description"}',
    '{"title": "T", "description": "D", "price": "9.99"}',
    '["T", "D"]',
    '{"title": 5, "description": "D"}',
    '{"title": "   ", "description": "D"}',
    "Sure! Here is your listing: title T",
    "",
])
def test_parse_listing_rejects_wrong_shapes(text):
    with pytest.raises(MalformedResponse):
        ai_service.parse_listing(text)


def test_malformed_response_is_retryable_ai_error():
    err = MalformedResponse("x")
    assert isinstance(err, AIServiceError)
    assert err.retryable


def test_generate_listing_requests_json(app, genai, photo):
    model = _reply(genai, json.dumps({"title": "OEM Ford Part 9F593", "description": "<h2>x</h2>"}))
    listing = ai_service.generate_listing(photo, "9F593", TABLE)
    assert listing.title == "OEM Ford Part 9F593"
    genai.GenerationConfig.assert_called_once()
    assert genai.GenerationConfig.call_args.kwargs["response_mime_type"] == "application/json"
    prompt = model.generate_content.call_args.args[0][1]
    assert TABLE in prompt


def test_generate_listing_injects_image_at_marker(app, genai, photo):
    _reply(genai, json.dumps({
        "title": "T", "description": f"{IMAGE_MARKER}<h2>T</h2>{IMAGE_MARKER}",
    }))
    options = ListingOptions(optimized_image=photo)
    listing = ai_service.generate_listing(photo, "9F593", TABLE, options=options)
    assert listing.description.count(photo.to_data_url()) == 1
    assert IMAGE_MARKER not in listing.description
    assert listing.description.endswith("<h2>T</h2>")


def test_generate_listing_prepends_image_without_marker(app, genai, photo):
    _reply(genai, json.dumps({"title": "T", "description": "Great item 🔥"}))
    options = ListingOptions(optimized_image=photo)
    listing = ai_service.generate_listing(
        photo, "9F593", TABLE, platform="facebook", options=options
    )
    assert listing.description.startswith('<div style="text-align: center;')
    assert listing.description.endswith("\nGreat item 🔥")


def test_generate_listing_api_error(app, genai, photo):
    genai.GenerativeModel.return_value.generate_content.side_effect = RuntimeError("503")
    with pytest.raises(AIServiceError) as exc:
        ai_service.generate_listing(photo, "9F593", TABLE)
    assert not isinstance(exc.value, MalformedResponse)
    assert str(exc.value).startswith("Failed to generate listing.")


def test_prompt_includes_raw_fitment_and_donor_vehicle():
    options = ListingOptions(
        vin="1FTFW1ET5DFC10312", mileage="84,000", raw_fitment="2011-2014 Ford F-150 5.0L",
    )
    prompt = ai_service.build_listing_prompt(
        "9F593", TABLE, "table-layout", "ebay", "auto-part", options
    )
    assert "2011-2014 Ford F-150 5.0L" in prompt
    assert "ground truth" in prompt
    assert "1FTFW1ET5DFC10312" in prompt
    assert "84,000" in prompt


def test_plain_text_prompt_never_asks_for_marker(app, photo):
    options = ListingOptions(optimized_image=photo, price="$25", location="OKC")
    prompt = ai_service.build_listing_prompt(
        "9F593", TABLE, "luxury", "craigslist", "general-item", options
    )
    assert IMAGE_MARKER not in prompt
    assert "$25" in prompt


def test_html_prompt_asks_for_marker_with_image(app, photo):
    options = ListingOptions(optimized_image=photo)
    prompt = ai_service.build_listing_prompt(
        "9F593", TABLE, "luxury", "ebay", "general-item", options
    )
    assert IMAGE_MARKER in prompt


def test_listing_options_from_mapping_blanks_are_none():
    options = ListingOptions.from_mapping({"price": "  ", "location": "Tulsa", "vin": None})
    assert options.price is None
    assert options.location == "Tulsa"
    assert options.vin is None


def test_optimize_image_background_rejects_undecodable_source(app, genai):
    broken = EncodedImage(b"hello", "image/png", 0, 0)
    with pytest.raises(UnsupportedInput):
        ai_service.optimize_image_background(broken)
    genai.GenerativeModel.return_value.generate_content.assert_not_called()
