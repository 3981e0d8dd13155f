"""JSON API for the listing workspace."""
import logging
from datetime import date

from flask import Response, jsonify, request

from rapid_listing.blueprints.api import api_bp
from rapid_listing.errors import InvalidInput, ListingToolError
from rapid_listing.services import ai_service, export_service, image_service, store_service
from rapid_listing.services.ai_service import ListingOptions
from rapid_listing.services.listing_flow import FlowRequest, get_flow
from rapid_listing.services.listing_templates import ITEM_KINDS, PLATFORMS

logger = logging.getLogger(__name__)


@api_bp.errorhandler(ListingToolError)
def handle_tool_error(error):
    return jsonify({
        "error": str(error),
        "kind": error.kind,
        "retryable": error.retryable,
    }), error.status_code


def _params():
    if request.is_json:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise InvalidInput("Expected a JSON object")
        return data
    return request.form


def _text(params, name, default=""):
    value = params.get(name)
    if value is None:
        return default
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be text")
    return value


def _choice(params, name, allowed, default):
    value = _text(params, name).strip() or default
    if value not in allowed:
        raise InvalidInput(f"Unknown {name}: {value}")
    return value


def _image(name, required=True):
    upload = request.files.get(name)
    if upload and upload.filename:
        return image_service.read_upload(upload)
    # Drafts resume with data URLs instead of files
    data_url = request.form.get(f"{name}_data_url")
    if data_url:
        return image_service.read_data_url(data_url)
    if required:
        raise InvalidInput(f"Please upload an image ({name}).")
    return None


# ---------------------------------------------------------------------------
# AI operations
# ---------------------------------------------------------------------------

@api_bp.route("/identify", methods=["POST"])
def identify():
    item_kind = _choice(request.form, "item_kind", ITEM_KINDS, "auto-part")
    identifier = ai_service.extract_identifier(_image("image"), item_kind)
    return {"identifier": identifier}


@api_bp.route("/lookup", methods=["POST"])
def lookup():
    params = _params()
    identifier = _text(params, "identifier").strip()
    if not identifier:
        raise InvalidInput("Please enter a part number, model number or barcode.")
    item_kind = _choice(params, "item_kind", ITEM_KINDS, "auto-part")
    return {
        "identifier": identifier,
        "supplemental_data": ai_service.fetch_supplemental_data(identifier, item_kind),
    }


@api_bp.route("/visual-search", methods=["POST"])
def visual_search():
    item_kind = _choice(request.form, "item_kind", ITEM_KINDS, "general-item")
    html = ai_service.perform_visual_search(_image("image"), item_kind)
    return {"supplemental_data": html}


@api_bp.route("/vin", methods=["POST"])
def vin():
    params = _params()
    return {"summary": ai_service.decode_vin(_text(params, "vin"))}


@api_bp.route("/optimize-image", methods=["POST"])
def optimize_image():
    style = request.form.get("style", "white")
    optimized = ai_service.optimize_image_background(_image("image"), style)
    return {
        "image": optimized.to_data_url(),
        "width": optimized.width,
        "height": optimized.height,
    }


@api_bp.route("/listings", methods=["POST"])
def create_listing():
    """Run the full extract -> lookup -> generate flow and save the scan."""
    form = request.form
    options = ListingOptions.from_mapping(form)
    optimized = form.get("optimized_image")
    if optimized:
        options.optimized_image = image_service.read_data_url(optimized)

    flow_request = FlowRequest(
        item_image=_image("item_image"),
        label_image=_image("label_image", required=False),
        identifier=form.get("identifier"),
        item_kind=_choice(form, "item_kind", ITEM_KINDS, "auto-part"),
        style=form.get("style") or "professional",
        platform=_choice(form, "platform", PLATFORMS, "ebay"),
        options=options,
        brand=form.get("brand", "").lower() in ("1", "true", "yes", "on"),
    )
    scan, warning = get_flow().run(flow_request)
    logger.info("Generated %s listing for %s", scan["platform"], scan["identifier"])
    return {"scan": scan, "warning": warning}, 201


@api_bp.route("/flow", methods=["GET"])
def flow_state():
    return get_flow().state.to_dict()


@api_bp.route("/flow/cancel", methods=["POST"])
def cancel_flow():
    flow = get_flow()
    flow.cancel()
    return flow.state.to_dict()


# ---------------------------------------------------------------------------
# History & drafts
# ---------------------------------------------------------------------------

@api_bp.route("/history", methods=["GET"])
def history():
    return {"scans": store_service.list_scans()}


@api_bp.route("/history/<scan_id>", methods=["DELETE"])
def delete_scan(scan_id):
    if not store_service.delete_scan(scan_id):
        return {"error": "Scan not found"}, 404
    return "", 204


@api_bp.route("/drafts", methods=["GET"])
def drafts():
    return {"drafts": store_service.list_drafts()}


@api_bp.route("/drafts", methods=["POST"])
def save_draft():
    form = request.form
    images = []
    for name in ("item_image", "label_image"):
        image = _image(name, required=False)
        if image is not None:
            images.append(image.to_data_url())

    draft = store_service.new_draft(
        identifier=form.get("identifier"),
        style=form.get("style"),
        platform=form.get("platform"),
        item_kind=form.get("item_kind"),
        images=images,
    )
    store_service.save_draft(draft)
    return {"draft": draft}, 201


@api_bp.route("/drafts/<draft_id>", methods=["GET"])
def get_draft(draft_id):
    draft = store_service.get_draft(draft_id)
    if draft is None:
        return {"error": "Draft not found"}, 404
    return {"draft": draft}


@api_bp.route("/drafts/<draft_id>", methods=["DELETE"])
def delete_draft(draft_id):
    if not store_service.delete_draft(draft_id):
        return {"error": "Draft not found"}, 404
    return "", 204


# ---------------------------------------------------------------------------
# Profile, notepad, export
# ---------------------------------------------------------------------------

@api_bp.route("/profile", methods=["GET"])
def profile():
    return store_service.load_profile()


@api_bp.route("/profile", methods=["PUT"])
def update_profile():
    return store_service.save_profile(_params())


@api_bp.route("/profile", methods=["DELETE"])
def reset_profile():
    return store_service.reset_profile()


@api_bp.route("/notepad", methods=["GET"])
def notepad():
    return {"content": store_service.get_notepad()}


@api_bp.route("/notepad", methods=["PUT"])
def update_notepad():
    content = _text(_params(), "content")
    store_service.set_notepad(content)
    return {"content": content}


@api_bp.route("/notepad/import", methods=["POST"])
def import_to_notepad():
    listing = get_flow().state.listing
    if listing is None:
        raise InvalidInput("There is no current listing to import.")
    content = store_service.import_listing_to_notepad(listing.title, listing.description)
    return {"content": content}


@api_bp.route("/export.csv", methods=["GET"])
def export_csv():
    scans = store_service.list_scans()
    if not scans:
        return {"error": "No saved scans to export"}, 404
    body = export_service.build_ebay_csv(scans, store_service.load_profile())
    filename = export_service.export_filename(date.today())
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
