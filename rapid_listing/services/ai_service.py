"""Gemini gateway: one function per external operation.

Each operation builds a prompt, calls the model, and validates the raw text
before anything typed leaves this module. Failures are re-raised with a
message naming the operation that failed.
"""
import io
import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, TypedDict

import google.generativeai as genai
from PIL import Image as PILImage, UnidentifiedImageError
from flask import current_app

from rapid_listing.errors import (
    AIServiceError,
    EmptyExtraction,
    InvalidInput,
    LookupFailed,
    MalformedResponse,
    NoImageReturned,
    UnsupportedInput,
)
from rapid_listing.services.image_service import EncodedImage
from rapid_listing.services.listing_templates import (
    IMAGE_MARKER,
    KIND_VOCABULARY,
    is_html_platform,
    platform_instruction,
    render_style_instruction,
)

logger = logging.getLogger(__name__)

FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
DOCUMENT_TAG_RE = re.compile(r"</?(?:html|head|body)\b[^>]*>|<!DOCTYPE[^>]*>", re.IGNORECASE)


EXTRACTION_PROMPTS = {
    "auto-part": """Analyze this image of a car part.
Perform Optical Character Recognition (OCR) to identify and extract ONLY the most \
prominent part number or serial number.
If multiple numbers are visible, return the one that is most clearly a part number.
Return ONLY the alphanumeric string, with no extra text, labels, or explanation.""",
    "electronics": """Analyze this image of an electronic device or its label.
Look for the printed MODEL NUMBER (e.g. on a rating plate, back panel or box), \
or a BARCODE (UPC, EAN) if no model number is visible.
Perform OCR on the label text.
Return ONLY the model number or numeric barcode. Do not add labels like "Model:".""",
    "general-item": """Analyze this image of a product.
Look specifically for a BARCODE (UPC, EAN), ISBN, or a printed Model Number.
Perform OCR to read the numbers below the barcode or the text on the label.
If multiple are visible, prefer the UPC (12 digits) or EAN (13 digits).
Return ONLY the numeric UPC/EAN code or alphanumeric Model Number. \
Do not add labels like "UPC:" or "Model:".""",
}

LOOKUP_COLUMNS = {
    "auto-part": '"Make", "Model", "Year Range", "Engine/Trim", and "Notes"',
    "electronics": '"Brand", "Model", "Category", "Key Specs", and "Release Year"',
    "general-item": '"Brand", "Model/MPN", "Category", "Key Features", and "Dimensions/Weight"',
}

LOOKUP_PROMPTS = {
    "auto-part": """You are an expert on automotive parts and ACES/PIES compatibility data.
For the given auto part number "{identifier}", perform a search to find its vehicle compatibility.""",
    "electronics": """You are an expert consumer-electronics researcher.
For the given model number or barcode "{identifier}", perform a search to find its technical specifications.""",
    "general-item": """You are an expert product researcher.
For the given product identifier (UPC, Barcode, or Model Name) "{identifier}", \
perform a search to find its technical specifications.""",
}

TABLE_RULES = """Your response must be ONLY a well-structured HTML table with a header row (<th>).
Ensure the table is formatted for easy reading and copying into listings.
Do not include any other text, explanation, <html>/<body> tags, or markdown formatting like ```.
The table should have columns for: {columns}.
If you cannot find any data, return exactly: {sentinel}"""

VISUAL_SEARCH_PROMPT = """Identify the item in this image as precisely as possible \
(brand, model, part name, generation).
Then perform a search to find {subject} for that item."""

VIN_PROMPT = """Decode the vehicle identification number "{vin}".
Perform a search and reply with ONE short plain-text line in the form:
Year Make Model Trim, Engine, Transmission, Drivetrain, Assembly Plant.
If the VIN cannot be decoded, reply exactly: {sentinel}"""

BACKGROUND_PROMPTS = {
    "white": "a pure white (#FFFFFF) seamless e-commerce background with a soft contact shadow",
    "studio": "a light gray studio sweep with soft diffused lighting",
    "lifestyle": "a clean, softly blurred workshop or home setting that suits the item",
}

BACKGROUND_PROMPT = """Replace the background of this product photo with {background}.

CRITICAL REQUIREMENTS:
- Keep the product EXACTLY as photographed: shape, color, labels, wear and damage
- Do NOT add, remove, or alter any text, logos, or part numbers on the item
- Center the product and keep it fully in frame
- No props, watermarks, or extra objects"""


class ListingSchema(TypedDict):
    title: str
    description: str


@dataclass(frozen=True)
class Listing:
    title: str
    description: str

    def to_dict(self):
        return {"title": self.title, "description": self.description}


@dataclass
class ListingOptions:
    """Optional inputs that shape the generated listing."""

    price: Optional[str] = None
    location: Optional[str] = None
    condition: Optional[str] = None
    vin: Optional[str] = None
    mileage: Optional[str] = None
    raw_fitment: Optional[str] = None
    optimized_image: Optional[EncodedImage] = None

    @classmethod
    def from_mapping(cls, data):
        fields = ("price", "location", "condition", "vin", "mileage", "raw_fitment")
        values = {}
        for name in fields:
            value = (data.get(name) or "").strip()
            values[name] = value or None
        return cls(**values)


def configure():
    """Configure Gemini with API key."""
    genai.configure(api_key=current_app.config["GEMINI_API_KEY"])


def _model(name=None, **kwargs):
    return genai.GenerativeModel(name or current_app.config["GEMINI_MODEL"], **kwargs)


def _request_options():
    return {"timeout": current_app.config["GEMINI_TIMEOUT"]}


def _search_tools():
    return [genai.protos.Tool(google_search=genai.protos.Tool.GoogleSearch())]


def _image_part(image):
    return {"mime_type": image.mime_type, "data": image.data}


def _response_text(response):
    try:
        text = response.text
    except ValueError:
        # Raised by the SDK when the candidate has no text parts (e.g. blocked)
        return ""
    return (text or "").strip()


def strip_code_fence(text):
    """Remove a surrounding ```lang ... ``` wrapper, if any."""
    return FENCE_RE.sub("", text.strip()).strip()


def _fragment(text):
    return DOCUMENT_TAG_RE.sub("", strip_code_fence(text)).strip()


def _not_found(identifier, item_kind):
    if item_kind == "auto-part":
        return f"<p>No compatibility information found for part number {identifier}.</p>"
    return f"<p>No specific product details found for ID {identifier}.</p>"


def _error_detail(exc):
    return str(exc) or "An unknown AI error occurred."


def extract_identifier(image, item_kind):
    """Read the part number, model number or barcode from a label photo.

    Raises:
        EmptyExtraction if the model returns blank text
        AIServiceError on API errors
    """
    configure()
    prompt = EXTRACTION_PROMPTS.get(item_kind, EXTRACTION_PROMPTS["general-item"])
    try:
        response = _model().generate_content(
            [_image_part(image), prompt], request_options=_request_options()
        )
    except Exception as e:
        logger.exception("Identifier extraction failed")
        raise AIServiceError(f"Failed to extract data from image. {_error_detail(e)}") from e

    identifier = strip_code_fence(_response_text(response)).strip("\"'` ")
    if not identifier:
        raise EmptyExtraction(
            "Failed to extract data from image. The AI returned an empty response. "
            "Please try a clearer image of the barcode or part number."
        )
    return identifier


def _lookup(contents, sentinel, operation):
    configure()
    try:
        response = _model(tools=_search_tools()).generate_content(
            contents, request_options=_request_options()
        )
    except Exception as e:
        logger.exception("%s failed", operation)
        raise LookupFailed(f"Failed to {operation}. {_error_detail(e)}") from e

    html = _fragment(_response_text(response))
    if not html:
        logger.info("%s returned nothing, using not-found sentinel", operation)
        return sentinel
    return html


def fetch_supplemental_data(identifier, item_kind):
    """Search-grounded compatibility/specification table for an identifier.

    Returns an HTML fragment; blank output yields the not-found paragraph.
    Raises LookupFailed if the call itself fails.
    """
    sentinel = _not_found(identifier, item_kind)
    kind = item_kind if item_kind in LOOKUP_PROMPTS else "general-item"
    prompt = "\n".join([
        LOOKUP_PROMPTS[kind].format(identifier=identifier),
        TABLE_RULES.format(columns=LOOKUP_COLUMNS[kind], sentinel=sentinel),
    ])
    return _lookup(prompt, sentinel, "look up data")


def perform_visual_search(image, item_kind):
    """Like fetch_supplemental_data, but identifies the item from the photo."""
    sentinel = "<p>No matching product details found from visual search.</p>"
    kind = item_kind if item_kind in LOOKUP_COLUMNS else "general-item"
    subject = (
        "its vehicle compatibility" if kind == "auto-part" else "its technical specifications"
    )
    prompt = "\n".join([
        VISUAL_SEARCH_PROMPT.format(subject=subject),
        TABLE_RULES.format(columns=LOOKUP_COLUMNS[kind], sentinel=sentinel),
    ])
    return _lookup([_image_part(image), prompt], sentinel, "run visual search")


def decode_vin(vin):
    """One-line vehicle summary for a VIN. Never raises on model failure."""
    vin = (vin or "").strip().upper()
    if not vin:
        raise InvalidInput("A VIN is required")

    sentinel = f"VIN details not found for {vin}."
    try:
        text = _lookup(VIN_PROMPT.format(vin=vin, sentinel=sentinel), sentinel, "decode VIN")
    except LookupFailed:
        return sentinel
    return text


def optimize_image_background(image, style="white"):
    """Replace the photo background using the image-generation model.

    Returns:
        EncodedImage (JPEG)

    Raises:
        UnsupportedInput if the source bytes are not a decodable image
        NoImageReturned if the response has no inline image
        AIServiceError on API errors
    """
    configure()
    background = BACKGROUND_PROMPTS.get(style, BACKGROUND_PROMPTS["white"])

    try:
        source = PILImage.open(io.BytesIO(image.data))
        source.load()
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedInput("Invalid image file") from e
    if source.mode != "RGB":
        source = source.convert("RGB")

    try:
        response = _model(current_app.config["GEMINI_IMAGE_MODEL"]).generate_content(
            [BACKGROUND_PROMPT.format(background=background), source],
            generation_config={"response_modalities": ["TEXT", "IMAGE"]},
            request_options=_request_options(),
        )
    except Exception as e:
        logger.exception("Background replacement failed")
        raise AIServiceError(f"Failed to optimize image. {_error_detail(e)}") from e

    for candidate in response.candidates or []:
        for part in candidate.content.parts:
            if getattr(part, "inline_data", None) and part.inline_data.data:
                return _reencode(part.inline_data.data)

    raise NoImageReturned("Failed to optimize image. The AI response did not contain an image.")


def _reencode(image_bytes):
    try:
        img = PILImage.open(io.BytesIO(image_bytes))
        img.verify()
        img = PILImage.open(io.BytesIO(image_bytes))
    except (UnidentifiedImageError, OSError) as e:
        raise NoImageReturned("Failed to optimize image. The AI returned unreadable image data.") from e
    if img.mode != "RGB":
        img = img.convert("RGB")
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=90)
    return EncodedImage(buffer.getvalue(), "image/jpeg", img.width, img.height)


def build_listing_prompt(identifier, supplemental_data, style, platform, item_kind, options):
    """Assemble the composite listing prompt (no network)."""
    vocab = KIND_VOCABULARY.get(item_kind, KIND_VOCABULARY["general-item"])

    if is_html_platform(platform):
        instructions = render_style_instruction(
            style, item_kind, identifier, supplemental_data,
            with_image=options.optimized_image is not None,
        )
    else:
        instructions = platform_instruction(
            platform, item_kind, identifier, supplemental_data,
            price=options.price, location=options.location, condition=options.condition,
        )

    blocks = [
        "You are an expert reseller and listing copywriter.",
        f'Based on the provided identifier "{identifier}" and the attached image of the item.',
        f"Item Type: {vocab['label']}.",
    ]
    if item_kind == "auto-part" and (options.vin or options.mileage):
        blocks.append(
            "Donor vehicle (mention it as the source of the part): "
            f"VIN: {options.vin or 'N/A'}, Mileage: {options.mileage or 'N/A'}."
        )
    if is_html_platform(platform) and options.condition:
        blocks.append(f"Seller-stated condition: {options.condition}.")
    if options.raw_fitment:
        blocks.append(
            "SELLER-SUPPLIED FITMENT DATA (ground truth; it overrides anything you infer "
            "from the image or search, include it verbatim):\n" + options.raw_fitment
        )
    blocks.append(instructions)
    blocks.append(
        'Your response MUST be a single, valid JSON object with exactly two keys: '
        '"title" and "description".'
    )
    return "\n\n".join(blocks)


def parse_listing(text):
    """Validate raw model text as a {"title", "description"} object."""
    cleaned = strip_code_fence(text or "")
    if not cleaned:
        raise MalformedResponse("Failed to generate listing. The AI returned an empty response.")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponse(
            "Failed to generate listing due to invalid AI response format. Try again."
        ) from e

    if not isinstance(data, dict) or set(data) != {"title", "description"}:
        raise MalformedResponse(
            "Failed to generate listing. The AI response must contain exactly "
            '"title" and "description".'
        )
    title, description = data["title"], data["description"]
    if not isinstance(title, str) or not isinstance(description, str) or not title.strip():
        raise MalformedResponse("Failed to generate listing. The AI returned empty or non-text fields.")
    return Listing(title=title.strip(), description=description)


def embed_image(description, image):
    """Put the optimized photo at the marker, or at the top if there is none."""
    tag = (
        '<div style="text-align: center; margin-bottom: 25px;">'
        f'<img src="{image.to_data_url()}" alt="Product photo" '
        'style="max-width: 100%; height: auto;" /></div>'
    )
    if IMAGE_MARKER in description:
        description = description.replace(IMAGE_MARKER, tag, 1)
        return description.replace(IMAGE_MARKER, "")
    return f"{tag}\n{description}"


def generate_listing(image, identifier, supplemental_data, style="professional",
                     platform="ebay", item_kind="auto-part", options=None):
    """Generate marketplace title and description.

    Raises:
        MalformedResponse if the reply is not the two-field JSON object
        AIServiceError on API errors
    """
    options = options or ListingOptions()
    configure()
    prompt = build_listing_prompt(
        identifier, supplemental_data, style, platform, item_kind, options
    )
    model = _model(
        generation_config=genai.GenerationConfig(
            response_mime_type="application/json",
            response_schema=ListingSchema,
        ),
    )
    try:
        response = model.generate_content(
            [_image_part(image), prompt], request_options=_request_options()
        )
    except Exception as e:
        logger.exception("Listing generation failed")
        raise AIServiceError(f"Failed to generate listing. {_error_detail(e)}") from e

    listing = parse_listing(_response_text(response))
    if options.optimized_image is not None:
        listing = Listing(listing.title, embed_image(listing.description, options.optimized_image))
    return listing
