"""Listing templates: style skeletons and platform instruction blocks.

Everything here is pure text assembly with no network or state. Skeletons
are stored as data (style -> ordered sections) and combined with per
item-kind vocabulary, so the 9 styles x 3 platforms x 3 item kinds surface
stays testable without calling the model.
"""

IDENTIFIER_SLOT = "{{IDENTIFIER}}"
SUPPLEMENTAL_SLOT = "{{SUPPLEMENTAL_DATA}}"
IMAGE_MARKER = "[[PRODUCT_IMAGE]]"

DEFAULT_STYLE = "professional"
HTML_PLATFORMS = {"ebay"}
PLATFORMS = ("ebay", "facebook", "craigslist")
ITEM_KINDS = ("auto-part", "electronics", "general-item")

KIND_VOCABULARY = {
    "auto-part": {
        "label": "Automotive Part",
        "id_label": "Part Number",
        "spec_title": "Vehicle Fitment",
        "condition": "Used OEM",
        "title_fields": (
            "Year range, Make, Model, Part name, and key specifiers "
            "(e.g., AT/MT, Engine Size, OEM)"
        ),
    },
    "electronics": {
        "label": "Consumer Electronics",
        "id_label": "Model Number",
        "spec_title": "Technical Specifications",
        "condition": "Pre-Owned / Used",
        "title_fields": "Brand, Model, Capacity/Size, Color, and Key Features",
    },
    "general-item": {
        "label": "General Merchandise (Home, Tools, Collectibles, etc.)",
        "id_label": "Model/UPC",
        "spec_title": "Product Specifications",
        "condition": "Pre-Owned / Used",
        "title_fields": "Brand, Model, and Key Features",
    },
}

# Each section may use {image}, {id_label}, {condition}, {spec_title};
# {identifier} and {supplemental} become the slots spliced in by the caller.
STYLE_SKELETONS = {
    "minimalist": {
        "notes": "Clean, mobile-friendly, short text and bullet points.",
        "sections": [
            "{image}",
            "<h2>Title</h2>",
            "<h3>Quick Specs</h3>\n<ul>\n"
            "<li><strong>{id_label}:</strong> {identifier}</li>\n"
            "<li><strong>Condition:</strong> {condition} (See Photos)</li>\n</ul>",
            "<h3>{spec_title}</h3>\n{supplemental}",
        ],
    },
    "table-layout": {
        "notes": "Structured, technical look.",
        "sections": [
            "{image}",
            "<h2>Title</h2>",
            '<table style="width:100%; border-collapse:collapse; margin-bottom:20px;">\n'
            "<tr><td><strong>{id_label}</strong></td><td>{identifier}</td></tr>\n"
            "<tr><td><strong>Condition</strong></td><td>{condition}</td></tr>\n"
            "</table>",
            "<h3>Detailed Description</h3>\n<p>[Analyze image and describe the item in 2-3 sentences]</p>",
            "<h3>{spec_title}</h3>\n{supplemental}",
        ],
    },
    "bold-classic": {
        "notes": "High-contrast, centered, horizontal rules.",
        "sections": [
            "{image}",
            '<h1 style="text-align: center; border-bottom: 2px solid #000; padding-bottom: 10px;">Title</h1>',
            '<div style="text-align: center; font-weight: bold;">{id_label}: {identifier} | {condition}</div>',
            "<hr />",
            "<h3>Item Description</h3>\n<p>[Analyze image and describe the item]</p>",
            "<hr />",
            "<h3>{spec_title}</h3>\n{supplemental}",
        ],
    },
    "modern-card": {
        "notes": "Boxed card layout with gray header.",
        "sections": [
            "{image}",
            '<div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px 8px 0 0;">\n'
            "<h2>Title</h2>\n"
            "<p>{id_label}: <strong>{identifier}</strong> | Condition: <strong>{condition}</strong></p>\n"
            "</div>",
            '<div style="padding: 20px; border: 1px solid #e5e7eb; border-top: none;">\n'
            "<h3>Details</h3>\n<p>[Analyze image and describe the item]</p>\n"
            "<h3>{spec_title}</h3>\n{supplemental}\n</div>",
        ],
    },
    "professional": {
        "notes": "Standard listing format, one <section> per block.",
        "sections": [
            "{image}",
            "<h2>Title</h2>\n<p><strong>{id_label}:</strong> {identifier}</p>",
            "<h3>Product Details</h3>\n<p>[Analyze image for condition]</p>\n"
            "<p><strong>Condition:</strong> {condition}</p>",
            "<h3>{spec_title}</h3>\n{supplemental}",
        ],
    },
    "luxury": {
        "notes": "Centered serif layout with generous whitespace, wrapped in one container div.",
        "sections": [
            '<div style="text-align: center; padding: 40px; max-width: 800px; margin: 0 auto; font-family: Georgia, serif;">',
            "{image}",
            '<h2 style="text-transform: uppercase; letter-spacing: 3px; font-weight: normal;">Title</h2>',
            '<p style="font-style: italic; color: #777;">{id_label}: {identifier} &bull; {condition}</p>',
            '<div style="margin: 40px 0; line-height: 1.8;">[Elegant description of the item]</div>',
            '<h3 style="text-transform: uppercase; letter-spacing: 2px;">{spec_title}</h3>\n{supplemental}',
            "</div>",
        ],
    },
    "vintage": {
        "notes": "Typewriter look on cream paper with a double border.",
        "sections": [
            '<div style="background-color: #fdf6e3; padding: 40px; border: 4px double #d2b48c; '
            "font-family: 'Courier New', Courier, monospace; color: #5b4636;\">",
            "{image}",
            '<h2 style="text-align: center; border-bottom: 1px dashed #d2b48c;">Title</h2>',
            "<p><strong>ITEM ID: {identifier}</strong> | <strong>COND: {condition}</strong></p>",
            '<div style="line-height: 1.6;">[Describe the item and its history]</div>',
            '<h3 style="text-decoration: underline;">{spec_title}</h3>\n{supplemental}',
            "</div>",
        ],
    },
    "handmade": {
        "notes": "Soft, warm artisan layout.",
        "sections": [
            '<div style="font-family: Verdana, sans-serif; color: #555; padding: 20px; border: 1px solid #eaeaea; border-radius: 8px;">',
            "{image}",
            '<h2 style="color: #6b8e23; font-weight: normal;">Title</h2>',
            '<p style="color: #999;">{id_label}: {identifier} | Condition: {condition}</p>',
            '<div style="padding: 20px 0; line-height: 1.7;">[Describe the craftsmanship and materials]</div>',
            '<h3 style="color: #6b8e23;">{spec_title}</h3>\n{supplemental}',
            "</div>",
        ],
    },
    "collectible": {
        "notes": "Collector-grade banner with a catalog/condition table.",
        "sections": [
            '<div style="border: 1px solid #333; font-family: Arial, sans-serif;">',
            '<div style="background: #111; color: #fff; padding: 10px 20px; font-weight: bold;">COLLECTOR GRADE LISTING</div>',
            '<div style="padding: 30px;">',
            "{image}",
            "<h2>Title</h2>",
            '<table style="width: 100%; border-collapse: collapse; border: 1px solid #ddd;">\n'
            "<tr><td><strong>Catalog ID</strong></td><td>{identifier}</td></tr>\n"
            "<tr><td><strong>Condition Grade</strong></td><td>{condition}</td></tr>\n"
            "</table>",
            "<h3>Condition Report</h3>\n<p>[Detailed condition report from the photos]</p>",
            "<h3>{spec_title}</h3>\n{supplemental}",
            "</div>",
            "</div>",
        ],
    },
}

STYLES = tuple(STYLE_SKELETONS)


def is_html_platform(platform):
    return platform in HTML_PLATFORMS


def _vocabulary(item_kind):
    return KIND_VOCABULARY.get(item_kind, KIND_VOCABULARY["general-item"])


def _fill(text, values):
    # str.format would choke on braces inside CSS or user data
    for name, value in values.items():
        text = text.replace("{" + name + "}", value)
    return text


def select_template(style, item_kind, with_image=False):
    """Return the eBay HTML instruction fragment for a style.

    Unknown styles fall back to ``professional``. The result contains
    ``IDENTIFIER_SLOT`` and ``SUPPLEMENTAL_SLOT`` for the caller to fill.
    """
    skeleton = STYLE_SKELETONS.get(style) or STYLE_SKELETONS[DEFAULT_STYLE]
    style = style if style in STYLE_SKELETONS else DEFAULT_STYLE
    vocab = _vocabulary(item_kind)

    values = {
        "image": IMAGE_MARKER if with_image else "",
        "id_label": vocab["id_label"],
        "condition": vocab["condition"],
        "spec_title": vocab["spec_title"],
        "identifier": IDENTIFIER_SLOT,
        "supplemental": SUPPLEMENTAL_SLOT,
    }
    sections = [_fill(s, values) for s in skeleton["sections"]]
    structure = "\n".join(
        f"    {i}. {section}" for i, section in enumerate((s for s in sections if s), 1)
    )

    lines = [
        "*   Create a concise, SEO-friendly eBay title (80 characters max).",
        f'*   Include: {vocab["title_fields"]} and ID "{IDENTIFIER_SLOT}".',
        f"*   State the condition as: {vocab['condition']}.",
        f"**Description Generation ({style} HTML):**",
        f"*   {skeleton['notes']}",
        "*   The description is an HTML fragment only: no <html>, <head> or <body> tags.",
        f"*   Copy the {vocab['spec_title']} data exactly as given; do not rewrite it.",
    ]
    if with_image:
        lines.append(
            f"*   Output the token {IMAGE_MARKER} exactly once, where the structure shows it."
        )
    lines.append("*   Structure:")
    return "\n".join(lines) + "\n" + structure


def render_style_instruction(style, item_kind, identifier, supplemental_data, with_image=False):
    """Fill a style template with the identifier and the supplemental fragment."""
    fragment = select_template(style, item_kind, with_image=with_image)
    fragment = fragment.replace(IDENTIFIER_SLOT, identifier)
    return fragment.replace(SUPPLEMENTAL_SLOT, supplemental_data)


def condition_text(platform, item_kind, condition=None):
    text = condition or ("Used OEM" if item_kind == "auto-part" else "Used")
    if not is_html_platform(platform) and text == "Used - Fair":
        text += " (As Is)"
    return text


def platform_instruction(platform, item_kind, identifier, supplemental_data,
                         price=None, location=None, condition=None):
    """Plain-text instruction block for Facebook Marketplace or Craigslist."""
    vocab = _vocabulary(item_kind)
    cond = condition_text(platform, item_kind, condition)
    price = price or "[Enter Price]"
    location = location or "[Enter Location]"

    if platform == "facebook":
        header = [
            "*   Create a catchy, engaging title for Facebook Marketplace (use 1-2 emojis).",
            f'*   Include: {vocab["title_fields"]} and ID "{identifier}".',
            "*   **Description Generation (Facebook - Plain Text):**",
            "*   Use emojis (🔥, 📦, ✅) as bullets. Do NOT use HTML tags; use line breaks (\\n).",
        ]
        body = "2-3 short sentences."
    else:
        header = [
            "*   Create a clear, descriptive, professional title for Craigslist.",
            f'*   Include: {vocab["title_fields"]} and ID "{identifier}".',
            "*   **Description Generation (Craigslist - Plain Text):**",
            "*   Clean, professional text. Minimal or no emojis. Do NOT use HTML tags; use line breaks (\\n).",
        ]
        body = "Detailed description of the item."

    structure = [
        "*   Structure:",
        f"    1.  **Item:** Item name & {vocab['id_label']} {identifier}",
        f"    2.  **Price:** {price}",
        f"    3.  **Location:** {location}",
        f"    4.  **Condition:** {cond}",
        f"    5.  **Description:** {body}",
        f"    6.  **{vocab['spec_title']}:** Convert the HTML below into a clean bulleted text list.",
        f"    7.  **Data:** {supplemental_data}",
    ]
    return "\n".join(header + structure)
