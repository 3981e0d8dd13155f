"""eBay Seller Hub draft-listing CSV export."""
import csv
import io

INFO_ROWS = [
    "#INFO,Version=0.0.2,Template= eBay-draft-listings-template_US,,,,,,,,",
    "#INFO Action and Category ID are required fields. 1) Set Action to Draft "
    "2) Please find the category ID for your listings here: "
    "https://pages.ebay.com/sellerinformation/news/categorychanges.html,,,,,,,,,,",
    '"#INFO After you\'ve successfully uploaded your draft from the Seller Hub Reports '
    'tab, complete your drafts to active listings here: '
    'https://www.ebay.com/sh/lst/drafts",,,,,,,,,,',
    "#INFO,,,,,,,,,,",
]

HEADER_ROW = (
    "Action(SiteID=US|Country=US|Currency=USD|Version=1193|CC=UTF-8),"
    "Custom label (SKU),Category ID,Title,UPC,Price,Quantity,Item photo URL,"
    "Condition ID,Description,Format"
)

ACTION = "Draft"
QUANTITY = "1"
CONDITION_USED = "3000"
FORMAT = "FixedPrice"

ABOUT_FIELDS = {
    "auto-part": "about_auto",
    "electronics": "about_electronics",
    "general-item": "about_general",
}


def branding_footer(profile, item_kind="auto-part"):
    """Policy and about-us HTML appended to unbranded descriptions."""
    name = profile.get("business_name", "")
    about = profile.get(ABOUT_FIELDS.get(item_kind, "about_general"), "")

    sections = ['<hr style="margin: 2rem 0; border-color: #e5e7eb;" />']
    if item_kind == "auto-part":
        sections.append(
            '<section style="margin-bottom: 1.5rem;">\n'
            "  <h3>CRITICAL: Buyer Responsibility &amp; Fitment</h3>\n"
            "  <p>Please verify compatibility before purchasing. It is the buyer's sole "
            "responsibility to ensure this part fits your exact vehicle year, make, model "
            "and trim. Cross-reference part numbers or check your vehicle's VIN before you "
            "commit to buy.</p>\n"
            "</section>"
        )
    sections.append(
        '<section style="margin-bottom: 1.5rem;">\n'
        "  <h3>Shipping &amp; Return Policy</h3>\n"
        f"  <p><strong>Shipping:</strong> {profile.get('shipping_policy', '')}</p>\n"
        f"  <p><strong>Returns:</strong> {profile.get('return_policy', '')}</p>\n"
        "</section>"
    )
    location = profile.get("location", "")
    sections.append(
        '<section style="margin-bottom: 1.5rem;">\n'
        f"  <h3>About {name}{' (' + location + ')' if location else ''}</h3>\n"
        f"  <p>{about}</p>\n"
        "</section>"
    )
    return "\n" + "\n\n".join(sections) + "\n"


def is_branded(scan, profile):
    """Whether a scan's description already carries the business footer.

    Scans saved with an explicit ``branded`` flag use it; older scans fall
    back to looking for the business name in the description.
    """
    if scan.get("branded"):
        return True
    name = profile.get("business_name", "")
    return bool(name) and name in (scan.get("description") or "")


def export_row(scan, profile):
    description = scan.get("description") or ""
    if not is_branded(scan, profile):
        description += branding_footer(profile, scan.get("item_kind", "auto-part"))
    return [
        ACTION,
        scan.get("identifier", ""),
        "",  # category ID: chosen by the seller in eBay
        scan.get("title", ""),
        "",  # UPC
        "",  # price
        QUANTITY,
        "",  # photo URL: images stay local
        CONDITION_USED,
        description,
        FORMAT,
    ]


def build_ebay_csv(scans, profile):
    """Render saved scans as a Seller Hub draft-upload CSV."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for scan in scans:
        writer.writerow(export_row(scan, profile))
    rows = buffer.getvalue().rstrip("\n")
    lines = INFO_ROWS + [HEADER_ROW]
    if rows:
        lines.append(rows)
    return "\n".join(lines)


def export_filename(today):
    return f"rapid_listing_drafts_{today.isoformat()}.csv"
