"""Generation flow controller: extract identifier -> fetch data -> generate.

One ``ListingFlow`` per app owns the workspace's ``FlowState``. Each run
takes a fresh token; a run whose token is no longer current (the user
cancelled, or started another run) stops at its next step and its results
are discarded rather than overwriting the newer flow or being saved.
"""
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Optional

from flask import current_app

from rapid_listing.errors import FlowCancelled, ListingToolError, StorageExhausted
from rapid_listing.services import ai_service, store_service
from rapid_listing.services.ai_service import Listing, ListingOptions
from rapid_listing.services.export_service import branding_footer
from rapid_listing.services.image_service import EncodedImage
from rapid_listing.services.listing_templates import is_html_platform

logger = logging.getLogger(__name__)


@dataclass
class FlowRequest:
    item_image: EncodedImage
    label_image: Optional[EncodedImage] = None
    identifier: Optional[str] = None
    item_kind: str = "auto-part"
    style: str = "professional"
    platform: str = "ebay"
    options: ListingOptions = field(default_factory=ListingOptions)
    brand: bool = False


@dataclass
class FlowState:
    token: int = 0
    step: str = "idle"
    identifier: Optional[str] = None
    supplemental_data: Optional[str] = None
    listing: Optional[Listing] = None
    error: Optional[str] = None

    def to_dict(self):
        return {
            "token": self.token,
            "step": self.step,
            "identifier": self.identifier,
            "supplemental_data": self.supplemental_data,
            "listing": self.listing.to_dict() if self.listing else None,
            "error": self.error,
        }


class ListingFlow:
    def __init__(self):
        self._lock = threading.Lock()
        self._state = FlowState()

    @property
    def state(self):
        with self._lock:
            return replace(self._state)

    def start(self):
        with self._lock:
            self._state = FlowState(token=self._state.token + 1, step="extracting")
            return self._state.token

    def cancel(self):
        with self._lock:
            self._state = FlowState(token=self._state.token + 1, step="cancelled")
            logger.info("Flow cancelled, token now %d", self._state.token)

    def _advance(self, token, **changes):
        with self._lock:
            if token != self._state.token:
                raise FlowCancelled("This generation was cancelled or replaced by a newer one.")
            self._state = replace(self._state, **changes)

    def _fail(self, token, message):
        with self._lock:
            if token == self._state.token:
                self._state = replace(self._state, step="failed", error=message)

    def run(self, request):
        """Run the three-step flow and save the resulting scan.

        Returns:
            (scan dict, warning or None). A storage warning means the listing
            was generated but could not be kept in history.

        Raises:
            FlowCancelled if a newer flow superseded this one
            ListingToolError from any failed step
        """
        token = self.start()
        try:
            identifier = (request.identifier or "").strip()
            if not identifier:
                identifier = ai_service.extract_identifier(
                    request.label_image or request.item_image, request.item_kind
                )
            self._advance(token, step="fetching", identifier=identifier)

            supplemental = ai_service.fetch_supplemental_data(identifier, request.item_kind)
            self._advance(token, step="generating", supplemental_data=supplemental)

            listing = ai_service.generate_listing(
                request.item_image,
                identifier,
                supplemental,
                style=request.style,
                platform=request.platform,
                item_kind=request.item_kind,
                options=request.options,
            )
            branded = request.brand and is_html_platform(request.platform)
            if branded:
                footer = branding_footer(store_service.load_profile(), request.item_kind)
                listing = Listing(listing.title, listing.description + footer)
            self._advance(token, step="saving", listing=listing)
        except FlowCancelled:
            logger.info("Discarding stale flow %d", token)
            raise
        except ListingToolError as e:
            self._fail(token, str(e))
            raise
        except Exception:
            logger.exception("Flow %d failed unexpectedly", token)
            self._fail(token, "An unexpected error occurred.")
            raise

        scan = store_service.new_scan(
            identifier, listing, supplemental, request.platform, request.item_kind,
            branded=branded,
        )
        warning = None
        try:
            # A stale flow never persists its scan
            self._advance(token)
            store_service.save_scan(scan)
        except FlowCancelled:
            logger.info("Discarding stale flow %d before save", token)
            raise
        except StorageExhausted as e:
            logger.warning("Scan %s generated but not saved: %s", scan["id"], e)
            warning = str(e)
        except Exception:
            logger.exception("Saving scan %s failed", scan["id"])
            self._fail(token, "Saving the listing failed.")
            raise

        with self._lock:
            # The scan is already saved; a newer flow only keeps its own state
            if token == self._state.token:
                self._state = replace(self._state, step="done", error=warning)
        return scan, warning


def get_flow():
    return current_app.extensions["listing_flow"]
