from rapid_listing.models.store_entry import StoreEntry  # noqa: F401
