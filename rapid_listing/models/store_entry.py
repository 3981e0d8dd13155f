from datetime import datetime, timezone
from rapid_listing.extensions import db


class StoreEntry(db.Model):
    """One key of the workspace's local key/value store."""

    __tablename__ = "store_entries"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @staticmethod
    def get(key, default=None):
        row = db.session.get(StoreEntry, key)
        return row.value if row else default

    @staticmethod
    def used_bytes(exclude_key=None):
        """Total stored size in characters, optionally ignoring one key."""
        query = db.session.query(
            db.func.coalesce(db.func.sum(db.func.length(StoreEntry.value)), 0)
        )
        if exclude_key is not None:
            query = query.filter(StoreEntry.key != exclude_key)
        return int(query.scalar())

    def __repr__(self):
        return f"<StoreEntry {self.key} ({len(self.value)} chars)>"
