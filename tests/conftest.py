import io

import pytest
from PIL import Image as PILImage

from rapid_listing import create_app
from rapid_listing.extensions import db as _db


@pytest.fixture
def app():
    """Create a fresh application and in-memory database per test."""
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def make_image():
    """Factory for in-memory test images."""

    def _make(size=(400, 200), fmt="JPEG", mode="RGB", color=(180, 40, 40)):
        if mode == "RGBA":
            color = color + (128,)
        img = PILImage.new(mode, size, color)
        buffer = io.BytesIO()
        img.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make
