import json
import os
import tempfile
from pathlib import Path

import httpx
import pytest

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="export_service_tests_"))

os.environ.setdefault("PUBLIC_DIR", str(_TEST_ROOT / "public"))
os.environ.setdefault("DATABASE_FILE_PATH", str(_TEST_ROOT / "db.json"))
os.environ.setdefault("BACKEND_URL", "http://backend.test")
os.environ.setdefault("ENABLE_HOT_RELOAD", "False")

from export_service.utils.product_store import ProductStore  # noqa: E402

EXPORT_URL = "https://export-download.canva.com/aaa/bbb/1/2/3333-838106404244599455.png?X-Amz-Expires=3600"
EXPORT_FILENAME = "3333-838106404244599455.png"
EXPORT_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 64


def serve_export(body: bytes = EXPORT_BYTES, status_code: int = 200) -> httpx.MockTransport:
    """Fake export host answering every GET with `status_code` and `body`."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def db_document():
    return {
        "products": [
            {
                "id": "prod-1",
                "name": "Poster",
                "price": 25,
                "canvaDesign": {
                    "designId": "DAF1234",
                    "designTitle": "Summer poster",
                    "designExportUrl": "https://export-download.canva.com/old.png",
                    "editUrl": "https://www.canva.com/design/DAF1234/edit",
                },
            },
            {"id": "prod-2", "name": "Mug", "price": 12},
        ],
        "orders": [{"id": "order-1", "productId": "prod-2"}],
    }


@pytest.fixture
def db_path(tmp_path, db_document):
    path = tmp_path / "db.json"
    path.write_text(json.dumps(db_document, indent=2))
    return path


@pytest.fixture
def store(db_path):
    return ProductStore(database_path=db_path, enable_hot_reload=False)


@pytest.fixture
def exports_dir(tmp_path):
    # Nested and absent on purpose: downloads must create it
    return tmp_path / "public" / "exports"
