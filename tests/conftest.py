"""
Pytest configuration and shared fixtures.

Registers the integration marker and --run-integration option, and provides
in-memory fakes for the OCR provider plus temporary stores.
"""

from pathlib import Path

import pytest

from invoice_learning.core.errors import OCRError
from invoice_learning.models.observation import OCRDocumentResult, OCRPageResult, TextObservation
from invoice_learning.models.schema import NormalizedRegion
from invoice_learning.services.form_recognizer import OCRProvider
from invoice_learning.services.storage.correction_history import CorrectionHistoryService
from invoice_learning.services.storage.schema_store import SchemaStore


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Azure resources"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real Azure resources"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def obs(text: str, x: float = 0.1, y: float = 0.5, confidence: float = 0.95) -> TextObservation:
    """Text observation with a small box at (x, y)"""
    return TextObservation(
        text=text,
        confidence=confidence,
        bounding_box=NormalizedRegion(x=x, y=y, width=0.3, height=0.02),
    )


class FakeOCRProvider(OCRProvider):
    """Returns canned pages; raises when given an error"""

    def __init__(self, pages: list[list[TextObservation]] | None = None, error: Exception | None = None):
        self.pages = pages or []
        self.error = error
        self.calls: list[Path] = []

    def process_document(self, path: Path) -> OCRDocumentResult:
        self.calls.append(path)
        if self.error is not None:
            raise self.error
        return OCRDocumentResult(
            pages=[OCRPageResult(page_index=i, observations=page) for i, page in enumerate(self.pages)],
            source_path=path,
        )


@pytest.fixture
def schemas_file(tmp_path):
    return tmp_path / "schemas" / "user_schemas.json"


@pytest.fixture
def corrections_file(tmp_path):
    return tmp_path / "correction_history" / "corrections.json"


@pytest.fixture
def store(schemas_file):
    """Fresh SchemaStore backed by a temporary file"""
    return SchemaStore(schemas_file=schemas_file, match_threshold=5.0)


@pytest.fixture
def history(corrections_file, store):
    """CorrectionHistoryService wired to the temporary store"""
    return CorrectionHistoryService(corrections_file=corrections_file, schema_store=store, max_corrections=10_000)


@pytest.fixture
def failing_ocr():
    return FakeOCRProvider(error=OCRError("scanner on fire"))
