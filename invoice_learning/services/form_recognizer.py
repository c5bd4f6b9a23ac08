"""
OCR providers: turn a document file into per-page text observations.

The Azure Document Intelligence provider reads every line on every page with
its polygon and word confidences. Polygons are converted into normalized
bounding boxes with the origin at the bottom-left corner of the page, the
coordinate system field mappings are written in.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import AzureError
from loguru import logger

from ..core.config import settings
from ..core.errors import OCRError
from ..models.observation import OCRDocumentResult, OCRPageResult, TextObservation
from ..models.schema import NormalizedRegion


class OCRProvider(ABC):
    """Text-recognition collaborator used by schema extraction"""

    @abstractmethod
    def process_document(self, path: Path) -> OCRDocumentResult:
        """
        Recognize the text of every page of a document.

        Raises:
            OCRError: the document could not be read or recognized
        """
        pass


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def polygon_to_region(polygon: list[float], page_width: float, page_height: float) -> NormalizedRegion:
    """
    Convert a top-left-origin polygon [x1, y1, x2, y2, ...] in page units to a
    normalized bottom-left-origin bounding box.
    """
    if not polygon or not page_width or not page_height:
        return NormalizedRegion(x=0.0, y=0.0, width=0.0, height=0.0)

    xs = polygon[0::2]
    ys = polygon[1::2]
    min_x, max_x = _clamp(min(xs) / page_width), _clamp(max(xs) / page_width)
    min_y, max_y = _clamp(min(ys) / page_height), _clamp(max(ys) / page_height)

    return NormalizedRegion(
        x=min_x,
        y=1.0 - max_y,
        width=max_x - min_x,
        height=max_y - min_y,
    )


def line_confidence(line, words) -> float:
    """Mean confidence of the words whose spans fall inside the line's spans"""
    spans = [(span.offset, span.offset + span.length) for span in (line.spans or [])]
    confidences = [
        word.confidence
        for word in words
        if word.span is not None
        and word.confidence is not None
        and any(start <= word.span.offset < end for start, end in spans)
    ]
    if not confidences:
        return 1.0
    return sum(confidences) / len(confidences)


def convert_page(page, page_index: int) -> OCRPageResult:
    words = page.words or []
    observations = []
    for line in page.lines or []:
        text = (line.content or "").strip()
        if not text:
            continue
        observations.append(TextObservation(
            text=text,
            confidence=_clamp(line_confidence(line, words)),
            bounding_box=polygon_to_region(line.polygon or [], page.width or 0, page.height or 0),
        ))
    return OCRPageResult(page_index=page_index, observations=observations)


class AzureDocumentOCRProvider(OCRProvider):
    """OCR through Azure Document Intelligence (prebuilt-read by default)"""

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        model_id: str | None = None,
        client: DocumentIntelligenceClient | None = None,
    ):
        self.endpoint = endpoint or settings.az_di_endpoint
        self.api_key = api_key or settings.az_di_api_key
        self.model_id = model_id or settings.az_di_model
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.endpoint and self.api_key)

    def _get_client(self) -> DocumentIntelligenceClient:
        if self._client is None:
            if not self.is_configured:
                logger.warning("Azure Document Intelligence not configured. Set AZ_DI_ENDPOINT and AZ_DI_API_KEY.")
                raise OCRError("Azure Document Intelligence is not configured")
            self._client = DocumentIntelligenceClient(
                endpoint=self.endpoint,
                credential=AzureKeyCredential(self.api_key),
            )
        return self._client

    def process_document(self, path: Path) -> OCRDocumentResult:
        path = Path(path)
        client = self._get_client()

        try:
            file_bytes = path.read_bytes()
        except OSError as e:
            raise OCRError(f"Cannot read document {path}: {e}") from e

        logger.info("Analyzing document", path=str(path), size_bytes=len(file_bytes), model=self.model_id)

        try:
            poller = client.begin_analyze_document(
                self.model_id,
                body=file_bytes,
                content_type="application/octet-stream",
            )
            result = poller.result()
        except AzureError as e:
            logger.error("Azure Document Intelligence analysis failed", path=str(path), error=str(e))
            raise OCRError(f"Document analysis failed: {e}") from e

        pages = [convert_page(page, index) for index, page in enumerate(result.pages or [])]
        document = OCRDocumentResult(pages=pages, source_path=path)

        logger.info(
            "Document analyzed",
            path=str(path),
            pages=len(pages),
            observations=document.total_observations,
        )
        return document


def create_ocr_provider() -> OCRProvider:
    """OCR provider configured from settings"""
    return AzureDocumentOCRProvider()
