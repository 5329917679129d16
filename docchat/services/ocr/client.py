"""OCR provider clients.

Both clients return raw page dicts ``{"index": int, "markdown": str}`` from
``extract_pages`` and an annotation payload from ``annotate``.
"""

import asyncio
import base64
import io
import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from pdfminer.high_level import extract_text
from pdfminer.pdfpage import PDFPage

from docchat.core.config import settings
from docchat.core.exceptions import OCRExtractionError
from docchat.schemas.pipeline import BBoxAnnotation, DocumentAnnotation

logger = logging.getLogger(__name__)


class OCRClient:
    """Interface for OCR providers."""

    model: str = ""
    supports_annotations: bool = False

    async def extract_pages(self, data: bytes, mime_type: str, filename: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def annotate(
        self, data: bytes, mime_type: str, filename: str, pages: List[int]
    ) -> Dict[str, Any]:
        """Return ``{"document_annotation": dict, "bbox_annotations": list}``."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _json_schema_format(model, name: str) -> Dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name,
            "schema": model.model_json_schema(),
            "strict": False,
        },
    }


class MistralOCRClient(OCRClient):
    """Mistral document OCR over its REST API."""

    supports_annotations = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or settings.MISTRAL_API_KEY
        if not self.api_key:
            raise ValueError("MISTRAL_API_KEY is required for the mistral OCR provider")
        self.model = model or settings.OCR_MODEL
        self.client = http_client or httpx.AsyncClient(
            base_url=base_url or settings.MISTRAL_API_URL,
            timeout=settings.OCR_TIMEOUT_SECONDS,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    def _document_payload(self, data: bytes, mime_type: str) -> Dict[str, Any]:
        encoded = base64.b64encode(data).decode("ascii")
        data_url = f"data:{mime_type};base64,{encoded}"
        if mime_type.startswith("image/"):
            return {"type": "image_url", "image_url": data_url}
        return {"type": "document_url", "document_url": data_url}

    async def _process(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.post("/v1/ocr", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise OCRExtractionError(
                f"Mistral OCR returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise OCRExtractionError(f"Mistral OCR request failed: {str(e)}") from e
        return response.json()

    async def extract_pages(self, data: bytes, mime_type: str, filename: str) -> List[Dict[str, Any]]:
        result = await self._process({
            "model": self.model,
            "document": self._document_payload(data, mime_type),
        })
        return [
            {"index": page.get("index", i), "markdown": page.get("markdown", "")}
            for i, page in enumerate(result.get("pages") or [])
        ]

    async def annotate(
        self, data: bytes, mime_type: str, filename: str, pages: List[int]
    ) -> Dict[str, Any]:
        result = await self._process({
            "model": self.model,
            "document": self._document_payload(data, mime_type),
            "pages": pages,
            "document_annotation_format": _json_schema_format(DocumentAnnotation, "document_annotation"),
            "bbox_annotation_format": _json_schema_format(BBoxAnnotation, "bbox_annotation"),
            "include_image_base64": False,
        })

        document_annotation = result.get("document_annotation") or {}
        if isinstance(document_annotation, str):
            document_annotation = json.loads(document_annotation)

        bbox_annotations = []
        for page in result.get("pages") or []:
            for image in page.get("images") or []:
                raw = image.get("image_annotation")
                if not raw:
                    continue
                annotation = json.loads(raw) if isinstance(raw, str) else dict(raw)
                annotation["page_index"] = page.get("index")
                annotation["image_id"] = image.get("id")
                bbox_annotations.append(BBoxAnnotation.model_validate(annotation).model_dump())

        return {
            "document_annotation": DocumentAnnotation.model_validate(document_annotation).model_dump(),
            "bbox_annotations": bbox_annotations,
        }

    async def close(self) -> None:
        await self.client.aclose()


class PdfMinerOCRClient(OCRClient):
    """Text-layer extraction for PDFs with pdfminer.six. No annotation pass."""

    model = "pdfminer"

    async def extract_pages(self, data: bytes, mime_type: str, filename: str) -> List[Dict[str, Any]]:
        if mime_type != "application/pdf":
            raise OCRExtractionError(f"pdfminer provider cannot read {mime_type}")
        # pdfminer is CPU-bound; keep it off the event loop
        return await asyncio.to_thread(self._extract_sync, data)

    @staticmethod
    def _extract_sync(data: bytes) -> List[Dict[str, Any]]:
        stream = io.BytesIO(data)
        page_count = sum(1 for _ in PDFPage.get_pages(stream))
        pages = []
        for index in range(page_count):
            stream.seek(0)
            text = extract_text(stream, page_numbers=[index])
            pages.append({"index": index, "markdown": text})
        return pages

    async def annotate(
        self, data: bytes, mime_type: str, filename: str, pages: List[int]
    ) -> Dict[str, Any]:
        return {"document_annotation": {}, "bbox_annotations": []}


def get_ocr_client(provider: Optional[str] = None) -> OCRClient:
    """Build the configured OCR client."""
    provider = (provider or settings.OCR_PROVIDER).lower()
    if provider == "mistral":
        return MistralOCRClient()
    if provider == "pdfminer":
        return PdfMinerOCRClient()
    raise ValueError(f"Unknown OCR provider: {provider}")
