"""
Text recognition engines turning invoice images into raw text.

The pipeline only depends on RecognitionEngine.recognize(); which engine is
used is decided by get_recognition_engine() from settings.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional
from loguru import logger
from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from ..core.config import settings

ProgressCallback = Callable[[int], None]


class RecognitionFailure(Exception):
    """The engine could not produce text for an image"""


class RecognitionEngine(ABC):
    """
    Abstract base class for text recognition.

    Implementations may call on_progress from any thread with a percentage
    between 0 and 100.
    """

    @abstractmethod
    async def recognize(self, image: bytes, on_progress: Optional[ProgressCallback] = None) -> str:
        """
        Recognize the text of one invoice image.

        Args:
            image: Raw image (or PDF) bytes
            on_progress: Optional callback receiving progress percentages

        Returns:
            Recognized text, possibly empty

        Raises:
            RecognitionFailure: if no text could be produced
        """
        pass


class AzureDocumentIntelligenceEngine(RecognitionEngine):
    """Recognition through Azure AI Document Intelligence (prebuilt-read model by default)"""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        model_id: str = "prebuilt-read",
        locale: Optional[str] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.model_id = model_id
        self.locale = locale

    def _analyze(self, image: bytes, on_progress: ProgressCallback) -> str:
        client = DocumentIntelligenceClient(
            endpoint=self.endpoint,
            credential=AzureKeyCredential(self.api_key)
        )

        kwargs = {"content_type": "application/octet-stream"}
        if self.locale:
            kwargs["locale"] = self.locale

        logger.info(f"Analyzing document of size {len(image)} bytes")
        poller = client.begin_analyze_document(self.model_id, body=image, **kwargs)
        on_progress(10)

        result = poller.result()
        on_progress(90)

        if hasattr(result, "content") and result.content:
            return result.content
        return ""

    async def recognize(self, image: bytes, on_progress: Optional[ProgressCallback] = None) -> str:
        report = on_progress or (lambda percent: None)
        report(0)

        try:
            # The SDK poller blocks, keep it off the event loop
            text = await asyncio.to_thread(self._analyze, image, report)
        except Exception as e:
            logger.error(f"Azure DI recognition failed: {str(e)}")
            raise RecognitionFailure(f"Text recognition failed: {str(e)}") from e

        report(100)
        logger.info("Recognized invoice text with Azure DI", text_length=len(text), model_id=self.model_id)
        return text


class MockRecognitionEngine(RecognitionEngine):
    """
    Stand-in engine used when Azure Document Intelligence isn't configured.

    Treats the uploaded bytes as UTF-8 text so local demos and tests can push
    invoice text through the full pipeline. Empty uploads fail like an
    unreadable image would.
    """

    async def recognize(self, image: bytes, on_progress: Optional[ProgressCallback] = None) -> str:
        report = on_progress or (lambda percent: None)
        report(0)

        if not image:
            raise RecognitionFailure("Empty image, nothing to recognize")

        text = image.decode("utf-8", errors="ignore")
        report(50)
        await asyncio.sleep(0)
        report(100)

        logger.info("Returning mock recognition result", file_size_bytes=len(image))
        return text


def get_recognition_engine() -> RecognitionEngine:
    """Azure DI when AZ_DI_ENDPOINT and AZ_DI_API_KEY are set, the mock engine otherwise"""
    if settings.az_di_endpoint and settings.az_di_api_key:
        logger.info(
            "Using Azure Document Intelligence for text recognition",
            endpoint=settings.az_di_endpoint[:50] + "..." if len(settings.az_di_endpoint) > 50 else settings.az_di_endpoint
        )
        return AzureDocumentIntelligenceEngine(
            endpoint=settings.az_di_endpoint,
            api_key=settings.az_di_api_key,
            model_id=settings.az_di_model_id,
            locale=settings.az_di_locale,
        )

    logger.warning(
        "Azure Document Intelligence not configured - using MOCK recognition. "
        "Set AZ_DI_ENDPOINT and AZ_DI_API_KEY to use real OCR."
    )
    return MockRecognitionEngine()
