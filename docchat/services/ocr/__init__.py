from docchat.services.ocr.client import OCRClient, MistralOCRClient, PdfMinerOCRClient, get_ocr_client
from docchat.services.ocr.extractor import OCRExtractor

__all__ = ["OCRClient", "MistralOCRClient", "PdfMinerOCRClient", "get_ocr_client", "OCRExtractor"]
