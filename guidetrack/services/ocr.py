import logging
from functools import lru_cache

from google.cloud import vision

logger = logging.getLogger(__name__)

@lru_cache
def get_vision_client() -> vision.ImageAnnotatorClient:
    return vision.ImageAnnotatorClient()

def extract_text(content: bytes) -> str:
    """Best-effort text of a captured guide image.

    Document text detection keeps the line structure of printed guides. An
    empty or failed annotation gives an empty string; picking the guide number
    out of the text is left to the caller.
    """
    image = vision.Image(content=content)
    response = get_vision_client().document_text_detection(image=image)
    if response.error.message:
        logger.warning("Vision OCR returned an error: %s", response.error.message)
        return ""
    texts = response.text_annotations
    return texts[0].description if texts else ""
