from app.recognition.client import RecognitionClient
from app.recognition.mapping import extract_links, map_to_smart_links

__all__ = [
    "RecognitionClient",
    "extract_links",
    "map_to_smart_links",
]
