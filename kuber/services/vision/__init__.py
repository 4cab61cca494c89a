"""
Parchi (bill photo) extraction services.
"""

from kuber.services.vision.extractor import VisionExtractor
from kuber.services.vision.ocr import OCREngine
from kuber.services.vision.parser import ParchiData, ParchiItem, parse_parchi_text
from kuber.services.vision.preprocess import preprocess_for_ocr, stretch_contrast, to_grayscale
from kuber.services.vision.scanner import ParchiScanner

__all__ = [
    "OCREngine",
    "ParchiData",
    "ParchiItem",
    "ParchiScanner",
    "VisionExtractor",
    "parse_parchi_text",
    "preprocess_for_ocr",
    "stretch_contrast",
    "to_grayscale",
]
