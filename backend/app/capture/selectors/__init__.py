"""
Selector Resolution Engine

Turns a target element into a ranked, validated SelectorStrategy.
"""

from .carousel import CarouselDetector, CarouselDetection
from .selector_generator import ContainerMatch, SelectorGenerator, SelectorQuality

__all__ = [
    "CarouselDetector",
    "CarouselDetection",
    "ContainerMatch",
    "SelectorGenerator",
    "SelectorQuality",
]
