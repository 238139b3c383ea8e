"""
Feature extraction module for phishscan.
"""

from phishscan.extractor.dom_features import (
    DomFeatureExtractor,
    FeatureExtractor,
    FeatureMap,
    shannon_entropy,
)

__all__ = [
    "DomFeatureExtractor",
    "FeatureExtractor",
    "FeatureMap",
    "shannon_entropy",
]
