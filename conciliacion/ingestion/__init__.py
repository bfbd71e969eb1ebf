"""Ingestion module for normalizing raw sale and payment rows."""

from .normalizer import NormalizationResult, RecordNormalizer, normalize

__all__ = ["NormalizationResult", "RecordNormalizer", "normalize"]
