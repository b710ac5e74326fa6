"""Qualification module."""

from .engine import QualificationEngine, QualificationResult


__all__ = ["QualificationEngine", "QualificationResult"]
