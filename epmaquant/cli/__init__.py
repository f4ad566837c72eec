"""
Command-line interface for epmaquant.

This module provides CLI tools for:
- Bulk quantification from config files
- Map (batch) quantification of k-ratio tables
- Layered thin film quantification
"""

__all__ = []
