"""
Registration Core

Patient registration with duplicate detection against a master patient index.
"""

__version__ = "2.0.0"
