"""
FILEKV - Line-oriented key-value server with one file per record.
"""

__version__ = "0.1.0"
