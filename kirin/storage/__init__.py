"""
Storage for pipeline output artifacts.
"""

from .local_file_storage import SummaryFileSink

__all__ = [
    "SummaryFileSink",
]
