"""
Upload module - background segment uploads and the server API client.
"""

from .client import ProctorAPIClient
from .queue import UploadQueue, UploadTask

__all__ = ["ProctorAPIClient", "UploadQueue", "UploadTask"]
