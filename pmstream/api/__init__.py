"""REST clients used to seed and authenticate the feed."""

from .base import BaseAPIClient
from .clob import CLOBAPI
from .gamma import GammaAPI

__all__ = [
    "BaseAPIClient",
    "CLOBAPI",
    "GammaAPI",
]
