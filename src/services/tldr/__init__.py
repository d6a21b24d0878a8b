"""TLDR group chat summarizer service module."""

from src.services.tldr.router import router
from src.services.tldr.service import TldrService, tldr_service

__all__ = ["router", "TldrService", "tldr_service"]
