# Async services — caching, fetching, batch scans
from vdflow.services.vdf_service import VDFService, get_vdf_service

__all__ = ["VDFService", "get_vdf_service"]
