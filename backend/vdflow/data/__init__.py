from vdflow.data.massive_client import BarFetcher, MassiveClient

__all__ = ["BarFetcher", "MassiveClient"]
