"""
Data loaders for the FedSpace engine.

Includes:
- Federal buildings and leases (GSA IOLP via HIFLD ArcGIS)
"""

from loaders.iolp import IOLPLoader, IOLPCache, IOLPFetchError, get_iolp_loader, parse_building, parse_lease

__all__ = [
    "IOLPLoader",
    "IOLPCache",
    "IOLPFetchError",
    "get_iolp_loader",
    "parse_building",
    "parse_lease",
]
