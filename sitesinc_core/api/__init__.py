"""
Remote API Module
Provides connectors for fetching project records from the SiteSinc API
"""

from .base_connector import BaseAPIConnector, APIConfig

from .sitesinc_connector import (
    DEFAULT_API_URL,
    SiteSincConnector,
)

from .mock_connector import MockSiteSincConnector

__all__ = [
    # Base classes
    "BaseAPIConnector",
    "APIConfig",

    # SiteSinc connectors
    "DEFAULT_API_URL",
    "SiteSincConnector",
    "MockSiteSincConnector",
]
