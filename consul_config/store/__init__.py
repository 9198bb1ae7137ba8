"""
Store Access - Consul KV requests

Responsibilities:
- Issue single (optionally blocking) KV queries
- Classify found / not-found / error responses
- Apply client override hooks
"""

from .accessor import StoreAccessor
from .client import ConsulClientFactory
from .models import StoreResponse, StoreStatus

__all__ = ["StoreAccessor", "ConsulClientFactory", "StoreResponse", "StoreStatus"]
