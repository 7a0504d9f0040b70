"""
Esplora 어댑터

Blockstream/Esplora 호환 체인 탐색기 REST API 연동.
IChainObserver Protocol 준수.
"""

from adapters.esplora.rest_client import EsploraRestClient, ObserverError

__all__ = [
    "EsploraRestClient",
    "ObserverError",
]
