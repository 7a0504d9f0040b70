"""
스토리지 모듈

정산 측 이벤트 중복 방지 저장소 제공
"""

from core.storage.processed_events import ProcessedEventStore

__all__ = [
    "ProcessedEventStore",
]
