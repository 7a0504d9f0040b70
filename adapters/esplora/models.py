"""
Esplora API 응답 -> 공통 모델 변환

GET /address/:address/txs, GET /address/:address 응답을
adapters.models의 표준 모델로 변환.
"""

from typing import Any

from adapters.models import ObservedTransaction


def parse_transaction(data: dict[str, Any], address: str) -> ObservedTransaction:
    """Esplora 트랜잭션 -> ObservedTransaction

    Esplora GET /address/:address/txs 항목 예시:
    {
        "txid": "9f2c...",
        "vin": [{"prevout": {"scriptpubkey_address": "bc1q...", "value": 150000}}],
        "vout": [
            {"scriptpubkey_address": "bc1qbridge...", "value": 100000},
            {"scriptpubkey_address": "bc1qchange...", "value": 49000}
        ],
        "status": {
            "confirmed": true,
            "block_height": 840000,
            "block_time": 1713571767
        }
    }

    감시 주소가 입력(vin)에 있으면 outgoing으로 보고, 금액은 외부로 나간 출력 합.
    아니면 감시 주소로 들어온 출력 합.
    """
    status = data.get("status") or {}
    confirmed = bool(status.get("confirmed"))
    block_height = status.get("block_height") if confirmed else None

    vin = data.get("vin") or []
    vout = data.get("vout") or []

    outgoing = any(
        (item.get("prevout") or {}).get("scriptpubkey_address") == address
        for item in vin
    )

    if outgoing:
        amount = sum(
            int(out.get("value", 0))
            for out in vout
            if out.get("scriptpubkey_address") != address
        )
    else:
        amount = sum(
            int(out.get("value", 0))
            for out in vout
            if out.get("scriptpubkey_address") == address
        )

    return ObservedTransaction(
        tx_id=data["txid"],
        amount=amount,
        # Esplora는 확인 수를 주지 않음. 블록 포함 여부만 반영하고 watcher가 높이로 재계산
        confirmations=1 if confirmed else 0,
        block_height=block_height,
        block_time=status.get("block_time") if confirmed else None,
        outgoing=outgoing,
    )


def parse_address_balance(data: dict[str, Any]) -> int:
    """Esplora 주소 통계 -> 잔고 (funded - spent, 멤풀 포함)

    Esplora GET /address/:address 응답 예시:
    {
        "address": "bc1q...",
        "chain_stats": {"funded_txo_sum": 250000, "spent_txo_sum": 50000, "tx_count": 3},
        "mempool_stats": {"funded_txo_sum": 0, "spent_txo_sum": 0, "tx_count": 0}
    }
    """
    chain = data.get("chain_stats") or {}
    mempool = data.get("mempool_stats") or {}

    funded = int(chain.get("funded_txo_sum", 0)) + int(mempool.get("funded_txo_sum", 0))
    spent = int(chain.get("spent_txo_sum", 0)) + int(mempool.get("spent_txo_sum", 0))

    return max(funded - spent, 0)
