"""
어댑터 공통 모델 테스트
"""

import pytest

from adapters.models import ObservedTransaction, PayoutReceipt, RedeemEvent


class TestObservedTransaction:
    def test_validation(self) -> None:
        with pytest.raises(ValueError):
            ObservedTransaction(tx_id="", amount=1)
        with pytest.raises(ValueError):
            ObservedTransaction(tx_id="a", amount=-1)
        with pytest.raises(ValueError):
            ObservedTransaction(tx_id="a", amount=1, confirmations=-1)

    def test_zero_amount_allowed(self) -> None:
        assert ObservedTransaction(tx_id="a", amount=0).amount == 0

    def test_confirmations_from_height(self) -> None:
        tx = ObservedTransaction(tx_id="a", amount=1, confirmations=1, block_height=100)

        assert tx.confirmations_at(100) == 1
        assert tx.confirmations_at(105) == 6
        # 재구성으로 높이가 낮아져도 음수가 되지 않음
        assert tx.confirmations_at(90) == 0

    def test_confirmations_without_height(self) -> None:
        tx = ObservedTransaction(tx_id="a", amount=1, confirmations=3)

        assert tx.confirmations_at(None) == 3
        assert tx.confirmations_at(500) == 3
        assert tx.is_mined is False


class TestPayoutReceipt:
    def test_empty_reference_rejected(self) -> None:
        with pytest.raises(ValueError):
            PayoutReceipt(reference="")


class TestRedeemEvent:
    def test_defaults(self) -> None:
        event = RedeemEvent(event_id="7", amount=50, destination="tb1qdest")

        assert event.triggering_tx is None
        assert event.event_type == "redeem"
