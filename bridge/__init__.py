"""
Bridge 데몬

체인 입금 감시, 입금 정산, 출금 예약/지급, 준비금 정산.
"""
