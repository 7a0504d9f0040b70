"""
API 라우트 패키지

각 기능별 라우터 모듈:
- health: 헬스 체크
- deposits: 입금 조회 / 클레임 / 재시도
- withdrawals: 출금 조회 / 요청 / 재시도
- reserve: 준비금 현황 / 정산
"""
