from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from pointsapi.models.ledger import LedgerKind, LedgerReferenceType


class AwardResult(BaseModel):
    """포인트 적립 결과"""

    user_id: int = Field(..., description="대상 사용자 ID")
    action: Optional[str] = Field(None, description="처리된 액션 (커스텀 지급 시 None)")
    added_points: int = Field(..., description="지급된 포인트")
    total_points: Optional[int] = Field(..., description="지급 후 총 포인트 (0 이하 지급 요청은 None)")
    skipped: bool = Field(False, description="보상 스킵 여부 (한도 초과, 중복 출석 등)")
    skip_reason: Optional[str] = Field(None, description="스킵 사유")
    is_custom: bool = Field(False, description="커스텀(관리자/환불) 지급 여부")
    reason: Optional[str] = Field(None, description="커스텀 지급 사유")
    timestamp: datetime = Field(..., description="처리 시각")

    class Config:
        from_attributes = True


class DeductResult(BaseModel):
    """포인트 차감 결과"""

    success: bool = Field(..., description="차감 성공 여부")
    message: str = Field(..., description="결과 메시지")
    remaining_points: Optional[int] = Field(..., description="차감 후 잔여 포인트 (0 이하 차감 요청은 None)")
    deducted_points: int = Field(0, description="실제 차감된 포인트")
    shortfall: int = Field(0, description="잔액 부족 시 부족한 포인트")

    class Config:
        from_attributes = True


class PointsSnapshot(BaseModel):
    """사용자 포인트 상태 스냅샷"""

    user_id: int = Field(..., description="사용자 ID")
    balance: int = Field(..., description="현재 잔액")
    daily_counters: Dict[str, int] = Field(default_factory=dict, description="오늘 액션별 적립 포인트")
    last_daily_reset_at: Optional[datetime] = Field(None, description="마지막 일일 초기화 시각")
    last_attendance_at: Optional[datetime] = Field(None, description="마지막 출석 시각")

    class Config:
        from_attributes = True


class LedgerEntrySchema(BaseModel):
    """포인트 원장 항목"""

    id: int = Field(..., description="원장 항목 ID")
    user_id: int = Field(..., description="사용자 ID")
    amount: int = Field(..., description="포인트 변동량 (양수=적립, 음수=차감)")
    balance_after: int = Field(..., description="변동 직후 잔액")
    kind: LedgerKind = Field(..., description="원장 항목 종류")
    description: Optional[str] = Field(None, description="설명")
    reference_type: Optional[LedgerReferenceType] = Field(None, description="참조 리소스 종류")
    reference_id: Optional[str] = Field(None, description="참조 리소스 ID")
    meta: Optional[dict] = Field(None, description="추가 메타데이터")
    created_at: datetime = Field(..., description="생성 시각")

    class Config:
        from_attributes = True


class LedgerPage(BaseModel):
    """포인트 원장 조회 응답 (최신순)"""

    balance: int = Field(..., description="현재 잔액")
    entries: List[LedgerEntrySchema] = Field(..., description="원장 항목 목록")
    total_count: int = Field(..., description="전체 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")


class LedgerIntegrityReport(BaseModel):
    """원장 정합성 검증 결과"""

    status: str = Field(..., description="검증 상태 (OK, MISMATCH)")
    user_id: int = Field(..., description="사용자 ID")
    calculated_balance: int = Field(..., description="원장 amount 합계")
    recorded_balance: int = Field(..., description="마지막 balance_after")
    account_balance: int = Field(..., description="계정 테이블의 잔액")
    entry_count: int = Field(..., description="원장 항목 수")
    broken_entry_id: Optional[int] = Field(None, description="연속성이 깨진 첫 항목 ID")
    verified_at: datetime = Field(..., description="검증 시각")


class AdminCreditRequest(BaseModel):
    """관리자 포인트 지급 요청"""

    user_id: int = Field(..., gt=0, description="사용자 ID")
    amount: int = Field(..., description="지급할 포인트 (0 이하는 스킵)")
    reason: str = Field(..., min_length=1, max_length=200, description="지급 사유")


class AdminDeductRequest(BaseModel):
    """관리자 포인트 차감 요청"""

    user_id: int = Field(..., gt=0, description="사용자 ID")
    amount: int = Field(..., description="차감할 포인트")
    reason: str = Field(..., min_length=1, max_length=200, description="차감 사유")
    kind: LedgerKind = Field(LedgerKind.ADJUSTMENT, description="원장 항목 종류")


class AwardActionRequest(BaseModel):
    """활동 적립 요청 (참조 리소스는 선택)"""

    reference_type: Optional[LedgerReferenceType] = Field(None, description="참조 리소스 종류")
    reference_id: Optional[str] = Field(None, max_length=120, description="참조 리소스 ID")
