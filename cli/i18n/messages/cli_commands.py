"""
cli/i18n/messages/cli_commands.py - CLI Command Messages

Contains translations for bgov commands, result tables, and error messages.
"""

from __future__ import annotations

from cli.i18n.messages import MessageDict

CLI_MESSAGES: dict[str, MessageDict] = {
    # =========================================================================
    # Common
    # =========================================================================
    "error_prefix": {
        "ko": "오류",
        "en": "Error",
    },
    "yes": {
        "ko": "예",
        "en": "yes",
    },
    "no": {
        "ko": "아니오",
        "en": "no",
    },
    "target": {
        "ko": "대상: 계정 {account} / 리전 {region}",
        "en": "Target: account {account} / region {region}",
    },
    # =========================================================================
    # Table Columns
    # =========================================================================
    "col_kind": {
        "ko": "종류",
        "en": "Kind",
    },
    "col_name": {
        "ko": "이름",
        "en": "Name",
    },
    "col_action": {
        "ko": "결과",
        "en": "Result",
    },
    "col_detail": {
        "ko": "상세",
        "en": "Detail",
    },
    "col_vault": {
        "ko": "Vault",
        "en": "Vault",
    },
    "col_applied_hash": {
        "ko": "적용 해시",
        "en": "Applied hash",
    },
    "col_applied_at": {
        "ko": "적용 시각 (UTC)",
        "en": "Applied at (UTC)",
    },
    "col_pending": {
        "ko": "보호 대기",
        "en": "Pending",
    },
    "col_failures": {
        "ko": "연속 실패",
        "en": "Failures",
    },
    "col_drift": {
        "ko": "드리프트",
        "en": "Drift",
    },
    "col_component": {
        "ko": "구성 요소",
        "en": "Component",
    },
    "col_permission": {
        "ko": "권한",
        "en": "Permission",
    },
    # =========================================================================
    # Step Actions
    # =========================================================================
    "action_created": {
        "ko": "생성",
        "en": "created",
    },
    "action_updated": {
        "ko": "갱신",
        "en": "updated",
    },
    "action_replaced": {
        "ko": "재생성",
        "en": "replaced",
    },
    "action_applied": {
        "ko": "적용",
        "en": "applied",
    },
    "action_unchanged": {
        "ko": "변경 없음",
        "en": "unchanged",
    },
    "action_pending": {
        "ko": "보호 대기",
        "en": "pending",
    },
    "action_inert": {
        "ko": "비활성",
        "en": "inert",
    },
    "action_failed": {
        "ko": "실패",
        "en": "failed",
    },
    # =========================================================================
    # apply / plan
    # =========================================================================
    "report_title_apply": {
        "ko": "조정 결과",
        "en": "Reconciliation Result",
    },
    "report_title_plan": {
        "ko": "조정 계획 (dry-run)",
        "en": "Reconciliation Plan (dry-run)",
    },
    "summary": {
        "ko": "변경 {changed}건 / 전체 {total}건",
        "en": "{changed} changed / {total} total",
    },
    "pending_notice": {
        "ko": "보호 대기 {count}건: 다음 조정 패스에서 다시 적용됩니다",
        "en": "{count} pending: will be re-applied on the next reconciliation pass",
    },
    "aborted": {
        "ko": "조정 중단 [{entity}]: {error}",
        "en": "Reconciliation aborted [{entity}]: {error}",
    },
    # =========================================================================
    # validate
    # =========================================================================
    "validate_ok": {
        "ko": "모델 검증 통과: Vault {vaults}개, Plan {plans}개, Selection {selections}개",
        "en": "Model is valid: {vaults} vault(s), {plans} plan(s), {selections} selection(s)",
    },
    "validate_failed": {
        "ko": "모델 검증 실패: {count}건",
        "en": "Model validation failed: {count} issue(s)",
    },
    # =========================================================================
    # status
    # =========================================================================
    "status_title": {
        "ko": "보호 정책 적용 상태",
        "en": "Vault Protection Status",
    },
    "status_hint": {
        "ko": "bgov apply --repair-drift 로 드리프트가 있는 Vault의 보호 정책을 다시 적용할 수 있습니다",
        "en": "Run bgov apply --repair-drift to re-apply protection on drifted vaults",
    },
    "drift_none": {
        "ko": "일치",
        "en": "in sync",
    },
    "drift_detected": {
        "ko": "불일치 (누락: {actions})",
        "en": "drifted (missing: {actions})",
    },
    "drift_missing_policy": {
        "ko": "원격 정책 없음",
        "en": "no remote policy",
    },
    # =========================================================================
    # schedule
    # =========================================================================
    "schedule_normalized": {
        "ko": "정규화: {expression}",
        "en": "Normalized: {expression}",
    },
    "schedule_next": {
        "ko": "다음 실행 (UTC)",
        "en": "Next runs (UTC)",
    },
    "schedule_no_preview": {
        "ko": "L/W/# 또는 연도가 지정된 표현식은 미리보기를 지원하지 않습니다",
        "en": "Preview is not available for expressions using L/W/# or a fixed year",
    },
    # =========================================================================
    # permissions
    # =========================================================================
    "permissions_title": {
        "ko": "필요한 IAM 권한",
        "en": "Required IAM Permissions",
    },
}
