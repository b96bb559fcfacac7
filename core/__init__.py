# core/__init__.py
"""
core - 백업 거버넌스 인프라

도메인 로직(governance)과 CLI가 공통으로 사용하는 기반 모듈을 포함하는 최상위 패키지입니다.

아키텍처:
    core/
    ├── aws/            # boto3 세션/클라이언트, 실행 컨텍스트 (AwsContext)
    ├── cache.py        # 로컬 상태 저장 경로
    ├── config.py       # 중앙 설정 관리 (환경 변수)
    ├── exceptions.py   # 통합 예외 계층
    └── retry.py        # 에러 분류 및 재시도 (지수 백오프)

Usage:
    # 설정 사용
    from core.config import settings, get_default_region
    region = get_default_region()  # "ap-northeast-2"

    # 예외 처리
    from core.exceptions import ExternalServiceError, is_access_denied
    try:
        backup.describe_backup_vault(BackupVaultName="vault-a")
    except ClientError as e:
        if is_access_denied(e):
            print("권한이 없습니다")

    # 실행 컨텍스트
    from core.aws import create_session, resolve_context
    session = create_session("my-profile", "ap-northeast-2")
    context = resolve_context(session, "ap-northeast-2")
"""

from core import aws, cache, config, exceptions, retry

__all__: list[str] = [
    # 서브패키지
    "aws",
    # 모듈
    "cache",
    "config",
    "exceptions",
    "retry",
]
