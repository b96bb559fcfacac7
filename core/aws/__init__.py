"""
core/aws - AWS 세션/클라이언트 및 실행 컨텍스트

주요 구성 요소:
- get_client: retry/타임아웃이 설정된 boto3 client 생성
- create_session: 프로파일/리전 기반 boto3 Session 생성
- AwsContext: 계정/리전/파티션 실행 컨텍스트 (명시적으로 전달)
- resolve_context: STS로 계정 ID를 확인하여 AwsContext 생성
"""

from .client import create_session, get_client
from .context import AwsContext, partition_for_region, resolve_context

__all__: list[str] = [
    "get_client",
    "create_session",
    "AwsContext",
    "partition_for_region",
    "resolve_context",
]
