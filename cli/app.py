"""
cli/app.py - 메인 CLI 엔트리포인트

Click 기반의 CLI 애플리케이션 진입점입니다.
선언된 거버넌스 모델(YAML)을 AWS Backup 상태와 일치시키는 1회 실행형 명령을 제공합니다.

명령어 구조:
    bgov --version                  # 버전 표시
    bgov validate -c FILE           # 로컬 검증 (AWS 호출 없음)
    bgov plan -c FILE               # 조정 계획 미리보기 (dry-run)
    bgov apply -c FILE [--force | --repair-drift]  # 조정 패스 1회 실행
    bgov status -c FILE [--drift]   # 적용 해시 원장 / 원격 드리프트 확인
    bgov schedule EXPR [-n 3]       # cron 검증 및 다음 실행 시각
    bgov permissions                # 필요한 IAM 권한 목록

종료 코드:
    0: 성공
    1: 검증 실패 또는 치명적 오류 (실패한 엔티티 표시)
    2: 보호 대기(pending) 항목 있음 - 다음 패스에서 재시도 필요

Usage:
    $ bgov apply -c governance.yaml -p my-profile -r ap-northeast-2
    $ python -m cli.app plan -c governance.yaml
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NoReturn

# 프로젝트 루트를 sys.path에 추가 (governance 모듈 임포트를 위함)
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import click  # noqa: E402
from click import Context  # noqa: E402
from rich.console import Console  # noqa: E402
from rich.markup import escape  # noqa: E402
from rich.table import Table  # noqa: E402

from cli.i18n import set_lang, t  # noqa: E402
from core.config import get_version, settings  # noqa: E402
from core.exceptions import GovernanceError, format_error_for_user  # noqa: E402

# WARNING 레벨로 설정하여 INFO 로그가 결과 표에 섞이지 않도록 함
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

VERSION = get_version()

# 검증 전용 실행에서 Role 이름을 ARN으로 펼칠 때 사용하는 자리표시 계정
PLACEHOLDER_ACCOUNT = "000000000000"

ACTION_STYLES = {
    "created": "green",
    "updated": "green",
    "replaced": "yellow",
    "applied": "green",
    "unchanged": "dim",
    "pending": "yellow",
    "inert": "dim",
    "failed": "red",
}


def _fail(console: Console, error: Exception) -> NoReturn:
    console.print(f"[red]{t('cli.error_prefix')}: {escape(format_error_for_user(error))}[/red]")
    raise SystemExit(1)


def _common_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """설정 파일 / 인증 / 대상 옵션"""
    options = [
        click.option("-c", "--config", "config_path", default=None, help="거버넌스 모델 YAML 경로"),
        click.option("-p", "--profile", "profile", default=None, help="AWS 프로파일"),
        click.option("-r", "--region", "region", default=None, help="리전 (기본: 모델 → BGOV_REGION)"),
        click.option("--account", "account_id", default=None, help="계정 ID (기본: 모델 → STS)"),
        click.option("--state-dir", "state_dir", default=None, help="적용 해시 원장 디렉토리"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load(config_path: str | None):
    from governance.model import load_model

    return load_model(config_path)


def _build(model: Any, profile: str | None, region: str | None, account_id: str | None, state_dir: str | None):
    """모델과 옵션으로부터 Reconciler 구성 (STS로 계정 확인)"""
    from core.aws import create_session, resolve_context
    from governance.reconciler import Reconciler

    target_region = region or model.region or settings.region
    session = create_session(profile, target_region)
    context = resolve_context(session, target_region, account_id or model.account_id)
    reconciler = Reconciler.from_session(
        session,
        context,
        extra_denied_actions=model.extra_denied_actions,
        state_dir=state_dir,
    )
    return reconciler


def _render_report(console: Console, report: Any, title: str) -> None:
    table = Table(title=title, show_header=True)
    table.add_column(t("cli.col_kind"), style="cyan")
    table.add_column(t("cli.col_name"), style="white")
    table.add_column(t("cli.col_action"))
    table.add_column(t("cli.col_detail"), style="dim", overflow="fold")

    for step in report.steps:
        style = ACTION_STYLES.get(step.action.value, "white")
        table.add_row(
            step.kind,
            escape(step.name),
            f"[{style}]{t('cli.action_' + step.action.value)}[/{style}]",
            escape(step.detail),
        )

    console.print(table)
    console.print(t("cli.summary", changed=len(report.changed), total=len(report.steps)))

    if report.pending:
        console.print(f"[yellow]{t('cli.pending_notice', count=len(report.pending))}[/yellow]")
    failed = report.failed
    if failed is not None:
        console.print(f"[red]{escape(t('cli.aborted', entity=failed.entity, error=failed.detail))}[/red]")


def _run_pass(
    config_path, profile, region, account_id, state_dir, dry_run: bool, force: bool = False, repair_drift: bool = False
) -> None:
    console = Console()
    try:
        model = _load(config_path)
        reconciler = _build(model, profile, region, account_id, state_dir)
        console.print(
            f"[dim]{t('cli.target', account=reconciler.context.account_id, region=reconciler.context.region)}[/dim]"
        )
        report = reconciler.run(model, dry_run=dry_run, force=force, repair_drift=repair_drift)
    except GovernanceError as e:
        _fail(console, e)

    _render_report(console, report, t("cli.report_title_plan") if dry_run else t("cli.report_title_apply"))
    raise SystemExit(report.exit_code)


@click.group()
@click.version_option(VERSION, prog_name="bgov")
@click.option(
    "--lang",
    type=click.Choice(["ko", "en"]),
    default="ko",
    help="UI 언어 설정 / UI language (ko: 한국어, en: English)",
)
@click.option("-v", "--verbose", is_flag=True, help="DEBUG 로그 출력")
@click.pass_context
def cli(ctx: Context, lang: str, verbose: bool) -> None:
    """BGOV - AWS Backup 거버넌스 조정 도구"""
    set_lang(lang)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj["lang"] = lang


@cli.command("validate")
@click.option("-c", "--config", "config_path", default=None, help="거버넌스 모델 YAML 경로")
@click.option("--account", "account_id", default=None, help="Role ARN 확장에 사용할 계정 ID")
def validate_command(config_path: str | None, account_id: str | None) -> None:
    """모델 검증 (AWS 호출 없음)

    \b
    Examples:
        bgov validate -c governance.yaml
    """
    from core.aws import AwsContext
    from governance.reconciler import validate_model

    console = Console()
    try:
        model = _load(config_path)
        context = AwsContext.for_region(
            account_id or model.account_id or PLACEHOLDER_ACCOUNT,
            model.region or settings.region,
        )
    except GovernanceError as e:
        _fail(console, e)

    failures = validate_model(model, context)
    if not failures:
        console.print(
            "[green]"
            + t(
                "cli.validate_ok",
                vaults=len(model.vaults),
                plans=len(model.plans),
                selections=len(model.selections),
            )
            + "[/green]"
        )
        return

    table = Table(title=t("cli.validate_failed", count=len(failures)), show_header=True)
    table.add_column(t("cli.col_kind"), style="cyan")
    table.add_column(t("cli.col_name"), style="white")
    table.add_column(t("cli.col_detail"), style="red", overflow="fold")
    for failure in failures:
        table.add_row(failure.kind, escape(failure.name), escape(failure.detail))
    console.print(table)
    raise SystemExit(1)


@cli.command("plan")
@_common_options
def plan_command(config_path, profile, region, account_id, state_dir) -> None:
    """조정 계획 미리보기 (외부 변경 없음)

    \b
    Examples:
        bgov plan -c governance.yaml -p my-profile
    """
    _run_pass(config_path, profile, region, account_id, state_dir, dry_run=True)


@cli.command("apply")
@_common_options
@click.option("--force", is_flag=True, help="원장 해시가 같아도 보호 정책 재적용 (드리프트 보정)")
@click.option("--repair-drift", is_flag=True, help="원격 보호 정책이 의도와 다른 Vault만 재적용")
def apply_command(config_path, profile, region, account_id, state_dir, force: bool, repair_drift: bool) -> None:
    """조정 패스 1회 실행

    Vault 보장 → 보호 정책 → Backup Plan → Selection 순서로 적용합니다.

    \b
    Examples:
        bgov apply -c governance.yaml -p my-profile -r ap-northeast-2
        bgov apply -c governance.yaml --force
        bgov apply -c governance.yaml --repair-drift
    """
    _run_pass(config_path, profile, region, account_id, state_dir, dry_run=False, force=force, repair_drift=repair_drift)


@cli.command("status")
@_common_options
@click.option("--drift", is_flag=True, help="원격 보호 정책과 비교 (get_backup_vault_access_policy)")
def status_command(config_path, profile, region, account_id, state_dir, drift: bool) -> None:
    """Vault별 보호 정책 적용 상태

    \b
    Examples:
        bgov status -c governance.yaml
        bgov status -c governance.yaml --drift
    """
    console = Console()
    try:
        model = _load(config_path)
        reconciler = _build(model, profile, region, account_id, state_dir)
        rows = []
        for vault in model.vaults:
            record = reconciler.enforcer.status(vault.name)
            report = reconciler.enforcer.detect_drift(vault.name) if drift else None
            rows.append((vault.name, record, report))
    except GovernanceError as e:
        _fail(console, e)

    table = Table(title=t("cli.status_title"), show_header=True)
    table.add_column(t("cli.col_vault"), style="cyan")
    table.add_column(t("cli.col_applied_hash"), style="white")
    table.add_column(t("cli.col_applied_at"), style="dim")
    table.add_column(t("cli.col_pending"))
    table.add_column(t("cli.col_failures"), justify="right")
    if drift:
        table.add_column(t("cli.col_drift"))

    has_attention = False
    for name, record, report in rows:
        applied = (record.applied_hash or "-")[:12] if record else "-"
        applied_at = (record.applied_at or "-") if record else "-"
        pending = bool(record and record.is_pending)
        has_attention = has_attention or pending
        row = [
            name,
            applied,
            applied_at,
            f"[yellow]{t('cli.yes')}[/yellow]" if pending else t("cli.no"),
            str(record.failures if record else 0),
        ]
        if report is not None:
            if not report.remote_present:
                row.append(f"[red]{t('cli.drift_missing_policy')}[/red]")
                has_attention = True
            elif report.has_drift:
                row.append(f"[red]{t('cli.drift_detected', actions=', '.join(report.missing_actions) or '-')}[/red]")
                has_attention = True
            else:
                row.append(f"[green]{t('cli.drift_none')}[/green]")
        table.add_row(*row)

    console.print(table)
    if has_attention:
        console.print(f"[dim]{t('cli.status_hint')}[/dim]")
        raise SystemExit(2)


@cli.command("schedule")
@click.argument("expression")
@click.option("-n", "--count", default=3, show_default=True, type=click.IntRange(1, 50), help="미리보기 횟수")
def schedule_command(expression: str, count: int) -> None:
    """cron 표현식 검증 및 다음 실행 시각 (UTC)

    \b
    Examples:
        bgov schedule "0 3 * * ?"
        bgov schedule "cron(0 */6 ? * MON-FRI *)" -n 5
    """
    from governance.schedule import next_run, normalize_schedule

    console = Console()
    try:
        normalized = normalize_schedule(expression)
    except GovernanceError as e:
        _fail(console, e)

    console.print(t("cli.schedule_normalized", expression=normalized))
    after = datetime.now(timezone.utc)
    upcoming = []
    for _ in range(count):
        fire = next_run(normalized, after)
        if fire is None:
            break
        upcoming.append(fire)
        after = fire

    if not upcoming:
        console.print(f"[dim]{t('cli.schedule_no_preview')}[/dim]")
        return

    table = Table(title=t("cli.schedule_next"), show_header=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("UTC", style="cyan")
    for i, fire in enumerate(upcoming, 1):
        table.add_row(str(i), fire.strftime("%Y-%m-%d %H:%M %Z"))
    console.print(table)


@cli.command("permissions")
@click.option("--json", "as_json", is_flag=True, help="JSON 형식으로 출력 (IAM 정책 문서)")
def permissions_command(as_json: bool) -> None:
    """조정에 필요한 IAM 권한 목록

    \b
    Examples:
        bgov permissions
        bgov permissions --json
    """
    from governance import catalog, protection, selection, vault_registry

    components = {
        "vault": vault_registry.REQUIRED_PERMISSIONS,
        "protection": protection.REQUIRED_PERMISSIONS,
        "plan": catalog.REQUIRED_PERMISSIONS,
        "selection": selection.REQUIRED_PERMISSIONS,
    }
    actions: list[str] = []
    for perms in components.values():
        for action in perms.get("write", []):
            if action not in actions:
                actions.append(action)

    if as_json:
        document = {
            "Version": "2012-10-17",
            "Statement": [{"Effect": "Allow", "Action": actions, "Resource": "*"}],
        }
        click.echo(json.dumps(document, ensure_ascii=False, indent=2))
        return

    console = Console()
    table = Table(title=t("cli.permissions_title"), show_header=True)
    table.add_column(t("cli.col_component"), style="cyan")
    table.add_column(t("cli.col_permission"), style="white")
    for component, perms in components.items():
        for action in perms.get("write", []):
            table.add_row(component, action)
    console.print(table)


if __name__ == "__main__":
    cli()
