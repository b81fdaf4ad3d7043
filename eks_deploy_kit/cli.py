import os
import sys
from importlib import resources
from typing import Optional

import click
from dotenv import dotenv_values

from .config import DEFAULT_CHART_ROOT, load_env_files, DeployConfig
from .logging_utils import setup_logging, get_logger
from .pipeline import ALL_STEPS, apply_all, check_all, plan_all, resolve_paths, teardown
from . import chart, helm_release


logger = get_logger(__name__)

WORKFLOW_TARGET = os.path.join(".github", "workflows", "deploy-to-k8s.yaml")

ENV_TEMPLATES = {
    "env.infra.example": ".env.infra.example",
    "env.secrets.example": ".env.secrets.example",
}


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-v 가 많을수록 더 자세한 로그)",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """ECR 빌드/푸시 + Helm 으로 EKS 에 배포하는 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_config_from_ctx(ctx: click.Context) -> DeployConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    cfg = DeployConfig.from_env()
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _config_or_exit(ctx: click.Context) -> DeployConfig:
    try:
        return _load_config_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)


def _parse_steps(only: str) -> Optional[list[str]]:
    if not only.strip():
        return None
    steps = [p.strip() for p in only.split(",") if p.strip()]
    invalid = sorted({s for s in steps if s not in ALL_STEPS})
    if invalid:
        click.echo(
            "[ERROR] 잘못된 step 이름이 있습니다: "
            + ", ".join(invalid)
            + f"\n허용되는 step: {', '.join(ALL_STEPS)}",
            err=True,
        )
        sys.exit(1)
    return steps


def _build_env_dump(base_dir: str) -> str:
    """
    .env / .env.infra 내용을 덤프한다. .env.secrets 는 키만 출력한다.
    """
    lines: list[str] = []
    for filename in (".env", ".env.infra", ".env.secrets"):
        lines.append(f"## {filename}")
        values = dotenv_values(dotenv_path=os.path.join(base_dir, filename))
        if not values:
            lines.append("- (파일이 없거나 비어 있습니다)")
        else:
            for k, v in sorted(values.items()):
                if v is None:
                    continue
                shown = "***" if filename == ".env.secrets" else v
                lines.append(f"- {k}={shown}")
        lines.append("")
    return "\n".join(lines).rstrip()


@main.command()
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help=".env 파일에서 읽은 값을 함께 출력합니다. (secret 값은 가림)",
)
@click.option("--only", "only", type=str, default="", help="쉼표로 구분된 step 이름")
@click.pass_context
def plan(ctx: click.Context, show_all: bool, only: str) -> None:
    """현재 설정 요약과 step 별 ENABLED/SKIPPED 상태를 출력"""
    cfg = _config_or_exit(ctx)
    report = plan_all(cfg, only_steps=_parse_steps(only))

    if show_all:
        report = report + "\n\n" + "## Raw env from files\n" + _build_env_dump(ctx.obj["chdir"])

    click.echo(report)


@main.command(name="deploy")
@click.option(
    "--only",
    "only",
    type=str,
    default="",
    help="쉼표로 구분된 step 이름(tag,credentials,login,build,kubeconfig,deploy). "
    "기본은 전체 step 을 순서대로 실행합니다.",
)
@click.option("--tag", "tag", type=str, default=None, help="커밋 SHA 대신 사용할 이미지 태그")
@click.pass_context
def deploy(ctx: click.Context, only: str, tag: Optional[str]) -> None:
    """이미지 빌드/푸시 후 helm upgrade --install 로 배포"""
    cfg = _config_or_exit(ctx)
    steps = _parse_steps(only)

    try:
        summary, has_failures = apply_all(
            cfg, only_steps=steps, base_dir=ctx.obj["chdir"], tag_override=tag
        )
    except Exception as e:  # noqa: BLE001
        logger.exception("배포 중 오류 발생")
        click.echo(f"[ERROR] 배포 실패: {e}", err=True)
        sys.exit(1)

    click.echo(summary)

    # 실패한 step 이 있으면 전체 명령은 실패(exit 1)
    if has_failures:
        sys.exit(1)


@main.command()
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help="모든 체크 항목의 상세 상태를 출력합니다. (기본은 이슈만 요약)",
)
@click.pass_context
def check(ctx: click.Context, show_all: bool) -> None:
    """
    배포 전에 도구/AWS/ECR/EKS/차트 상태를 점검한다.
    (실제 리소스 생성/변경은 하지 않는다)
    """
    cfg = _config_or_exit(ctx)

    try:
        report, has_issues = check_all(cfg, base_dir=ctx.obj["chdir"], show_all=show_all)
    except Exception as e:  # noqa: BLE001
        logger.exception("사전 체크 중 오류 발생")
        click.echo(f"[ERROR] 체크 실패: {e}", err=True)
        sys.exit(1)

    click.echo(report)

    if has_issues:
        sys.exit(1)


@main.command()
@click.option("--set", "set_values", multiple=True, help="values 덮어쓰기 (key=value, 여러 번 지정 가능)")
@click.option("--set-string", "set_strings", multiple=True, help="문자열로 강제하는 values 덮어쓰기")
@click.option("--tag", "tag", type=str, default="latest", show_default=True, help="미리보기용 이미지 태그")
@click.pass_context
def render(ctx: click.Context, set_values: tuple, set_strings: tuple, tag: str) -> None:
    """배포 시 적용될 Deployment/Service 매니페스트를 미리 출력 (클러스터 접속 없음)"""
    cfg = resolve_paths(_config_or_exit(ctx), ctx.obj["chdir"])
    registry = cfg.ecr_registry or "<registry>"

    try:
        loaded = chart.load_chart(cfg.chart_path)
        overrides = chart.parse_set_values(
            helm_release.deploy_values(cfg, f"{registry}/{cfg.ecr_repository}", tag)
        )
        # null 은 마지막 render_manifests 병합에서 차트 기본값을 지우도록 남겨 둔다.
        overrides = chart.merge_values(overrides, chart.parse_set_values(set_values), keep_null=True)
        overrides = chart.merge_values(
            overrides, chart.parse_set_values(set_strings, as_string=True), keep_null=True
        )
        docs = chart.render_manifests(loaded, cfg.release_name, overrides, namespace=cfg.namespace)
    except ValueError as e:
        click.echo(f"[ERROR] 렌더링 실패: {e}", err=True)
        sys.exit(1)

    click.echo(chart.dump_manifests(docs), nl=False)


@main.command(name="teardown")
@click.option("--yes", "yes", is_flag=True, help="확인 없이 삭제합니다.")
@click.option(
    "--no-kubeconfig",
    "no_kubeconfig",
    is_flag=True,
    help="aws eks update-kubeconfig 를 건너뛰고 현재 KUBECONFIG 를 사용합니다.",
)
@click.pass_context
def teardown_cmd(ctx: click.Context, yes: bool, no_kubeconfig: bool) -> None:
    """helm uninstall 로 배포한 릴리즈를 삭제"""
    cfg = _config_or_exit(ctx)

    if not yes:
        click.confirm(
            f"릴리즈 {cfg.release_name} (namespace={cfg.namespace}) 를 삭제할까요?",
            abort=True,
        )

    try:
        summary = teardown(cfg, base_dir=ctx.obj["chdir"], refresh_kubeconfig=not no_kubeconfig)
    except Exception as e:  # noqa: BLE001
        logger.exception("삭제 중 오류 발생")
        click.echo(f"[ERROR] 삭제 실패: {e}", err=True)
        sys.exit(1)

    click.echo(summary)


def _write_template(text: str, target: str, force: bool) -> bool:
    if os.path.exists(target) and not force:
        click.echo(f"{target} 이(가) 이미 존재하여 건너뜀")
        return False
    os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        f.write(text)
    click.echo(f"{target} 을(를) 생성했습니다.")
    return True


@main.command()
@click.option("--name", "name", type=str, default=None,
              help="릴리즈/차트/ECR 리포지토리 이름 (기본: ECR_REPOSITORY 또는 디렉토리 이름)")
@click.option("--cluster", "cluster", type=str, default="my-test-cluster", show_default=True,
              help="워크플로우에 넣을 EKS 클러스터 이름")
@click.option("--force", "force", is_flag=True, help="이미 있는 파일도 덮어씁니다.")
@click.pass_context
def init(ctx: click.Context, name: Optional[str], cluster: str, force: bool) -> None:
    """
    현재 디렉토리에 Helm 차트, GitHub Actions 워크플로우, env 템플릿을 생성한다.
    """
    base_dir: str = ctx.obj["chdir"]
    name = name or os.getenv("ECR_REPOSITORY") or os.path.basename(os.path.abspath(base_dir))
    chart_rel = f"{DEFAULT_CHART_ROOT}/{name}"

    try:
        written = chart.scaffold_chart(os.path.join(base_dir, chart_rel), name, force=force)
    except ValueError as e:
        click.echo(f"[ERROR] 차트 생성 실패: {e}", err=True)
        sys.exit(1)
    for path in written:
        click.echo(f"{path} 을(를) 생성했습니다.")

    data = resources.files("eks_deploy_kit.data")
    workflow = (
        data.joinpath("workflows/deploy-to-k8s.yaml").read_text(encoding="utf-8")
        .replace("__CLUSTER__", cluster)
        .replace("__REPOSITORY__", name)
        .replace("__RELEASE__", name)
        .replace("__CHART_PATH__", chart_rel)
    )
    _write_template(workflow, os.path.join(base_dir, WORKFLOW_TARGET), force)

    for src, dest in ENV_TEMPLATES.items():
        text = data.joinpath(f"env/{src}").read_text(encoding="utf-8")
        _write_template(text, os.path.join(base_dir, dest), force)
