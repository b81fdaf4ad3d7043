from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

from .config import DeployConfig
from .logging_utils import get_logger
from . import (
    aws_credentials,
    aws_ecr,
    aws_eks,
    chart,
    github_env,
    helm_release,
    image_tag,
)


logger = get_logger(__name__)

# 워크플로우와 같은 실행 순서
ALL_STEPS: List[str] = [
    "tag",
    "credentials",
    "login",
    "build",
    "kubeconfig",
    "deploy",
]

REQUIRED_TOOLS: List[str] = ["aws", "docker", "helm", "kubectl"]

STATUS_OK = "OK"
STATUS_FAILED = "FAILED"
STATUS_SKIPPED = "SKIPPED"
STATUS_NOT_RUN = "NOT RUN"


@dataclass
class PipelineState:
    """
    한 번의 실행 동안 step 사이에서 넘겨지는 값.
    deploy 는 항상 여기 있는 image_tag 를 쓴다.
    """
    image_tag: Optional[str] = None
    registry: Optional[str] = None
    image_ref: Optional[str] = None
    pushed: bool = False
    kubeconfig: Optional[str] = None


@dataclass(frozen=True)
class StepResult:
    name: str
    status: str
    detail: str = ""


def _filter_steps(only_steps: Optional[Iterable[str]]) -> List[str]:
    if only_steps:
        requested = {s for s in only_steps}
        return [s for s in ALL_STEPS if s in requested]
    return list(ALL_STEPS)


def plan_all(cfg: DeployConfig, only_steps: Optional[Iterable[str]] = None) -> str:
    """
    현재 설정과 실행될 step 목록을 요약한다. 실제 명령은 실행하지 않는다.
    """
    steps = _filter_steps(only_steps)

    lines: List[str] = []
    lines.append("# Deploy plan")
    lines.append(f"- cluster: {cfg.eks_cluster_name}")
    lines.append(f"- region: {cfg.aws_region}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- ecr_repository: {cfg.ecr_repository}")
    lines.append(f"- ecr_registry: {cfg.ecr_registry or '(login 시 계산)'}")
    lines.append(f"- image_tag: {cfg.image_tag or f'(커밋 SHA 앞 {cfg.image_tag_length}자리)'}")
    lines.append(f"- release_name: {cfg.release_name}")
    lines.append(f"- chart_path: {cfg.chart_path}")
    lines.append(f"- namespace: {cfg.namespace}")
    lines.append(f"- service_port: {cfg.service_port or '(values.yaml 기본값)'}")
    lines.append(f"- build_context: {cfg.build_context}")
    lines.append(f"- docker_platform: {cfg.docker_platform or '(local docker build)'}")
    lines.append(f"- helm_wait: {cfg.helm_wait} (timeout={cfg.helm_timeout})")
    lines.append("")

    lines.append("## Steps")
    for name in ALL_STEPS:
        status = "ENABLED" if name in steps else "SKIPPED"
        lines.append(f"- {name}: {status}")

    return "\n".join(lines)


def resolve_paths(cfg: DeployConfig, base_dir: str) -> DeployConfig:
    """
    상대 경로 설정(build_context, chart_path, kubeconfig_path)을 base_dir 기준으로 바꾼다.
    """
    def _abs(p: str) -> str:
        return p if os.path.isabs(p) else os.path.normpath(os.path.join(base_dir, p))

    return replace(
        cfg,
        build_context=_abs(cfg.build_context),
        chart_path=_abs(cfg.chart_path),
        kubeconfig_path=_abs(cfg.kubeconfig_path),
    )


def _explicit_tag(cfg: DeployConfig, override: Optional[str]) -> Optional[str]:
    return override or cfg.image_tag


def _run_step(name: str, cfg: DeployConfig, state: PipelineState, base_dir: str,
              tag_override: Optional[str]) -> str:
    """
    step 하나를 실행하고 요약 문자열을 반환한다. 실패하면 예외를 그대로 올린다.
    """
    if name == "tag":
        tag = _explicit_tag(cfg, tag_override) or image_tag.resolve_image_tag(cfg, base_dir)
        state.image_tag = tag
        github_env.set_output("sha8", tag)
        return tag

    if name == "credentials":
        return aws_credentials.ensure_credentials(cfg)

    if name == "login":
        if cfg.create_ecr_repository:
            aws_ecr.ensure_repository(cfg)
        state.registry = aws_ecr.login(cfg)
        github_env.set_output("registry", state.registry)
        return state.registry

    if name == "build":
        if not state.image_tag:
            state.image_tag = _explicit_tag(cfg, tag_override) or image_tag.resolve_image_tag(cfg, base_dir)
        if not state.registry:
            state.registry = aws_ecr.resolve_registry(cfg)
        state.image_ref = aws_ecr.build_and_push_image(cfg, state.registry, state.image_tag)
        state.pushed = True
        return state.image_ref

    if name == "kubeconfig":
        state.kubeconfig = aws_eks.update_kubeconfig(cfg)
        aws_eks.export_kubeconfig(state.kubeconfig)
        return state.kubeconfig

    if name == "deploy":
        if not state.pushed:
            explicit = _explicit_tag(cfg, tag_override)
            if not explicit:
                raise RuntimeError(
                    "이번 실행에서 푸시한 이미지가 없습니다. build step 을 포함하거나 "
                    "--tag / IMAGE_TAG 로 이미 푸시된 태그를 지정하세요."
                )
            state.image_tag = explicit
        if not state.registry:
            state.registry = aws_ecr.resolve_registry(cfg)
        assert state.image_tag is not None

        kubeconfig = state.kubeconfig or os.getenv("KUBECONFIG")
        repository = f"{state.registry}/{cfg.ecr_repository}"
        helm_release.preflight(kubeconfig)
        helm_release.upgrade_install(cfg, repository, state.image_tag, kubeconfig=kubeconfig)
        return f"{cfg.release_name} <- {repository}:{state.image_tag}"

    raise ValueError(f"알 수 없는 step 입니다: {name}")


def apply_all(
    cfg: DeployConfig,
    only_steps: Optional[Iterable[str]] = None,
    base_dir: str = ".",
    tag_override: Optional[str] = None,
    state: Optional[PipelineState] = None,
) -> tuple[str, bool]:
    """
    step 을 순서대로 실행한다. 하나라도 실패하면 그 자리에서 멈춘다. (재시도/롤백 없음)

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_failures: 실패한 step 이 있는지 여부
    """
    cfg = resolve_paths(cfg, base_dir)
    steps = _filter_steps(only_steps)
    state = state if state is not None else PipelineState()
    results: List[StepResult] = []
    failed = False

    logger.info("실행 대상 step: %s", steps)

    for name in ALL_STEPS:
        if name not in steps:
            results.append(StepResult(name, STATUS_SKIPPED))
            continue
        if failed:
            results.append(StepResult(name, STATUS_NOT_RUN))
            continue

        logger.info("step 실행: %s", name)
        try:
            detail = _run_step(name, cfg, state, base_dir, tag_override)
        except Exception as e:  # noqa: BLE001
            logger.exception("step 실행 실패: %s", name)
            results.append(StepResult(name, STATUS_FAILED, str(e).splitlines()[0] if str(e) else type(e).__name__))
            failed = True
            continue

        results.append(StepResult(name, STATUS_OK, detail))

    return _summarize(cfg, state, results), failed


def _summarize(cfg: DeployConfig, state: PipelineState, results: List[StepResult]) -> str:
    lines: List[str] = []
    lines.append("# Deploy summary")
    lines.append(f"- cluster: {cfg.eks_cluster_name}")
    lines.append(f"- release: {cfg.release_name} (namespace={cfg.namespace})")
    if state.image_tag:
        lines.append(f"- image_tag: {state.image_tag}")
    if state.image_ref:
        lines.append(f"- image: {state.image_ref}")
    lines.append("")

    lines.append("## Steps")
    for r in results:
        suffix = f" ({r.detail})" if r.detail else ""
        lines.append(f"- {r.name}: {r.status}{suffix}")

    return "\n".join(lines)


def check_all(cfg: DeployConfig, base_dir: str = ".", show_all: bool = False) -> tuple[str, bool]:
    """
    리소스 생성/변경 없이 도구, 자격증명, ECR, EKS, 차트 상태를 점검한다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: 크리티컬 이슈 또는 경고가 있는지 여부
    """
    lines: List[str] = []
    critical: List[str] = []
    warnings: List[str] = []

    lines.append("# Deploy pre-check")
    lines.append(f"- cluster: {cfg.eks_cluster_name}")
    lines.append(f"- region: {cfg.aws_region}")
    lines.append("")

    # 1) 로컬 도구
    lines.append("## Tools")
    for tool in REQUIRED_TOOLS:
        found = shutil.which(tool)
        status = f"{tool}: {found}" if found else f"{tool}: 설치되지 않음"
        if show_all:
            lines.append(f"- {status}")
        if not found:
            critical.append(status)
    lines.append("")

    # 2) AWS 자격증명
    lines.append("## AWS credentials")
    cred_status = aws_credentials.check_credentials(cfg)
    if show_all:
        lines.append(f"- {cred_status}")
    if "유효" not in cred_status:
        critical.append(cred_status)
    lines.append("")

    # 3) ECR
    lines.append("## ECR")
    ecr_status = aws_ecr.check_repository(cfg)
    if show_all:
        lines.append(f"- {ecr_status}")
    if "리포지토리 없음" in ecr_status:
        # CREATE_ECR_REPOSITORY=true 면 login step 에서 생성된다.
        (warnings if cfg.create_ecr_repository else critical).append(ecr_status)
    elif "존재함" not in ecr_status:
        critical.append(ecr_status)
    lines.append("")

    # 4) EKS
    lines.append("## EKS")
    eks_status = aws_eks.check_cluster(cfg)
    if show_all:
        lines.append(f"- {eks_status}")
    if "ACTIVE" not in eks_status:
        critical.append(eks_status)
    lines.append("")

    # 5) Helm 차트
    lines.append("## Helm chart")
    cfg = resolve_paths(cfg, base_dir)
    chart_dir = cfg.chart_path
    for status, is_critical in _check_chart(cfg, chart_dir):
        if show_all:
            lines.append(f"- {status}")
        if is_critical:
            critical.append(status)
    lines.append("")

    lines.append("## Summary")
    if critical:
        lines.append("- 상태: 크리티컬 이슈가 있습니다. 배포 전 반드시 해결해야 합니다.")
    elif warnings:
        lines.append("- 상태: 경고만 있습니다. 배포 시 일부 리소스가 새로 생성됩니다.")
    else:
        lines.append("- 상태: 주요 이슈 없음 (배포 가능 상태로 보입니다)")

    if show_all or critical:
        lines.append("")
        lines.append("### Critical issues")
        for i in critical or ["(none)"]:
            lines.append(f"- {i}")

    if show_all or warnings:
        lines.append("")
        lines.append("### Warnings")
        for i in warnings or ["(none)"]:
            lines.append(f"- {i}")

    if not show_all:
        lines.append("")
        lines.append("자세한 상태를 보려면 `deploy-eks check -a` 를 실행하세요.")

    return "\n".join(lines), bool(critical or warnings)


def _check_chart(cfg: DeployConfig, chart_dir: str) -> List[tuple[str, bool]]:
    """
    차트를 로드/렌더링해 보고 (상태 문자열, 크리티컬 여부) 목록을 반환한다.
    """
    try:
        loaded = chart.load_chart(chart_dir)
    except ValueError as e:
        return [(f"Chart: {e}", True)]

    overrides = chart.parse_set_values(
        helm_release.deploy_values(cfg, f"example/{cfg.ecr_repository}", "check")
    )
    try:
        docs = chart.render_manifests(loaded, cfg.release_name, overrides)
    except ValueError as e:
        return [(f"Chart: 렌더링 실패 ({e})", True)]

    out: List[tuple[str, bool]] = [(f"Chart: {loaded.meta.name}-{loaded.meta.version} ({chart_dir})", False)]
    name = docs[0]["metadata"]["name"]
    out.append((f"Chart: 리소스 이름 {name} ({len(name)}자)", False))

    deployment, service = docs
    container_port = deployment["spec"]["template"]["spec"]["containers"][0]["ports"][0]["containerPort"]
    target_port = service["spec"]["ports"][0]["targetPort"]
    if container_port != target_port:
        out.append((f"Chart: containerPort({container_port}) 와 Service targetPort({target_port}) 불일치", True))
    return out


def teardown(cfg: DeployConfig, base_dir: str = ".", refresh_kubeconfig: bool = True) -> str:
    """
    배포한 Helm 릴리즈를 삭제한다. (ECR 이미지/클러스터는 건드리지 않는다)
    삭제 전에 helm status 로 현재 리비전을 확인하고, 릴리즈가 없으면 uninstall 은 건너뛴다.
    """
    cfg = resolve_paths(cfg, base_dir)
    kubeconfig = os.getenv("KUBECONFIG")
    if refresh_kubeconfig:
        kubeconfig = aws_eks.update_kubeconfig(cfg)

    current = helm_release.status(cfg, kubeconfig=kubeconfig)
    removed = False
    if current is None:
        logger.info("삭제할 릴리즈가 없습니다: %s", cfg.release_name)
    else:
        removed = helm_release.uninstall(cfg, kubeconfig=kubeconfig)

    lines = ["# Teardown summary", f"- release: {cfg.release_name} (namespace={cfg.namespace})"]
    if current is not None:
        info = current.get("info") or {}
        lines.append(f"- revision: {current.get('version', '?')} ({info.get('status', 'unknown')})")
    lines.append(f"- status: {'삭제됨' if removed else '릴리즈 없음'}")
    return "\n".join(lines)
