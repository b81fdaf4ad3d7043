"""
aws_ecr
-------

ECR 리포지토리 확인/생성, docker 로그인, 이미지 빌드/푸시를 담당하는 모듈.
"""

from __future__ import annotations

from typing import List, Optional

from . import aws_credentials
from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


def _run(cfg: DeployConfig, cmd: List[str], *, timeout: float = 900.0,
         input_text: Optional[str] = None, stream_output: bool = False,
         log_output: bool = True) -> str:
    """
    aws/docker 공통 실행 헬퍼. aws CLI 와 같은 환경변수로 실행하고,
    자격증명 값은 로그에서 가린다.
    """
    secrets = aws_credentials.secret_values()
    if input_text:
        secrets.append(input_text.strip())
    result = run_command(
        cmd,
        env=aws_credentials.aws_env(cfg),
        timeout=timeout,
        input_text=input_text,
        stream_output=stream_output,
        secrets=secrets,
        log_output=log_output,
    )
    return result.stdout


def registry_host(account: str, region: str) -> str:
    return f"{account}.dkr.ecr.{region}.amazonaws.com"


def image_reference(registry: str, repository: str, tag: str) -> str:
    if not tag:
        raise ValueError("이미지 태그가 비어 있습니다.")
    return f"{registry}/{repository}:{tag}"


def resolve_registry(cfg: DeployConfig) -> str:
    """
    ECR_REGISTRY 가 있으면 그대로, 없으면 계정 ID 와 리전으로 계산한다.
    """
    if cfg.ecr_registry:
        return cfg.ecr_registry
    return registry_host(aws_credentials.account_id(cfg), cfg.aws_region)


def login(cfg: DeployConfig) -> str:
    """
    aws ecr get-login-password | docker login --password-stdin 과 동일.
    로그인한 레지스트리 호스트를 반환한다.
    """
    registry = resolve_registry(cfg)
    logger.info("ECR 로그인: %s", registry)

    # 출력 자체가 레지스트리 비밀번호이므로 DEBUG 로그에도 남기지 않는다.
    password = _run(
        cfg,
        ["aws", "ecr", "get-login-password", "--region", cfg.aws_region],
        timeout=120.0,
        log_output=False,
    ).strip()
    if not password:
        raise RuntimeError("ECR 로그인 비밀번호를 받지 못했습니다.")

    _run(
        cfg,
        ["docker", "login", "--username", "AWS", "--password-stdin", registry],
        timeout=120.0,
        input_text=password,
    )
    logger.info("ECR 로그인 완료: %s", registry)
    return registry


def ensure_repository(cfg: DeployConfig) -> None:
    """
    ECR 리포지토리가 존재하는지 확인하고,
    없으면 생성한다.
    """
    repo = cfg.ecr_repository
    logger.info("ECR 리포지토리 확인: %s", repo)

    describe_cmd = [
        "aws", "ecr", "describe-repositories",
        "--repository-names", repo,
        "--region", cfg.aws_region,
    ]
    try:
        _run(cfg, describe_cmd, timeout=120.0)
        logger.info("기존 ECR 리포지토리를 사용합니다: %s", repo)
        return
    except RuntimeError as e:
        if "RepositoryNotFoundException" not in str(e):
            raise
        logger.warning("ECR 리포지토리가 없어 생성합니다: %s", repo)

    create_cmd = [
        "aws", "ecr", "create-repository",
        "--repository-name", repo,
        "--region", cfg.aws_region,
        "--image-scanning-configuration", "scanOnPush=true",
    ]
    _run(cfg, create_cmd, timeout=120.0)
    logger.info("ECR 리포지토리를 생성했습니다: %s", repo)


def check_repository(cfg: DeployConfig) -> str:
    """
    ECR 리포지토리 존재 여부를 확인만 하고, 생성하지 않는다.
    """
    repo = cfg.ecr_repository
    try:
        _run(cfg, [
            "aws", "ecr", "describe-repositories",
            "--repository-names", repo,
            "--region", cfg.aws_region,
        ], timeout=120.0)
    except RuntimeError as e:
        msg = str(e)
        if "찾을 수 없습니다" in msg:
            return "ECR: aws 명령을 찾을 수 없어 상태 확인 불가"
        if "RepositoryNotFoundException" in msg:
            return f"ECR: 리포지토리 없음 ({repo})"
        return f"ECR: 리포지토리 조회 실패 ({msg.splitlines()[0]})"
    return f"ECR: 리포지토리 존재함 ({repo})"


def build_command(cfg: DeployConfig, image_ref: str) -> List[str]:
    """
    빌드 명령을 구성한다.

    DOCKER_PLATFORM 이 설정되면 buildx 로 해당 플랫폼 이미지를 빌드하면서 바로 푸시한다.
    (원래 워크플로우의 QEMU/Buildx 셋업에 해당)
    """
    if cfg.docker_platform:
        cmd = ["docker", "buildx", "build", "--platform", cfg.docker_platform,
               "-t", image_ref, "--push"]
    else:
        cmd = ["docker", "build", "-t", image_ref]
    if cfg.dockerfile:
        cmd.extend(["-f", cfg.dockerfile])
    cmd.append(cfg.build_context)
    return cmd


def build_and_push_image(cfg: DeployConfig, registry: str, tag: str) -> str:
    """
    이미지를 빌드하고 ECR 에 푸시한 뒤 최종 이미지 참조를 반환한다.
    """
    image_ref = image_reference(registry, cfg.ecr_repository, tag)
    logger.info("이미지 빌드: %s", image_ref)

    _run(cfg, build_command(cfg, image_ref), timeout=3600.0, stream_output=True)
    if not cfg.docker_platform:
        _run(cfg, ["docker", "push", image_ref], timeout=1800.0, stream_output=True)

    logger.info("이미지 빌드/푸시 완료: %s", image_ref)
    return image_ref
