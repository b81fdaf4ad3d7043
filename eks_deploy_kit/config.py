from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, List

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.infra", ".env.secrets"]

DEFAULT_CHART_ROOT = ".devops/k8s"


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y"}


def _get_int(name: str, default: int, invalid: List[str]) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        invalid.append(f"{name}={raw!r}")
        return default


@dataclass
class DeployConfig:
    # 필수 공통
    aws_region: str
    eks_cluster_name: str
    ecr_repository: str

    # ECR 레지스트리 호스트 (비어 있으면 login 단계에서 계정 ID 로 계산)
    ecr_registry: Optional[str] = None

    # 이미지 태그 (비어 있으면 커밋 SHA 에서 계산)
    image_tag: Optional[str] = None
    image_tag_length: int = 8

    # Helm
    release_name: str = ""
    chart_path: str = ""
    namespace: str = "default"
    service_port: Optional[str] = "3000"
    helm_wait: bool = True
    helm_timeout: str = "5m0s"

    # 빌드
    build_context: str = "."
    dockerfile: Optional[str] = None
    docker_platform: Optional[str] = None
    create_ecr_repository: bool = False

    kubeconfig_path: str = "./kubeconfig"

    @classmethod
    def from_env(cls) -> "DeployConfig":
        # 필수값
        missing: List[str] = []
        invalid: List[str] = []

        def req(name: str) -> str:
            val = os.getenv(name)
            if not val:
                missing.append(name)
            return val or ""

        ecr_repository = req("ECR_REPOSITORY")
        release_name = os.getenv("RELEASE_NAME") or ecr_repository

        cfg = cls(
            aws_region=req("AWS_REGION"),
            eks_cluster_name=req("EKS_CLUSTER_NAME"),
            ecr_repository=ecr_repository,
            ecr_registry=os.getenv("ECR_REGISTRY") or None,
            image_tag=os.getenv("IMAGE_TAG") or None,
            image_tag_length=_get_int("IMAGE_TAG_LENGTH", 8, invalid),
            release_name=release_name,
            chart_path=os.getenv("CHART_PATH") or "",
            namespace=os.getenv("K8S_NAMESPACE") or "default",
            service_port=os.getenv("SERVICE_PORT", "3000") or None,
            helm_wait=_get_bool("HELM_WAIT", True),
            helm_timeout=os.getenv("HELM_TIMEOUT") or "5m0s",
            build_context=os.getenv("BUILD_CONTEXT") or ".",
            dockerfile=os.getenv("DOCKERFILE") or None,
            docker_platform=os.getenv("DOCKER_PLATFORM") or None,
            create_ecr_repository=_get_bool("CREATE_ECR_REPOSITORY", False),
            kubeconfig_path=os.getenv("KUBECONFIG_PATH") or "./kubeconfig",
        )

        if missing:
            raise ValueError(
                "필수 환경변수가 누락되었습니다: " + ", ".join(sorted(set(missing)))
            )

        if not 1 <= cfg.image_tag_length <= 40:
            invalid.append(f"IMAGE_TAG_LENGTH={cfg.image_tag_length!r}")

        if cfg.service_port is not None and not cfg.service_port.isdigit():
            invalid.append(f"SERVICE_PORT={cfg.service_port!r}")

        if invalid:
            raise ValueError(
                "환경변수 값이 올바르지 않습니다: " + ", ".join(invalid)
            )

        # 차트 경로 기본값 보정: .devops/k8s/<release>
        if not cfg.chart_path:
            cfg.chart_path = f"{DEFAULT_CHART_ROOT}/{cfg.release_name}"

        return cfg
