"""
aws_eks
-------

EKS 클러스터 kubeconfig 를 받아오고, CI 에서 쓸 수 있도록
base64 로 인코딩해서 넘겨주는 모듈.
"""

from __future__ import annotations

import base64
import json
import os

from . import aws_credentials, github_env
from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


def update_kubeconfig(cfg: DeployConfig) -> str:
    """
    aws eks update-kubeconfig 로 kubeconfig 파일을 만들고 절대 경로를 반환한다.
    """
    path = os.path.abspath(cfg.kubeconfig_path)
    cmd = [
        "aws", "eks", "update-kubeconfig",
        "--name", cfg.eks_cluster_name,
        "--region", cfg.aws_region,
        "--kubeconfig", path,
    ]
    run_command(
        cmd,
        env=aws_credentials.aws_env(cfg),
        timeout=120.0,
        secrets=aws_credentials.secret_values(),
    )
    logger.info("kubeconfig 생성 완료: %s (cluster=%s)", path, cfg.eks_cluster_name)
    return path


def encode_kubeconfig(path: str) -> str:
    with open(path, "rb") as f:
        return base64.b64encode(f.read()).decode("ascii")


def export_kubeconfig(path: str) -> bool:
    """
    GitHub Actions 에서 실행 중이면 KUBE_CONFIG_DATA 로 이후 step 에 넘긴다.
    """
    return github_env.export_env("KUBE_CONFIG_DATA", encode_kubeconfig(path))


def check_cluster(cfg: DeployConfig) -> str:
    """
    클러스터 존재/상태를 확인만 한다.
    """
    cmd = [
        "aws", "eks", "describe-cluster",
        "--name", cfg.eks_cluster_name,
        "--region", cfg.aws_region,
        "--output", "json",
    ]
    try:
        result = run_command(
            cmd,
            env=aws_credentials.aws_env(cfg),
            timeout=120.0,
            secrets=aws_credentials.secret_values(),
        )
    except RuntimeError as e:
        msg = str(e)
        if "찾을 수 없습니다" in msg:
            return "EKS: aws 명령을 찾을 수 없어 상태 확인 불가"
        if "ResourceNotFoundException" in msg:
            return f"EKS: 클러스터 없음 ({cfg.eks_cluster_name})"
        return f"EKS: 클러스터 조회 실패 ({msg.splitlines()[0]})"

    try:
        status = json.loads(result.stdout).get("cluster", {}).get("status", "UNKNOWN")
    except json.JSONDecodeError:
        status = "UNKNOWN"
    if status != "ACTIVE":
        return f"EKS: 클러스터 상태 {status} ({cfg.eks_cluster_name})"
    return f"EKS: 클러스터 ACTIVE ({cfg.eks_cluster_name})"
