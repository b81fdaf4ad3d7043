"""
helm_release
------------

helm upgrade --install / status / uninstall 래퍼.
"""

from __future__ import annotations

import json
import os
from typing import Dict, List, Optional

from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


def kube_env(kubeconfig: Optional[str]) -> Dict[str, str]:
    env = dict(os.environ)
    if kubeconfig:
        env["KUBECONFIG"] = kubeconfig
    return env


def deploy_values(cfg: DeployConfig, image_repository: str, image_tag: str) -> List[str]:
    """
    배포 시 --set 으로 넘길 값들. (key=value 형식)
    """
    values = [
        f"image.tag={image_tag}",
        f"image.repository={image_repository}",
    ]
    if cfg.service_port:
        values.append(f"service.port={cfg.service_port}")
    return values


def build_upgrade_command(cfg: DeployConfig, image_repository: str, image_tag: str) -> List[str]:
    """
    helm upgrade <release> --install ... 명령을 구성한다.
    같은 설정이면 항상 같은 명령이 나온다.
    """
    cmd = ["helm", "upgrade", cfg.release_name, "--install"]
    if cfg.helm_wait:
        cmd.extend(["--wait", "--timeout", cfg.helm_timeout])
    for pair in deploy_values(cfg, image_repository, image_tag):
        cmd.extend(["--set", pair])
    cmd.extend([cfg.chart_path, "-n", cfg.namespace])
    return cmd


def preflight(kubeconfig: Optional[str]) -> None:
    """
    helm/kubectl 버전과 클러스터 접속 정보를 출력한다.
    """
    env = kube_env(kubeconfig)
    for cmd in (
        ["helm", "version", "--short"],
        ["kubectl", "version", "--client"],
        ["kubectl", "cluster-info"],
    ):
        result = run_command(cmd, env=env, timeout=60.0)
        logger.info("%s: %s", cmd[0], result.stdout.strip().splitlines()[0] if result.stdout.strip() else "-")


def upgrade_install(cfg: DeployConfig, image_repository: str, image_tag: str,
                    kubeconfig: Optional[str] = None) -> None:
    if not os.path.isdir(cfg.chart_path):
        raise ValueError(f"Helm 차트 디렉토리를 찾을 수 없습니다: {cfg.chart_path}")

    cmd = build_upgrade_command(cfg, image_repository, image_tag)
    run_command(
        cmd,
        env=kube_env(kubeconfig),
        # --wait 일 때는 helm 의 --timeout 이 상한이다.
        timeout=None if cfg.helm_wait else 600.0,
        stream_output=True,
        spinner_message=f"helm upgrade {cfg.release_name}",
    )
    logger.info("Helm 릴리즈 배포 완료: %s (namespace=%s, tag=%s)",
                cfg.release_name, cfg.namespace, image_tag)


def status(cfg: DeployConfig, kubeconfig: Optional[str] = None) -> Optional[Dict[str, object]]:
    """
    helm status 결과(JSON). 릴리즈가 없으면 None.
    """
    cmd = ["helm", "status", cfg.release_name, "-n", cfg.namespace, "-o", "json"]
    try:
        result = run_command(cmd, env=kube_env(kubeconfig), timeout=60.0)
    except RuntimeError as e:
        if "release: not found" in str(e):
            return None
        raise
    return json.loads(result.stdout)


def uninstall(cfg: DeployConfig, kubeconfig: Optional[str] = None, wait: bool = True) -> bool:
    """
    릴리즈를 삭제한다. 원래 없었으면 False.
    """
    cmd = ["helm", "uninstall", cfg.release_name, "-n", cfg.namespace]
    if wait:
        cmd.append("--wait")
    try:
        run_command(cmd, env=kube_env(kubeconfig), timeout=600.0)
    except RuntimeError as e:
        if "not found" in str(e):
            logger.info("삭제할 릴리즈가 없습니다: %s", cfg.release_name)
            return False
        raise
    logger.info("Helm 릴리즈 삭제 완료: %s", cfg.release_name)
    return True
