"""
pytest 설정:

로컬에 설치된 다른 버전의 eks_deploy_kit 패키지가 있으면
site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있으므로, repo root 를 sys.path 최상단에 고정한다.

배포 관련 환경변수(GITHUB_*, IMAGE_TAG 등)는 테스트마다 비워서 실행 환경 영향을 받지 않게 한다.
"""

from __future__ import annotations

import os
import sys

import pytest


_ISOLATED_ENV = [
    "AWS_REGION",
    "EKS_CLUSTER_NAME",
    "ECR_REPOSITORY",
    "ECR_REGISTRY",
    "IMAGE_TAG",
    "IMAGE_TAG_LENGTH",
    "RELEASE_NAME",
    "CHART_PATH",
    "K8S_NAMESPACE",
    "SERVICE_PORT",
    "HELM_WAIT",
    "HELM_TIMEOUT",
    "BUILD_CONTEXT",
    "DOCKERFILE",
    "DOCKER_PLATFORM",
    "CREATE_ECR_REPOSITORY",
    "KUBECONFIG_PATH",
    "KUBECONFIG",
    "GITHUB_SHA",
    "GITHUB_OUTPUT",
    "GITHUB_ENV",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "CLI_SHOW_PROGRESS",
]


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
