"""
image_tag
---------

커밋 SHA 에서 이미지 태그(짧은 SHA)를 계산하는 모듈.
워크플로우의 `echo ${GITHUB_SHA} | cut -c1-8` 단계에 해당한다.
"""

from __future__ import annotations

import os
import re

from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)

_SHA_RE = re.compile(r"^[0-9a-f]{7,64}$")


def short_sha(sha: str, length: int = 8) -> str:
    """
    커밋 SHA 의 앞 length 글자를 반환한다. (cut -c1-N 과 동일)
    """
    value = (sha or "").strip().lower()
    if not _SHA_RE.match(value):
        raise ValueError(f"커밋 SHA 형식이 올바르지 않습니다: {sha!r}")
    if length < 1:
        raise ValueError(f"태그 길이는 1 이상이어야 합니다: {length}")
    return value[:length]


def resolve_commit_sha(base_dir: str = ".") -> str:
    """
    GITHUB_SHA 가 있으면 그대로 쓰고, 없으면 git rev-parse HEAD 로 구한다.
    """
    sha = os.getenv("GITHUB_SHA")
    if sha:
        logger.debug("GITHUB_SHA 사용: %s", sha)
        return sha
    result = run_command(["git", "rev-parse", "HEAD"], cwd=base_dir, timeout=30.0)
    return result.stdout.strip()


def resolve_image_tag(cfg: DeployConfig, base_dir: str = ".") -> str:
    """
    IMAGE_TAG 가 명시되어 있으면 우선 사용, 아니면 커밋 SHA 로 계산한다.
    """
    if cfg.image_tag:
        logger.info("IMAGE_TAG 를 그대로 사용합니다: %s", cfg.image_tag)
        return cfg.image_tag
    tag = short_sha(resolve_commit_sha(base_dir), cfg.image_tag_length)
    logger.info("커밋 SHA 로 이미지 태그 계산: %s", tag)
    return tag
