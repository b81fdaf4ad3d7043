"""
github_env
----------

GitHub Actions 러너 위에서 실행될 때 step output / 환경변수를 넘겨주는 헬퍼.
러너 밖(GITHUB_OUTPUT, GITHUB_ENV 미설정)에서는 아무 것도 하지 않는다.
"""

from __future__ import annotations

import os
import uuid

from .logging_utils import get_logger


logger = get_logger(__name__)


def _append(path: str, text: str) -> None:
    with open(path, "a", encoding="utf-8") as f:
        f.write(text)


def _entry(name: str, value: str) -> str:
    if "\n" not in value:
        return f"{name}={value}\n"
    # 여러 줄 값은 heredoc 구분자로 감싼다.
    delimiter = f"EOF_{uuid.uuid4().hex}"
    return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"


def set_output(name: str, value: str) -> bool:
    """
    $GITHUB_OUTPUT 에 step output 을 기록한다. 기록했으면 True.
    """
    path = os.getenv("GITHUB_OUTPUT")
    if not path:
        return False
    _append(path, _entry(name, value))
    logger.debug("GITHUB_OUTPUT 기록: %s", name)
    return True


def export_env(name: str, value: str) -> bool:
    """
    $GITHUB_ENV 에 이후 step 에서 쓸 환경변수를 기록한다. 기록했으면 True.
    """
    path = os.getenv("GITHUB_ENV")
    if not path:
        return False
    _append(path, _entry(name, value))
    logger.debug("GITHUB_ENV 기록: %s", name)
    return True
