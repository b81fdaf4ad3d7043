"""
aws_credentials
---------------

AWS 자격증명(AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY)이 유효한지 확인하고,
aws CLI 호출에 넘길 환경변수를 구성하는 모듈.

자격증명 값 자체는 프로세스 환경변수에서 aws CLI 로 그대로 전달될 뿐,
이 패키지가 파일로 저장하거나 로그에 남기지 않는다.
"""

from __future__ import annotations

import json
import os
from typing import Dict, List

from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


SECRET_ENV_NAMES = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN")


def secret_values() -> List[str]:
    """
    로그에서 가려야 할 자격증명 값 목록.
    """
    return [v for v in (os.getenv(n) for n in SECRET_ENV_NAMES) if v]


def aws_env(cfg: DeployConfig) -> Dict[str, str]:
    """
    aws CLI 에 넘길 환경변수. 현재 환경에 리전만 고정해서 덧씌운다.
    """
    env = dict(os.environ)
    env["AWS_REGION"] = cfg.aws_region
    env["AWS_DEFAULT_REGION"] = cfg.aws_region
    # 페이저가 켜져 있으면 CI 에서 멈춘다.
    env.setdefault("AWS_PAGER", "")
    return env


def _run_aws(cfg: DeployConfig, args: List[str], *, timeout: float = 120.0) -> str:
    cmd = ["aws", *args]
    result = run_command(
        cmd,
        env=aws_env(cfg),
        timeout=timeout,
        secrets=secret_values(),
    )
    return result.stdout


def caller_identity(cfg: DeployConfig) -> Dict[str, str]:
    """
    aws sts get-caller-identity 결과(JSON)를 dict 로 반환한다.
    """
    out = _run_aws(cfg, ["sts", "get-caller-identity", "--output", "json"])
    try:
        data = json.loads(out)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"get-caller-identity 응답을 해석할 수 없습니다: {out[:200]!r}") from e
    return {k: str(v) for k, v in data.items()}


def account_id(cfg: DeployConfig) -> str:
    ident = caller_identity(cfg)
    acct = ident.get("Account", "")
    if not acct:
        raise RuntimeError("get-caller-identity 응답에 Account 가 없습니다.")
    return acct


def ensure_credentials(cfg: DeployConfig) -> str:
    """
    자격증명이 유효한지 확인하고 호출자 ARN 을 반환한다.
    유효하지 않으면 RuntimeError.
    """
    if not (os.getenv("AWS_ACCESS_KEY_ID") and os.getenv("AWS_SECRET_ACCESS_KEY")):
        # 프로파일/인스턴스 역할 등 다른 자격증명 소스도 있으므로 경고만 남긴다.
        logger.warning(
            "AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY 가 설정되지 않았습니다. "
            "aws CLI 기본 자격증명 체인을 사용합니다."
        )
    ident = caller_identity(cfg)
    arn = ident.get("Arn", "(unknown)")
    logger.info("AWS 자격증명 확인 완료: %s (region=%s)", arn, cfg.aws_region)
    return arn


def check_credentials(cfg: DeployConfig) -> str:
    """
    자격증명 상태를 확인만 하고 상태 문자열을 반환한다.
    """
    try:
        ident = caller_identity(cfg)
    except RuntimeError as e:
        if "찾을 수 없습니다" in str(e):
            return "AWS: aws 명령을 찾을 수 없어 상태 확인 불가"
        return f"AWS: 자격증명 확인 실패 ({str(e).splitlines()[0]})"
    return f"AWS: 자격증명 유효 ({ident.get('Arn', '(unknown)')})"
