from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Callable, Iterable, Mapping, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


REDACTED = "***"

_BRAILLE_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
_ASCII_FRAMES = ["|", "/", "-", "\\"]

# 명령어별 설치 안내 (FileNotFoundError 메시지용)
_TOOL_HINTS = {
    "aws": "AWS CLI v2",
    "docker": "Docker (buildx 포함)",
    "helm": "Helm 3",
    "kubectl": "kubectl",
    "git": "git",
}


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


def _is_tty(stream) -> bool:  # noqa: ANN001
    try:
        return bool(getattr(stream, "isatty") and stream.isatty())
    except Exception:  # noqa: BLE001
        return False


def _progress_enabled_from_env() -> bool | None:
    raw = os.getenv("CLI_SHOW_PROGRESS")
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:0.1f}s"
    minutes = int(seconds // 60)
    sec = int(seconds % 60)
    return f"{minutes}m{sec:02d}s"


def redact(cmd: Sequence[str], secrets: Iterable[str] = ()) -> list[str]:
    """
    로그/에러 메시지에 남길 명령어에서 비밀값을 가린다.
    """
    hidden = [s for s in secrets if s]
    out: list[str] = []
    for part in cmd:
        for s in hidden:
            if s in part:
                part = part.replace(s, REDACTED)
        out.append(part)
    return out


def _display(cmd: Sequence[str], secrets: Iterable[str]) -> str:
    return " ".join(redact(cmd, secrets))


def _hide(text: str, secrets: Iterable[str]) -> str:
    for s in secrets:
        text = text.replace(s, REDACTED)
    return text


def _missing_tool_message(tool: str) -> str:
    hint = _TOOL_HINTS.get(os.path.basename(tool), tool)
    return f"필요한 명령을 찾을 수 없습니다: {tool} ({hint} 가 설치되어 있는지 확인하세요)"


class _IdleProgressIndicator:
    """
    출력이 없는 구간에서만 stderr 에 스피너 + 경과시간을 그린다.
    """

    def __init__(
        self,
        message: str,
        *,
        last_activity: Callable[[], float],
        stream=None,  # noqa: ANN001
        style: str = "braille",
        interval: float = 0.12,
        idle_seconds: float = 2.0,
    ) -> None:
        self._message = message
        self._last_activity = last_activity
        self._stream = stream if stream is not None else sys.stderr
        self._frames = _ASCII_FRAMES if style == "ascii" else _BRAILLE_FRAMES
        self._interval = max(float(interval), 0.02)
        self._idle_seconds = max(float(idle_seconds), 0.0)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._width = 0

    def _render(self, idx: int, elapsed: float) -> None:
        frame = self._frames[idx % len(self._frames)]
        text = f"{frame} {self._message}  {_format_elapsed(elapsed)}"
        self._width = max(self._width, len(text))
        self._stream.write("\r" + text)
        self._stream.flush()

    def clear(self) -> None:
        if self._width <= 0:
            return
        self._stream.write("\r" + (" " * self._width) + "\r")
        self._stream.flush()
        self._width = 0

    def start(self) -> None:
        started = time.monotonic()

        def _run() -> None:
            idx = 0
            while not self._stop.is_set():
                now = time.monotonic()
                if now - self._last_activity() < self._idle_seconds:
                    self.clear()
                    time.sleep(self._interval)
                    continue
                self._render(idx, now - started)
                idx += 1
                time.sleep(self._interval)

        self._thread = threading.Thread(target=_run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        self.clear()


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    input_text: str | None = None,
    timeout: float | None = 900.0,
    stream_output: bool = False,
    secrets: Iterable[str] = (),
    log_output: bool = True,
    spinner_message: str | None = None,
    show_progress: bool | None = None,
    progress_idle_seconds: float = 2.0,
    progress_style: str = "braille",
    progress_interval: float = 0.12,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stream_output=False: stdout/stderr 캡처, 실패 시 요약을 RuntimeError 에 포함
    - stream_output=True : stdout/stderr 를 합쳐서 실시간으로 터미널에 흘린다
      (docker build, helm --wait 처럼 오래 걸리는 명령용)
    - input_text: stdin 으로 전달할 문자열 (docker login --password-stdin 등)
    - secrets: 로그/에러 메시지에서 가릴 값 목록
    - log_output=False: 캡처한 stdout/stderr 를 DEBUG 로그에도 남기지 않는다 (비밀번호 출력 등)
    """
    secrets = [s for s in secrets if s]
    shown = _display(cmd, secrets)
    logger.info("명령 실행: %s", shown)

    if show_progress is None:
        env_show = _progress_enabled_from_env()
        show_progress = True if env_show is None else env_show
    can_render = bool(show_progress) and _is_tty(sys.stderr)
    message = spinner_message or shorten(shown, width=72, placeholder="…")

    last_activity = time.monotonic()

    def _get_last_activity() -> float:
        return last_activity

    indicator: _IdleProgressIndicator | None = None
    if can_render:
        indicator = _IdleProgressIndicator(
            message,
            last_activity=_get_last_activity,
            style=progress_style,
            interval=progress_interval,
            idle_seconds=progress_idle_seconds,
        )

    full_env = dict(env) if env is not None else None

    if stream_output:
        try:
            proc = subprocess.Popen(  # noqa: S603
                list(cmd),
                cwd=cwd,
                env=full_env,
                stdin=subprocess.PIPE if input_text is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise RuntimeError(_missing_tool_message(cmd[0])) from e

        if indicator is not None:
            indicator.start()

        out_lines: list[str] = []
        timer: threading.Timer | None = None
        timed_out = threading.Event()
        if timeout is not None:
            def _kill() -> None:
                timed_out.set()
                proc.kill()

            timer = threading.Timer(float(timeout), _kill)
            timer.daemon = True
            timer.start()

        try:
            if input_text is not None and proc.stdin is not None:
                proc.stdin.write(input_text)
                proc.stdin.close()
            assert proc.stdout is not None
            for line in proc.stdout:
                if indicator is not None:
                    indicator.clear()
                out_lines.append(line)
                sys.stdout.write(line)
                sys.stdout.flush()
                last_activity = time.monotonic()
            returncode = proc.wait()
        finally:
            if timer is not None:
                timer.cancel()
            if proc.stdout is not None:
                proc.stdout.close()
            if indicator is not None:
                indicator.stop()

        if timed_out.is_set():
            raise RuntimeError(f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {shown}")

        combined = "".join(out_lines)
        if returncode != 0:
            detail = _hide(combined.strip(), secrets)
            suffix = "\nstdout/stderr:\n" + shorten(detail, width=2000) if detail else ""
            raise RuntimeError(f"명령 실행 실패: {shown} (exit={returncode}){suffix}")

        return RunResult(returncode=returncode, stdout=combined, stderr="")

    # capture 모드 (조용히 돌리고 실패 시 요약)
    if indicator is not None:
        indicator.start()
    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            input=input_text,
            timeout=timeout,
            cwd=cwd,
            env=full_env,
        )
        if log_output and result.stdout:
            logger.debug("명령 stdout: %s", shorten(_hide(result.stdout.strip(), secrets), width=2000))
        if log_output and result.stderr:
            logger.debug("명령 stderr: %s", shorten(_hide(result.stderr.strip(), secrets), width=2000))
        return RunResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )
    except FileNotFoundError as e:
        raise RuntimeError(_missing_tool_message(cmd[0])) from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {shown}") from e
    except subprocess.CalledProcessError as e:
        stdout = _hide((e.stdout or "").strip(), secrets)
        stderr = _hide((e.stderr or "").strip(), secrets)
        detail = ""
        if stderr:
            detail = "\nstderr:\n" + shorten(stderr, width=2000)
        elif stdout:
            detail = "\nstdout:\n" + shorten(stdout, width=2000)
        raise RuntimeError(f"명령 실행 실패: {shown} (exit={e.returncode}){detail}") from e
    finally:
        if indicator is not None:
            indicator.stop()
