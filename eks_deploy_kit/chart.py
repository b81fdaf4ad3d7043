"""
chart
-----

패키지에 포함된 Helm 차트를 프로젝트에 생성(scaffold)하고,
차트의 helper 템플릿(_helpers.tpl)과 Deployment/Service 매니페스트를
파이썬으로 그대로 계산해서 미리보기(render)하는 모듈.

실제 클러스터 적용은 항상 helm 바이너리(helm_release)로 한다.
여기 계산은 helm 이 만들 매니페스트와 같은 이름/라벨/포트를 확인하는 용도다.
"""

from __future__ import annotations

import copy
import os
import re
from dataclasses import dataclass, field
from importlib import resources
from typing import Any, Dict, Iterable, List, Optional

import yaml

from .logging_utils import get_logger


logger = get_logger(__name__)


# Kubernetes 이름 필드 최대 길이 (DNS label)
MAX_NAME_LENGTH = 63

RELEASE_SERVICE = "Helm"

CHART_FILES = [
    "Chart.yaml",
    "values.yaml",
    ".helmignore",
    "templates/_helpers.tpl",
    "templates/deployment.yaml",
    "templates/service.yaml",
]

_INT_RE = re.compile(r"^[-+]?[1-9][0-9]*$")


@dataclass(frozen=True)
class ChartMeta:
    name: str
    version: str
    app_version: Optional[str] = None


@dataclass
class Chart:
    path: str
    meta: ChartMeta
    values: Dict[str, Any] = field(default_factory=dict)


def _read_yaml(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_chart(path: str) -> Chart:
    """
    차트 디렉토리에서 Chart.yaml / values.yaml 을 읽는다.
    """
    chart_file = os.path.join(path, "Chart.yaml")
    if not os.path.exists(chart_file):
        raise ValueError(f"Chart.yaml 을 찾을 수 없습니다: {chart_file}")

    raw = _read_yaml(chart_file) or {}
    if not raw.get("name") or not raw.get("version"):
        raise ValueError(f"Chart.yaml 에 name/version 이 필요합니다: {chart_file}")

    app_version = raw.get("appVersion")
    meta = ChartMeta(
        name=str(raw["name"]),
        version=str(raw["version"]),
        app_version=str(app_version) if app_version not in (None, "") else None,
    )

    values_file = os.path.join(path, "values.yaml")
    values: Dict[str, Any] = {}
    if os.path.exists(values_file):
        values = _read_yaml(values_file) or {}
        if not isinstance(values, dict):
            raise ValueError(f"values.yaml 최상위는 mapping 이어야 합니다: {values_file}")

    return Chart(path=path, meta=meta, values=values)


# -----------------------------
# --set 파싱 / values 병합
# -----------------------------


def _split_unescaped(text: str, sep: str) -> List[str]:
    parts: List[str] = []
    buf: List[str] = []
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            buf.append(text[i:i + 2])
            i += 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth = max(depth - 1, 0)
        if ch == sep and depth == 0:
            parts.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
        i += 1
    parts.append("".join(buf))
    return parts


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def typed_value(raw: str) -> Any:
    """
    helm --set 값 타입 규칙: true/false/null, 0 또는 선행 0 이 없는 정수는
    해당 타입으로, 나머지는 문자열.
    """
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    if raw == "0":
        return 0
    if _INT_RE.match(raw):
        return int(raw)
    return raw


def _parse_value(raw: str, as_string: bool) -> Any:
    if raw.startswith("{") and raw.endswith("}"):
        inner = raw[1:-1]
        if not inner:
            return []
        return [_parse_value(p, as_string) for p in _split_unescaped(inner, ",")]
    value = _unescape(raw)
    return value if as_string else typed_value(value)


def parse_set_values(pairs: Iterable[str], *, as_string: bool = False) -> Dict[str, Any]:
    """
    ["image.tag=abc", "service.port=3000"] 같은 --set 인자를 중첩 dict 로 바꾼다.
    as_string=True 는 --set-string 과 같다.
    """
    result: Dict[str, Any] = {}
    for pair in pairs:
        for item in _split_unescaped(pair, ","):
            if not item:
                continue
            if "=" not in item:
                raise ValueError(f"--set 형식이 올바르지 않습니다 (key=value): {item!r}")
            key, raw = item.split("=", 1)
            path = [_unescape(k) for k in _split_unescaped(key, ".")]
            if any(not k for k in path):
                raise ValueError(f"--set 키가 올바르지 않습니다: {key!r}")

            node = result
            for k in path[:-1]:
                child = node.get(k)
                if not isinstance(child, dict):
                    child = {}
                    node[k] = child
                node = child
            node[path[-1]] = _parse_value(raw, as_string)
    return result


def merge_values(base: Dict[str, Any], override: Dict[str, Any], *,
                 keep_null: bool = False) -> Dict[str, Any]:
    """
    override 를 base 위에 깊은 병합한 새 dict 를 반환한다.
    override 값이 None 이면 해당 키를 지운다. (helm 과 동일)

    keep_null=True 는 --set 인자끼리 합칠 때 쓴다. None 을 그대로 남겨서
    마지막에 차트 values 와 병합할 때 키가 지워지게 한다.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if value is None:
            if keep_null:
                merged[key] = None
            else:
                merged.pop(key, None)
        elif isinstance(value, dict):
            child = merged.get(key)
            merged[key] = merge_values(child if isinstance(child, dict) else {}, value, keep_null=keep_null)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# -----------------------------
# _helpers.tpl
# -----------------------------


def _trunc_name(value: str) -> str:
    # trunc 63 | trimSuffix "-"  (trimSuffix 는 한 번만 제거)
    value = value[:MAX_NAME_LENGTH]
    if value.endswith("-"):
        value = value[:-1]
    return value


def _is_empty(value: Any) -> bool:
    # go template 의 default 와 같은 기준 (0, false, 빈 문자열/컬렉션은 비어 있음)
    if value is None or isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


def _go_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _name_override(meta: ChartMeta, values: Dict[str, Any]) -> str:
    # --set nameOverride=123 처럼 타입이 바뀐 값도 helm 처럼 문자열로 쓴다.
    override = values.get("nameOverride")
    return meta.name if _is_empty(override) else _go_str(override)


def chart_name(meta: ChartMeta, values: Dict[str, Any]) -> str:
    return _trunc_name(_name_override(meta, values))


def fullname(meta: ChartMeta, release_name: str, values: Dict[str, Any]) -> str:
    override = values.get("fullnameOverride")
    if not _is_empty(override):
        return _trunc_name(_go_str(override))
    name = _name_override(meta, values)
    if name in release_name:
        return _trunc_name(release_name)
    return _trunc_name(f"{release_name}-{name}")


def chart_label(meta: ChartMeta) -> str:
    return _trunc_name(f"{meta.name}-{meta.version}".replace("+", "_"))


def selector_labels(meta: ChartMeta, release_name: str, values: Dict[str, Any]) -> Dict[str, str]:
    return {
        "app.kubernetes.io/name": chart_name(meta, values),
        "app.kubernetes.io/instance": release_name,
    }


def labels(meta: ChartMeta, release_name: str, values: Dict[str, Any]) -> Dict[str, str]:
    out = {"helm.sh/chart": chart_label(meta)}
    out.update(selector_labels(meta, release_name, values))
    if meta.app_version:
        out["app.kubernetes.io/version"] = meta.app_version
    out["app.kubernetes.io/managed-by"] = RELEASE_SERVICE
    return out


# -----------------------------
# 매니페스트 렌더링
# -----------------------------


def _require(values: Dict[str, Any], dotted: str) -> Any:
    node: Any = values
    for key in dotted.split("."):
        if not isinstance(node, dict) or key not in node:
            raise ValueError(f"values 에 {dotted} 가 없습니다.")
        node = node[key]
    return node


def _image(meta: ChartMeta, values: Dict[str, Any]) -> str:
    repository = _require(values, "image.repository")
    tag = (values.get("image") or {}).get("tag")
    if _is_empty(tag):
        tag = meta.app_version or ""
    return f"{repository}:{tag}"


def _deployment(meta: ChartMeta, release_name: str, values: Dict[str, Any]) -> Dict[str, Any]:
    name = fullname(meta, release_name, values)
    pod_meta: Dict[str, Any] = {}
    if values.get("podAnnotations"):
        pod_meta["annotations"] = copy.deepcopy(values["podAnnotations"])
    pod_meta["labels"] = selector_labels(meta, release_name, values)

    container: Dict[str, Any] = {
        "name": meta.name,
        "securityContext": copy.deepcopy(values.get("securityContext") or {}),
        "image": _image(meta, values),
        "imagePullPolicy": values.get("image", {}).get("pullPolicy"),
        "ports": [
            {
                "name": "http",
                "containerPort": _require(values, "service.targetPort"),
                "protocol": "TCP",
            }
        ],
        "resources": copy.deepcopy(values.get("resources") or {}),
    }

    pod_spec: Dict[str, Any] = {}
    if values.get("imagePullSecrets"):
        pod_spec["imagePullSecrets"] = copy.deepcopy(values["imagePullSecrets"])
    pod_spec["securityContext"] = copy.deepcopy(values.get("podSecurityContext") or {})
    pod_spec["containers"] = [container]
    for key in ("nodeSelector", "affinity", "tolerations"):
        if values.get(key):
            pod_spec[key] = copy.deepcopy(values[key])

    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": name,
            "labels": labels(meta, release_name, values),
        },
        "spec": {
            "replicas": values.get("replicaCount", 1),
            "selector": {"matchLabels": selector_labels(meta, release_name, values)},
            "template": {"metadata": pod_meta, "spec": pod_spec},
        },
    }


def _service(meta: ChartMeta, release_name: str, values: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": fullname(meta, release_name, values),
            "labels": labels(meta, release_name, values),
        },
        "spec": {
            "type": values.get("service", {}).get("type", "ClusterIP"),
            "ports": [
                {
                    "port": _require(values, "service.port"),
                    "targetPort": _require(values, "service.targetPort"),
                    "protocol": "TCP",
                    "name": "http",
                }
            ],
            "selector": selector_labels(meta, release_name, values),
        },
    }


def render_manifests(
    chart: Chart,
    release_name: str,
    overrides: Optional[Dict[str, Any]] = None,
    namespace: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    values.yaml + overrides 로 Deployment, Service 매니페스트를 만든다.
    namespace 를 주면 metadata.namespace 를 채운다. (helm template -n 과 동일하게
    템플릿 자체에는 namespace 가 없으므로 미리보기에서만 표시용)
    """
    if not release_name:
        raise ValueError("릴리즈 이름이 비어 있습니다.")
    values = merge_values(chart.values, overrides or {})
    docs = [
        _deployment(chart.meta, release_name, values),
        _service(chart.meta, release_name, values),
    ]
    if namespace:
        for doc in docs:
            doc["metadata"]["namespace"] = namespace
    return docs


def dump_manifests(docs: List[Dict[str, Any]]) -> str:
    return yaml.safe_dump_all(docs, sort_keys=False, default_flow_style=False)


# -----------------------------
# scaffold
# -----------------------------


def _packaged(relpath: str) -> str:
    return resources.files("eks_deploy_kit.data").joinpath(f"chart/{relpath}").read_text(encoding="utf-8")


def scaffold_chart(target_dir: str, name: str, *, force: bool = False) -> List[str]:
    """
    패키지에 포함된 차트를 target_dir 에 생성하고, Chart.yaml 의 name 을 바꾼다.
    이미 있는 파일은 force=False 면 건너뛴다. 생성한 파일 경로 목록을 반환한다.
    """
    if not name:
        raise ValueError("차트 이름이 비어 있습니다.")

    written: List[str] = []
    for rel in CHART_FILES:
        dest = os.path.join(target_dir, rel)
        if os.path.exists(dest) and not force:
            logger.info("이미 존재하여 건너뜀: %s", dest)
            continue

        text = _packaged(rel)
        if rel == "Chart.yaml":
            data = yaml.safe_load(text)
            data["name"] = name
            text = yaml.safe_dump(data, sort_keys=False)

        os.makedirs(os.path.dirname(dest), exist_ok=True)
        with open(dest, "w", encoding="utf-8") as f:
            f.write(text)
        written.append(dest)
        logger.debug("차트 파일 생성: %s", dest)

    return written
