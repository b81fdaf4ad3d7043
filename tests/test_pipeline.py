from typing import List

import pytest

from eks_deploy_kit import pipeline
from eks_deploy_kit.config import DeployConfig


SHA = "3f9c2a7be1d04c55a2b1e8f6d7c3b9a0e4f1d2c6"
REGISTRY = "123456789012.dkr.ecr.ap-northeast-2.amazonaws.com"


def _minimal_cfg(**kwargs) -> DeployConfig:
    base = dict(
        aws_region="ap-northeast-2",
        eks_cluster_name="my-test-cluster",
        ecr_repository="k8s-cicd-node-js",
        release_name="k8s-cicd-node-js",
        chart_path=".devops/k8s/k8s-cicd-node-js",
    )
    base.update(kwargs)
    return DeployConfig(**base)


@pytest.fixture
def fake_tools(monkeypatch: pytest.MonkeyPatch) -> List[tuple]:
    """
    외부 명령을 부르는 함수들을 기록용 가짜로 바꾼다.
    """
    calls: List[tuple] = []
    monkeypatch.setenv("GITHUB_SHA", SHA)

    def build(cfg, registry, tag):  # noqa: ANN001
        calls.append(("build", registry, tag))
        return f"{registry}/{cfg.ecr_repository}:{tag}"

    def upgrade(cfg, repository, tag, kubeconfig=None):  # noqa: ANN001
        calls.append(("deploy", repository, tag, kubeconfig))

    monkeypatch.setattr(pipeline.aws_credentials, "ensure_credentials", lambda cfg: "arn:aws:iam::1:user/ci")
    monkeypatch.setattr(pipeline.aws_ecr, "login", lambda cfg: REGISTRY)
    monkeypatch.setattr(pipeline.aws_ecr, "resolve_registry", lambda cfg: REGISTRY)
    monkeypatch.setattr(pipeline.aws_ecr, "build_and_push_image", build)
    monkeypatch.setattr(pipeline.aws_eks, "update_kubeconfig", lambda cfg: "/work/kubeconfig")
    monkeypatch.setattr(pipeline.aws_eks, "export_kubeconfig", lambda path: False)
    monkeypatch.setattr(pipeline.helm_release, "preflight", lambda kubeconfig: None)
    monkeypatch.setattr(pipeline.helm_release, "upgrade_install", upgrade)
    return calls


def test_apply_all_runs_every_step_in_order(fake_tools: List[tuple]) -> None:
    summary, has_failures = pipeline.apply_all(_minimal_cfg())

    assert not has_failures
    for name in pipeline.ALL_STEPS:
        assert f"- {name}: OK" in summary
    assert fake_tools == [
        ("build", REGISTRY, SHA[:8]),
        ("deploy", f"{REGISTRY}/k8s-cicd-node-js", SHA[:8], "/work/kubeconfig"),
    ]


def test_deploy_uses_the_tag_that_was_pushed(fake_tools: List[tuple]) -> None:
    state = pipeline.PipelineState()

    pipeline.apply_all(_minimal_cfg(), tag_override="release-7", state=state)

    built = [c for c in fake_tools if c[0] == "build"][0]
    deployed = [c for c in fake_tools if c[0] == "deploy"][0]
    assert built[2] == deployed[2] == state.image_tag == "release-7"
    assert state.pushed


def test_fail_fast_stops_remaining_steps(fake_tools: List[tuple], monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_login(cfg):  # noqa: ANN001
        raise RuntimeError("명령 실행 실패: docker login (exit=1)")

    monkeypatch.setattr(pipeline.aws_ecr, "login", failing_login)

    summary, has_failures = pipeline.apply_all(_minimal_cfg())

    assert has_failures
    assert "- login: FAILED" in summary
    for name in ("build", "kubeconfig", "deploy"):
        assert f"- {name}: NOT RUN" in summary
    assert fake_tools == []


def test_deploy_only_without_tag_refuses(fake_tools: List[tuple]) -> None:
    summary, has_failures = pipeline.apply_all(_minimal_cfg(), only_steps=["deploy"])

    assert has_failures
    assert "- deploy: FAILED" in summary
    assert "- build: SKIPPED" in summary
    assert fake_tools == []


def test_deploy_only_with_explicit_tag(fake_tools: List[tuple], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUBECONFIG", "/home/ci/.kube/config")

    _, has_failures = pipeline.apply_all(_minimal_cfg(), only_steps=["deploy"], tag_override="abc12345")

    assert not has_failures
    assert fake_tools == [
        ("deploy", f"{REGISTRY}/k8s-cicd-node-js", "abc12345", "/home/ci/.kube/config"),
    ]


def test_tag_step_writes_github_output(fake_tools: List[tuple], tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    out = tmp_path / "out"
    monkeypatch.setenv("GITHUB_OUTPUT", str(out))

    pipeline.apply_all(_minimal_cfg(), only_steps=["tag"])

    assert f"sha8={SHA[:8]}" in out.read_text()


def test_plan_all_lists_steps() -> None:
    plan = pipeline.plan_all(_minimal_cfg(), only_steps=["tag", "build"])

    assert "- tag: ENABLED" in plan
    assert "- build: ENABLED" in plan
    assert "- deploy: SKIPPED" in plan
    assert "k8s-cicd-node-js" in plan


def test_resolve_paths_is_relative_to_base_dir(tmp_path) -> None:
    cfg = pipeline.resolve_paths(_minimal_cfg(), str(tmp_path))

    assert cfg.chart_path == str(tmp_path / ".devops/k8s/k8s-cicd-node-js")
    assert cfg.build_context == str(tmp_path)
    assert cfg.kubeconfig_path == str(tmp_path / "kubeconfig")


def test_check_all_reports_chart_and_tools(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    pipeline.chart.scaffold_chart(str(tmp_path / ".devops/k8s/k8s-cicd-node-js"), "k8s-cicd-node-js")
    monkeypatch.setattr(pipeline.shutil, "which", lambda tool: f"/usr/bin/{tool}")
    monkeypatch.setattr(pipeline.aws_credentials, "check_credentials", lambda cfg: "AWS: 자격증명 유효 (arn)")
    monkeypatch.setattr(pipeline.aws_ecr, "check_repository", lambda cfg: "ECR: 리포지토리 존재함 (app)")
    monkeypatch.setattr(pipeline.aws_eks, "check_cluster", lambda cfg: "EKS: 클러스터 ACTIVE (c)")

    report, has_issues = pipeline.check_all(_minimal_cfg(), base_dir=str(tmp_path), show_all=True)

    assert not has_issues, report
    assert "Chart: k8s-cicd-node-js-0.1.0" in report


def test_check_all_flags_missing_chart(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(pipeline.shutil, "which", lambda tool: None)
    monkeypatch.setattr(pipeline.aws_credentials, "check_credentials", lambda cfg: "AWS: 자격증명 유효 (arn)")
    monkeypatch.setattr(pipeline.aws_ecr, "check_repository", lambda cfg: "ECR: 리포지토리 없음 (app)")
    monkeypatch.setattr(pipeline.aws_eks, "check_cluster", lambda cfg: "EKS: 클러스터 ACTIVE (c)")

    report, has_issues = pipeline.check_all(_minimal_cfg(), base_dir=str(tmp_path))

    assert has_issues
    assert "Chart.yaml" in report
    assert "helm: 설치되지 않음" in report
    assert "리포지토리 없음" in report


def test_teardown_uninstalls_release(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    monkeypatch.setattr(pipeline.aws_eks, "update_kubeconfig", lambda cfg: "/work/kubeconfig")

    def uninstall(cfg, kubeconfig=None):  # noqa: ANN001
        calls.append((cfg.release_name, kubeconfig))
        return True

    monkeypatch.setattr(pipeline.helm_release, "uninstall", uninstall)
    monkeypatch.setattr(
        pipeline.helm_release, "status",
        lambda cfg, kubeconfig=None: {"name": cfg.release_name, "version": 4, "info": {"status": "deployed"}},
    )

    summary = pipeline.teardown(_minimal_cfg())

    assert calls == [("k8s-cicd-node-js", "/work/kubeconfig")]
    assert "- revision: 4 (deployed)" in summary
    assert "삭제됨" in summary


def test_teardown_skips_uninstall_when_release_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    monkeypatch.setenv("KUBECONFIG", "/home/ci/.kube/config")
    monkeypatch.setattr(pipeline.helm_release, "status", lambda cfg, kubeconfig=None: calls.append(kubeconfig))
    monkeypatch.setattr(pipeline.helm_release, "uninstall", lambda cfg, kubeconfig=None: calls.append("uninstall"))

    summary = pipeline.teardown(_minimal_cfg(), refresh_kubeconfig=False)

    assert calls == ["/home/ci/.kube/config"]
    assert "릴리즈 없음" in summary
    assert "revision" not in summary
