import pytest

from eks_deploy_kit import helm_release
from eks_deploy_kit.config import DeployConfig
from eks_deploy_kit.subprocess_utils import RunResult


def _cfg(**kwargs) -> DeployConfig:
    base = dict(
        aws_region="ap-northeast-2",
        eks_cluster_name="my-test-cluster",
        ecr_repository="k8s-cicd-node-js",
        release_name="k8s-cicd-node-js",
        chart_path=".devops/k8s/k8s-cicd-node-js",
    )
    base.update(kwargs)
    return DeployConfig(**base)


def test_upgrade_command_matches_workflow() -> None:
    cmd = helm_release.build_upgrade_command(_cfg(), "reg/k8s-cicd-node-js", "3f9c2a7b")

    assert cmd == [
        "helm", "upgrade", "k8s-cicd-node-js", "--install",
        "--wait", "--timeout", "5m0s",
        "--set", "image.tag=3f9c2a7b",
        "--set", "image.repository=reg/k8s-cicd-node-js",
        "--set", "service.port=3000",
        ".devops/k8s/k8s-cicd-node-js", "-n", "default",
    ]


def test_upgrade_command_is_stable_for_same_config() -> None:
    first = helm_release.build_upgrade_command(_cfg(), "reg/app", "abc")
    second = helm_release.build_upgrade_command(_cfg(), "reg/app", "abc")

    assert first == second


def test_upgrade_command_without_wait_or_port() -> None:
    cmd = helm_release.build_upgrade_command(
        _cfg(helm_wait=False, service_port=None, namespace="prod"), "reg/app", "abc"
    )

    assert "--wait" not in cmd
    assert "service.port=3000" not in cmd
    assert cmd[-2:] == ["-n", "prod"]


def test_upgrade_install_requires_chart_dir(tmp_path) -> None:
    with pytest.raises(ValueError):
        helm_release.upgrade_install(_cfg(chart_path=str(tmp_path / "missing")), "reg/app", "abc")


def test_upgrade_install_passes_kubeconfig(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_run(cmd, **kwargs):  # noqa: ANN001, ANN003
        calls.append((cmd, kwargs["env"]))
        return RunResult(0, "", "")

    monkeypatch.setattr(helm_release, "run_command", fake_run)

    helm_release.upgrade_install(_cfg(chart_path=str(tmp_path)), "reg/app", "abc", kubeconfig="/tmp/kc")

    cmd, env = calls[0]
    assert cmd[:2] == ["helm", "upgrade"]
    assert env["KUBECONFIG"] == "/tmp/kc"


def test_uninstall_missing_release_returns_false(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, **kwargs):  # noqa: ANN001, ANN003
        raise RuntimeError("Error: uninstall: Release not loaded: app: release: not found")

    monkeypatch.setattr(helm_release, "run_command", fake_run)

    assert helm_release.uninstall(_cfg()) is False


def test_status_missing_release_returns_none(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, **kwargs):  # noqa: ANN001, ANN003
        raise RuntimeError("Error: release: not found")

    monkeypatch.setattr(helm_release, "run_command", fake_run)

    assert helm_release.status(_cfg()) is None
