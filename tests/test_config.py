import pytest

from eks_deploy_kit.config import DeployConfig, load_env_files


def _base_env() -> dict[str, str]:
    return {
        "AWS_REGION": "ap-northeast-2",
        "EKS_CLUSTER_NAME": "my-test-cluster",
        "ECR_REPOSITORY": "k8s-cicd-node-js",
    }


def _set_env(monkeypatch: pytest.MonkeyPatch, env: dict[str, str]) -> None:
    for key, value in env.items():
        monkeypatch.setenv(key, value)


def test_missing_required_env_raises_value_error(monkeypatch: pytest.MonkeyPatch) -> None:
    env = _base_env()
    env.pop("EKS_CLUSTER_NAME")
    _set_env(monkeypatch, env)

    with pytest.raises(ValueError) as excinfo:
        DeployConfig.from_env()

    assert "EKS_CLUSTER_NAME" in str(excinfo.value)


def test_defaults_are_derived_from_repository(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_env(monkeypatch, _base_env())

    cfg = DeployConfig.from_env()

    assert cfg.release_name == "k8s-cicd-node-js"
    assert cfg.chart_path == ".devops/k8s/k8s-cicd-node-js"
    assert cfg.namespace == "default"
    assert cfg.service_port == "3000"
    assert cfg.image_tag_length == 8
    assert cfg.helm_wait is True
    assert cfg.ecr_registry is None


def test_explicit_values_override_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    env = _base_env()
    env.update(
        {
            "RELEASE_NAME": "web",
            "CHART_PATH": "charts/web",
            "K8S_NAMESPACE": "prod",
            "HELM_WAIT": "false",
            "IMAGE_TAG_LENGTH": "12",
            "CREATE_ECR_REPOSITORY": "yes",
        }
    )
    _set_env(monkeypatch, env)

    cfg = DeployConfig.from_env()

    assert cfg.release_name == "web"
    assert cfg.chart_path == "charts/web"
    assert cfg.namespace == "prod"
    assert cfg.helm_wait is False
    assert cfg.image_tag_length == 12
    assert cfg.create_ecr_repository is True


def test_invalid_numbers_are_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    env = _base_env()
    env.update({"IMAGE_TAG_LENGTH": "eight", "SERVICE_PORT": "http"})
    _set_env(monkeypatch, env)

    with pytest.raises(ValueError) as excinfo:
        DeployConfig.from_env()

    assert "IMAGE_TAG_LENGTH" in str(excinfo.value)
    assert "SERVICE_PORT" in str(excinfo.value)


def test_later_env_files_override_earlier(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text("ECR_REPOSITORY=first\nAWS_REGION=us-east-1\n")
    (tmp_path / ".env.infra").write_text("ECR_REPOSITORY=second\n")
    monkeypatch.setenv("EKS_CLUSTER_NAME", "c")

    load_env_files(str(tmp_path))
    cfg = DeployConfig.from_env()

    assert cfg.ecr_repository == "second"
    assert cfg.aws_region == "us-east-1"
