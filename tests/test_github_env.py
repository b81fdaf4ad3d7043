from eks_deploy_kit import github_env


def test_noop_outside_actions() -> None:
    assert github_env.set_output("sha8", "abc") is False
    assert github_env.export_env("X", "1") is False


def test_set_output_appends_key_value(tmp_path, monkeypatch) -> None:
    out = tmp_path / "output"
    monkeypatch.setenv("GITHUB_OUTPUT", str(out))

    assert github_env.set_output("sha8", "3f9c2a7b")
    assert github_env.set_output("registry", "1.dkr.ecr.x.amazonaws.com")

    assert out.read_text() == "sha8=3f9c2a7b\nregistry=1.dkr.ecr.x.amazonaws.com\n"


def test_export_env_uses_heredoc_for_multiline(tmp_path, monkeypatch) -> None:
    env_file = tmp_path / "env"
    monkeypatch.setenv("GITHUB_ENV", str(env_file))

    github_env.export_env("KUBE_CONFIG_DATA", "line1\nline2")

    lines = env_file.read_text().splitlines()
    assert lines[0].startswith("KUBE_CONFIG_DATA<<")
    delimiter = lines[0].split("<<", 1)[1]
    assert lines[1:] == ["line1", "line2", delimiter]
