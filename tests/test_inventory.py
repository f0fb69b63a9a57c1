from node_preparer.inventory import list_configs, list_installed


def test_empty_basedir(tmp_path):
    assert list_installed(tmp_path) == []
    assert list_configs(tmp_path) == []


def test_lists_installs_and_configs(tmp_path):
    (tmp_path / "installs" / "my_app_abc123").mkdir(parents=True)
    (tmp_path / "installs" / "other_v2").mkdir()
    (tmp_path / "installs" / "noversion").mkdir()
    (tmp_path / "installs" / "stray_file").write_text("")
    (tmp_path / "configs").mkdir()
    (tmp_path / "configs" / "b.yaml").write_text("")
    (tmp_path / "configs" / "a.yaml").write_text("")
    (tmp_path / "configs" / ".a.yaml.tmp").write_text("")

    installed = list_installed(tmp_path)

    assert [(a.app, a.version) for a in installed] == [("my_app", "abc123"), ("other", "v2")]
    assert installed[0].path == tmp_path / "installs" / "my_app_abc123"
    assert [p.name for p in list_configs(tmp_path)] == ["a.yaml", "b.yaml"]
