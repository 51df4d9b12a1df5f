import pytest

from crossci.settings import DEFAULT_BRANCHES, DEFAULT_MAX_WORKERS, load_settings


def test_defaults():
    settings = load_settings({})
    assert settings.platforms == ()
    assert settings.max_workers == DEFAULT_MAX_WORKERS
    assert settings.output_dir == "."
    assert settings.default_branches == DEFAULT_BRANCHES


def test_values_from_environment():
    settings = load_settings({
        "CROSSCI_PLATFORMS": "gitlab-ci, jenkins",
        "CROSSCI_MAX_WORKERS": "2",
        "CROSSCI_OUTPUT_DIR": "out",
        "CROSSCI_DEFAULT_BRANCHES": "trunk",
    })
    assert settings.platforms == ("gitlab-ci", "jenkins")
    assert settings.max_workers == 2
    assert settings.output_dir == "out"
    assert settings.default_branches == ("trunk",)


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("CROSSCI_PLATFORMS", "circleci")
    assert load_settings().platforms == ("circleci",)


@pytest.mark.parametrize("value", ["many", "0", "-3"])
def test_invalid_worker_count(value):
    with pytest.raises(ValueError, match="CROSSCI_MAX_WORKERS"):
        load_settings({"CROSSCI_MAX_WORKERS": value})
