from pathlib import Path

from docsci.config import DEFAULT_WORKFLOW, Settings


def test_defaults_without_environment():
    settings = Settings.from_env({})
    assert settings.work_dir == Path(".docsci/work")
    assert settings.keep_workspace is False
    assert settings.max_workers is None
    assert settings.webhook_secret is None
    assert settings.workflow == DEFAULT_WORKFLOW


def test_from_env():
    settings = Settings.from_env(
        {
            "DOCSCI_WORK_DIR": "/tmp/ws",
            "DOCSCI_TOOLCACHE": "/opt/hostedtoolcache",
            "DOCSCI_KEEP_WORKSPACE": "yes",
            "DOCSCI_MAX_WORKERS": "3",
            "DOCSCI_WEBHOOK_SECRET": "abc",
            "DOCSCI_WORKFLOW": "ci.yml",
        }
    )
    assert settings.work_dir == Path("/tmp/ws")
    assert settings.toolcache == Path("/opt/hostedtoolcache")
    assert settings.keep_workspace is True
    assert settings.max_workers == 3
    assert settings.webhook_secret == "abc"
    assert settings.workflow == "ci.yml"


def test_override_skips_none():
    settings = Settings(max_workers=2).override(max_workers=None, keep_workspace=True)
    assert settings.max_workers == 2
    assert settings.keep_workspace is True
