# presets.py
from __future__ import annotations

from .dsl import build, checkout, install, job, on_pull_request, on_push, setup_node, wf
from .model import Workflow


WEBSITE_PATHS = (
    ".github/workflows/website.yml",
    ".github/workflows/deploy-website.yml",
    "docs/**",
)


def website(
    *,
    docs_dir: str = "./docs",
    node_version: str = "18",
    install_cmd: str = "yarn install --frozen-lockfile",
    build_cmd: str = "yarn build",
    runs_on: str = "ubuntu-latest",
) -> Workflow:
    """
    Test that the documentation website builds.

    Runs on pull requests touching the site or its workflows, and on pushes to main.
    """
    return wf(
        "Test deployment",
        job(
            "test-deploy",
            checkout(fetch_depth=0),
            setup_node(node_version),
            install(install_cmd),
            build(build_cmd, name="Test build website"),
            runs_on=runs_on,
            display_name="Test deployment",
            cwd=docs_dir,
        ),
        pull_request=on_pull_request(*WEBSITE_PATHS),
        push=on_push("main"),
    )
