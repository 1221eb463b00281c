# docsci_workflow.py
# The docs site check, written with the Python DSL instead of YAML.
from __future__ import annotations

from docsci.dsl import build, checkout, install, job, on_pull_request, on_push, setup_node, wf


def workflow():
    return wf(
        "Test deployment",
        job(
            "test-deploy",
            checkout(fetch_depth=0),       # full history, not a shallow clone
            setup_node("18"),
            install("yarn install --frozen-lockfile"),
            build("yarn build", name="Test build website"),
            cwd="./docs",
        ),
        pull_request=on_pull_request(
            ".github/workflows/website.yml",
            ".github/workflows/deploy-website.yml",
            "docs/**",
        ),
        push=on_push("main"),
    )
