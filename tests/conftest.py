from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.error import HTTPError

import pytest

from forge_update.collaborators import ConsentPrompt, OutputSink, RuntimeLocator, ServerPaths
from forge_update.console import configure_output
from forge_update.errors import EXIT_PREREQUISITE, Outcome
from forge_update.lifecycle import ServerLifecycle
from forge_update.models import ArtifactScheme, ServerConfig, VersionBuild


# -----------------------------
# Test doubles
# -----------------------------
class FakeResponse(io.BytesIO):
    def __init__(self, body: bytes):
        super().__init__(body)
        self.headers = {"Content-Length": str(len(body))}


class FakeUrlopen:
    """Routes urllib requests to canned bodies; unknown URLs answer 404."""

    def __init__(self, routes: Dict[str, Union[bytes, dict, list, Exception]]):
        self.routes = routes
        self.requests: List[str] = []

    def __call__(self, req, timeout=None):
        url = req.full_url if hasattr(req, "full_url") else req
        self.requests.append(url)
        if url not in self.routes:
            raise HTTPError(url, 404, "Not Found", {}, None)
        body = self.routes[url]
        if isinstance(body, Exception):
            raise body
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
        return FakeResponse(body)


class FakeApi:
    """Stands in for RemoteApi.fetch_json with a url -> document map."""

    def __init__(self, documents):
        self.documents = documents
        self.calls: List[str] = []

    def fetch_json(self, url):
        self.calls.append(url)
        doc = self.documents[url]
        if isinstance(doc, Exception):
            raise doc
        return doc


class FakeResolver:
    def __init__(self, result: Outcome):
        self.result = result
        self.calls = 0

    def resolve(self, stream="latest"):
        self.calls += 1
        return self.result


class SimulatedInstaller:
    """
    Writes the installer on fetch; on run, creates the artifact named by
    `produces` (or nothing) and returns `run_result`.
    """

    def __init__(self, scheme: ArtifactScheme, produces: Optional[str] = None, run_result: Optional[Outcome] = None):
        self.scheme = scheme
        self.produces = produces
        self.run_result = run_result if run_result is not None else Outcome.ok(0)
        self.fetched: List[VersionBuild] = []
        self.ran: List[Path] = []
        self.eula_present_at_run: Optional[bool] = None

    def fetch_installer(self, vb, directory):
        self.fetched.append(vb)
        path = Path(directory) / self.scheme.installer_name(vb)
        path.write_bytes(b"installer")
        return Outcome.ok(path)

    def run_installer(self, installer_path, java, timeout=None):
        self.ran.append(Path(installer_path))
        self.eula_present_at_run = (Path(installer_path).parent / "eula.txt").exists()
        if self.run_result and self.produces:
            (Path(installer_path).parent / self.produces).write_bytes(b"server")
        return self.run_result


class FakeRuntime(RuntimeLocator):
    def __init__(self, java: Optional[Path] = Path("/usr/bin/java"), provision: Optional[Outcome] = None):
        self.java = java
        self.provision = provision
        self.provisioned = []

    def find_runtime_executable(self):
        return self.java

    def provision_runtime(self, server_id):
        self.provisioned.append(server_id)
        if self.provision is None:
            return Outcome.fail(EXIT_PREREQUISITE, "no java")
        if self.provision:
            self.java = Path("/opt/java/bin/java")
        return self.provision


class FixedConsent(ConsentPrompt):
    def __init__(self, answer: bool):
        self.answer = answer
        self.asked = 0

    def prompt_yes_no(self, title, body, yes_label="Yes", no_label="No"):
        self.asked += 1
        return self.answer


class ListSink(OutputSink):
    def __init__(self):
        self.lines: List[str] = []

    def on_line(self, text):
        self.lines.append(text)


# -----------------------------
# Fixtures
# -----------------------------
@pytest.fixture(autouse=True)
def reset_output():
    configure_output(quiet=True)
    yield
    configure_output()


@pytest.fixture
def scheme():
    return ArtifactScheme()


@pytest.fixture
def remote_vb():
    return VersionBuild("1.20.1", "47.2.0")


@pytest.fixture
def make_lifecycle(tmp_path, scheme, remote_vb):
    def _make(installer=None, resolver=None, runtime=None, consent=None, sink=None, **config):
        return ServerLifecycle(
            ServerConfig(**config),
            ServerPaths(tmp_path),
            scheme=scheme,
            resolver=resolver or FakeResolver(Outcome.ok(remote_vb)),
            installer=installer or SimulatedInstaller(scheme, produces=scheme.artifact_name(remote_vb)),
            runtime=runtime or FakeRuntime(),
            consent=consent or FixedConsent(True),
            sink=sink or ListSink(),
        )
    return _make
