import asyncio
import os

import pytest
from fastapi.testclient import TestClient

from gweld.main import create_app
from gweld.services import known_files_service, reference_graph, session_service

INDEX_HTML = """<html>
    <body><h1>Hello World</h1></body>
</html>"""


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_state():
    reference_graph.reset_references()
    session_service.reset_sessions()
    known_files_service.reset_known_files()
    yield
    reference_graph.reset_references()
    session_service.reset_sessions()
    known_files_service.reset_known_files()


@pytest.fixture
def site(tmp_path):
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text(INDEX_HTML)
    (root / "feed.html").write_text("<html><body><h1>Hello Space</h1></body></html>")
    (root / "main.css").write_text("body { background-color: red; }")
    (root / "index.js").write_text("const hi = 5;")
    (root / "sub_folder").mkdir()
    (root / "sub_folder" / "index.html").write_text("<html><body><h1>Sub</h1></body></html>")
    (root / "empty_folder").mkdir()

    # Must never be reachable from the server
    (tmp_path / "secret.txt").write_text("top secret")
    return root


@pytest.fixture
def empty_site(tmp_path):
    root = tmp_path / "empty"
    root.mkdir()
    return root


@pytest.fixture
def root(site):
    return os.path.realpath(site)


@pytest.fixture
def client(site):
    app = create_app(str(site), watch=False)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def live_app(site):
    """App for httpx.ASGITransport, which doesn't run the lifespan."""
    app = create_app(str(site), watch=False)
    known_files_service.seed_known_files(app.state.serve_root)
    return app


class AsgiCall:
    """
    One GET driven straight through the ASGI interface, so a test decides
    when the client goes away. Set `gone` to disconnect; with
    fail_on_body the first body write raises like a broken socket.
    """

    def __init__(self, app, path, spec_version="2.4", headers=(), fail_on_body=False):
        self.app = app
        self.scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": spec_version},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": path,
            "raw_path": path.encode("latin-1"),
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"testserver")] + list(headers),
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }
        self.fail_on_body = fail_on_body
        self.gone = asyncio.Event()
        self.messages = []
        self.error = None
        self._request_sent = False

    async def receive(self):
        if not self._request_sent:
            self._request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        # Returns without suspending once gone, like a server that has seen the close
        if not self.gone.is_set():
            await self.gone.wait()
        return {"type": "http.disconnect"}

    async def send(self, message):
        if self.fail_on_body and message["type"] == "http.response.body":
            self.gone.set()
            raise OSError(32, "Broken pipe")
        self.messages.append(message)

    async def run(self):
        try:
            await self.app(self.scope, self.receive, self.send)
        except Exception as e:
            self.error = e
        return self

    @property
    def status(self):
        starts = [m for m in self.messages if m["type"] == "http.response.start"]
        return starts[0]["status"] if starts else None

    @property
    def body(self):
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")

    @property
    def completed(self):
        return any(
            m["type"] == "http.response.body" and not m.get("more_body", False)
            for m in self.messages
        )
