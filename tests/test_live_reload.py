import asyncio

import httpx
import pytest

from gweld.models.common_models import EventKind, FsEvent
from gweld.services import known_files_service
from gweld.services.invalidation_service import handle_fs_event
from gweld.services.session_service import close_all_sessions, sessions_watching


def make_client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


async def subscribe(client, page):
    """Open the event stream for page and wait until the server holds it."""
    request = asyncio.ensure_future(
        client.get("/_has_update", headers={"Referer": f"http://testserver{page}"})
    )
    for _ in range(200):
        if sessions_watching(page):
            return request
        await asyncio.sleep(0.01)
    request.cancel()
    raise AssertionError(f"no session registered for {page}")


@pytest.mark.anyio
async def test_event_stream_receives_reload(live_app):
    root = live_app.state.serve_root
    async with make_client(live_app) as client:
        await client.get("/index.html")
        stream = await subscribe(client, "/index.html")

        handle_fs_event(root, FsEvent(kind=EventKind.MODIFIED, path="index.html"))
        response = await asyncio.wait_for(stream, timeout=5)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.text == "data: 'reload'\n\n"
    assert sessions_watching("/index.html") == set()


@pytest.mark.anyio
async def test_live_reloads_when_assets_change(live_app):
    root = live_app.state.serve_root
    async with make_client(live_app) as client:
        await client.get("/index.html")
        await client.get("/main.css", headers={"Referer": "http://testserver/index.html"})
        page = await subscribe(client, "/index.html")
        feed = await subscribe(client, "/feed.html")

        notified = handle_fs_event(root, FsEvent(kind=EventKind.MODIFIED, path="main.css"))
        response = await asyncio.wait_for(page, timeout=5)

        assert len(notified) == 1
        assert response.text == "data: 'reload'\n\n"
        assert not feed.done()

        close_all_sessions()
        assert (await asyncio.wait_for(feed, timeout=5)).text == ""


@pytest.mark.anyio
async def test_sub_directory_page_reloads(live_app):
    root = live_app.state.serve_root
    async with make_client(live_app) as client:
        await client.get("/sub_folder/")
        stream = await subscribe(client, "/sub_folder/index.html")

        handle_fs_event(root, FsEvent(kind=EventKind.MODIFIED, path="sub_folder/index.html"))
        response = await asyncio.wait_for(stream, timeout=5)

    assert response.text == "data: 'reload'\n\n"


@pytest.mark.anyio
async def test_empty_root_reloads_once_index_appears(empty_site):
    from gweld.main import create_app

    app = create_app(str(empty_site), watch=False)
    root = app.state.serve_root
    known_files_service.seed_known_files(root)

    async with make_client(app) as client:
        landing = await client.get("/index.html")
        assert landing.status_code == 200
        assert "No index.html found yet" in landing.text

        stream = await subscribe(client, "/index.html")
        (empty_site / "index.html").write_text("<html><body><h1>Hello World</h1></body></html>")
        handle_fs_event(root, FsEvent(kind=EventKind.RENAMED, path="index.html"))

        response = await asyncio.wait_for(stream, timeout=5)
        assert response.text == "data: 'reload'\n\n"

        page = await client.get("/index.html")
        assert "<h1>Hello World</h1>" in page.text
        assert "No index.html found yet" not in page.text


@pytest.mark.anyio
async def test_live_reloads_es_modules(live_app, site):
    root = live_app.state.serve_root
    (site / "main.js").write_text('import {helloWorld} from "./helloworld.js"\nhelloWorld();')
    (site / "helloworld.js").write_text("export function helloWorld() {}")
    known_files_service.seed_known_files(root)

    async with make_client(live_app) as client:
        await client.get("/index.html")
        await client.get("/main.js", headers={"Referer": "http://testserver/index.html"})
        await client.get("/helloworld.js", headers={"Referer": "http://testserver/main.js"})
        stream = await subscribe(client, "/index.html")

        handle_fs_event(root, FsEvent(kind=EventKind.MODIFIED, path="helloworld.js"))
        response = await asyncio.wait_for(stream, timeout=5)

    assert response.text == "data: 'reload'\n\n"
