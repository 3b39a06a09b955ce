import asyncio
import threading
from pathlib import Path
from typing import Any, Iterator

import pytest
from aiohttp.test_utils import unused_port
from aiohttp.web import AppRunner, Application, TCPSite
from yarl import URL

from test.unit.token_server import TokenExchangeHandler


@pytest.fixture()
def tmp_dir(tmpdir: Any) -> Path:
    return Path(tmpdir)


@pytest.fixture()
def token_handler() -> TokenExchangeHandler:
    return TokenExchangeHandler()


@pytest.fixture()
def token_server(token_handler: TokenExchangeHandler) -> Iterator[URL]:
    """
    Serves the token exchange endpoint from a background event loop, so both
    blocking and async clients can talk to it.
    """
    app = Application()
    app.router.add_get("/v1/auth/s3-credentials", token_handler.handle)

    loop = asyncio.new_event_loop()
    runner = AppRunner(app, access_log=None)
    loop.run_until_complete(runner.setup())
    port = unused_port()
    site = TCPSite(runner, "127.0.0.1", port)
    loop.run_until_complete(site.start())
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    try:
        yield URL(f"http://127.0.0.1:{port}/v1/auth/s3-credentials")
    finally:
        asyncio.run_coroutine_threadsafe(runner.cleanup(), loop).result(timeout=30)
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=10)
        loop.close()
