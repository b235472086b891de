"""Fixtures for the e2e suite.

When GREETING_E2E_RECEIVER_URL / GREETING_E2E_API_URL are set the tests run
against that deployment; otherwise the fake pipeline is served in-process.
"""

import os
import socket
import threading
import time

import pytest
import uvicorn

from greeting_e2e.fake_pipeline import create_app


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(scope="session")
def pipeline_urls():
    """Receiver and API base URLs for the pipeline under test."""
    receiver_url = os.environ.get("GREETING_E2E_RECEIVER_URL")
    api_url = os.environ.get("GREETING_E2E_API_URL")
    if receiver_url and api_url:
        yield receiver_url, api_url
        return

    port = _free_port()
    server = uvicorn.Server(
        uvicorn.Config(create_app(processing_delay_seconds=0.5), host="127.0.0.1", port=port, log_level="warning")
    )
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    deadline = time.monotonic() + 10
    while not server.started:
        if time.monotonic() > deadline:
            raise RuntimeError("Fake pipeline did not start")
        time.sleep(0.05)

    url = f"http://127.0.0.1:{port}"
    yield url, url

    server.should_exit = True
    thread.join(timeout=5)
