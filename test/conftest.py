from http.server import ThreadingHTTPServer, SimpleHTTPRequestHandler
from functools import partial
from threading import Thread
import pytest


def pytest_addoption(parser):
    parser.addoption("--runslow", action="store_true", default=False, help="run slow tests")

def pytest_configure(config):
    config.addinivalue_line("markers", "slow: mark test as slow to run")

def pytest_collection_modifyitems(config, items):

    if config.getoption("--runslow"):
        return

    skip_slow = pytest.mark.skip(reason="need --runslow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


class _QuietHandler(SimpleHTTPRequestHandler):

    def log_message(self, format, *args):
        pass


class LocalServer:
    """A local HTTP server serving the files of its root directory.
    """

    def __init__(self, root) -> None:
        self.root = root
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), partial(_QuietHandler, directory=str(root)))
        self.url = f"http://127.0.0.1:{self.server.server_address[1]}"
        self.thread = Thread(target=self.server.serve_forever, daemon=True)

    def file(self, name: str, data: bytes) -> str:
        """Write a file to be served and return its URL.
        """
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"{self.url}/{name}"


@pytest.fixture
def http_server(tmp_path):
    """This fixture starts a local HTTP server serving files from a temporary directory.
    """

    root = tmp_path / "www"
    root.mkdir()
    server = LocalServer(root)
    server.thread.start()
    yield server
    server.server.shutdown()
    server.server.server_close()


@pytest.fixture
def config(tmp_path):
    """This fixture is used to create a configuration isolated in a temporary directory.
    """

    from crystalmc.config import Config

    config = Config(tmp_path / "launcher" / "config.json")
    config.data_dir = tmp_path / "data"
    config.common_dir = tmp_path / "common"
    config.distribution_url = "http://127.0.0.1:1/CrystalClient.json"
    return config
