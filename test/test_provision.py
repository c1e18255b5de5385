from zipfile import ZipFile
from pathlib import Path
from io import BytesIO
import tarfile
import pytest

import crystalmc.provision
from crystalmc.provision import JavaProvisioner, JdkDownload, ProvisionError
from crystalmc.download import DownloadOrchestrator
from crystalmc.event import SimpleWatcher, CompleteEvent, ErrorEvent


def make_tar_gz(files: dict) -> bytes:
    buf = BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tf.addfile(info, BytesIO(data))
    return buf.getvalue()


def make_zip(files: dict) -> bytes:
    buf = BytesIO()
    with ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


def provisioner_for(system: str, jdk, events: list) -> JavaProvisioner:
    watcher = SimpleWatcher({CompleteEvent: events.append, ErrorEvent: events.append})
    orchestrator = DownloadOrchestrator(watcher=watcher, timeout=5)
    provisioner = JavaProvisioner(orchestrator, watcher=watcher, timeout=5, system=system)
    provisioner.latest_open_jdk = lambda major="8": jdk
    return provisioner


def test_provision_tar_gz(tmp_path, http_server, monkeypatch):

    name = "OpenJDK8U-jre_x64_linux_hotspot_8u352b08.tar.gz"
    data = make_tar_gz({
        "jdk8u352-b08-jre/bin/java": b"#!/bin/sh\n",
        "jdk8u352-b08-jre/lib/rt.jar": b"rt",
    })
    url = http_server.file(name, data)

    def no_zip(*args, **kwargs):
        raise AssertionError("zip extraction used for a tar archive")

    monkeypatch.setattr(crystalmc.provision, "ZipFile", no_zip)

    events = []
    provisioner = provisioner_for("Linux", JdkDownload(url, len(data), name), events)
    data_dir = tmp_path / "data"
    exec_path = provisioner.provision(data_dir)

    runtime_dir = data_dir / "runtime" / "x64"
    assert exec_path == runtime_dir / "jdk8u352-b08-jre" / "bin" / "java"
    assert exec_path.as_posix().endswith("bin/java")
    assert exec_path.read_bytes() == b"#!/bin/sh\n"
    assert (runtime_dir / "jdk8u352-b08-jre" / "lib" / "rt.jar").is_file()

    # The archive is deleted once extracted.
    assert not (runtime_dir / name).exists()

    java_complete = [e for e in events if isinstance(e, CompleteEvent) and e.data == "java"]
    assert len(java_complete) == 1 and java_complete[0].value == exec_path
    assert not any(isinstance(e, ErrorEvent) for e in events)


def test_provision_zip(tmp_path, http_server):

    name = "OpenJDK8U-jre_x64_windows_hotspot_8u352b08.zip"
    data = make_zip({
        "jdk8u352-b08-jre/bin/javaw.exe": b"exe",
        "jdk8u352-b08-jre/bin/java.exe": b"exe",
    })
    url = http_server.file(name, data)

    provisioner = provisioner_for("Windows", JdkDownload(url, len(data), name), [])
    exec_path = provisioner.provision(tmp_path)

    assert exec_path == tmp_path / "runtime" / "x64" / "jdk8u352-b08-jre" / "bin" / "javaw.exe"
    assert exec_path.is_file()


def test_provision_no_build(tmp_path):

    events = []
    provisioner = provisioner_for("Linux", None, events)

    with pytest.raises(ProvisionError) as err:
        provisioner.provision(tmp_path)
    assert err.value.code == ProvisionError.NO_BUILD

    errors = [e for e in events if isinstance(e, ErrorEvent)]
    assert len(errors) == 1 and errors[0].data == "java"


def test_provision_download_error(tmp_path, http_server):

    name = "missing.tar.gz"
    provisioner = provisioner_for("Linux", JdkDownload(f"{http_server.url}/{name}", 10, name), [])

    with pytest.raises(ProvisionError) as err:
        provisioner.provision(tmp_path)
    assert err.value.code == ProvisionError.DOWNLOAD


def test_provision_extract_error(tmp_path, http_server):

    name = "corrupted.tar.gz"
    url = http_server.file(name, b"this is not a gzip archive")
    provisioner = provisioner_for("Linux", JdkDownload(url, 26, name), [])

    with pytest.raises(ProvisionError) as err:
        provisioner.provision(tmp_path)
    assert err.value.code == ProvisionError.EXTRACT


class FakeResponse:

    def __init__(self, data=None, headers=None) -> None:
        self.data = data
        self.headers = headers or {}

    def json(self):
        return self.data


def test_latest_adoptium(monkeypatch):

    requests = []

    def fake_request(method, url, **kwargs):
        requests.append((method, url))
        return FakeResponse([{"binary": {"package": {
            "link": "https://github.com/adoptium/temurin8-binaries/jre.tar.gz",
            "size": 41000000,
            "name": "OpenJDK8U-jre_x64_linux_hotspot_8u352b08.tar.gz"
        }}}])

    monkeypatch.setattr(crystalmc.provision, "http_request", fake_request)

    orchestrator = DownloadOrchestrator()
    jdk = JavaProvisioner(orchestrator, system="Linux").latest_open_jdk("8")
    assert jdk.url == "https://github.com/adoptium/temurin8-binaries/jre.tar.gz"
    assert jdk.size == 41000000
    assert jdk.name == "OpenJDK8U-jre_x64_linux_hotspot_8u352b08.tar.gz"

    method, url = requests[0]
    assert method == "GET"
    assert url.startswith("https://api.adoptium.net/v3/assets/latest/8/hotspot?")
    assert "os=linux" in url and "architecture=x64" in url and "image_type=jre" in url

    JavaProvisioner(orchestrator, system="Windows").latest_open_jdk("8")
    assert "os=windows" in requests[1][1]

    monkeypatch.setattr(crystalmc.provision, "http_request", lambda method, url, **kwargs: FakeResponse([]))
    assert JavaProvisioner(orchestrator, system="Linux").latest_open_jdk("8") is None


def test_latest_corretto(monkeypatch):

    requests = []

    def fake_request(method, url, **kwargs):
        requests.append((method, url))
        return FakeResponse(headers={"Content-Length": "104857600"})

    monkeypatch.setattr(crystalmc.provision, "http_request", fake_request)

    jdk = JavaProvisioner(DownloadOrchestrator(), system="Darwin").latest_open_jdk("8")
    assert requests == [("HEAD", "https://corretto.aws/downloads/latest/amazon-corretto-8-x64-macos-jdk.tar.gz")]
    assert jdk.size == 104857600
    assert jdk.name == "amazon-corretto-8-x64-macos-jdk.tar.gz"


def test_enqueue(tmp_path):

    orchestrator = DownloadOrchestrator()
    provisioner = JavaProvisioner(orchestrator, system="Linux")
    provisioner.latest_open_jdk = lambda major="8": JdkDownload("https://example.net/jre.tar.gz", 10, "jre.tar.gz")

    assert provisioner.enqueue(tmp_path)
    queue = orchestrator.queue("java")
    asset, = queue
    assert asset.dst == tmp_path / "runtime" / "x64" / "jre.tar.gz"
    assert asset.hash is None
    assert queue.size == 10
    assert queue.callback is not None
