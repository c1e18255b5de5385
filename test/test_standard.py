import hashlib
import json
import pytest

import crystalmc.resolve
from crystalmc.standard import Installer, Launcher, LaunchAttempt
from crystalmc.provision import JavaProvisioner, ProvisionError
from crystalmc.manifest import ManifestError
from crystalmc.event import SimpleWatcher, ValidateEvent, StateEvent
from crystalmc.config import Config


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class FakeDiscovery:

    def __init__(self, exec_path) -> None:
        self.exec_path = exec_path

    def discover(self, data_dir):
        return self.exec_path


@pytest.fixture
def distribution(http_server, config, monkeypatch):
    """Serve a complete version: manifest, asset index, one asset, one library and the
    client jar.
    """

    asset = b"asset object"
    asset_hash = sha1(asset)
    http_server.file(f"resources/{asset_hash[:2]}/{asset_hash}", asset)
    monkeypatch.setattr(crystalmc.resolve, "RESOURCES_URL", f"{http_server.url}/resources/")

    index_url = http_server.file("indexes/1.8.json", json.dumps({
        "objects": {"icons/icon.png": {"hash": asset_hash, "size": len(asset)}}
    }).encode())

    lib = b"library jar"
    lib_url = http_server.file("libraries/org/example/lib/1.0/lib-1.0.jar", lib)

    client = b"client jar"
    client_url = http_server.file("client.jar", client)

    config.distribution_url = http_server.file("CrystalClient.json", json.dumps({
        "id": "1.8.9",
        "type": "release",
        "assets": "1.8",
        "assetIndex": {"id": "1.8", "url": index_url},
        "mainClass": "net.minecraft.client.main.Main",
        "minecraftArguments": "--username ${auth_player_name} --version ${version_name}",
        "libraries": [{
            "name": "org.example:lib:1.0",
            "downloads": {"artifact": {
                "url": lib_url,
                "path": "org/example/lib/1.0/lib-1.0.jar",
                "sha1": sha1(lib),
                "size": len(lib),
            }}
        }],
        "downloads": {"client": {"url": client_url, "sha1": sha1(client), "size": len(client)}},
    }).encode())

    return config


def test_attempt_transitions():

    events = []
    attempt = LaunchAttempt(SimpleWatcher({StateEvent: events.append}))
    assert attempt.state == LaunchAttempt.INIT
    assert not attempt.terminal

    attempt.transition(LaunchAttempt.JAVA_CHECK)
    attempt.transition(LaunchAttempt.JAVA_PROVISIONING)
    attempt.transition(LaunchAttempt.JAVA_FAILED)
    assert attempt.terminal
    assert attempt.history == ["init", "java_check", "java_provisioning", "java_failed"]
    assert [(e.previous, e.state) for e in events] == [
        ("init", "java_check"),
        ("java_check", "java_provisioning"),
        ("java_provisioning", "java_failed"),
    ]

    with pytest.raises(ValueError):
        attempt.transition(LaunchAttempt.JAVA_READY)


def test_attempt_illegal_transition():
    attempt = LaunchAttempt()
    with pytest.raises(ValueError):
        attempt.transition(LaunchAttempt.RUNNING)
    assert attempt.state == LaunchAttempt.INIT
    assert attempt.history == ["init"]


def test_attempt_full_sequence():

    attempt = LaunchAttempt()
    for state in (
        LaunchAttempt.JAVA_CHECK,
        LaunchAttempt.JAVA_READY,
        LaunchAttempt.VALIDATE_VERSION,
        LaunchAttempt.VALIDATE_ASSETS,
        LaunchAttempt.VALIDATE_LIBRARIES,
        LaunchAttempt.VALIDATE_FILES,
        LaunchAttempt.DOWNLOADING,
        LaunchAttempt.EXTRACTING,
        LaunchAttempt.LAUNCHING,
        LaunchAttempt.RUNNING,
        LaunchAttempt.CRASHED,
    ):
        attempt.transition(state)

    assert attempt.terminal


def test_validate_everything(distribution):

    phases = []
    installer = Installer(distribution, watcher=SimpleWatcher({ValidateEvent: lambda e: phases.append(e.phase)}))
    result = installer.validate_everything("1.8.9")

    assert result.error is None
    assert result.manifest.id == "1.8.9"
    assert phases == ["version", "assets", "libraries", "files"]
    assert [report.category for report in result.reports] == ["assets", "libraries", "files", "java"]
    assert result.failures == 0

    common_dir = distribution.common_dir
    assert (common_dir / "versions" / "1.8.9" / "1.8.9.json").is_file()
    assert (common_dir / "versions" / "1.8.9" / "1.8.9.jar").read_bytes() == b"client jar"
    assert (common_dir / "libraries" / "org" / "example" / "lib" / "1.0" / "lib-1.0.jar").read_bytes() == b"library jar"
    assert (common_dir / "assets" / "indexes" / "1.8.json").is_file()

    lib, = result.libraries
    assert lib.id == "org.example:lib:1.0"

    # Everything is valid now, nothing is downloaded again.
    result = Installer(distribution).validate_everything("1.8.9")
    assert result.error is None
    assert all(not len(report.outcomes) for report in result.reports)


def test_validate_everything_manifest_error(config):

    phases = []
    installer = Installer(config, watcher=SimpleWatcher({ValidateEvent: lambda e: phases.append(e.phase)}))
    result = installer.validate_everything("1.8.9")

    assert result.manifest is None
    assert result.reports == []
    assert isinstance(result.error, ManifestError)
    assert result.error.code == ManifestError.FETCH
    assert phases == []


def test_launch_dry(distribution, tmp_path):

    java_exec = tmp_path / "jdk" / "bin" / "java"
    states = []
    launcher = Launcher(distribution,
        watcher=SimpleWatcher({StateEvent: lambda e: states.append(e.state)}),
        discovery=FakeDiscovery(java_exec))

    attempt = launcher.launch("1.8.9", dry=True)

    assert attempt.state == LaunchAttempt.LAUNCHING
    assert states == [
        "java_check",
        "java_ready",
        "validate_version",
        "validate_assets",
        "validate_libraries",
        "validate_files",
        "downloading",
        "launching",
    ]
    assert attempt.java_exec == java_exec
    assert attempt.manifest.id == "1.8.9"
    assert "net.minecraft.client.main.Main" in attempt.args
    assert attempt.args[-2:] == ["--height", "720"]
    assert attempt.process is None

    # The discovered executable is saved to the configuration.
    saved = Config(distribution.path)
    saved.load()
    assert saved.java_executable == str(java_exec)


def test_launch_provisioning_failure(config, monkeypatch):

    monkeypatch.setattr(JavaProvisioner, "latest_open_jdk", lambda self, major="8": None)

    states = []
    launcher = Launcher(config,
        watcher=SimpleWatcher({StateEvent: lambda e: states.append(e.state)}),
        discovery=FakeDiscovery(None))

    with pytest.raises(ProvisionError) as err:
        launcher.launch("1.8.9")

    assert err.value.code == ProvisionError.NO_BUILD
    assert states == ["java_check", "java_provisioning", "java_failed"]
    assert config.java_executable is None
