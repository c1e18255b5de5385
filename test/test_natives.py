from zipfile import ZipFile
from pathlib import Path

from crystalmc.natives import extract_natives, extract_all
from crystalmc.artifact import Library


def make_archive(path: Path, entries: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with ZipFile(path, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


def test_extract_natives(tmp_path):

    archive = make_archive(tmp_path / "natives-linux.jar", {
        "META-INF/MANIFEST.MF": b"Manifest-Version: 1.0",
        "META-INF/": b"",
        "liblwjgl64.so": b"lwjgl",
        "linux/libopenal64.so": b"openal",
        "LICENSE": b"license",
    })

    dst = tmp_path / "natives"
    count = extract_natives(archive, dst, ["META-INF/", "LICENSE"])

    assert count == 2
    assert (dst / "liblwjgl64.so").read_bytes() == b"lwjgl"
    assert (dst / "linux" / "libopenal64.so").read_bytes() == b"openal"
    assert not (dst / "META-INF").exists()
    assert not (dst / "LICENSE").exists()

    # Default exclusion only excludes META-INF.
    dst = tmp_path / "natives_default"
    assert extract_natives(archive, dst) == 3
    assert (dst / "LICENSE").is_file()


def test_extract_natives_errors(tmp_path):

    # Errors are logged, never raised.
    assert extract_natives(tmp_path / "missing.jar", tmp_path / "dst") == 0

    corrupted = tmp_path / "corrupted.jar"
    corrupted.write_bytes(b"this is not a zip file")
    assert extract_natives(corrupted, tmp_path / "dst") == 0


def test_extract_all(tmp_path):

    native_archive = make_archive(tmp_path / "libs" / "native.jar", {"native.so": b"native"})
    class_archive = make_archive(tmp_path / "libs" / "classes.jar", {"Main.class": b"class"})

    native = Library("a:native:1", None, 0, "", native_archive, natives={"linux": "natives-linux"})
    classes = Library("a:classes:1", None, 0, "", class_archive)

    dst = tmp_path / "tmp" / "natives"
    assert extract_all([native, classes], dst) == 1
    assert (dst / "native.so").is_file()
    assert not (dst / "Main.class").exists()

    empty = tmp_path / "empty"
    assert extract_all([classes], empty) == 0
    assert empty.is_dir()


def test_extract_natives_outside(tmp_path):

    archive = make_archive(tmp_path / "evil.jar", {
        "../../escaped.so": b"escaped",
        "/tmp/absolute.so": b"absolute",
        "linux/../inside.so": b"inside",
    })

    dst = tmp_path / "a" / "b" / "natives"
    assert extract_natives(archive, dst) == 1
    assert (dst / "inside.so").read_bytes() == b"inside"
    assert not (tmp_path / "a" / "escaped.so").exists()
    assert not (tmp_path / "escaped.so").exists()
