from pathlib import Path

from crystalmc.artifact import Asset, Library, CategoryQueue, validate_rules, native_classifier


def test_rules_without_rules():

    # No rules and no natives: always included.
    assert validate_rules(None, None, os_name="linux")
    assert validate_rules(None, None, os_name="windows")

    # No rules but natives: included only with a classifier for the OS.
    natives = {"windows": "natives-windows"}
    assert validate_rules(None, natives, os_name="windows")
    assert not validate_rules(None, natives, os_name="linux")
    assert not validate_rules(None, natives, os_name="osx")


def test_rules_first_deciding_rule():

    allow_osx = [{"action": "allow", "os": {"name": "osx"}}]
    assert validate_rules(allow_osx, None, os_name="osx")
    assert not validate_rules(allow_osx, None, os_name="linux")

    disallow_osx = [{"action": "allow"}, {"action": "disallow", "os": {"name": "osx"}}]
    assert not validate_rules(disallow_osx, None, os_name="osx")
    assert validate_rules(disallow_osx, None, os_name="windows")

    # Only the first rule with both an action and an OS decides.
    rules = [
        {"action": "allow"},
        {"action": "disallow", "os": {"name": "linux"}},
        {"action": "allow", "os": {"name": "linux"}},
    ]
    assert not validate_rules(rules, None, os_name="linux")

    # No deciding rule, allowed by default.
    assert validate_rules([{"action": "allow"}], None, os_name="linux")
    assert validate_rules([], None, os_name="linux")


def test_native_classifier(monkeypatch):

    import crystalmc.artifact

    monkeypatch.setattr(crystalmc.artifact, "get_arch_bits", lambda: "64")

    natives = {"linux": "natives-linux", "windows": "natives-windows-${arch}"}
    assert native_classifier(natives, os_name="linux") == "natives-linux"
    assert native_classifier(natives, os_name="windows") == "natives-windows-64"
    assert native_classifier(natives, os_name="osx") is None


def test_library():

    lib = Library("org.lwjgl.lwjgl:lwjgl:2.9.4", None, 0, "https://example.net/lwjgl.jar", Path("lwjgl.jar"))
    assert not lib.native
    assert lib.version_independent_id == "org.lwjgl.lwjgl:lwjgl"
    assert lib.exclude == ["META-INF/"]
    assert lib.algo == "sha1"

    native = Library("org.lwjgl.lwjgl:lwjgl-platform:2.9.4", None, 0, "https://example.net/p.jar", Path("p.jar"),
        natives={"linux": "natives-linux"},
        exclude=["META-INF/", "LICENSE"])
    assert native.native
    assert native.exclude == ["META-INF/", "LICENSE"]

    # The default exclusion list is never shared.
    lib.exclude.append("foo")
    assert Library("a:b:1", None, 0, "", Path("b.jar")).exclude == ["META-INF/"]


def test_asset_validate_local(tmp_path):

    dst = tmp_path / "objects" / "43" / "430ce34d020724ed75a196dfc2ad67c77772d169"
    asset = Asset("hello", "430ce34d020724ed75a196dfc2ad67c77772d169", 12, "https://example.net/hello", dst)
    assert not asset.validate_local()

    dst.parent.mkdir(parents=True)
    dst.write_bytes(b"hello world!")
    assert asset.validate_local()

    dst.write_bytes(b"hello world?")
    assert not asset.validate_local()

    # Without hash, any local copy is trusted.
    assert Asset("hello", None, 12, "https://example.net/hello", dst).validate_local()


def test_category_queue():

    queue = CategoryQueue("assets")
    assert len(queue) == 0 and queue.size == 0

    a = Asset("a", None, 100, "http://example.net/a", Path("a"))
    b = Asset("b", None, 50, "http://example.net/b", Path("b"))
    queue.add(a)
    queue.add(b)
    queue.callback = lambda asset: None

    assert len(queue) == 2
    assert queue.size == 150
    assert list(queue) == [a, b]

    queue.clear()
    assert len(queue) == 0
    assert queue.size == 0
    assert queue.callback is None


def test_asset_equality():

    a = Asset("a", "abcd", 1, "http://example.net/a", Path("a"))
    assert a == Asset("a", "abcd", 1, "http://example.net/a", Path("a"))
    assert a != Asset("a", "abce", 1, "http://example.net/a", Path("a"))
    assert len({a, Asset("a", "abcd", 1, "http://example.net/a", Path("a"))}) == 1
