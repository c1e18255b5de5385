"""Artifacts model: assets and libraries that should be present locally, the queues
tracking those that must be downloaded, and the interpretation of the platform rules
attached to libraries.
"""

from pathlib import Path

from .util import get_os_name, get_arch_bits, validate_local

from typing import Optional, Callable, Iterator, List, Dict, Any


DEFAULT_NATIVE_EXCLUDE = ["META-INF/"]


class Asset:
    """A file identified by its id, its expected hash and size, from where it can be
    fetched and where it should be stored. A missing hash means that any local copy is
    trusted.
    """

    __slots__ = "id", "hash", "size", "url", "dst", "algo"

    def __init__(self,
        id: str,
        hash: Optional[str],
        size: int,
        url: str,
        dst: Path, *,
        algo: str = "sha1"
    ) -> None:
        self.id = id
        self.hash = hash
        self.size = size
        self.url = url
        self.dst = dst
        self.algo = algo

    def validate_local(self) -> bool:
        """Return true if the local copy exists and its hash matches.
        """
        return validate_local(self.dst, self.hash, self.algo)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"

    def __hash__(self) -> int:
        return hash((self.id, self.url, self.dst, self.hash))

    def __eq__(self, other) -> bool:
        return isinstance(other, Asset) and \
            (self.id, self.url, self.dst, self.hash) == \
            (other.id, other.url, other.dst, other.hash)


class Library(Asset):
    """A library asset, with its rules and natives classifiers as declared by the
    version metadata. The id of a library is its maven-style name.
    """

    __slots__ = "rules", "natives", "exclude"

    def __init__(self,
        id: str,
        hash: Optional[str],
        size: int,
        url: str,
        dst: Path, *,
        rules: Optional[list] = None,
        natives: Optional[Dict[str, str]] = None,
        exclude: Optional[List[str]] = None
    ) -> None:
        super().__init__(id, hash, size, url, dst)
        self.rules = rules
        self.natives = natives
        self.exclude = list(DEFAULT_NATIVE_EXCLUDE) if exclude is None else exclude

    @property
    def native(self) -> bool:
        return self.natives is not None

    @property
    def version_independent_id(self) -> str:
        """The name of the library without its version, for example `com.google:guava`
        for `com.google:guava:17.0`.
        """
        return self.id.rsplit(":", 1)[0]

    def validate_rules(self) -> bool:
        return validate_rules(self.rules, self.natives)


class CategoryQueue:
    """A queue of assets pending download for a category (assets, libraries, files or
    java). The size is always the sum of the sizes of its assets. An optional callback
    is called with each asset once it has been successfully written.
    """

    __slots__ = "name", "assets", "size", "callback"

    def __init__(self, name: str, callback: Optional[Callable[[Asset], None]] = None) -> None:
        self.name = name
        self.assets: List[Asset] = []
        self.size = 0
        self.callback = callback

    def add(self, asset: Asset) -> None:
        self.assets.append(asset)
        self.size += asset.size

    def clear(self) -> None:
        """Clear the queue, removing all assets, its size and callback.
        """
        self.assets.clear()
        self.size = 0
        self.callback = None

    def __len__(self) -> int:
        return len(self.assets)

    def __iter__(self) -> Iterator[Asset]:
        return iter(self.assets)

    def __repr__(self) -> str:
        return f"<CategoryQueue {self.name} count: {len(self.assets)}, size: {self.size}>"


def validate_rules(rules: Optional[List[Any]], natives: Optional[Dict[str, str]], *,
    os_name: Optional[str] = None
) -> bool:
    """Check if a library should be used on the running OS given its rules. When rules
    are absent, a library without natives is always used and a library with natives is
    used only if it has a classifier for the OS. Otherwise the first rule that declares
    both an action and an OS decides: 'allow' means only on this OS, 'disallow' means on
    any OS but this one. With no deciding rule the library is used.

    :param os_name: Override the running OS name, mostly for testing purpose.
    """

    os_name = get_os_name() if os_name is None else os_name

    if rules is None:
        if natives is None:
            return True
        return natives.get(os_name) is not None

    for rule in rules:
        if not isinstance(rule, dict):
            continue
        action = rule.get("action")
        rule_os = rule.get("os")
        if action is not None and rule_os is not None:
            rule_os_name = rule_os.get("name") if isinstance(rule_os, dict) else None
            if action == "allow":
                return rule_os_name == os_name
            elif action == "disallow":
                return rule_os_name != os_name

    return True


def native_classifier(natives: Dict[str, str], *, os_name: Optional[str] = None) -> Optional[str]:
    """Return the classifier of the natives for the running OS, with the `${arch}`
    token replaced by the pointer width.
    """
    os_name = get_os_name() if os_name is None else os_name
    classifier = natives.get(os_name)
    if classifier is None:
        return None
    return classifier.replace("${arch}", get_arch_bits())
