"""Connection parameters and the checks made when attaching to a metadata store."""

from __future__ import annotations

import ssl
from dataclasses import dataclass

from metawatch.kv import KeyNotFoundError, MetaKV
from metawatch.paths import join_path

DEFAULT_META_PATH = "meta"

_TLS_VERSIONS = {
    "1.0": ssl.TLSVersion.TLSv1,
    "1.1": ssl.TLSVersion.TLSv1_1,
    "1.2": ssl.TLSVersion.TLSv1_2,
    "1.3": ssl.TLSVersion.TLSv1_3,
}


class NotMilvusRootPathError(KeyNotFoundError):
    """Raised when the store holds no Milvus instance under the given root path."""


@dataclass
class ConnectParams:
    """Options for connecting to the metadata store of a Milvus instance."""

    etcd_addr: str = "127.0.0.1:2379"
    root_path: str = "by-dev"
    meta_path: str = DEFAULT_META_PATH
    force: bool = False
    dry: bool = False
    use_ssl: bool = False
    enable_tls: bool = False
    root_ca: str = ""
    etcd_cert: str = ""
    etcd_key: str = ""
    tls_min_version: str = "1.2"
    use_tikv: bool = False
    tikv_ca_cert: str = ""
    tikv_cert: str = ""
    tikv_key: str = ""
    tikv_use_ssl: bool = False
    tikv_addr: str = "127.0.0.1:2389"


def tls_min_version(name: str) -> ssl.TLSVersion:
    """Return the TLS version named ``name``, one of 1.0, 1.1, 1.2 or 1.3."""
    try:
        return _TLS_VERSIONS[name]
    except KeyError:
        raise ValueError(
            "invalid min tls version, only 1.0, 1.1, 1.2 and 1.3 is supported"
        ) from None


def meta_base_path(root_path: str, meta_path: str) -> str:
    """Return the base path of the instance metadata, ``root_path``/``meta_path``."""
    return join_path(root_path, meta_path)


def ping_meta_store(kv: MetaKV, root_path: str, meta_path: str) -> str:
    """Check that a Milvus instance lives under ``root_path``/``meta_path``.

    Loads the session id key of the instance and returns its value. Raises
    NotMilvusRootPathError when the key is missing; other store errors
    propagate unchanged.
    """
    key = join_path(root_path, meta_path, "session/id")
    try:
        return kv.load(key)
    except NotMilvusRootPathError:
        raise
    except KeyNotFoundError as exc:
        raise NotMilvusRootPathError(
            f"{root_path} is not a Milvus RootPath: {exc}"
        ) from exc