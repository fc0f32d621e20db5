import json
import posixpath
import sys
from pathlib import Path

import pytest

here = Path(__file__).resolve()
builder_dir = here.parent
if str(builder_dir) not in sys.path:
    sys.path.insert(0, str(builder_dir))

from sftp_client import RemoteEntry, RemoteFileSystem  # noqa: E402


class FakeRemote(RemoteFileSystem):
    """In-memory remote: files map absolute path -> size."""

    def __init__(self, files=None, fail_put=(), fail_delete=(), fail_list=()):
        self.files = dict(files or {})
        self.dirs = set()
        self.fail_put = set(fail_put)
        self.fail_delete = set(fail_delete)
        self.fail_list = set(fail_list)
        self.calls = []
        for p in self.files:
            self._add_parents(p)

    def _add_parents(self, path):
        parent = posixpath.dirname(path)
        while parent and parent != "/":
            self.dirs.add(parent)
            parent = posixpath.dirname(parent)

    def stat(self, path):
        if path in self.files:
            return RemoteEntry(path, self.files[path])
        if path in self.dirs:
            return RemoteEntry(path, 0, is_dir=True)
        return None

    def list_files(self, path):
        if path in self.fail_list:
            raise IOError(f"permission denied: {path}")
        prefix = path.rstrip("/") + "/"
        return [RemoteEntry(p, s) for p, s in sorted(self.files.items()) if p.startswith(prefix)]

    def mkdir(self, path):
        self.calls.append(("mkdir", path))
        self.dirs.add(path)
        self._add_parents(path)

    def put(self, local_path, remote_path, callback=None):
        self.calls.append(("put", remote_path))
        if remote_path in self.fail_put:
            raise IOError(f"upload refused: {remote_path}")
        size = Path(local_path).stat().st_size
        if callback:
            callback(size, size)
        self.files[remote_path] = size
        self._add_parents(remote_path)

    def delete(self, path):
        self.calls.append(("delete", path))
        if path in self.fail_delete:
            raise IOError(f"cannot delete: {path}")
        self.files.pop(path, None)


@pytest.fixture
def fake_remote():
    return FakeRemote


def write_mod(mods_dir: Path, filename: str, side: str = "both", url: str = None,
              mode: str = None, disabled: bool = False, content: bytes = None):
    """Write a mod binary plus its packwiz descriptor."""
    mods_dir.mkdir(parents=True, exist_ok=True)
    index_dir = mods_dir / ".index"
    index_dir.mkdir(exist_ok=True)
    disk_name = filename + (".disabled" if disabled else "")
    (mods_dir / disk_name).write_bytes(content if content is not None else f"jar:{filename}".encode())

    if mode is None:
        mode = "url" if url else "metadata:curseforge"
    lines = [
        f'filename = "{filename}"',
        f'name = "{filename.rsplit(".", 1)[0]}"',
        f'side = "{side}"',
        "",
        "[download]",
        f'mode = "{mode}"',
        f'url = "{url or ""}"',
        'hash-format = "sha1"',
        'hash = "0000"',
    ]
    (index_dir / f"{filename.rsplit('.', 1)[0].lower()}.pw.toml").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return mods_dir / disk_name


def write_instance(root: Path, loader=("net.neoforged", "21.1.77"), minecraft="1.21.1") -> Path:
    instance = root / "instance"
    (instance / "minecraft" / "mods" / ".index").mkdir(parents=True, exist_ok=True)
    components = [{"uid": "net.minecraft", "version": minecraft}]
    if loader:
        components.append({"uid": loader[0], "version": loader[1]})
    (instance / "mmc-pack.json").write_text(json.dumps({"components": components}), encoding="utf-8")
    return instance


@pytest.fixture
def mod_writer():
    return write_mod


@pytest.fixture
def instance_factory():
    return write_instance
