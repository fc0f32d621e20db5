from __future__ import annotations
import shutil
from pathlib import Path
import requests
from typing import Optional
import logging, hashlib, json

logger = logging.getLogger(__name__)

USER_AGENT = "mrpack-builder/1.0 (+https://github.com/mrpack-builder)"
_HASH_LENGTHS = {"sha1": 40, "sha256": 64, "sha512": 128}


class HashMismatchError(Exception):
    """Downloaded bytes do not match the expected content hash."""

    def __init__(self, url: str, expected: str, actual: str, hash_type: str = "sha1"):
        self.url = url
        self.expected = expected
        self.actual = actual
        self.hash_type = hash_type
        super().__init__(f"{hash_type} mismatch for {url}: expected {expected}, got {actual}")


def stream_download(url: str, dest_file: Path, user_agent: str = USER_AGENT, expect_archive: bool = False):
    logger.info(f"Downloading {url} to {dest_file}")
    dest_file.parent.mkdir(parents=True, exist_ok=True)

    headers = {
        # Some hosts (Modrinth, Maven mirrors) reject requests without a UA
        "User-Agent": user_agent,
        "Accept": "application/java-archive, application/octet-stream, */*" if expect_archive else "*/*",
    }

    try:
        with requests.get(url, headers=headers, stream=True, timeout=120, allow_redirects=True) as r:
            r.raise_for_status()

            content_type = (r.headers.get('content-type') or '').lower()
            content_disp = r.headers.get('content-disposition') or ''
            is_jar_disposition = 'filename=' in content_disp and '.jar' in content_disp.lower()

            # An archive endpoint answering with JSON/HTML is an error page unless the body is a ZIP
            initial_chunk: Optional[bytes] = None
            if expect_archive and ('application/json' in content_type or 'text/html' in content_type) and not is_jar_disposition:
                try:
                    initial_chunk = next(r.iter_content(chunk_size=1024))
                except StopIteration:
                    initial_chunk = b''

                if initial_chunk and initial_chunk.startswith(b'PK'):
                    logger.warning(
                        f"Content-Type {content_type!r} claims JSON/HTML but body looks like a JAR (ZIP header detected). Proceeding with download."
                    )
                else:
                    preview_text = (initial_chunk or b'')[:2048].decode('utf-8', errors='replace')
                    err_detail = preview_text
                    try:
                        j = json.loads(preview_text)
                        msg = j.get('message') or j.get('error') or j.get('detail') if isinstance(j, dict) else None
                        if msg:
                            err_detail = msg
                    except ValueError:
                        pass

                    if 'rate' in err_detail.lower() and 'limit' in err_detail.lower():
                        raise ValueError("Remote server rate-limited the download. Please retry in a minute.")
                    raise ValueError(f"Download URL returned non-JAR content ({content_type}): {err_detail[:200]}")

            with open(dest_file, "wb") as f:
                if initial_chunk:
                    f.write(initial_chunk)
                for chunk in r.iter_content(chunk_size=1024 * 128):
                    if not chunk:
                        continue
                    f.write(chunk)

        file_size = dest_file.stat().st_size
        logger.info(f"Download complete, size: {file_size} bytes")

        if expect_archive:
            with open(dest_file, 'rb') as f:
                magic = f.read(4)
            if magic[:2] != b'PK':
                logger.error(f"Downloaded file does not look like a JAR (missing PK header): magic={magic!r}")
                raise ValueError("Downloaded file is not a valid JAR (ZIP) archive")

    except requests.exceptions.RequestException as e:
        logger.error(f"Download failed for {url}: {e}")
        raise


def file_hash(path: Path, hash_type: str = "sha1") -> str:
    h = hashlib.new(hash_type)
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(8192), b''):
            h.update(chunk)
    return h.hexdigest()


def cache_path(cache_dir: Path, expected_hash: str, filename: str = "") -> Path:
    ext = Path(filename).suffix or ".bin"
    return cache_dir / f"{expected_hash.lower()}{ext}"


def download_with_cache(
    url: str,
    expected_hash: str,
    cache_dir: Path,
    filename: str = "",
    hash_type: str = "sha1",
    user_agent: str = USER_AGENT,
) -> Path:
    """
    Fetch `url` into the content-addressed cache `<cache>/<hash>.<ext>` and return
    the cached path. A cached file is reused only if it still hashes correctly.
    A freshly downloaded file that does not match raises HashMismatchError and is
    discarded.
    """
    expected = expected_hash.lower()
    if len(expected) != _HASH_LENGTHS.get(hash_type, len(expected)):
        raise ValueError(f"Not a {hash_type} digest: {expected_hash!r}")

    target = cache_path(cache_dir, expected, filename or url.rsplit("/", 1)[-1])
    if target.exists():
        if file_hash(target, hash_type) == expected:
            logger.debug(f"Cache hit for {target.name}")
            return target
        logger.warning(f"Cached file {target.name} is corrupt, downloading again")
        target.unlink()

    partial = target.with_name(target.name + ".part")
    try:
        stream_download(url, partial, user_agent=user_agent)
        actual = file_hash(partial, hash_type)
        if actual != expected:
            raise HashMismatchError(url, expected, actual, hash_type)
        partial.replace(target)
    finally:
        if partial.exists():
            partial.unlink()

    logger.info(f"Cached {url.rsplit('/', 1)[-1]} as {target.name}")
    return target


def fetch_published_sha1(url: str, user_agent: str = USER_AGENT) -> Optional[str]:
    """Maven repositories publish `<artifact>.sha1` next to each artifact."""
    try:
        r = requests.get(f"{url}.sha1", headers={"User-Agent": user_agent}, timeout=15)
    except requests.exceptions.RequestException as e:
        logger.debug(f"No published checksum for {url}: {e}")
        return None
    if not r.ok:
        return None
    digest = r.text.strip().split()[0].lower() if r.text.strip() else ""
    return digest if len(digest) == _HASH_LENGTHS["sha1"] else None


def download_to(
    url: str,
    dest_file: Path,
    cache_dir: Path,
    expected_sha1: Optional[str] = None,
    user_agent: str = USER_AGENT,
) -> Path:
    """
    Place the artifact at `dest_file`, going through the verified cache whenever a
    sha1 is known (given, or published alongside the artifact).
    """
    expected_sha1 = expected_sha1 or fetch_published_sha1(url, user_agent)
    dest_file.parent.mkdir(parents=True, exist_ok=True)
    if expected_sha1:
        cached = download_with_cache(url, expected_sha1, cache_dir, dest_file.name, "sha1", user_agent)
        shutil.copy2(cached, dest_file)
    else:
        logger.warning(f"No checksum available for {url}; downloading without verification")
        stream_download(url, dest_file, user_agent=user_agent, expect_archive=dest_file.suffix == ".jar")
    return dest_file
