"""Download release assets, sign them with gpg and upload the signatures."""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import httpx

OWNER = "actions-runner-controller"
REPO = "actions-runner-controller"

API_URL = "https://api.github.com"
UPLOADS_URL = "https://uploads.github.com"

USAGE = "USAGE: signrel [list-tags|sign-assets]"


@dataclass(frozen=True)
class Release:
    """A published release."""

    id: int

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Release":
        return cls(id=int(data.get("id", 0)))


@dataclass(frozen=True)
class Asset:
    """A file attached to a release."""

    name: str
    id: int
    url: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Asset":
        return cls(
            name=str(data.get("name", "")),
            id=int(data.get("id", 0)),
            url=str(data.get("url", "")),
        )


class ReleaseAssets:
    """Access to the releases and assets of one repository."""

    def __init__(
        self,
        owner: str = OWNER,
        repo: str = REPO,
        token: str | None = None,
        passphrase: str | None = None,
        api_url: str = API_URL,
        uploads_url: str = UPLOADS_URL,
        client: httpx.Client | None = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.token = os.environ.get("GITHUB_TOKEN", "") if token is None else token
        self.passphrase = (
            os.environ.get("SIGNREL_PASSWORD", "") if passphrase is None else passphrase
        )
        self.api_url = api_url.rstrip("/")
        self.uploads_url = uploads_url.rstrip("/")
        self._client = client or httpx.Client(follow_redirects=True, timeout=None)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ReleaseAssets":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = dict(extra)
        if self.token:
            headers["authorization"] = "token " + self.token
        return headers

    def _repo_url(self, suffix: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/{suffix}"

    def _get_ok(self, url: str) -> httpx.Response:
        response = self._client.get(url, headers=self._headers())
        if response.status_code != 200:
            raise RuntimeError(
                f"GET {url}: {response.status_code} {response.reason_phrase}"
            )
        return response

    def recent_releases(self) -> str:
        """Print the listing of recent releases to stdout and return it."""
        body = self._get_ok(self._repo_url("releases")).text
        print(body)
        return body

    def release_by_tag(self, tag: str) -> Release:
        """Return the release published under ``tag``."""
        response = self._get_ok(self._repo_url(f"releases/tags/{tag}"))
        return Release.from_json(response.json())

    def assets_by_release_id(self, release_id: int) -> list[Asset]:
        """Return the assets attached to a release."""
        response = self._get_ok(self._repo_url(f"releases/{release_id}/assets"))
        return [Asset.from_json(item) for item in response.json() or []]

    def fetch_file(self, dst: str | os.PathLike[str], asset_id: int) -> None:
        """Download the content of an asset into ``dst``, creating parent
        directories as needed."""
        target = Path(dst)
        target.parent.mkdir(parents=True, exist_ok=True)
        url = self._repo_url(f"releases/assets/{asset_id}")
        headers = self._headers(accept="application/octet-stream")
        with self._client.stream("GET", url, headers=headers) as response:
            with open(target, "wb") as out:
                for chunk in response.iter_bytes():
                    out.write(chunk)

    def sign(self, path: str | os.PathLike[str]) -> str:
        """Write a detached armored gpg signature next to ``path`` and
        return the signature's path."""
        cmd = [
            "gpg",
            "--armor",
            "--detach-sign",
            "--pinentry-mode",
            "loopback",
            "--passphrase",
            self.passphrase,
            str(path),
        ]
        result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        if result.returncode != 0:
            output = result.stdout or b""
            if isinstance(output, bytes):
                output = output.decode("utf-8", "replace")
            print(f"gpg: {output}", end="", file=sys.stderr)
            raise subprocess.CalledProcessError(result.returncode, cmd, result.stdout)
        return f"{path}.asc"

    def upload(self, sig: str | os.PathLike[str], release_id: int) -> None:
        """Attach the file ``sig`` to a release. An asset that already
        exists is reported and left alone."""
        sig_path = Path(sig)
        url = (
            f"{self.uploads_url}/repos/{self.owner}/{self.repo}"
            f"/releases/{release_id}/assets"
        )
        content = sig_path.read_bytes()
        headers = self._headers()
        headers["content-type"] = "application/octet-stream"
        headers["accept"] = "application/vnd.github.v3+json"
        response = self._client.post(
            url, params={"name": sig_path.name}, content=content, headers=headers
        )
        body = response.text
        if response.status_code == 422:
            print(f"{sig} has been already uploaded")
            return
        if response.status_code >= 300:
            raise RuntimeError(
                f"unexpected http status {response.status_code}: {body}"
            )
        print(f"Upload completed: {body}")

    def download(self, tag: str, dst_dir: str | os.PathLike[str]) -> None:
        """Download the assets of the release ``tag`` into ``dst_dir/tag``,
        sign those without a signature yet and upload every signature."""
        release = self.release_by_tag(tag)
        assets = self.assets_by_release_id(release.id)

        directory = Path(dst_dir) / tag
        directory.mkdir(parents=True, exist_ok=True)

        for asset in assets:
            if asset.name.endswith(".asc"):
                continue

            path = directory / asset.name
            print(f"Downloading {asset.name} to {path}", file=sys.stderr)
            self.fetch_file(path, asset.id)

            sig = Path(f"{path}.asc")
            if not sig.exists():
                self.sign(path)

            print(f"Uploading {sig}")
            self.upload(sig, release.id)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the ``tags`` or ``sign`` command and return the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print(f"Invalid command: {args}", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 2

    command = args[0]
    if command not in ("tags", "sign"):
        print(f"Unknown command {command}", file=sys.stderr)
        return 2

    try:
        with ReleaseAssets() as assets:
            if command == "tags":
                assets.recent_releases()
            else:
                assets.download(os.environ.get("TAG", ""), "downloads")
    except (
        httpx.HTTPError,
        OSError,
        RuntimeError,
        ValueError,
        subprocess.SubprocessError,
    ) as err:
        print(err, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())