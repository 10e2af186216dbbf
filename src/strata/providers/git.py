"""Git document provider — one snapshot per resolved commit.

Security requirements:
- shell=False always (no command injection).
- URL scheme whitelist: https://, http://, git@ only.
- GIT_TOKEN injected into the URL in-memory for clone/fetch only; never
  persisted in the clone's config, never logged, never in error output.

Remote repositories are mirrored into ``clone_dir`` and updated on later
runs; local repository paths are read in place. Documents are read from
the object database at the resolved commit, so the working tree state of a
local checkout never leaks into a snapshot.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import urllib.parse
from datetime import datetime, timezone
from pathlib import Path

from strata.errors import ProviderError
from strata.providers.base import Document, DocumentProvider, FetchResult, IndexParams, hash_content
from strata.providers.ignore import IGNORE_FILES, IgnoreFilter

logger = logging.getLogger(__name__)

# URL schemes that are allowed for remote git repositories.
_ALLOWED_SCHEMES = {"https", "http"}
_GIT_SSH_PREFIX = "git@"

_CRED_RE = re.compile(r"(https?://)([^@/]+@)", re.IGNORECASE)
_SSH_RE = re.compile(r"^git@([^:]+):(.+)$")

# Header of each `git log` record: \x1e<hash>\x1f<author>\x1f<unix time>
_LOG_FORMAT = "--format=%x1e%H%x1f%an%x1f%at"


def _sanitise_url(url: str) -> str:
    """Remove embedded credentials from a URL for safe logging / error messages."""
    return _CRED_RE.sub(r"\1***@", url)


def is_remote(identifier: str) -> bool:
    # Any identifier with a :// scheme or git@ prefix is treated as remote.
    return "://" in identifier or identifier.startswith(_GIT_SSH_PREFIX)


class GitProvider(DocumentProvider):
    """Index a git repository at a branch, tag or commit.

    Args:
        clone_dir: Directory holding mirrors of remote repositories.
        default_ref: Ref indexed when ``IndexParams.ref`` is None.
    """

    source_type = "git"

    def __init__(self, clone_dir: Path | str = ".strata/repos", default_ref: str = "HEAD") -> None:
        super().__init__()
        self._clone_dir = Path(clone_dir)
        self._default_ref = default_ref

    # ------------------------------------------------------------------
    # DocumentProvider
    # ------------------------------------------------------------------

    def extract_source_name(self, identifier: str) -> str:
        """``https://github.com/org/repo.git`` → ``github.com/org/repo``.

        SSH remotes map the same way; local paths use the directory name.
        """
        if identifier.startswith(_GIT_SSH_PREFIX):
            match = _SSH_RE.match(identifier)
            if not match:
                raise ProviderError(f"Cannot parse SSH remote: {identifier}")
            host, path = match.groups()
        elif is_remote(identifier):
            parsed = urllib.parse.urlparse(identifier)
            host, path = parsed.hostname or "", parsed.path
        else:
            return Path(identifier).resolve().name

        path = path.strip("/")
        if path.endswith(".git"):
            path = path[: -len(".git")]
        return f"{host}/{path}" if host else path

    def create_metadata(self, params: IndexParams) -> dict[str, str]:
        metadata = {
            "default_ref": params.ref or self._default_ref,
            "local_path": str(self.repository_path(params)),
        }
        if is_remote(params.identifier):
            metadata["url"] = _sanitise_url(params.identifier)
        return metadata

    def repository_path(self, params: IndexParams) -> Path:
        if is_remote(params.identifier):
            slug = re.sub(r"[^A-Za-z0-9._-]", "_", self.extract_source_name(params.identifier))
            return (self._clone_dir / slug).resolve()
        return Path(params.identifier).resolve()

    def fetch_documents(self, params: IndexParams) -> FetchResult:
        repo = self._prepare_repository(params)
        ref = params.ref or self._default_ref
        commit = self._git(repo, "rev-parse", "--verify", f"{ref}^{{commit}}").strip()

        entries = self._list_tree(repo, commit)
        self._filter = self._load_filter(repo, entries)
        last_commits = self._last_commits(repo, commit)

        wanted = {oid for path, oid, _ in entries if not self._filter.is_ignored(path)}
        blobs = self._read_blobs(repo, sorted(wanted))

        documents: list[Document] = []
        skipped = 0
        for path, oid, size in entries:
            commit_hash, author, updated_at = last_commits.get(path, (commit, "", None))
            if self._filter.is_ignored(path):
                documents.append(Document(path=path, content="", size=size, content_hash=""))
                continue
            data = blobs.get(oid)
            if data is None or b"\x00" in data:
                skipped += 1
                continue
            try:
                content = data.decode("utf-8")
            except UnicodeDecodeError:
                skipped += 1
                continue
            documents.append(
                Document(
                    path=path,
                    content=content,
                    size=size,
                    content_hash=hash_content(data),
                    commit_hash=commit_hash,
                    author=author,
                    updated_at=updated_at,
                )
            )

        if skipped:
            logger.debug("Skipped %d binary or undecodable files at %s", skipped, commit[:12])
        return FetchResult(documents=documents, version_identifier=commit)

    # ------------------------------------------------------------------
    # Repository preparation
    # ------------------------------------------------------------------

    def _prepare_repository(self, params: IndexParams) -> Path:
        if not is_remote(params.identifier):
            repo = Path(params.identifier).resolve()
            if not repo.is_dir():
                raise ProviderError(f"Repository path does not exist: {params.identifier}")
            try:
                self._git(repo, "rev-parse", "--git-dir")
            except ProviderError:
                raise ProviderError(f"Not a git repository: {params.identifier}") from None
            return repo

        url = params.identifier
        self._validate_url(url)
        target = self.repository_path(params)
        auth_url = self._inject_token(url)

        if (target / "HEAD").exists():
            logger.info("Fetching %s", _sanitise_url(url))
            self._run_remote(
                ["git", "-C", str(target), "fetch", "--prune", "--quiet", auth_url,
                 "+refs/heads/*:refs/heads/*", "+refs/tags/*:refs/tags/*"],
                url,
            )
        else:
            logger.info("Cloning %s", _sanitise_url(url))
            target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            self._run_remote(
                ["git", "clone", "--mirror", "--quiet", "--", auth_url, str(target)], url
            )
            # Keep the token out of the mirror's config.
            self._git(target, "remote", "set-url", "origin", url)
        return target

    @staticmethod
    def _validate_url(url: str) -> None:
        """Raise ProviderError if *url* uses a disallowed scheme."""
        if url.startswith(_GIT_SSH_PREFIX):
            return
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in _ALLOWED_SCHEMES:
            raise ProviderError(
                f"Unsupported URL scheme '{parsed.scheme}'. "
                f"Allowed: https://, http://, git@"
            )

    @staticmethod
    def _inject_token(url: str) -> str:
        """Inject GIT_TOKEN into an HTTPS/HTTP URL for private repo auth."""
        token = os.environ.get("GIT_TOKEN", "")
        if not token or not url.startswith(("https://", "http://")):
            return url
        parsed = urllib.parse.urlparse(url)
        return parsed._replace(netloc=f"{token}@{parsed.netloc}").geturl()

    @staticmethod
    def _run_remote(cmd: list[str], original_url: str) -> None:
        """Run a clone/fetch command; *original_url* is used in error messages."""
        try:
            subprocess.run(cmd, shell=False, check=True, capture_output=True, text=True)
        except (subprocess.CalledProcessError, OSError) as exc:
            stderr = getattr(exc, "stderr", None) or str(exc)
            raise ProviderError(
                f"git {cmd[3] if cmd[1] == '-C' else cmd[1]} failed for "
                f"{_sanitise_url(original_url)}: {_sanitise_url(stderr).strip()}"
            ) from None

    # ------------------------------------------------------------------
    # Object database reads
    # ------------------------------------------------------------------

    def _list_tree(self, repo: Path, commit: str) -> list[tuple[str, str, int]]:
        """Return ``(path, blob_oid, size)`` for every regular file at *commit*."""
        out = self._git(repo, "ls-tree", "-r", "-z", "--long", commit)
        entries: list[tuple[str, str, int]] = []
        for record in out.split("\0"):
            if not record:
                continue
            meta, path = record.split("\t", 1)
            mode, obj_type, oid, size = meta.split()
            # Skip submodules and symlinks.
            if obj_type != "blob" or mode == "120000":
                continue
            entries.append((path, oid, int(size)))
        return entries

    def _load_filter(self, repo: Path, entries: list[tuple[str, str, int]]) -> IgnoreFilter:
        f = IgnoreFilter()
        roots = {path: oid for path, oid, _ in entries if path in IGNORE_FILES}
        blobs = self._read_blobs(repo, sorted(roots.values()))
        for name in IGNORE_FILES:
            oid = roots.get(name)
            if oid and oid in blobs:
                f.extend(blobs[oid].decode("utf-8", errors="replace").splitlines())
        return f

    @staticmethod
    def _read_blobs(repo: Path, oids: list[str]) -> dict[str, bytes]:
        """Read many blobs with one ``git cat-file --batch`` process."""
        if not oids:
            return {}
        try:
            proc = subprocess.run(
                ["git", "cat-file", "--batch"],
                cwd=repo,
                input=("\n".join(oids) + "\n").encode("ascii"),
                shell=False,
                capture_output=True,
                check=True,
            )
        except (subprocess.CalledProcessError, OSError) as exc:
            raise ProviderError(f"git cat-file failed in {repo}: {exc}") from exc

        out = proc.stdout
        blobs: dict[str, bytes] = {}
        pos = 0
        while pos < len(out):
            newline = out.index(b"\n", pos)
            header = out[pos:newline].decode("ascii", errors="replace").split()
            pos = newline + 1
            if len(header) < 3 or header[1] == "missing":
                continue
            size = int(header[2])
            blobs[header[0]] = out[pos : pos + size]
            pos += size + 1
        return blobs

    def _last_commits(self, repo: Path, commit: str) -> dict[str, tuple[str, str, datetime | None]]:
        """Return ``{path: (commit_hash, author, committed_at)}`` of each path's last change."""
        out = self._git(repo, "-c", "core.quotePath=false", "log", commit, _LOG_FORMAT, "--name-only")
        result: dict[str, tuple[str, str, datetime | None]] = {}
        for record in out.split("\x1e"):
            lines = record.strip("\n").split("\n")
            if not lines or not lines[0]:
                continue
            fields = lines[0].split("\x1f")
            if len(fields) != 3:
                continue
            sha, author, ts = fields
            when = datetime.fromtimestamp(int(ts), tz=timezone.utc) if ts.isdigit() else None
            for path in lines[1:]:
                path = path.strip()
                if path and path not in result:
                    result[path] = (sha, author, when)
        return result

    @staticmethod
    def _git(repo: Path, *args: str) -> str:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=repo,
                shell=False,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            raise ProviderError(
                f"git {args[0]} failed in {repo}: {_sanitise_url(exc.stderr or '').strip()}"
            ) from None
        except OSError as exc:
            raise ProviderError(f"Cannot run git: {exc}") from exc
        return result.stdout
