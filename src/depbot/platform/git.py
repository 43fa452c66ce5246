"""Local git working-tree operations."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from depbot.errors import GitError
from depbot.models import FileUpdate

logger = logging.getLogger(__name__)


def run(
    cmd: list[str], cwd: Path | None = None, timeout: int = 120, env: dict | None = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr).

    Uses stdin=DEVNULL to prevent hanging when subprocesses prompt for input.
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            cwd=cwd,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
            env=env,
        )
        return result.returncode, result.stdout.strip(), result.stderr.strip()
    except subprocess.TimeoutExpired:
        return -1, "", "Command timed out"
    except OSError as e:
        return -1, "", str(e)


class GitRepo:
    """Thin wrapper around the git CLI for one checkout."""

    def __init__(self, path: Path, remote: str = "origin"):
        self.path = path
        self.remote = remote

    def git(self, *args: str, check: bool = True, timeout: int = 120) -> str:
        cmd = ["git", *args]
        code, stdout, stderr = run(cmd, cwd=self.path, timeout=timeout)
        if check and code != 0:
            raise GitError(cmd, code, stderr or stdout)
        return stdout

    def read_file(self, ref: str, path: str) -> bytes | None:
        """Content of ``path`` at ``ref``, or None if it cannot be read."""
        try:
            result = subprocess.run(
                ["git", "show", f"{ref}:{path}"],
                capture_output=True,
                cwd=self.path,
                timeout=60,
                stdin=subprocess.DEVNULL,
            )
        except (subprocess.TimeoutExpired, OSError):
            return None
        if result.returncode != 0:
            return None
        return result.stdout

    def ref_exists(self, ref: str) -> bool:
        code, _, _ = run(["git", "rev-parse", "--verify", "--quiet", ref], cwd=self.path)
        return code == 0

    def has_changes(self) -> bool:
        return bool(self.git("status", "--porcelain"))

    def fetch(self, *refs: str) -> None:
        self.git("fetch", self.remote, *refs, timeout=300)

    def reset_to_base(self, base: str) -> None:
        """Discard local modifications and check out a clean ``base``."""
        self.git("reset", "--hard")
        self.git("clean", "-fd")
        self.git("checkout", base)
        remote_base = f"{self.remote}/{base}"
        if self.ref_exists(remote_base):
            self.git("reset", "--hard", remote_base)

    def write_files(self, files: list[FileUpdate]) -> None:
        for file in files:
            target = self.path / file.path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(file.content)

    def recreate_branch(self, branch: str, base: str) -> None:
        """Point ``branch`` at the tip of ``base`` and check it out."""
        start = f"{self.remote}/{base}" if self.ref_exists(f"{self.remote}/{base}") else base
        self.git("checkout", "-B", branch, start)

    def commit_all(self, message: str) -> bool:
        """Stage and commit everything; False if there was nothing to commit."""
        self.git("add", "-A")
        if not self.has_changes():
            return False
        self.git("commit", "-m", message)
        return True

    def push(self, branch: str, force: bool = True) -> None:
        args = ["push", self.remote, branch]
        if force:
            args.insert(1, "--force-with-lease")
        self.git(*args, timeout=300)
