"""Source inspection: list and read files of local directories or shallow git clones."""

import logging
import os
import shutil
import tempfile
import threading
from typing import Dict, List

from kubeforge.core.errors import SourceInspectionError
from kubeforge.source.repository import is_remote_location, split_ref
from kubeforge.utils.subprocess import run_command

logger = logging.getLogger("kubeforge.source")


class SourceInspector:
    """
    Lists the top-level files of a repository's context directory and reads
    individual files.

    Remote locations are cloned once (`git clone --depth 1`, honouring the
    `#ref` fragment) into a temporary directory that lives until `close()`.
    """

    def __init__(self, git_binary: str = "git", timeout: float = 10.0):
        self.git_binary = git_binary
        self.timeout = timeout
        self._lock = threading.Lock()
        self._clones: Dict[str, str] = {}

    def _checkout(self, location: str) -> str:
        if not is_remote_location(location):
            path, _ = split_ref(location)
            if not os.path.isdir(path):
                raise SourceInspectionError(f"the source directory {path!r} does not exist")
            return path

        with self._lock:
            if location in self._clones:
                return self._clones[location]
            url, ref = split_ref(location)
            target = tempfile.mkdtemp(prefix="kubeforge-src-")
            cmd = [self.git_binary, "clone", "--depth", "1", "--quiet"]
            if ref:
                cmd.extend(["--branch", ref])
            cmd.extend([url, target])
            logger.info(f"Cloning {location}")
            result = run_command(cmd, timeout=self.timeout)
            if not result.success:
                shutil.rmtree(target, ignore_errors=True)
                raise SourceInspectionError(f"unable to clone {location}: {result.stderr.strip()}")
            self._clones[location] = target
            return target

    def list_files(self, location: str, context_dir: str = "") -> List[str]:
        root = os.path.join(self._checkout(location), context_dir) if context_dir else self._checkout(location)
        if not os.path.isdir(root):
            raise SourceInspectionError(f"the context directory {context_dir!r} does not exist in {location}")
        return sorted(name for name in os.listdir(root) if name != ".git")

    def read_file(self, location: str, rel_path: str) -> bytes:
        path = os.path.join(self._checkout(location), rel_path)
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise SourceInspectionError(f"unable to read {rel_path} from {location}: {e}")

    def remote_url(self, location: str) -> str:
        """The URL a build should fetch from: the origin remote of a local clone, else the location."""
        if is_remote_location(location):
            return split_ref(location)[0]
        path, _ = split_ref(location)
        result = run_command([self.git_binary, "-C", path, "config", "--get", "remote.origin.url"], timeout=self.timeout)
        if result.success and result.stdout.strip():
            return result.stdout.strip()
        return path

    def close(self) -> None:
        with self._lock:
            for target in self._clones.values():
                shutil.rmtree(target, ignore_errors=True)
            self._clones.clear()
