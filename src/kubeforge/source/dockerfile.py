"""Dockerfile parsing for the instructions generation needs: FROM, EXPOSE, VOLUME."""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

logger = logging.getLogger("kubeforge.source.dockerfile")

DOCKERFILE_NAME = "Dockerfile"


@dataclass
class Dockerfile:
    instructions: List[Tuple[str, str]] = field(default_factory=list)
    contents: str = ""

    def _args(self, command: str) -> List[str]:
        return [args for cmd, args in self.instructions if cmd == command]

    def base_image(self) -> str:
        """The image of the last FROM instruction, or "" when there is none."""
        froms = self._args("FROM")
        if not froms:
            return ""
        words = [w for w in froms[-1].split() if not w.startswith("--")]
        return words[0] if words else ""

    def exposed_ports(self) -> List[str]:
        ports = []
        for args in self._args("EXPOSE"):
            for word in args.split():
                port = word if "/" in word else f"{word}/tcp"
                if port not in ports:
                    ports.append(port)
        return ports

    def volumes(self) -> List[str]:
        paths: List[str] = []
        for args in self._args("VOLUME"):
            args = args.strip()
            if args.startswith("["):
                try:
                    values = json.loads(args)
                except ValueError:
                    values = args.strip("[]").split()
            else:
                values = args.split()
            paths.extend(v for v in values if v not in paths)
        return paths


def parse_dockerfile(contents: str) -> Dockerfile:
    """Splits contents into (COMMAND, arguments) pairs, joining `\\` continuations."""
    instructions = []
    pending = ""
    for raw in contents.splitlines():
        line = raw.strip()
        if not pending and (not line or line.startswith("#")):
            continue
        if line.startswith("#"):
            continue
        if line.endswith("\\"):
            pending += line[:-1] + " "
            continue
        line = pending + line
        pending = ""
        command, _, args = line.partition(" ")
        instructions.append((command.upper(), args.strip()))
    if pending.strip():
        command, _, args = pending.strip().partition(" ")
        instructions.append((command.upper(), args.strip()))
    return Dockerfile(instructions=instructions, contents=contents)


class DockerfileTester:
    """Checks a repository's file listing for a Dockerfile and parses it."""

    def __init__(self, name: str = DOCKERFILE_NAME):
        self.name = name

    def has(self, files: List[str]) -> bool:
        return self.name in files

    def test(self, inspector, location: str, context_dir: str, files: List[str]) -> Optional[Dockerfile]:
        if not self.has(files):
            return None
        path = os.path.join(context_dir, self.name) if context_dir else self.name
        raw = inspector.read_file(location, path)
        logger.debug(f"Found a Dockerfile in {location}")
        return parse_dockerfile(raw.decode("utf-8", errors="replace"))
