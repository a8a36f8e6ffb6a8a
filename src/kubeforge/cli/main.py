#!/usr/bin/env python3
"""
KUBEFORGE CLI - New Application From Intent
-------------------------------------------
`kubeforge new-app` turns images, templates and source repositories into
image streams, builds, deployments and services. `kubeforge new-build`
produces only the builds (and the image streams they need).

Author: KubeForge Team
Date: 2026-10-18
"""

import argparse
import logging
import sys
from typing import Dict, List, Optional, Tuple

from rich.logging import RichHandler

from kubeforge.cli.formatter import AppFormatter, console
from kubeforge.core.engine import NewAppEngine
from kubeforge.core.errors import InvalidArgumentError, KubeForgeError
from kubeforge.generate.classify import ARGUMENT_SEPARATOR
from kubeforge.generate.config import DEFAULT_MAX_WORKERS, DEFAULT_NAMESPACE, AppConfig

__version__ = "0.1.0"

logger = logging.getLogger("kubeforge.cli")


def parse_labels(entries: List[str]) -> Dict[str, str]:
    labels: Dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise InvalidArgumentError(f"labels must be of the form key=value: {entry!r}")
        labels[key] = value
    return labels


def split_separator(argv: List[str]) -> Tuple[List[str], List[str]]:
    """argparse swallows `--`; everything after it is kept aside as explicit components."""
    if ARGUMENT_SEPARATOR not in argv:
        return list(argv), []
    index = argv.index(ARGUMENT_SEPARATOR)
    return list(argv[:index]), list(argv[index + 1:])


class KubeForgeCLI:
    """Translates command lines into engine runs and renders the outcome."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="kubeforge",
            description="KubeForge - create applications from images, templates and source code",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.formatter = AppFormatter()
        self._setup_args()

    def _setup_args(self):
        self.parser.add_argument("--version", action="version", version=f"kubeforge v{__version__}")
        subparsers = self.parser.add_subparsers(dest="command", metavar="Command")

        app_parser = subparsers.add_parser("new-app", help="Create a new application")
        self._add_common_args(app_parser)
        app_parser.add_argument("-i", "--image-stream", action="append", default=[], dest="image_streams",
                                help="Image stream to use (repeatable)")
        app_parser.add_argument("--docker-image", action="append", default=[], dest="docker_images",
                                help="Docker image to use (repeatable)")
        app_parser.add_argument("--template", action="append", default=[], dest="templates",
                                help="Template stored in the cluster (repeatable)")
        app_parser.add_argument("-f", "--file", action="append", default=[], dest="template_files",
                                help="Template file (repeatable)")
        app_parser.add_argument("--group", action="append", default=[], dest="groups",
                                help="Deploy components together: a+b (repeatable)")
        app_parser.add_argument("-p", "--param", action="append", default=[], dest="template_parameters",
                                help="Template parameter KEY=value (repeatable)")
        app_parser.add_argument("--env-to-build", action="store_true",
                                help="Also pass --env variables to the builds")

        build_parser = subparsers.add_parser("new-build", help="Create a new build configuration")
        self._add_common_args(build_parser)
        build_parser.add_argument("--docker-image", action="append", default=[], dest="docker_images",
                                  help="Builder docker image (repeatable)")
        build_parser.add_argument("-i", "--image-stream", action="append", default=[], dest="image_streams",
                                  help="Builder image stream (repeatable)")
        build_parser.add_argument("-D", "--dockerfile", default="",
                                  help="Literal Dockerfile contents to build from")
        build_parser.add_argument("--to-docker", action="store_true", help="Push the output to a docker registry")
        build_parser.add_argument("--no-output", action="store_true", help="Do not push the build output")
        build_parser.add_argument("--source-image", default="", help="Image to copy build inputs from")
        build_parser.add_argument("--source-image-path", default="",
                                  help="Paths to copy from the source image: src:dst[;src:dst]")

    def _add_common_args(self, parser: argparse.ArgumentParser):
        parser.add_argument("arguments", nargs="*", help="Images, templates, source repositories or KEY=value")
        parser.add_argument("--code", action="append", default=[], dest="source_repositories",
                            help="Source repository (repeatable)")
        parser.add_argument("--name", default="", help="Name for the generated objects")
        parser.add_argument("--to", default="", help="Output image reference for builds")
        parser.add_argument("--strategy", default="", choices=["", "source", "docker", "pipeline"],
                            help="Build strategy")
        parser.add_argument("--context-dir", default="", help="Sub-directory of the repositories to build")
        parser.add_argument("-e", "--env", action="append", default=[], dest="environment",
                            help="Environment variable KEY=value (repeatable)")
        parser.add_argument("--build-env", action="append", default=[], dest="build_environment",
                            help="Build environment variable KEY=value (repeatable)")
        parser.add_argument("--build-secret", action="append", default=[], dest="secrets",
                            help="Secret to mount in builds: name[:destination] (repeatable)")
        parser.add_argument("-l", "--label", action="append", default=[], dest="labels",
                            help="Label KEY=value for every object (repeatable)")
        parser.add_argument("--insecure-registry", action="store_true",
                            help="Allow image streams to import from insecure registries")
        parser.add_argument("-n", "--namespace", default=DEFAULT_NAMESPACE, help="Target namespace")
        parser.add_argument("--search-namespace", action="append", default=[], dest="search_namespaces",
                            help="Namespace to search for image streams and templates (repeatable)")
        parser.add_argument("--kube-context", default=None, help="kubectl context to use")
        parser.add_argument("-o", "--output", choices=["yaml", "json"], default=None,
                            help="Print the objects instead of a summary")
        parser.add_argument("--output-file", default="", help="Write the objects to a file")
        parser.add_argument("--apply", action="store_true", help="Create the objects in the cluster")
        parser.add_argument("--no-docker", action="store_true", help="Do not search the local docker daemon")
        parser.add_argument("--no-registry", action="store_true", help="Do not search remote registries")
        parser.add_argument("--no-cluster", action="store_true", help="Do not search the cluster")
        parser.add_argument("--timeout", type=float, default=10.0, help="Timeout for registry and git calls")
        parser.add_argument("--workers", type=int, default=DEFAULT_MAX_WORKERS, help="Concurrent resolutions")
        parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    def build_config(self, args: argparse.Namespace, components_after_separator: List[str]) -> AppConfig:
        config = AppConfig(
            image_streams=list(args.image_streams),
            docker_images=list(args.docker_images),
            templates=list(getattr(args, "templates", [])),
            template_files=list(getattr(args, "template_files", [])),
            source_repositories=list(args.source_repositories),
            groups=list(getattr(args, "groups", [])),
            environment=list(args.environment),
            build_environment=list(args.build_environment),
            add_environment_to_build=getattr(args, "env_to_build", False),
            template_parameters=list(getattr(args, "template_parameters", [])),
            labels=parse_labels(args.labels),
            name=args.name,
            to=args.to,
            output_docker=getattr(args, "to_docker", False),
            no_output=getattr(args, "no_output", False),
            strategy=args.strategy,
            dockerfile=getattr(args, "dockerfile", ""),
            context_dir=args.context_dir,
            source_image=getattr(args, "source_image", ""),
            source_image_path=getattr(args, "source_image_path", ""),
            secrets=list(args.secrets),
            insecure_registry=args.insecure_registry,
            expect_to_build=args.command == "new-build",
            out=sys.stdout,
            err_out=sys.stderr,
        )
        raw = list(args.arguments)
        if components_after_separator:
            raw += [ARGUMENT_SEPARATOR] + components_after_separator
        unknown = config.add_arguments(raw)
        if unknown:
            raise InvalidArgumentError(f"unable to classify the argument(s): {', '.join(repr(u) for u in unknown)}")
        return config

    def _run(self, args: argparse.Namespace, extra: List[str]) -> int:
        config = self.build_config(args, extra)
        engine = NewAppEngine(
            namespace=args.namespace,
            search_namespaces=args.search_namespaces or None,
            kube_context=args.kube_context,
            use_docker=not args.no_docker,
            use_registry=not args.no_registry,
            use_cluster=not args.no_cluster,
            insecure_registry=args.insecure_registry,
            timeout=args.timeout,
            max_workers=args.workers,
        )
        try:
            result = engine.generate(config)
            if args.output:
                sys.stdout.write(engine.export(result, args.output))
            if args.output_file:
                path = engine.write(result, args.output_file, args.output or "yaml")
                console.print(f"[green]Wrote[/green] {path}")
            if args.apply:
                engine.submit(result)
            if not args.output:
                self.formatter.print_objects_table(result)
                self.formatter.print_summary(engine.generate_summary(result), applied=args.apply)
        finally:
            engine.close()
        return 0

    def run(self, argv: Optional[List[str]] = None) -> int:
        argv = list(sys.argv[1:] if argv is None else argv)
        if not argv:
            self.parser.print_help()
            return 0
        argv, extra = split_separator(argv)
        args = self.parser.parse_args(argv)
        if args.command is None:
            self.parser.print_help()
            return 0
        configure_logging(args.verbose)
        try:
            return self._run(args, extra)
        except KubeForgeError as e:
            self.formatter.show_error(e)
            return 1
        except OSError as e:
            console.print(f"[bold red]error:[/bold red] {e}")
            return 1


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=verbose)],
    )


def main():
    """Application entry point with interrupt handling."""
    try:
        sys.exit(KubeForgeCLI().run())
    except KeyboardInterrupt:
        console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(130)


if __name__ == "__main__":
    main()
