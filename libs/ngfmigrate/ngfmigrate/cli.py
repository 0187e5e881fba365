"""
CLI for ngfmigrate - move from NGINX Ingress Controller to NGINX Gateway Fabric.

Commands:
    generate    Write cluster.yaml, values.yaml and manifests.yaml
    plan        Show the ordered eksctl/kubectl/helm/openssl commands
    apply       Run the commands
    teardown    Undo the migration and delete the cluster
    convert     Translate Ingress manifests into Gateway API manifests
    validate    Validate migration.yaml schema
    diagnose    Troubleshoot routes, the gateway, 404s and logs
"""

import argparse
import logging
import sys
from typing import List, Optional

import yaml

from .commands import PHASE_ORDER, build_plan, build_teardown_plan, required_tools
from .converter import conversion_manifests, convert_ingresses, load_ingresses
from .diagnostics import (
    ERROR,
    diagnose_gateway,
    diagnose_not_found,
    diagnose_route,
    fetch_resource,
    log_commands,
)
from .generators import (
    dump_manifests,
    generate_all_manifests,
    generate_eksctl_cluster_config,
    generate_helm_values,
    write_manifests,
    write_yaml,
)
from .runner import CommandError, check_tools, run_plan
from .schema import load_migration_yaml, read_migration_yaml, validate_migration_yaml
from .types import MigrationConfig, Protocol

DEFAULT_OUTPUT = "./generated"


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ngfmigrate",
        description="Migrate from NGINX Ingress Controller to the Gateway API with NGINX Gateway Fabric on EKS",
    )
    parser.add_argument(
        "-f", "--file",
        default=None,
        help="Path to migration.yaml (default: search up from cwd)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    phase_names = [p.value for p in PHASE_ORDER]

    gen_parser = subparsers.add_parser(
        "generate",
        help="Write cluster.yaml, values.yaml and manifests.yaml",
    )
    gen_parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT,
        help=f"Output directory (default: {DEFAULT_OUTPUT})",
    )

    plan_parser = subparsers.add_parser(
        "plan",
        help="Show the migration commands in order",
    )
    plan_parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT,
        help=f"Directory holding the generated files (default: {DEFAULT_OUTPUT})",
    )
    plan_parser.add_argument(
        "--phase",
        action="append",
        choices=phase_names,
        help="Only show this phase (repeatable)",
    )

    apply_parser = subparsers.add_parser(
        "apply",
        help="Generate files and run the migration commands",
    )
    apply_parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT,
        help=f"Output directory (default: {DEFAULT_OUTPUT})",
    )
    apply_parser.add_argument(
        "--phase",
        action="append",
        choices=phase_names,
        help="Only run this phase (repeatable)",
    )
    apply_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print commands without running them",
    )
    apply_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Keep going after a failed command",
    )

    teardown_parser = subparsers.add_parser(
        "teardown",
        help="Delete the Gateway API resources, NGINX Gateway Fabric and the cluster",
    )
    teardown_parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT,
        help=f"Directory holding the generated files (default: {DEFAULT_OUTPUT})",
    )
    teardown_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print commands without running them",
    )

    convert_parser = subparsers.add_parser(
        "convert",
        help="Translate Ingress manifests into Gateway API manifests",
    )
    convert_parser.add_argument(
        "ingress",
        help="YAML file with Ingress objects (e.g. kubectl get ingress -A -o yaml)",
    )
    convert_parser.add_argument(
        "-o", "--output",
        help="Output file (default: stdout)",
    )

    subparsers.add_parser(
        "validate",
        help="Validate migration.yaml schema",
    )

    diag_parser = subparsers.add_parser(
        "diagnose",
        help="Troubleshoot the migrated cluster",
    )
    diag_parser.add_argument("--route", help="Check the status of this HTTPRoute")
    diag_parser.add_argument(
        "-n", "--namespace",
        help="Namespace of the HTTPRoute (default: from migration.yaml)",
    )
    diag_parser.add_argument(
        "--gateway",
        action="store_true",
        help="Check the status of the Gateway",
    )
    diag_parser.add_argument("--host", help="Host of a request that returned 404")
    diag_parser.add_argument("--path", default="/", help="Path of a request that returned 404")
    diag_parser.add_argument(
        "--logs",
        action="store_true",
        help="Show the commands that print NGINX Gateway Fabric logs",
    )

    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_config(args: argparse.Namespace) -> Optional[MigrationConfig]:
    """Load migration.yaml, printing the error and returning None on failure."""
    try:
        return load_migration_yaml(args.file)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
    return None


def write_generated(config: MigrationConfig, output: str) -> None:
    """Write every file the migration commands read."""
    write_yaml(generate_eksctl_cluster_config(config.cluster), output, "cluster.yaml")
    write_yaml(generate_helm_values(config.fabric), output, "values.yaml")
    write_manifests(generate_all_manifests(config), output)


def cmd_generate(args: argparse.Namespace) -> int:
    """Handle generate command."""
    config = _load_config(args)
    if config is None:
        return 1

    write_generated(config, args.output)
    print(f"Generated cluster.yaml, values.yaml and manifests.yaml in {args.output}")
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Handle plan command."""
    config = _load_config(args)
    if config is None:
        return 1

    steps = build_plan(config, args.output, args.phase)
    current = None
    for index, step in enumerate(steps, start=1):
        if step.phase != current:
            current = step.phase
            print(f"\n# {current.value}")
        print(f"# {index}. {step.description}")
        print(step.render())
    return 0


def cmd_apply(args: argparse.Namespace) -> int:
    """Handle apply command."""
    config = _load_config(args)
    if config is None:
        return 1

    steps = build_plan(config, args.output, args.phase)

    if not args.dry_run:
        missing = check_tools(required_tools(steps))
        if missing:
            print(f"Error: required tools not found on PATH: {', '.join(missing)}", file=sys.stderr)
            return 1

    write_generated(config, args.output)

    try:
        results = run_plan(
            steps,
            dry_run=args.dry_run,
            continue_on_error=args.continue_on_error,
        )
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    failed = [r for r in results if not r.ok]
    for result in results:
        if result.stdout and args.verbose:
            print(result.stdout)

    if failed:
        print(f"{len(failed)} of {len(results)} steps failed", file=sys.stderr)
        return 1

    print(f"Completed {len(results)} steps")
    return 0


def cmd_teardown(args: argparse.Namespace) -> int:
    """Handle teardown command."""
    config = _load_config(args)
    if config is None:
        return 1

    try:
        run_plan(build_teardown_plan(config, args.output), dry_run=args.dry_run)
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_convert(args: argparse.Namespace) -> int:
    """Handle convert command."""
    try:
        ingresses = load_ingresses(args.ingress)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Error: cannot parse {args.ingress}: {e}", file=sys.stderr)
        return 1

    if not ingresses:
        print(f"No Ingress objects found in {args.ingress}", file=sys.stderr)
        return 0

    # Gateway name/namespace/class come from migration.yaml when there is one
    try:
        base = load_migration_yaml(args.file)
    except FileNotFoundError:
        base = MigrationConfig()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    http_listener = next(
        (lst.name for lst in base.gateway.listeners if lst.protocol == Protocol.HTTP),
        "http",
    )
    result = convert_ingresses(ingresses, http_listener=http_listener)
    content = dump_manifests(conversion_manifests(result.apply_to(base)))

    if args.output:
        with open(args.output, "w") as f:
            f.write(content)
        print(f"Written: {args.output}", file=sys.stderr)
    else:
        print(content)

    print(
        f"Converted {len(ingresses) - len(result.skipped)} Ingresses into "
        f"{len(result.routes)} HTTPRoutes",
        file=sys.stderr,
    )
    if result.warnings:
        print(f"{len(result.warnings)} warnings need manual review:", file=sys.stderr)
        for warning in result.warnings:
            print(f"  - {warning}", file=sys.stderr)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle validate command."""
    try:
        data = read_migration_yaml(args.file)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    errors = validate_migration_yaml(data)
    if errors:
        print("Validation errors:", file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        return 1

    try:
        config = MigrationConfig.from_dict(data)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"✓ {args.file or 'migration.yaml'} is valid")
    print(f"  Cluster: {config.cluster.name} ({config.cluster.region})")
    print(f"  Gateway: {config.gateway.namespace}/{config.gateway.name} "
          f"with {len(config.gateway.listeners)} listeners")
    print(f"  Routes: {len(config.routes)}")
    cross = config.cross_namespace_routes()
    if cross:
        print(f"  Cross-namespace routes: {len(cross)}")
    backends = config.cross_namespace_backends()
    if backends:
        print(f"  Cross-namespace backends: {len(backends)} (ReferenceGrants will be generated)")
    return 0


def cmd_diagnose(args: argparse.Namespace) -> int:
    """Handle diagnose command."""
    config = _load_config(args)
    if config is None:
        return 1

    if not (args.route or args.gateway or args.host or args.logs):
        print("Error: pass --route, --gateway, --host or --logs", file=sys.stderr)
        return 1

    findings = []
    try:
        if args.gateway:
            gateway = fetch_resource("gateway", config.gateway.name, config.gateway.namespace)
            findings += diagnose_gateway(gateway)
        if args.route:
            route = config.get_route(args.route)
            namespace = args.namespace or (route.namespace if route else "default")
            findings += diagnose_route(fetch_resource("httproute", args.route, namespace))
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.host:
        findings += diagnose_not_found(config, args.host, args.path)

    for finding in findings:
        print(finding)

    if args.logs:
        print("Logs:")
        for argv in log_commands(config):
            print(f"  {' '.join(argv)}")

    return 1 if any(f.severity == ERROR for f in findings) else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "generate": cmd_generate,
        "plan": cmd_plan,
        "apply": cmd_apply,
        "teardown": cmd_teardown,
        "convert": cmd_convert,
        "validate": cmd_validate,
        "diagnose": cmd_diagnose,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
