"""
CircleCI CLI - Command-line interface.

This layer provides the user-facing commands on top of the provider. It handles:
- Argument parsing
- TTY detection for human vs machine output
- Pretty formatting for human output
- JSON output for piping/automation
"""

import argparse
import json
import sys
import urllib.error
from typing import Any

from circleci_provider.core.client import CircleCIError, ValidationError
from circleci_provider.core.masking import mask_secret
from circleci_provider.provider import Provider
from circleci_provider.resource import RESOURCE_NAME, ProjectResource, ProjectSpec

# =============================================================================
# Output Helpers
# =============================================================================


def is_tty() -> bool:
    """Check if stdout is a TTY (human) or pipe (machine)."""
    return sys.stdout.isatty()


def json_output(data: Any, pretty: bool = False) -> None:
    """Print JSON output."""
    indent = 2 if pretty or is_tty() else None
    print(json.dumps(data, indent=indent, default=str))


def error_output(error: CircleCIError) -> None:
    """Print error and exit."""
    json_output(error.to_dict())
    sys.exit(1)


def success_output(data: Any) -> None:
    """Print success output."""
    json_output(data)


def table_output(
    headers: list[str],
    rows: list[list[str]],
    widths: list[int],
) -> None:
    """Print a formatted table for human output."""
    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
    print(header_line)
    print("-" * len(header_line))

    for row in rows:
        print("  ".join(str(v)[:w].ljust(w) for v, w in zip(row, widths)))


def load_specs(path: str) -> list[ProjectSpec]:
    """Load one project spec, or a list of them, from a JSON file (or - for stdin)."""
    try:
        if path == "-":
            data = json.load(sys.stdin)
        else:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
    except OSError as e:
        raise ValidationError(f"Cannot read {path}: {e.strerror}")
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}: {e}")

    items = data if isinstance(data, list) else [data]
    if not all(isinstance(item, dict) for item in items):
        raise ValidationError(f"{path} must contain a JSON object or a list of objects")
    return [ProjectSpec.from_dict(item) for item in items]


def _project_resource(provider: Provider) -> ProjectResource:
    return provider.resource(RESOURCE_NAME)


# =============================================================================
# CLI Commands
# =============================================================================


def cmd_projects_list(provider: Provider, _args: argparse.Namespace) -> None:
    """List followed projects."""
    try:
        projects = provider.client.list_projects()

        if is_tty():
            if not projects:
                print("No projects found.")
                return

            table_output(
                ["VCS", "Account", "Project", "AWS key"],
                [
                    [
                        p.vcs_type,
                        p.username,
                        p.reponame,
                        p.aws.keypair.access_key_id if p.aws.keypair else "",
                    ]
                    for p in projects
                ],
                [10, 25, 35, 24],
            )
        else:
            success_output({"data": [p.to_dict() for p in projects], "total_count": len(projects)})
    except CircleCIError as e:
        error_output(e)


def cmd_projects_get(provider: Provider, args: argparse.Namespace) -> None:
    """Get a followed project."""
    try:
        project = provider.client.get_project(args.vcs_type, args.account, args.project)
        success_output(project.to_dict())
    except CircleCIError as e:
        error_output(e)


def cmd_projects_follow(provider: Provider, args: argparse.Namespace) -> None:
    """Follow a project."""
    try:
        project = provider.client.follow_project(args.vcs_type, args.account, args.project)
        success_output(project.to_dict())
    except CircleCIError as e:
        error_output(e)


def cmd_projects_disable(provider: Provider, args: argparse.Namespace) -> None:
    """Disable a project."""
    try:
        provider.client.disable_project(args.vcs_type, args.account, args.project)
        success_output({"success": True, "message": f"Project {args.account}/{args.project} disabled"})
    except CircleCIError as e:
        error_output(e)


def cmd_env_list(provider: Provider, args: argparse.Namespace) -> None:
    """List a project's environment variables."""
    try:
        env_vars = provider.client.list_env_vars(args.vcs_type, args.account, args.project)

        if is_tty():
            if not env_vars:
                print("No environment variables found.")
                return

            table_output(
                ["Name", "Value"],
                [[ev.name, ev.value] for ev in env_vars],
                [40, 20],
            )
        else:
            success_output({"data": [ev.to_dict() for ev in env_vars]})
    except CircleCIError as e:
        error_output(e)


def cmd_env_add(provider: Provider, args: argparse.Namespace) -> None:
    """Add (or overwrite) an environment variable."""
    try:
        env_var = provider.client.add_env_var(args.vcs_type, args.account, args.project, args.name, args.value)
        success_output(env_var.to_dict())
    except CircleCIError as e:
        error_output(e)


def cmd_env_delete(provider: Provider, args: argparse.Namespace) -> None:
    """Delete an environment variable."""
    try:
        provider.client.delete_env_var(args.vcs_type, args.account, args.project, args.name)
        success_output({"success": True, "message": f"Variable {args.name} deleted"})
    except CircleCIError as e:
        error_output(e)


def cmd_aws_set(provider: Provider, args: argparse.Namespace) -> None:
    """Set the project's AWS keys."""
    try:
        provider.client.set_aws_keys(args.vcs_type, args.account, args.project, args.key_id, args.secret)
        success_output(
            {
                "success": True,
                "aws_access_key_id": args.key_id,
                "aws_secret_access_key": mask_secret(args.secret),
            }
        )
    except CircleCIError as e:
        error_output(e)


def cmd_aws_remove(provider: Provider, args: argparse.Namespace) -> None:
    """Remove the project's AWS keys."""
    try:
        provider.client.remove_aws_keys(args.vcs_type, args.account, args.project)
        success_output({"success": True, "message": "AWS keys removed"})
    except CircleCIError as e:
        error_output(e)


def cmd_mask(_provider: Provider | None, args: argparse.Namespace) -> None:
    """Print a secret the way CircleCI displays it."""
    print(mask_secret(args.value))


def cmd_project_plan(provider: Provider, args: argparse.Namespace) -> None:
    """Show what apply would change."""
    try:
        resource = _project_resource(provider)
        plans = [resource.plan(resource.refresh(spec), spec) for spec in load_specs(args.file)]

        if is_tty():
            for plan in plans:
                print(f"{plan.resource_id}: {plan.action}")
                for name in plan.variables.to_delete:
                    print(f"  - variable {name}")
                for name in plan.variables.to_add:
                    print(f"  + variable {name}")
                if plan.aws:
                    print(f"  ~ aws keys ({plan.aws})")
        else:
            success_output({"data": [plan.to_dict() for plan in plans]})
    except CircleCIError as e:
        error_output(e)


def cmd_project_apply(provider: Provider, args: argparse.Namespace) -> None:
    """Create or update projects to match a config file."""
    try:
        resource = _project_resource(provider)
        states = [resource.apply(spec) for spec in load_specs(args.file)]
        success_output({"data": [state.to_dict() for state in states]})
    except CircleCIError as e:
        error_output(e)


def cmd_project_read(provider: Provider, args: argparse.Namespace) -> None:
    """Read (import) a project by id."""
    try:
        state = _project_resource(provider).import_state(args.id)
        success_output(state.to_dict())
    except CircleCIError as e:
        error_output(e)


def cmd_project_destroy(provider: Provider, args: argparse.Namespace) -> None:
    """Disable a project by id."""
    try:
        _project_resource(provider).delete(args.id)
        success_output({"success": True, "message": f"Project {args.id} disabled"})
    except CircleCIError as e:
        error_output(e)


# =============================================================================
# Main CLI
# =============================================================================


def _add_project_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("vcs_type", choices=["github", "bitbucket"], help="Version control system")
    parser.add_argument("account", help="Organization or user that owns the repository")
    parser.add_argument("project", help="Repository name")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="circleci",
        description="CircleCI provider CLI - manage CircleCI projects, env vars and AWS keys",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  CIRCLECI_API_TOKEN   API token (required)
  CIRCLECI_BASE_URL    API endpoint (default https://circleci.com/api/v1.1/)
  CIRCLECI_DEBUG       Log every request and response

Examples:
  circleci projects list | jq '.data[].reponame'
  circleci env add github acme api DEPLOY_KEY s3cret
  circleci project plan project.json
  circleci project apply project.json
""",
    )
    parser.add_argument("--debug", action="store_true", default=None, help="Log requests and responses to stderr")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # ========== Projects ==========
    projects = subparsers.add_parser("projects", help="List and follow projects")
    projects.set_defaults(func=lambda _p, _a: projects.print_help())
    projects_sub = projects.add_subparsers(dest="subcommand")

    p_list = projects_sub.add_parser("list", help="List followed projects")
    p_list.set_defaults(func=cmd_projects_list)

    p_get = projects_sub.add_parser("get", help="Get project details")
    _add_project_args(p_get)
    p_get.set_defaults(func=cmd_projects_get)

    p_follow = projects_sub.add_parser("follow", help="Follow a project")
    _add_project_args(p_follow)
    p_follow.set_defaults(func=cmd_projects_follow)

    p_disable = projects_sub.add_parser("disable", help="Disable a project")
    _add_project_args(p_disable)
    p_disable.set_defaults(func=cmd_projects_disable)

    # ========== Environment variables ==========
    env = subparsers.add_parser("env", help="Manage project environment variables")
    env.set_defaults(func=lambda _p, _a: env.print_help())
    env_sub = env.add_subparsers(dest="subcommand")

    e_list = env_sub.add_parser("list", help="List variables (values are masked)")
    _add_project_args(e_list)
    e_list.set_defaults(func=cmd_env_list)

    e_add = env_sub.add_parser("add", help="Add or overwrite a variable")
    _add_project_args(e_add)
    e_add.add_argument("name", help="Variable name")
    e_add.add_argument("value", help="Variable value")
    e_add.set_defaults(func=cmd_env_add)

    e_delete = env_sub.add_parser("delete", help="Delete a variable")
    _add_project_args(e_delete)
    e_delete.add_argument("name", help="Variable name")
    e_delete.set_defaults(func=cmd_env_delete)

    # ========== AWS keys ==========
    aws = subparsers.add_parser("aws", help="Manage project AWS keys")
    aws.set_defaults(func=lambda _p, _a: aws.print_help())
    aws_sub = aws.add_subparsers(dest="subcommand")

    a_set = aws_sub.add_parser("set", help="Set the AWS keypair")
    _add_project_args(a_set)
    a_set.add_argument("key_id", help="AWS access key ID")
    a_set.add_argument("secret", help="AWS secret access key")
    a_set.set_defaults(func=cmd_aws_set)

    a_remove = aws_sub.add_parser("remove", help="Remove the AWS keypair")
    _add_project_args(a_remove)
    a_remove.set_defaults(func=cmd_aws_remove)

    # ========== Mask ==========
    mask = subparsers.add_parser("mask", help="Show how CircleCI masks a secret")
    mask.add_argument("value", help="Secret value")
    mask.set_defaults(func=cmd_mask, offline=True)

    # ========== Project resource ==========
    project = subparsers.add_parser("project", help="Manage circleci_project resources from config")
    project.set_defaults(func=lambda _p, _a: project.print_help())
    project_sub = project.add_subparsers(dest="subcommand")

    r_plan = project_sub.add_parser("plan", help="Show changes needed to match a config file")
    r_plan.add_argument("file", help="Project config JSON (or - for stdin)")
    r_plan.set_defaults(func=cmd_project_plan)

    r_apply = project_sub.add_parser("apply", help="Create or update projects to match a config file")
    r_apply.add_argument("file", help="Project config JSON (or - for stdin)")
    r_apply.set_defaults(func=cmd_project_apply)

    r_read = project_sub.add_parser("read", help="Read (import) a project by id")
    r_read.add_argument("id", help="Project id (vcs_type:account:project)")
    r_read.set_defaults(func=cmd_project_read)

    r_destroy = project_sub.add_parser("destroy", help="Disable a project by id")
    r_destroy.add_argument("id", help="Project id (vcs_type:account:project)")
    r_destroy.set_defaults(func=cmd_project_destroy)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    # Group commands without a subcommand only print help
    offline = getattr(args, "offline", False) or getattr(args, "subcommand", "") is None

    provider = None
    if not offline:
        try:
            provider = Provider.from_env(debug=args.debug)
        except CircleCIError as e:
            error_output(e)

    try:
        args.func(provider, args)
    except urllib.error.URLError as e:
        error_output(CircleCIError(f"Connection error: {e.reason}"))
    except TimeoutError:
        error_output(CircleCIError("Request timed out"))
    except OSError as e:
        error_output(CircleCIError(f"Connection error: {e}"))
    except json.JSONDecodeError as e:
        error_output(CircleCIError(f"Invalid JSON response: {e}"))


if __name__ == "__main__":
    main()
