"""
stackforge command line

    stackforge [--profile P] [--region R] [--debug] list
    stackforge [--profile P] [--region R] [--debug] graph
    stackforge [--profile P] [--region R] [--debug] update [--stack-name S] [--yes]
    stackforge profiles
"""

import argparse
import logging
import os
import sys
from typing import List, Optional, TextIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, ProfileNotFound
from rich.console import Console

from CFStacks import __version__, log, table
from CFStacks.clients import ClientCache
from CFStacks.credentials import fetch_profiles
from CFStacks.errors import StackForgeError
from CFStacks.graph import GraphError
from CFStacks.inventory import StackInventory
from CFStacks.orchestrator import UpdateOrchestrator
from CFStacks.stack_graph import build_stack_graph, graph_label

LIST_COLUMNS = ['Stack Account ID', 'Stack Region', 'Stack Name', 'Template ID', 'Template Version', 'Template Drift']
PROFILE_COLUMNS = ['Profile', 'Access Key', 'Role ARN', 'Source Profile', 'MFA']


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='stackforge',
        description='Inventory, visualize and update stacks created from released CloudFormation templates.'
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    parser.add_argument('--profile', help='AWS profile to use')
    parser.add_argument('--region', help='Restrict to a single region (default: all regions)')
    parser.add_argument('--debug', action='store_true', help='Print AWS API calls')

    commands = parser.add_subparsers(dest='command', required=True)
    commands.add_parser('list', help='List stacks with template version and drift')
    commands.add_parser('graph', help='Print the stack dependency graph in DOT format')
    update = commands.add_parser('update', help='Update stacks to the latest template release')
    update.add_argument('--stack-name', help='Only update this stack')
    update.add_argument('--yes', action='store_true', help='Do not ask for confirmation')
    commands.add_parser('profiles', help='List profiles of the AWS credentials file')
    return parser


def list_stacks(console: Console, inventory: StackInventory, region: Optional[str]):
    stacks = inventory.fetch_all_stacks(region)
    rows = [
        [stack.account_id, stack.region, stack.name, stack.template_id, stack.version_label, stack.template_drift_detected]
        for stack in stacks
    ]
    table.print_table(console, LIST_COLUMNS, rows)


def print_graph(stdout: TextIO, inventory: StackInventory, region: Optional[str]):
    stacks = inventory.fetch_all_stacks(region)
    graph = build_stack_graph(stacks, graph_id='root', label=f"stackforge {__version__}", node_label=graph_label)
    stdout.write(graph.to_dot())


def list_profiles(console: Console):
    rows = [
        [
            name,
            profile.get('aws_access_key_id'),
            profile.get('role_arn'),
            profile.get('source_profile'),
            profile.get('mfa_serial')
        ]
        for name, profile in fetch_profiles().items()
    ]
    table.print_table(console, PROFILE_COLUMNS, rows)


def run(
    argv: List[str],
    stdout: TextIO = sys.stdout,
    stderr: TextIO = sys.stderr,
    stdin: TextIO = sys.stdin
) -> int:
    """
    Run the CLI.

    Returns:
        Exit code: 0 on success, 1 on any reported error
    """
    args = build_parser().parse_args(argv)
    log.configure()
    console = Console(file=stdout)

    if args.debug:
        boto3.set_stream_logger('botocore', logging.DEBUG)
        if 'HTTPS_PROXY' in os.environ:
            console.print(f"using https proxy {os.environ['HTTPS_PROXY']}")

    try:
        if args.command == 'profiles':
            list_profiles(console)
            return 0

        clients = ClientCache(boto3.Session(profile_name=args.profile))
        inventory = StackInventory(clients=clients)

        if args.command == 'list':
            list_stacks(console, inventory, args.region)
        elif args.command == 'graph':
            print_graph(stdout, inventory, args.region)
        elif args.command == 'update':
            stacks = inventory.fetch_all_stacks(args.region)
            orchestrator = UpdateOrchestrator(console=console, stdin=stdin, assume_yes=args.yes, clients=clients)
            orchestrator.run(stacks, stack_name=args.stack_name)
        return 0

    except NoCredentialsError:
        message = "AWS credentials not found. Please configure AWS credentials."
    except ProfileNotFound as e:
        message = str(e)
    except (StackForgeError, GraphError) as e:
        message = str(e)
    except (ClientError, BotoCoreError) as e:
        message = f"AWS request failed: {e}"

    print(f"✗ {message}", file=stderr)
    log.fatal(f"stackforge {' '.join(argv)} failed: {message}")
    return 1


def main():
    sys.exit(run(sys.argv[1:]))


if __name__ == '__main__':
    main()
