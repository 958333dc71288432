#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""Command line interface to manage sessions and their credentials.

## Overview

The `credbroker` CLI creates accounts in a workspace and starts or stops their
sessions. Starting a session writes short-lived credentials to its profile in
the AWS shared credentials file, where the AWS CLI and SDKs will find them:

    $ credbroker create federated --name prod --account-number 111111111111 \\
        --idp-arn arn:aws:iam::111111111111:saml-provider/ADFS \\
        --idp-url https://adfs.example.com/adfs/ls/IdpInitiatedSignOn.aspx \\
        --role Admin --profile prod
    $ credbroker create truster --name prod-readonly --parent prod \\
        --account-number 222222222222 \\
        --role-arn arn:aws:iam::222222222222:role/ReadOnly --profile readonly
    $ credbroker start prod-readonly
    $ aws --profile readonly s3 ls
    $ credbroker stop prod-readonly

Sessions can be referred to by account name or by session id. Use `credbroker
list` to show all sessions and their status.

## Configuration

Default values for many flags can be set in the YAML configuration file,
`$HOME/.credbroker.yaml`, or the file named by the `CREDBROKER_CONFIG`
environment variable:

    CLI:
      workspace: ~/.credbroker/workspace.yaml
      credentials_file: ~/.aws/credentials
      log_level: ERROR
    SAML:
      username: STRING
      password: STRING
      auth_type: ("basic" | "digest" | "ntlm")
      http_method: ("GET" | "POST")
      http_headers:
        STRING: STRING
      no_verify: BOOLEAN

The `SAML` section configures how federated accounts authenticate with their
IdP. If no password is configured, the `PASSWORD` environment variable is used,
and if that is not set either, the user is prompted when a federated session
is started.

## Errors

Errors are printed to standard error and the CLI exits with a status of 1. Set
the `CREDBROKER_TRACE` environment variable to `1` to include a traceback.
"""

import argparse
import getpass
import logging
import os
import sys
import traceback
from functools import partial
from pathlib import Path

from colorama import Fore, Style, init
from requests.auth import HTTPBasicAuth, HTTPDigestAuth
from requests_ntlm import HttpNtlmAuth

from credbroker import __version__
from credbroker.account import AccountType
from credbroker.config import Bool, Choice, Config, Dict, Str
from credbroker.credfile import CredentialFileStore
from credbroker.dispatch import SessionProviderDispatcher
from credbroker.errors import SessionNotFound
from credbroker.registry import SessionRegistry

LOG = logging.getLogger(__name__)

DEFAULT_WORKSPACE = Path.home() / ".credbroker" / "workspace.yaml"

_AUTH_CLASSES = {"basic": HTTPBasicAuth, "digest": HTTPDigestAuth, "ntlm": HttpNtlmAuth}

# Parsed arguments of `create` that are not part of the account request.
_NON_REQUEST_ARGS = {
    "workspace",
    "credentials_file",
    "log_level",
    "command",
    "account_type",
    "profile",
    "parent",
}


class RawAndDefaultsFormatter(
    argparse.ArgumentDefaultsHelpFormatter, argparse.RawDescriptionHelpFormatter
):
    """Mixin of ArgumentDefaultsHelpFormatter and RawDescriptionHelpFormatter."""


# setup.py establishes this as the entry point for the credbroker CLI.
def main(argv=None):
    """The main entry point for the `credbroker` CLI tool.

    Exits with a `0` status code upon success. Upon error, prints the error
    message to standard error and exits with `1`. If a stack trace is desired,
    set the `CREDBROKER_TRACE` environment variable to `1`.
    """
    try:
        _cli(argv)

    except Exception as e:  # pylint: disable=broad-except
        if os.getenv("CREDBROKER_TRACE"):
            traceback.print_exc(file=sys.stderr)

        print(e, file=sys.stderr)
        sys.exit(1)


def _config_filename():
    return os.environ.get("CREDBROKER_CONFIG", Path.home() / ".credbroker.yaml")


def _build_parser(config):
    cfg = partial(config.get, "CLI")

    parser = argparse.ArgumentParser(
        prog="credbroker",
        formatter_class=RawAndDefaultsFormatter,
        description="Materialize short-lived cloud credentials for local tools.",
    )

    parser.add_argument(
        "--workspace",
        metavar="FILE",
        default=cfg("workspace", type=Str, default=str(DEFAULT_WORKSPACE)),
        help="workspace file holding accounts and sessions",
    )

    parser.add_argument(
        "--credentials-file",
        metavar="FILE",
        default=cfg("credentials_file", type=Str),
        help="credential file to write (default: AWS shared credentials file)",
    )

    parser.add_argument(
        "--log-level",
        default=cfg(
            "log_level", type=Choice("DEBUG", "INFO", "WARN", "ERROR"), default="ERROR"
        ),
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        help="set the logging level",
    )

    parser.add_argument(
        "--version", action="version", version="%(prog)s " + __version__
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    commands.add_parser("list", help="list sessions")
    commands.add_parser("profiles", help="list profiles")

    for name, help_ in [
        ("start", "generate and apply credentials"),
        ("stop", "remove applied credentials"),
        ("rotate", "replace credentials of an active session"),
        ("delete", "delete a session, stopping it first"),
    ]:
        p = commands.add_parser(name, help=help_)
        p.add_argument("session", help="account name or session id")

    create = commands.add_parser("create", help="create an account and its session")
    types = create.add_subparsers(dest="account_type", metavar="TYPE")
    types.required = True

    direct = _add_create_parser(types, AccountType.DIRECT, "long-lived AWS keys")
    direct.add_argument("--account-number", required=True)
    direct.add_argument("--source-profile", required=True)

    federated = _add_create_parser(types, AccountType.FEDERATED, "SAML federation")
    federated.add_argument("--account-number", required=True)
    federated.add_argument("--idp-arn", required=True)
    federated.add_argument("--idp-url", required=True)
    federated.add_argument(
        "--role", action="append", dest="roles", default=[], required=True
    )
    federated.add_argument("--selected-role")

    truster = _add_create_parser(types, AccountType.TRUSTER, "role chaining")
    truster.add_argument("--account-number", required=True)
    truster.add_argument("--role-arn", required=True)
    truster.add_argument("--parent", required=True, help="parent name or session id")
    truster.add_argument("--parent-role")

    subscription = _add_create_parser(types, AccountType.SUBSCRIPTION, "Azure")
    subscription.add_argument("--subscription-id", required=True)

    return parser


def _add_create_parser(types, account_type, help_):
    p = types.add_parser(account_type, help=f"create a {help_} account")
    p.add_argument("--name", required=True, dest="account_name")
    p.add_argument("--region", help="region (default: workspace setting)")
    p.add_argument("--profile", default="default", help="profile to apply to")
    return p


def _cli(argv=None):
    """Parses command line arguments and runs the selected command."""
    config = Config.from_file(_config_filename())
    args = _build_parser(config).parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(name)s %(levelname)s [%(threadName)s] %(message)s",
    )

    registry = SessionRegistry.load(args.workspace)
    store = CredentialFileStore(args.credentials_file)

    options = {}
    if args.command in ("start", "rotate") and _needs_idp(
        registry, registry.find(args.session)
    ):
        options[AccountType.FEDERATED] = _saml_options(config)

    dispatcher = SessionProviderDispatcher(registry, store, options)

    if args.command == "list":
        _print_sessions(registry)
    elif args.command == "profiles":
        profiles = registry.profiles()
        for profile_id in sorted(profiles, key=profiles.get):
            print(f"{profiles[profile_id]}  {profile_id}")
    elif args.command == "create":
        session = _create(dispatcher, registry, args)
        print(f"Created {session.account.account_name} ({session.session_id})")
    else:
        session = registry.find(args.session)
        generator = dispatcher.for_session(session.session_id)
        getattr(generator, args.command)(session.session_id)
        profile = registry.get_profile_name(session.profile_id)
        print(f"{args.command}: {session.account.account_name} [{profile}]")


def _create(dispatcher, registry, args):
    request = {
        k: v
        for k, v in vars(args).items()
        if k not in _NON_REQUEST_ARGS and v is not None
    }
    if args.account_type == AccountType.TRUSTER:
        request["parent_session_id"] = registry.find(args.parent).session_id

    profile_id = registry.add_profile(args.profile)
    return dispatcher.get_service(args.account_type).create(request, profile_id)


def _needs_idp(registry, session):
    """Returns True if starting `session` requires authenticating to an IdP."""
    seen = set()
    while session.session_id not in seen:
        if session.account.type == AccountType.FEDERATED:
            return True
        if session.account.type != AccountType.TRUSTER:
            return False
        seen.add(session.session_id)
        try:
            session = registry.get(session.parent_session_id)
        except SessionNotFound:
            # Reported by the generator when the session is started.
            return False
    return False


def _saml_options(config):
    cfg = partial(config.get, "SAML")

    username = cfg("username", type=Str) or getpass.getuser()
    password = cfg("password", type=Str, default=os.environ.get("PASSWORD"))
    password = password or getpass.getpass(f"Password for {username}? ")

    auth = _AUTH_CLASSES[
        cfg("auth_type", type=Choice("basic", "digest", "ntlm"), default="basic")
    ]

    return {
        "auth": auth(username, password),
        "http_method": cfg("http_method", type=Choice("GET", "POST"), default="GET"),
        "headers": cfg("http_headers", type=Dict(Str, Str), default={}),
        "no_verify": cfg("no_verify", type=Bool, default=False),
    }


def _print_sessions(registry):
    """Pretty print a table of sessions."""
    sessions = registry.sessions()
    if not sessions:
        print("No sessions, use 'credbroker create' to add one")
        return

    init()
    width = max(len(s.account.account_name) for s in sessions)
    for s in sorted(sessions, key=lambda s: s.account.account_name):
        color = Fore.GREEN if s.active else Style.DIM
        profile = registry.get_profile_name(s.profile_id)
        print(
            f"{s.account.account_name:{width}}  {s.account.type:12}  "
            f"{color}{s.status:8}{Style.RESET_ALL}  {profile:16}  {s.session_id}",
        )


if __name__ == "__main__":
    main()
