"""Command-line interface for ldap-realm."""

import argparse
import getpass
import json
import sys

from .config import apply_overrides, generate_config_file, load_config
from .constants import Colors
from .ldap.discovery import Autodiscovery, realm_to_base_dn
from .ldap.errors import LdapRealmError, NotFoundError
from .log_config import setup_logging
from .realm import LdapRealm
from .settings import LdapSettingsManager

VERBOSITY_LEVELS = {0: "WARNING", 1: "INFO", 2: "DEBUG"}


def load_settings(args) -> dict:
    """Settings from the config file (if any) with -s overrides applied."""
    settings = {}
    if args.config:
        settings = load_config(args.config)
        print(f"{Colors.GREEN}[+] Loaded config from: {args.config}{Colors.NC}", file=sys.stderr)
    return apply_overrides(settings, args.set)


def build_realm(args) -> LdapRealm:
    """Load settings and initialize the realm."""
    realm = LdapRealm(LdapSettingsManager(load_settings(args)))
    realm.init()
    return realm


def cmd_test_connection(args) -> int:
    """Test the bind context of every configured server."""
    manager = LdapSettingsManager(load_settings(args))
    failed = 0
    for bundle in manager.get_bundles():
        try:
            bundle.context_factory.test_connection()
            print(f"{Colors.GREEN}[+] {bundle.key}: {bundle.config.url} OK{Colors.NC}", file=sys.stderr)
        except LdapRealmError as e:
            failed += 1
            print(f"{Colors.RED}[!] {bundle.key}: {bundle.config.url} FAILED: {e}{Colors.NC}", file=sys.stderr)
    return 1 if failed else 0


def cmd_authenticate(args) -> int:
    """Verify a login and password."""
    password = args.password
    if password is None:
        password = getpass.getpass(f"Password for {args.login}: ")

    realm = build_realm(args)
    result = realm.get_authenticator().authenticate(args.login, password)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    for attempt in result.attempts:
        suffix = f" ({attempt.ad_status})" if attempt.ad_status else ""
        color = Colors.GREEN if result.server_key == attempt.server_key else Colors.ORANGE
        print(f"{color}[*] {attempt.server_key}: {attempt.status}{suffix}{Colors.NC}", file=sys.stderr)

    if result.success:
        print(f"{Colors.GREEN}[+] {args.login} authenticated by {result.server_key}{Colors.NC}", file=sys.stderr)
        return 0
    print(f"{Colors.RED}[!] Authentication failed for {args.login}{Colors.NC}", file=sys.stderr)
    return 1


def cmd_user_details(args) -> int:
    """Show the name and email of a user."""
    realm = build_realm(args)
    try:
        details = realm.fetch_user_details(args.login)
    except NotFoundError as e:
        print(f"{Colors.ORANGE}[!] {e}{Colors.NC}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(details.to_dict(), indent=2))
    else:
        print(f"  {Colors.LBLUE}Name:{Colors.NC}  {details.name}")
        print(f"  {Colors.LBLUE}Email:{Colors.NC} {details.email}")
    return 0


def cmd_groups(args) -> int:
    """Show the groups of a user."""
    realm = build_realm(args)
    try:
        groups = realm.fetch_groups(args.login)
    except NotFoundError as e:
        print(f"{Colors.ORANGE}[!] {e}{Colors.NC}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(groups, indent=2))
        return 0
    if not groups:
        print(f"{Colors.ORANGE}[!] {args.login} is not a member of any group{Colors.NC}", file=sys.stderr)
        return 0
    for group in groups:
        print(group)
    return 0


def cmd_discover(args) -> int:
    """List the directory servers announced in DNS for a realm."""
    urls = Autodiscovery().get_ldap_server_urls(args.realm)
    print(f"{Colors.BLUE}[+] Base DN: {realm_to_base_dn(args.realm)}{Colors.NC}", file=sys.stderr)
    if not urls:
        print(f"{Colors.ORANGE}[!] No LDAP server found for {args.realm}{Colors.NC}", file=sys.stderr)
        return 1
    for url in urls:
        print(url)
    return 0


def cmd_generate_config(args) -> int:
    """Write or print a configuration template."""
    result = generate_config_file(args.output)
    if args.output:
        print(f"{Colors.GREEN}[+] {result}{Colors.NC}", file=sys.stderr)
    else:
        print(result)
    return 0


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Authenticate users and resolve their groups against LDAP / Active Directory.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -c ldap.ini test-connection
  %(prog)s -c ldap.ini authenticate jdoe
  %(prog)s -c ldap.ini -s ldap.group.nested=true groups jdoe
  %(prog)s discover example.org
        """,
    )
    parser.add_argument("-c", "--config", help="Configuration file (INI format)")
    parser.add_argument("-s", "--set", action="append", default=[], metavar="KEY=VALUE",
                        help="Override a setting, e.g. ldap.url=ldap://host (repeatable)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log verbosity (-v info, -vv debug)")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    test_parser = subparsers.add_parser("test-connection", help="Test the connection to every configured server")
    test_parser.set_defaults(func=cmd_test_connection)

    auth_parser = subparsers.add_parser("authenticate", help="Verify a login and password")
    auth_parser.add_argument("login", help="Login of the user")
    auth_parser.add_argument("-p", "--password", help="Password (prompted when omitted)")
    auth_parser.add_argument("--json", action="store_true", help="Print the per-server outcome as JSON")
    auth_parser.set_defaults(func=cmd_authenticate)

    details_parser = subparsers.add_parser("user-details", help="Show the name and email of a user")
    details_parser.add_argument("login", help="Login of the user")
    details_parser.add_argument("--json", action="store_true", help="Print as JSON")
    details_parser.set_defaults(func=cmd_user_details)

    groups_parser = subparsers.add_parser("groups", help="Show the groups of a user")
    groups_parser.add_argument("login", help="Login of the user")
    groups_parser.add_argument("--json", action="store_true", help="Print as JSON")
    groups_parser.set_defaults(func=cmd_groups)

    discover_parser = subparsers.add_parser("discover", help="Discover LDAP servers from DNS SRV records")
    discover_parser.add_argument("realm", help="DNS realm, e.g. example.org")
    discover_parser.set_defaults(func=cmd_discover)

    generate_parser = subparsers.add_parser("generate-config", help="Generate a configuration template")
    generate_parser.add_argument("-o", "--output", help="Write the template to this file instead of stdout")
    generate_parser.set_defaults(func=cmd_generate_config)

    args = parser.parse_args(argv)

    # Disable colors if not a TTY
    if not sys.stderr.isatty():
        Colors.disable()

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(VERBOSITY_LEVELS.get(min(args.verbose, 2)))

    try:
        return args.func(args)
    except LdapRealmError as e:
        print(f"{Colors.RED}[!] {e}{Colors.NC}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
