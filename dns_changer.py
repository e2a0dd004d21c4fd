import re
import subprocess
import sys
import argparse
import itertools
from collections import namedtuple
from types import MappingProxyType

# --- Constants ---
NETWORKSETUP = "networksetup"
CLEAR_SENTINEL = "Empty"  # networksetup's value for "no servers, use DHCP"
ADVISORY_MARKER = "An asterisk"  # "An asterisk (*) denotes that a network service is disabled."
DEFAULT_PROVIDER = "shecan"
COMMAND_TIMEOUT = 30  # seconds, per networksetup invocation

DNS_PROVIDERS = MappingProxyType({
    "shecan": ("178.22.122.100", "185.51.200.2"),
    "begzar": ("185.55.226.26", "185.55.225.25", "185.55.224.24"),
    "electro": ("78.157.42.101", "78.157.42.100"),
})

IP_PATTERN = re.compile(r"^(?:\d{1,3}\.){3}\d{1,3}$")

DnsSelection = namedtuple("DnsSelection", ["servers", "provider"])


# --- Errors ---

class DnsChangerError(Exception):
    """Base class for failures reported to the user as 'Error: <message>'."""


class ServiceDiscoveryError(DnsChangerError):
    pass


class DnsMutationError(DnsChangerError):
    pass


class DnsQueryError(DnsChangerError):
    pass


# --- Command execution ---

def run_command(args, verbose=False, timeout=COMMAND_TIMEOUT):
    """
    Runs an external command and captures its output as text.

    Args:
        args (list[str]): The command and its arguments.
        verbose (bool, optional): Echo the command line before running it.
        timeout (float, optional): Seconds to wait before giving up. None waits forever.

    Returns:
        subprocess.CompletedProcess: The finished process. A non-zero exit status
                                     is not raised; callers inspect returncode.

    Raises:
        OSError: If the executable is missing or cannot be run.
        subprocess.TimeoutExpired: If the command outlives the timeout.
    """
    if verbose:
        print(f"Executing: {' '.join(args)}")
    return subprocess.run(args, capture_output=True, text=True, timeout=timeout)


def _error_text(result):
    return result.stderr.strip() or result.stdout.strip() or "Unknown error"


# --- Service resolution ---

def select_service(lines):
    """
    Picks the network service to configure from raw listing lines.
    Blank lines and the advisory header are skipped. Wi-Fi wins over Ethernet,
    which wins over whatever comes first.

    Args:
        lines (list[str]): Lines of 'networksetup -listallnetworkservices' output.

    Returns:
        str or None: The chosen service name, or None if nothing usable remains.
    """
    services = [line.strip() for line in lines
                if line.strip() and not line.startswith(ADVISORY_MARKER)]

    for keyword in ("wi-fi", "ethernet"):
        for service in services:
            if keyword in service.lower():
                return service

    return services[0] if services else None


def get_active_service(verbose=False, timeout=COMMAND_TIMEOUT):
    """
    Finds the active network service (Wi-Fi, then Ethernet, then first available).

    Returns:
        str: The network service name.

    Raises:
        ServiceDiscoveryError: If the services cannot be listed or none is usable.
    """
    try:
        result = run_command([NETWORKSETUP, "-listallnetworkservices"], verbose, timeout)
    except FileNotFoundError:
        raise ServiceDiscoveryError(f"'{NETWORKSETUP}' command not found. This tool requires macOS.")
    except OSError as e:
        raise ServiceDiscoveryError(f"Could not run '{NETWORKSETUP}': {e}")
    except subprocess.TimeoutExpired:
        raise ServiceDiscoveryError(f"Listing network services timed out after {timeout} seconds")

    if result.returncode != 0:
        raise ServiceDiscoveryError("Failed to list network services")

    service = select_service(result.stdout.split("\n"))
    if service is None:
        raise ServiceDiscoveryError("No network service found")
    return service


# --- Argument classification ---

def is_ip_shaped(value):
    """Syntactic IPv4 check: four dot-separated groups of 1-3 digits. Octets are not range-checked."""
    return bool(IP_PATTERN.match(value))


def parse_dns_servers(args):
    """
    Works out which DNS servers the arguments ask for.

    A known provider name as the first argument wins. Otherwise the leading run
    of IP-shaped arguments is used, stopping at the first one that isn't. If
    neither applies, the default provider is used. This never fails.

    Args:
        args (list[str]): Arguments after any leading 'set'.

    Returns:
        DnsSelection: servers (list[str]) and provider (str, or None for literal IPs).
    """
    first_arg = args[0].lower() if args else None
    if first_arg in DNS_PROVIDERS:
        return DnsSelection(list(DNS_PROVIDERS[first_arg]), first_arg)

    custom_servers = []
    for arg in args:
        if not is_ip_shaped(arg):
            break
        custom_servers.append(arg)

    if custom_servers:
        return DnsSelection(custom_servers, None)

    return DnsSelection(list(DNS_PROVIDERS[DEFAULT_PROVIDER]), DEFAULT_PROVIDER)


# --- DNS mutation ---

def _setdnsservers(service, values, action, verbose, timeout):
    cmd = [NETWORKSETUP, "-setdnsservers", service] + list(values)
    try:
        result = run_command(cmd, verbose, timeout)
    except FileNotFoundError:
        raise DnsMutationError(f"'{NETWORKSETUP}' command not found. This tool requires macOS.")
    except OSError as e:
        raise DnsMutationError(f"Could not run '{NETWORKSETUP}': {e}")
    except subprocess.TimeoutExpired:
        raise DnsMutationError(f"Failed to {action} DNS servers: timed out after {timeout} seconds")

    if result.returncode != 0:
        # e.g. "You must run this tool as root." when not elevated
        raise DnsMutationError(f"Failed to {action} DNS servers: {result.stderr}")


def set_dns(service, servers, verbose=False, timeout=COMMAND_TIMEOUT):
    """
    Sets the DNS servers of a network service, in priority order.

    Args:
        service (str): The network service name, e.g. "Wi-Fi".
        servers (list[str]): DNS server addresses. Must not be empty.

    Raises:
        DnsMutationError: If the servers could not be applied.
    """
    if not servers:
        raise DnsMutationError("No DNS servers provided")
    _setdnsservers(service, servers, "set", verbose, timeout)


def remove_dns(service, verbose=False, timeout=COMMAND_TIMEOUT):
    """Clears the DNS servers of a network service so it falls back to DHCP."""
    _setdnsservers(service, [CLEAR_SENTINEL], "remove", verbose, timeout)


# --- DNS inspection ---

def get_current_dns(service, verbose=False, timeout=COMMAND_TIMEOUT):
    """
    Reads the DNS servers configured on a network service.

    Args:
        service (str): The network service name.

    Returns:
        list[str]: Configured servers. Empty when the service uses DHCP-provided DNS.

    Raises:
        DnsQueryError: If networksetup fails.
    """
    try:
        result = run_command([NETWORKSETUP, "-getdnsservers", service], verbose, timeout)
    except FileNotFoundError:
        raise DnsQueryError(f"'{NETWORKSETUP}' command not found. This tool requires macOS.")
    except OSError as e:
        raise DnsQueryError(f"Could not run '{NETWORKSETUP}': {e}")
    except subprocess.TimeoutExpired:
        raise DnsQueryError(f"Failed to read DNS servers: timed out after {timeout} seconds")

    if result.returncode != 0:
        raise DnsQueryError(f"Failed to read DNS servers: {_error_text(result)}")

    output = result.stdout.strip()
    if not output or "aren't any DNS Servers set" in output:
        return []
    return [line.strip() for line in output.split("\n") if line.strip()]


# --- CLI ---

def _provider_help_lines():
    return "\n".join(f"  {name:<23}  {', '.join(servers)}" for name, servers in DNS_PROVIDERS.items())


HELP_EPILOG = f"""
Commands:
  set [provider|dns...]    Set DNS servers (default if no command specified)
  remove                   Remove DNS servers (aliases: clear, rm)
  current                  Show the DNS servers in use (aliases: show, status)
  providers                List available DNS providers (alias: list)

Providers:
{_provider_help_lines()}

Examples:
  # Set DNS using default provider ({DEFAULT_PROVIDER})
  dns-changer
  dns-changer set

  # Set DNS using a provider
  dns-changer shecan
  dns-changer set begzar

  # Set custom DNS servers
  dns-changer 8.8.8.8 8.8.4.4
  dns-changer set 1.1.1.1 1.0.0.1

  # Remove DNS servers
  dns-changer remove
"""


def positive_seconds(value):
    seconds = float(value)
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return seconds


def build_parser():
    parser = argparse.ArgumentParser(
        prog="dns-changer",
        usage="%(prog)s [command] [provider|dns...]",
        description="DNS Changer CLI for macOS. Sets or removes DNS servers using networksetup.",
        epilog=HELP_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print each networksetup command before running it.")
    parser.add_argument("--timeout", type=positive_seconds, default=COMMAND_TIMEOUT,
                        help=f"Seconds to wait for each networksetup command (default: {COMMAND_TIMEOUT}).")
    return parser


def split_options(argv):
    """
    Separates the tool's own options from the command arguments.

    Only -h/--help, -v/--verbose and --timeout are options. Every other token,
    including unknown dash-prefixed ones, stays in the command arguments in its
    original order.

    Returns:
        tuple[list[str], list[str]]: (option tokens for argparse, command arguments)
    """
    options, args = [], []
    tokens = iter(argv)
    for token in tokens:
        if token in ("-h", "--help", "-v", "--verbose") or token.startswith("--timeout="):
            options.append(token)
        elif token == "--timeout":
            options.append(token)
            options.extend(itertools.islice(tokens, 1))  # its value, if any
        else:
            args.append(token)
    return options, args


def print_providers():
    print("Available DNS providers:\n")
    for name, servers in DNS_PROVIDERS.items():
        print(f"  {name}:")
        for server in servers:
            print(f"    - {server}")
        print()


def run_remove_flow(verbose, timeout):
    service = get_active_service(verbose, timeout)
    print(f"Removing DNS servers from {service}...")
    remove_dns(service, verbose, timeout)
    print("✓ DNS servers removed successfully")


def run_current_flow(verbose, timeout):
    service = get_active_service(verbose, timeout)
    servers = get_current_dns(service, verbose, timeout)
    if not servers:
        print(f"{service} is using automatic (DHCP-provided) DNS servers")
        return
    print(f"DNS servers for {service}:")
    for server in servers:
        print(f"  - {server}")


def run_set_flow(args, verbose, timeout):
    selection = parse_dns_servers(args)
    service = get_active_service(verbose, timeout)

    print(f"Setting DNS servers for {service}...")
    if selection.provider:
        print(f"Provider: {selection.provider}")
    set_dns(service, selection.servers, verbose, timeout)
    print("✓ DNS servers set successfully:")
    for server in selection.servers:
        print(f"  - {server}")


def main(argv=None):
    """
    Entry point. Returns the process exit code.
    --help/-h exits 0 through argparse before anything else runs.
    """
    if argv is None:
        argv = sys.argv[1:]
    option_tokens, args = split_options(argv)
    options = build_parser().parse_args(option_tokens)

    command = args[0].lower() if args else None

    try:
        if command in ("providers", "list"):
            print_providers()
        elif command in ("remove", "clear", "rm"):
            run_remove_flow(options.verbose, options.timeout)
        elif command in ("current", "show", "status"):
            run_current_flow(options.verbose, options.timeout)
        else:
            dns_args = args[1:] if command == "set" else args
            run_set_flow(dns_args, options.verbose, options.timeout)
    except DnsChangerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
