import argparse
import sys

from boundhttp import commands, config as boundhttp_config, utils
from boundhttp.response import HttpMethod
from boundhttp.rich_utils import print_warning, setup_logging

USAGE = """Usage:
  boundhttp get|head|post|put|delete <url> [options]
  boundhttp load <file>
  boundhttp proxy <url>
  boundhttp config"""


def build_request_parser(method: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=f"boundhttp {method.lower()}")

    parser.add_argument("url", help="Absolute URL to request")

    parser.add_argument(
        "-p",
        "--param",
        dest="params",
        action="append",
        metavar="NAME=VALUE",
        help="Query (GET/HEAD) or form (POST/PUT/DELETE) parameter, repeatable",
    )

    parser.add_argument(
        "-H",
        "--header",
        dest="headers",
        action="append",
        metavar="NAME:VALUE",
        help="Request header, repeatable",
    )

    body = parser.add_mutually_exclusive_group()
    body.add_argument("--data", help="Send TEXT as a binary entity")
    body.add_argument("--data-file", help="Send the content of a file as a binary entity")

    parser.add_argument("--gzip", action="store_true", help="Gzip-compress the request body")

    parser.add_argument("--timeout", type=int, help="Per-attempt timeout in milliseconds")

    parser.add_argument("--retries", type=int, help="Total number of attempts")

    parser.add_argument(
        "--retry-server-errors",
        action="store_true",
        help="Also retry responses with a 5xx status code",
    )

    parser.add_argument("--max-size", help="Response size limit, e.g. 512kB or 10MB")

    parser.add_argument("--save", metavar="FILE", help="Store the body as a checksum-guarded file")

    parser.add_argument(
        "-i",
        "--include",
        dest="include_headers",
        action="store_true",
        help="Print response headers",
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Log every attempt")

    return parser


@utils.handle_cli_errors
def main():
    utils.setup_console()

    boundhttp_config.ensure_defaults()

    if len(sys.argv) < 2:
        print_warning(USAGE)
        sys.exit(2)

    cmd = sys.argv[1]

    if cmd.upper() in HttpMethod.__members__:
        method = cmd.upper()
        args = build_request_parser(method).parse_args(sys.argv[2:])
        args.method = method

        setup_logging(args.verbose)

        code = commands.cmd_request(args)
        sys.exit(0 if 0 < code < 400 else 1)

    if cmd == "load":
        if len(sys.argv) != 3:
            print_warning("Usage: boundhttp load <file>")
            return

        commands.cmd_load(sys.argv[2])
        return

    if cmd == "proxy":
        if len(sys.argv) != 3:
            print_warning("Usage: boundhttp proxy <url>")
            return

        commands.cmd_proxy(sys.argv[2])
        return

    if cmd == "config":
        commands.cmd_config()
        return

    print_warning(f"Unknown command '{cmd}'.")
    print_warning(USAGE)
    sys.exit(2)


if __name__ == "__main__":
    main()
