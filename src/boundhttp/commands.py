from pathlib import Path

from boundhttp import config as boundhttp_config
from boundhttp.critical_file import read_critical_file, write_critical_file
from boundhttp.http_client import HttpClient, HttpClientSettings
from boundhttp.proxy import ProxySettings, resolve_proxy
from boundhttp.request import HttpRequest
from boundhttp.response import HttpResponse
from boundhttp.retry import RetryStrategy, accept_no_failure, reject_server_errors
from boundhttp.rich_utils import (
    Colors,
    console,
    create_table,
    print_error,
    print_info,
    print_success,
    print_table,
)
from boundhttp.utils import format_data_size, parse_data_size


def _split_pair(item: str, separator: str, kind: str) -> tuple[str, str]:
    name, found, value = item.partition(separator)
    if not found:
        raise ValueError(f"Expected {kind} as NAME{separator}VALUE, got '{item}'.")
    if kind == "header":
        value = value.strip()
    return name.strip(), value


def build_request(args) -> HttpRequest:
    """Builds a request from parsed CLI options, using config values as defaults."""
    defaults = boundhttp_config.get_section("request")

    request = HttpRequest.create(args.url).set_method(args.method)

    for item in args.params or []:
        request.append_parameters(*_split_pair(item, "=", "parameter"))
    for item in args.headers or []:
        request.append_headers(*_split_pair(item, ":", "header"))

    if args.data is not None:
        request.set_binary_entity(args.data.encode("utf-8"))
    elif args.data_file:
        request.set_binary_entity(Path(args.data_file).read_bytes())

    request.set_gzip(args.gzip)
    request.set_timeout_millis(args.timeout if args.timeout is not None else int(defaults["timeout_millis"]))
    request.set_max_size_bytes(parse_data_size(args.max_size or str(defaults["max_size"])))

    retries = args.retries if args.retries is not None else int(defaults["max_retry_count"])
    checker = reject_server_errors if args.retry_server_errors else accept_no_failure
    request.set_retry_policy(retries, checker, RetryStrategy.from_config(defaults))
    return request


def print_response(response: HttpResponse, show_headers: bool = False) -> None:
    style = Colors.GREEN if 0 < response.code < 400 else Colors.RED
    console.print(f"HTTP {response.code}", style=style)

    if response.failure is not None:
        print_error(str(response.failure))
        if response.failure.cause is not None:
            console.print(f"  caused by: {response.failure.cause}", style=Colors.DIM)

    if show_headers and response.headers:
        table = create_table(None, ["Header", "Value"])
        for name, values in response.headers.items():
            for value in values:
                table.add_row(name, value)
        print_table(table)

    if response.body is not None:
        console.print(f"{format_data_size(len(response.body))} received", style=Colors.DIM)


def cmd_request(args) -> int:
    """Runs one request and prints the outcome; returns the status code."""
    request = build_request(args)
    client = HttpClient(HttpClientSettings.from_config())
    response = client.execute_and_return_response(request)

    print_response(response, show_headers=args.include_headers)

    if response.body is not None:
        if args.save:
            write_critical_file(args.save, response.body)
            print_success(f"Saved body to {args.save}")
        elif response.body:
            console.print(response.text(), markup=False, highlight=False)

    return response.code


def cmd_load(path: str) -> None:
    """Prints a body previously stored with ``--save`` after verifying it."""
    content = read_critical_file(path)
    console.print(content.decode("utf-8", errors="replace"), markup=False, highlight=False)


def cmd_config() -> None:
    """Prints the effective configuration as a table."""
    table = create_table(f"Configuration ({boundhttp_config.get_config_path()})", ["Section", "Key", "Value"])
    for section in boundhttp_config.DEFAULTS:
        for key, value in boundhttp_config.get_section(section).items():
            table.add_row(section, key, str(value))
    print_table(table)


def cmd_proxy(url: str) -> None:
    scheme = url.partition("://")[0] if "://" in url else ""
    proxy = resolve_proxy(scheme, ProxySettings.from_config())
    if proxy is None:
        print_info(f"{url}: direct connection")
    else:
        console.print(f"{url}: via proxy {proxy[0]}:{proxy[1]}", style=Colors.GREEN)
