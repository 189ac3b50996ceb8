"""Command-line interface for the interop harness.

Usage::

    grpc-harness serve --port 50051 --use-tls --data-dir ./certs
    grpc-harness run --server-port 50051 --use-tls --ca-file ./certs/ca.pem
    grpc-harness certs ./certs

"""
import asyncio
import logging
import pathlib
import typing as t

import typer
from grpclib.utils import graceful_exit

from .client import DEFAULT_AUTHORITY
from .client import SSL_TARGET_NAME_OVERRIDE
from .credentials import create_insecure
from .credentials import create_ssl
from .credentials import load_credential_file
from .interop import DEFAULT_TIMEOUT
from .interop import TEST_CASES
from .interop import run_test_cases
from .schema import load_package
from .server import TEST_SERVICE
from .server import get_server
from .tls import TEST_HOST_OVERRIDE
from .tls import generate_test_certificates


app = typer.Typer(
    name="grpc-harness",
    help="Interop-adjacent checks for gRPC call credentials and concurrency.",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: t.Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging.")
    ] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("list")
def list_cases() -> None:
    """List available test cases."""
    for name in TEST_CASES:
        typer.echo(name)


@app.command()
def certs(
    directory: t.Annotated[pathlib.Path, typer.Argument(help="Output directory.")],
) -> None:
    """Write a test CA and server certificate."""
    paths = generate_test_certificates(directory)
    typer.echo(str(paths.ca))


@app.command()
def serve(
    port: t.Annotated[int, typer.Option(envvar="GRPC_HARNESS_PORT")] = 50051,
    host: t.Annotated[str, typer.Option(envvar="GRPC_HARNESS_HOST")] = "127.0.0.1",
    use_tls: t.Annotated[bool, typer.Option(envvar="GRPC_HARNESS_USE_TLS")] = False,
    data_dir: t.Annotated[
        t.Optional[pathlib.Path],
        typer.Option(envvar="GRPC_HARNESS_DATA_DIR", help="Certificate directory."),
    ] = None,
) -> None:
    """Run the interop test server until interrupted."""

    async def _serve() -> None:
        server = await get_server(port, use_tls, host=host, data_dir=data_dir)
        with graceful_exit([server]):
            typer.echo("PORT:{}".format(server.port))
            await server.wait_closed()

    asyncio.run(_serve())


@app.command()
def run(
    server_host: t.Annotated[
        str, typer.Option(envvar="GRPC_HARNESS_SERVER_HOST")
    ] = "localhost",
    server_port: t.Annotated[int, typer.Option(envvar="GRPC_HARNESS_SERVER_PORT")] = 50051,
    use_tls: t.Annotated[bool, typer.Option(envvar="GRPC_HARNESS_USE_TLS")] = False,
    ca_file: t.Annotated[
        t.Optional[pathlib.Path],
        typer.Option(envvar="GRPC_HARNESS_CA_FILE", help="PEM file with trusted roots."),
    ] = None,
    server_host_override: t.Annotated[
        str, typer.Option(envvar="GRPC_HARNESS_SERVER_HOST_OVERRIDE")
    ] = TEST_HOST_OVERRIDE,
    test_case: t.Annotated[
        t.Optional[t.List[str]],
        typer.Option("--test-case", "-t", help="Test case to run, repeatable."),
    ] = None,
    timeout: t.Annotated[float, typer.Option(help="Per test case timeout.")] = DEFAULT_TIMEOUT,
) -> None:
    """Run test cases against a running TestService."""
    unknown = [name for name in test_case or () if name not in TEST_CASES]
    if unknown:
        raise typer.BadParameter(
            "unknown test case(s): {}".format(", ".join(unknown)),
            param_hint="--test-case",
        )

    async def _run() -> bool:
        if use_tls:
            roots = load_credential_file(ca_file) if ca_file is not None else None
            credentials = create_ssl(roots)
            options = {
                SSL_TARGET_NAME_OVERRIDE: server_host_override,
                DEFAULT_AUTHORITY: server_host_override,
            }
        else:
            credentials = create_insecure()
            options = {}
        package = load_package(
            "grpc/testing/test.proto",
            keep_case=True,
            defaults=True,
            enums_as_strings=True,
        )
        service = package.service(TEST_SERVICE)
        address = "{}:{}".format(server_host, server_port)
        async with service.client(address, credentials, options) as client:
            results = await run_test_cases(client, test_case or None, timeout=timeout)
        for result in results:
            typer.echo("{:<40} {}".format(result.name, "PASS" if result.passed else "FAIL"))
        return all(result.passed for result in results)

    if not asyncio.run(_run()):
        raise typer.Exit(code=1)
