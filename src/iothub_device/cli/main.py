"""Command-line interface for iothub-device."""

from __future__ import annotations

import argparse
import logging
import re
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import Any, Callable, Mapping, Sequence

from iothub_device.args import args_to_map
from iothub_device.auth import CONNECTION_STRING_ENV_VAR, resolve_auth
from iothub_device.cli.config import CLIConfig, ConfigError, load_cli_config
from iothub_device.cli.output import output_json
from iothub_device.consumer import consume_subscription
from iothub_device.errors import (
    ConfigurationError,
    InvalidUsageError,
    OperationCancelledError,
    SessionConnectionError,
)
from iothub_device.methods import MethodResponderBridge
from iothub_device.session import DEFAULT_QOS, DeviceSession, Event, bootstrap_session
from iothub_device.subscription import CancelToken
from iothub_device.transport import select_transport, transport_names
from iothub_device.twin import encode_twin_update, render_twin_state

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USAGE_ERROR = 2
EXIT_CONFIG_ERROR = 3
EXIT_CONNECTION_ERROR = 4
EXIT_INTERRUPTED = 130

HELP = (
    "iothub-device helps iothub devices to communicate with the cloud.\n"
    f"The ${CONNECTION_STRING_ENV_VAR} environment variable is required "
    "unless you use x509 authentication."
)

_LOGGERS = ("iothub_device", "azure.iot.device")
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_SENSITIVE_FIELDS = ("SharedAccessKey", "SharedAccessSignature", "sig")

Operation = Callable[[DeviceSession], int]


def _package_version() -> str:
    try:
        return pkg_version("iothub-device")
    except PackageNotFoundError:
        return "0.0.0+local"


def _build_parser() -> tuple[argparse.ArgumentParser, dict[str, argparse.ArgumentParser]]:
    parser = argparse.ArgumentParser(
        prog="iothub-device",
        description=HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"iothub-device {_package_version()}")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to CLI config TOML (default: ~/.iothub_device/config.toml)",
    )
    parser.add_argument("--debug", action="store_true", default=None, help="enable debug mode")
    parser.add_argument(
        "--compress",
        action="store_true",
        default=None,
        help="compress data (remove JSON indentations)",
    )
    parser.add_argument(
        "--transport",
        default=None,
        help=f"transport to use <{'|'.join(transport_names())}> (default: mqtt)",
    )
    parser.add_argument("--tls-cert", default=None, help="path to x509 cert file")
    parser.add_argument("--tls-key", default=None, help="path to x509 key file")
    parser.add_argument("--device-id", default=None, help="device id, required for x509")
    parser.add_argument(
        "--hostname",
        default=None,
        help="hostname to connect to, required for x509",
    )

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    commands: dict[str, argparse.ArgumentParser] = {}

    send = sub.add_parser("send", aliases=["s"], help="send a message to the cloud (D2C)")
    send.add_argument("payload", metavar="PAYLOAD")
    send.add_argument("properties", nargs="*", metavar="KEY VALUE", help="message properties")
    send.add_argument("--mid", default="", help="identifier for the message")
    send.add_argument("--cid", default="", help="message identifier in a request-reply")
    send.add_argument(
        "--qos",
        type=int,
        choices=(0, 1),
        default=DEFAULT_QOS,
        help="QoS value, 0 or 1 (mqtt only)",
    )
    commands["send"] = send

    commands["watch-events"] = sub.add_parser(
        "watch-events",
        aliases=["we"],
        help="subscribe to messages sent from the cloud (C2D)",
    )
    commands["watch-twin"] = sub.add_parser(
        "watch-twin",
        aliases=["wt"],
        help="subscribe to desired twin state updates",
    )

    direct_method = sub.add_parser(
        "direct-method",
        aliases=["dm"],
        help="handle the named direct method, reads responses from STDIN",
    )
    direct_method.add_argument("name", metavar="NAME")
    direct_method.add_argument(
        "--quiet",
        "--quite",
        dest="quiet",
        action="store_true",
        help="disable additional hints",
    )
    commands["direct-method"] = direct_method

    commands["twin-state"] = sub.add_parser(
        "twin-state",
        aliases=["ts"],
        help="retrieve desired and reported states",
    )

    update_twin = sub.add_parser(
        "update-twin",
        aliases=["ut"],
        help="updates the twin device reported state, null means delete the key",
    )
    update_twin.add_argument("pairs", nargs="+", metavar="KEY VALUE")
    commands["update-twin"] = update_twin

    for name, command in commands.items():
        command.set_defaults(operation=name)
    return parser, commands


def _configure_logging(debug: bool, stderr) -> None:
    handler = logging.StreamHandler(stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    level = logging.DEBUG if debug else logging.WARNING
    for name in _LOGGERS:
        logger = logging.getLogger(name)
        for existing in list(logger.handlers):
            if getattr(existing, "iothub_device_cli", False):
                logger.removeHandler(existing)
        handler.iothub_device_cli = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        logger.setLevel(level)


def _sanitize_error_text(value: str) -> str:
    redacted = value
    for field in _SENSITIVE_FIELDS:
        redacted = re.sub(rf"(?i)({field}=)([^;&\s]+)", r"\1[REDACTED]", redacted)
    return redacted


def _print_error(stderr, prefix: str, message: str, *, code: int) -> int:
    print(f"{prefix}: {_sanitize_error_text(message)}", file=stderr)
    return code


def _print_usage_error(command: argparse.ArgumentParser, stderr, exc: InvalidUsageError) -> int:
    command.print_usage(stderr)
    print(f"{command.prog}: error: {exc}", file=stderr)
    return EXIT_USAGE_ERROR


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _run_send(session: DeviceSession, *, event: Event) -> int:
    session.send_event(event)
    return EXIT_SUCCESS


def _run_watch_events(session: DeviceSession, *, config: CLIConfig, stdout, cancel: CancelToken) -> int:
    sub = session.subscribe_events()
    consume_subscription(
        sub,
        lambda record: output_json(record, compress=config.compress, stdout=stdout),
        cancel=cancel,
    )
    return EXIT_SUCCESS


def _run_watch_twin(session: DeviceSession, *, config: CLIConfig, stdout, cancel: CancelToken) -> int:
    sub = session.subscribe_twin_updates()
    consume_subscription(
        sub,
        lambda twin: output_json(twin, compress=config.compress, stdout=stdout),
        cancel=cancel,
    )
    return EXIT_SUCCESS


def _run_direct_method(
    session: DeviceSession,
    *,
    name: str,
    quiet: bool,
    stdin,
    stdout,
    cancel: CancelToken,
) -> int:
    bridge = MethodResponderBridge(
        session,
        name,
        stdin=stdin,
        stdout=stdout,
        quiet=quiet,
        cancel=cancel,
    )
    bridge.serve()
    return EXIT_SUCCESS


def _run_twin_state(session: DeviceSession, *, stdout) -> int:
    desired, reported = session.retrieve_twin_state()
    print(render_twin_state(desired, reported), file=stdout)
    return EXIT_SUCCESS


def _run_update_twin(session: DeviceSession, *, update: dict[str, Any], stdout) -> int:
    version = session.update_twin_state(update)
    print(f"version: {version}", file=stdout)
    return EXIT_SUCCESS


def _prepare_operation(args, *, config: CLIConfig, stdin, stdout, cancel: CancelToken) -> Operation:
    """Validate positional arguments before any network action."""
    if args.operation == "send":
        event = Event(
            payload=args.payload.encode("utf-8"),
            properties=args_to_map(args.properties),
            message_id=args.mid,
            correlation_id=args.cid,
            qos=args.qos,
        )
        return lambda session: _run_send(session, event=event)
    if args.operation == "watch-events":
        return lambda session: _run_watch_events(session, config=config, stdout=stdout, cancel=cancel)
    if args.operation == "watch-twin":
        return lambda session: _run_watch_twin(session, config=config, stdout=stdout, cancel=cancel)
    if args.operation == "direct-method":
        if not args.name:
            raise InvalidUsageError("method name must not be empty")
        return lambda session: _run_direct_method(
            session,
            name=args.name,
            quiet=args.quiet,
            stdin=stdin,
            stdout=stdout,
            cancel=cancel,
        )
    if args.operation == "twin-state":
        return lambda session: _run_twin_state(session, stdout=stdout)
    if args.operation == "update-twin":
        update = encode_twin_update(args.pairs)
        return lambda session: _run_update_twin(session, update=update, stdout=stdout)
    raise InvalidUsageError(f"unknown command {args.operation!r}")


def _connect(config: CLIConfig, environ: Mapping[str, str] | None) -> DeviceSession:
    auth = resolve_auth(
        cert_path=config.tls_cert,
        key_path=config.tls_key,
        device_id=config.device_id,
        hostname=config.hostname,
        environ=environ,
    )
    transport = select_transport(config.transport)
    return bootstrap_session(auth, transport)


def main(
    argv: Sequence[str] | None = None,
    *,
    stdout=sys.stdout,
    stderr=sys.stderr,
    stdin=sys.stdin,
    environ: Mapping[str, str] | None = None,
    cancel: CancelToken | None = None,
) -> int:
    parser, commands = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_cli_config(
            args.config,
            overrides={
                "debug": args.debug,
                "compress": args.compress,
                "transport": args.transport,
                "tls_cert": args.tls_cert,
                "tls_key": args.tls_key,
                "device_id": args.device_id,
                "hostname": args.hostname,
            },
        )
    except ConfigError as exc:
        return _print_error(stderr, "config error", str(exc), code=EXIT_CONFIG_ERROR)

    _configure_logging(config.debug, stderr)
    cancel = cancel or CancelToken()

    try:
        operation = _prepare_operation(args, config=config, stdin=stdin, stdout=stdout, cancel=cancel)
    except InvalidUsageError as exc:
        return _print_usage_error(commands[args.operation], stderr, exc)

    try:
        session = _connect(config, environ)
    except ConfigurationError as exc:
        return _print_error(stderr, "config error", str(exc), code=EXIT_CONFIG_ERROR)
    except SessionConnectionError as exc:
        return _print_error(stderr, "connection error", str(exc), code=EXIT_CONNECTION_ERROR)
    except KeyboardInterrupt:
        return _print_error(stderr, "interrupted", "connection aborted", code=EXIT_INTERRUPTED)

    try:
        return operation(session)
    except KeyboardInterrupt:
        cancel.cancel("interrupted")
        return _print_error(stderr, "interrupted", cancel.reason, code=EXIT_INTERRUPTED)
    except OperationCancelledError as exc:
        return _print_error(stderr, "interrupted", exc.reason, code=EXIT_INTERRUPTED)
    except Exception as exc:
        return _print_error(stderr, "error", _describe(exc), code=EXIT_ERROR)
    finally:
        session.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
