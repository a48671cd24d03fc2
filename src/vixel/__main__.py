"""Command-line entry point for the Vixel web server."""

from __future__ import annotations

import argparse
import contextlib
import ipaddress
import logging
import socket
from typing import Callable, Sequence

import uvicorn
from zeroconf import ServiceInfo, Zeroconf

from . import create_app

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_http._tcp.local."
SERVICE_NAME = f"Vixel.{SERVICE_TYPE}"
SERVER_NAME = "vixel.local."
_WILDCARD_HOSTS = {"", "0.0.0.0", "::"}


def _routable(candidate: str) -> str | None:
    try:
        address = ipaddress.ip_address(candidate.split("%", 1)[0])
    except ValueError:
        return None
    if address.is_unspecified or address.is_loopback or address.is_link_local:
        return None
    return str(address)


class ServiceAdvertisement:
    """Publish the server as ``vixel.local`` for as long as the block runs.

    Advertising is best effort: when no routable address is known, or the
    registration fails, the server still starts and a warning is logged.
    """

    def __init__(
        self,
        host: str,
        port: int,
        zeroconf_factory: Callable[[], Zeroconf] = Zeroconf,
    ) -> None:
        self.host = host
        self.port = port
        self._zeroconf_factory = zeroconf_factory
        self._zeroconf: Zeroconf | None = None
        self._info: ServiceInfo | None = None

    @property
    def active(self) -> bool:
        return self._zeroconf is not None

    def addresses(self) -> list[str]:
        """Addresses to announce: the bound host, or every address of this machine."""

        if self.host not in _WILDCARD_HOSTS:
            candidates = [self.host]
        else:
            try:
                entries = socket.getaddrinfo(socket.gethostname(), None)
            except OSError:
                entries = []
            candidates = [entry[4][0] for entry in entries]

        addresses: list[str] = []
        for candidate in candidates:
            address = _routable(candidate)
            if address and address not in addresses:
                addresses.append(address)
        return addresses

    def service_info(self, addresses: list[str]) -> ServiceInfo:
        return ServiceInfo(
            type_=SERVICE_TYPE,
            name=SERVICE_NAME,
            parsed_addresses=addresses,
            port=self.port,
            server=SERVER_NAME,
            properties={"path": "/", "app": "vixel"},
        )

    def __enter__(self) -> ServiceAdvertisement:
        addresses = self.addresses()
        if not addresses:
            logger.warning("No routable address for %s; vixel.local will not be advertised.", self.host)
            return self

        info = self.service_info(addresses)
        zeroconf = self._zeroconf_factory()
        try:
            zeroconf.register_service(info, allow_name_change=True)
        except Exception:
            logger.exception("Advertising vixel.local failed.")
            zeroconf.close()
            return self

        self._zeroconf, self._info = zeroconf, info
        logger.info("Vixel is reachable at http://vixel.local:%s/ (%s)", self.port, ", ".join(addresses))
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._zeroconf is None:
            return
        try:
            if self._info is not None:
                self._zeroconf.unregister_service(self._info)
        except Exception:
            logger.warning("Withdrawing the vixel.local advertisement failed.", exc_info=True)
        finally:
            self._zeroconf.close()
            self._zeroconf = self._info = None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Vixel video browser.")
    parser.add_argument("--host", default="127.0.0.1", help="Host interface to bind.")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")
    parser.add_argument(
        "--mdns",
        action="store_true",
        help="Advertise the server on the local network as vixel.local.",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=("critical", "error", "warning", "info", "debug"),
        help="Log level passed to uvicorn.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    app = create_app()
    advertisement = (
        ServiceAdvertisement(args.host, args.port) if args.mdns else contextlib.nullcontext()
    )
    with advertisement:
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":  # pragma: no cover - direct execution guard
    main()
