"""Byte-stream transports: the Transport interface and its TCP implementation."""

import logging
import socket

from .errors import ConnectionLostError, TransportError, TransportTimeoutError

logger = logging.getLogger(__name__)

_RECV_CHUNK = 4096


class Transport:
    """
    Ordered, reliable byte stream to one PLC. ``read_exact`` returns exactly ``n`` bytes
    or raises; implementations never return short reads.
    """

    timeout: float

    def connect(self, host: str, port: int) -> None:
        raise NotImplementedError

    def write(self, data: bytes) -> None:
        raise NotImplementedError

    def read_exact(self, n: int) -> bytes:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    @property
    def is_open(self) -> bool:
        raise NotImplementedError


class SocketTransport(Transport):
    """TCP transport with keepalive and a per-socket timeout applied to connect, send and receive."""

    def __init__(self, timeout: float = 2.0) -> None:
        self.timeout = timeout
        self._sock: socket.socket | None = None
        self._peer = ""

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def connect(self, host: str, port: int) -> None:
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        try:
            sock.connect((socket.gethostbyname(host), port))
        except socket.timeout as e:
            sock.close()
            raise TransportTimeoutError(f"Timed out connecting to {host}:{port}", cause=e) from e
        except OSError as e:
            sock.close()
            raise TransportError(f"Failed to connect to {host}:{port}: {e}", cause=e) from e
        self._sock = sock
        self._peer = f"{host}:{port}"
        logger.debug("Connected to %s", self._peer)

    def _require(self) -> socket.socket:
        if self._sock is None:
            raise ConnectionLostError("Transport is not connected")
        return self._sock

    def write(self, data: bytes) -> None:
        sock = self._require()
        try:
            sock.sendall(data)
        except socket.timeout as e:
            raise TransportTimeoutError(f"Timed out sending to {self._peer}", cause=e) from e
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError) as e:
            raise ConnectionLostError(f"Connection to {self._peer} lost during send", cause=e) from e
        except OSError as e:
            raise TransportError(f"Send to {self._peer} failed: {e}", cause=e) from e
        logger.debug("Sent %d bytes", len(data))

    def read_exact(self, n: int) -> bytes:
        sock = self._require()
        buf = bytearray()
        while len(buf) < n:
            try:
                chunk = sock.recv(min(_RECV_CHUNK, n - len(buf)))
            except socket.timeout as e:
                raise TransportTimeoutError(
                    f"Timed out waiting for {n - len(buf)} more bytes from {self._peer}", cause=e
                ) from e
            except (ConnectionResetError, ConnectionAbortedError) as e:
                raise ConnectionLostError(f"Connection to {self._peer} reset", cause=e) from e
            except OSError as e:
                raise TransportError(f"Receive from {self._peer} failed: {e}", cause=e) from e
            if not chunk:
                raise ConnectionLostError(
                    f"Connection to {self._peer} closed by peer after {len(buf)} of {n} bytes"
                )
            buf += chunk
        logger.debug("Received %d bytes", n)
        return bytes(buf)

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.close()
            logger.debug("Closed connection to %s", self._peer)
        except OSError as e:
            logger.warning("Error closing socket: %s", e)
        finally:
            self._sock = None
