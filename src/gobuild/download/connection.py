"""
Address-family restricted connections for the HTTP transports.

`-4` and `-6` limit name resolution to one address family. The restriction
lives in connection classes owned by a single transport: an `HTTPAdapter`
mounted on the requests session, and `urllib.request` handlers in a private
opener. Nothing outside the transport that asked for it is affected.
"""

import functools
import http.client
import socket
import urllib.request
from typing import Dict, Optional, Sequence, Tuple, Type

from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.exceptions import ConnectTimeoutError, NewConnectionError

SocketOption = Tuple[int, int, int]


def create_connection(
    address: Tuple[str, int],
    timeout=None,
    source_address: Optional[Tuple[str, int]] = None,
    family: int = socket.AF_UNSPEC,
    socket_options: Optional[Sequence[SocketOption]] = None,
) -> socket.socket:
    """
    Connect a TCP socket to `address`, resolving only addresses of `family`.

    Every resolved address is tried in order; the last connection error is
    raised when none of them accepts.

    Raises:
        OSError: If the host does not resolve or no address can be reached.
    """
    host, port = address
    host = host.strip("[]")

    last_error: Optional[OSError] = None
    for af, socktype, proto, _canonname, sockaddr in socket.getaddrinfo(
        host, port, family, socket.SOCK_STREAM
    ):
        sock = None
        try:
            sock = socket.socket(af, socktype, proto)
            for option in socket_options or ():
                sock.setsockopt(*option)
            # Sentinel timeouts keep the socket default
            if isinstance(timeout, (int, float)):
                sock.settimeout(timeout)
            if source_address:
                sock.bind(source_address)
            sock.connect(sockaddr)
            return sock
        except OSError as e:
            last_error = e
            if sock is not None:
                sock.close()

    if last_error is not None:
        raise last_error
    raise OSError(f"no addresses found for {host}")


# =============================================================================
# requests / urllib3
# =============================================================================


class _FamilyConnectionMixin:
    address_family = socket.AF_UNSPEC

    def _new_conn(self) -> socket.socket:
        try:
            return create_connection(
                (self._dns_host, self.port),
                self.timeout,
                source_address=self.source_address,
                family=self.address_family,
                socket_options=self.socket_options,
            )
        except socket.timeout as e:
            raise ConnectTimeoutError(
                self, f"Connection to {self.host} timed out"
            ) from e
        except OSError as e:
            raise NewConnectionError(
                self, f"Failed to establish a new connection: {e}"
            ) from e


@functools.lru_cache(maxsize=None)
def pool_classes_for(family: int) -> Dict[str, Type[HTTPConnectionPool]]:
    """Return urllib3 pool classes whose connections resolve only in `family`."""
    attrs = {"address_family": family}
    http_conn = type(
        "FamilyHTTPConnection", (_FamilyConnectionMixin, HTTPConnection), attrs
    )
    https_conn = type(
        "FamilyHTTPSConnection", (_FamilyConnectionMixin, HTTPSConnection), attrs
    )
    return {
        "http": type(
            "FamilyHTTPConnectionPool", (HTTPConnectionPool,), {"ConnectionCls": http_conn}
        ),
        "https": type(
            "FamilyHTTPSConnectionPool",
            (HTTPSConnectionPool,),
            {"ConnectionCls": https_conn},
        ),
    }


class AddressFamilyAdapter(HTTPAdapter):
    """requests transport adapter resolving hosts in one address family."""

    def __init__(self, family: int, **kwargs):
        # Set before HTTPAdapter.__init__, which builds the pool manager
        self.address_family = family
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = pool_classes_for(self.address_family)


# =============================================================================
# urllib.request
# =============================================================================


class _FamilyHTTPClientMixin:
    def __init__(self, *args, family: int = socket.AF_UNSPEC, **kwargs):
        super().__init__(*args, **kwargs)
        self._create_connection = functools.partial(create_connection, family=family)


class FamilyHTTPClientConnection(_FamilyHTTPClientMixin, http.client.HTTPConnection):
    pass


class FamilyHTTPSClientConnection(_FamilyHTTPClientMixin, http.client.HTTPSConnection):
    pass


class FamilyHTTPHandler(urllib.request.HTTPHandler):
    def __init__(self, family: int):
        super().__init__()
        self.address_family = family

    def http_open(self, req):
        return self.do_open(
            functools.partial(FamilyHTTPClientConnection, family=self.address_family),
            req,
        )


class FamilyHTTPSHandler(urllib.request.HTTPSHandler):
    def __init__(self, family: int):
        super().__init__()
        self.address_family = family

    def https_open(self, req):
        return self.do_open(
            functools.partial(FamilyHTTPSClientConnection, family=self.address_family),
            req,
            context=self._context,
        )


def build_opener(family: int = socket.AF_UNSPEC) -> urllib.request.OpenerDirector:
    """
    Build a urllib opener whose HTTP(S) connections resolve only in `family`.

    With `AF_UNSPEC` this is a stock opener.
    """
    if family == socket.AF_UNSPEC:
        return urllib.request.build_opener()
    return urllib.request.build_opener(
        FamilyHTTPHandler(family), FamilyHTTPSHandler(family)
    )
