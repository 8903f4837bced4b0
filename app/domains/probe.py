"""
HTTP(S) reachability probe for custom domains.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp

logger = logging.getLogger("waveorder_domains.domains.probe")


@dataclass
class ProbeResult:
    """Reachability of a domain over HTTP(S)."""

    reachable: bool
    url: str
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class ConnectivityProber:
    """Issues a HEAD request and classifies the outcome."""

    def __init__(
        self,
        timeout: float = 8.0,
        max_redirects: int = 5,
        user_agent: str = "WaveOrder-DomainCheck/1.0",
    ):
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.user_agent = user_agent

    async def probe(
        self,
        domain: str,
        scheme: str = "https",
        port: Optional[int] = None,
        path: str = "/",
    ) -> ProbeResult:
        """
        HEAD <scheme>://<domain><path> following a bounded number of redirects.

        Any response below 500 counts as reachable.
        """
        if scheme not in ("http", "https"):
            raise ValueError("scheme must be 'http' or 'https'")

        host = domain.lower().rstrip(".")
        netloc = f"{host}:{port}" if port else host
        url = f"{scheme}://{netloc}{path}"
        start = time.monotonic()

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": self.user_agent},
            ) as session:
                async with session.head(
                    url,
                    allow_redirects=True,
                    max_redirects=self.max_redirects,
                ) as resp:
                    latency_ms = int((time.monotonic() - start) * 1000)
                    status = resp.status
        except asyncio.TimeoutError:
            return ProbeResult(
                reachable=False, url=url, reason="timeout", error="Request timeout"
            )
        except aiohttp.ClientSSLError as e:
            return ProbeResult(
                reachable=False, url=url, reason="tls_error", error=f"TLS error: {e}"
            )
        except aiohttp.ClientConnectorError as e:
            if isinstance(e.os_error, ConnectionRefusedError):
                return ProbeResult(
                    reachable=False,
                    url=url,
                    reason="connection_refused",
                    error="Connection refused",
                )
            return ProbeResult(
                reachable=False, url=url, reason="unreachable", error=str(e)
            )
        except aiohttp.TooManyRedirects:
            return ProbeResult(
                reachable=False,
                url=url,
                reason="too_many_redirects",
                error=f"More than {self.max_redirects} redirects",
            )
        except aiohttp.ClientError as e:
            logger.debug(f"Probe of {url} failed: {e}")
            return ProbeResult(reachable=False, url=url, reason="error", error=str(e))

        if status >= 500:
            return ProbeResult(
                reachable=False,
                url=url,
                latency_ms=latency_ms,
                status_code=status,
                reason="server_error",
                error=f"Server responded with {status}",
            )

        return ProbeResult(
            reachable=True, url=url, latency_ms=latency_ms, status_code=status
        )
