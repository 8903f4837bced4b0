"""
Provisioning agent: certificate issuance and reverse-proxy route attachment.

The orchestrator only depends on ProvisioningAgent. In production the
ScriptProvisioningAgent runs the privileged shell scripts installed on the
host; in development SimulatedProvisioningAgent stands in for them.
"""

import asyncio
import logging
import os
import signal
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .errors import ProvisioningError

logger = logging.getLogger("waveorder_domains.domains.agent")

ATTACH_MARKERS = ("SUCCESS", "provisioned successfully")
DETACH_MARKERS = ("SUCCESS", "removed successfully")


@dataclass
class AgentResult:
    """Outcome of an agent run. success is only True on an explicit marker."""

    success: bool
    message: str
    error: Optional[str] = None
    reason: Optional[str] = None
    stdout: str = ""
    stderr: str = ""

    @property
    def diagnostic(self) -> str:
        """Raw text worth preserving for support escalation."""
        return self.error or self.message


class ProvisioningAgent(ABC):
    """Interface to the external privileged provisioning agent."""

    @abstractmethod
    async def attach(self, domain: str, routing_key: str) -> AgentResult:
        """Issue a certificate and attach a route for domain -> routing_key."""

    @abstractmethod
    async def detach(self, domain: str) -> AgentResult:
        """Remove the certificate and route for a domain."""


class ScriptProvisioningAgent(ProvisioningAgent):
    """Runs provision-domain.sh / remove-domain.sh as a time-bounded subprocess."""

    def __init__(
        self,
        scripts_path: str = "/opt/waveorder/scripts",
        use_sudo: bool = True,
        attach_timeout: float = 120.0,
        detach_timeout: float = 30.0,
        provision_script: str = "provision-domain.sh",
        remove_script: str = "remove-domain.sh",
        kill_grace: float = 5.0,
    ):
        self.scripts_path = scripts_path
        self.use_sudo = use_sudo
        self.attach_timeout = attach_timeout
        self.detach_timeout = detach_timeout
        self.kill_grace = kill_grace
        self.provision_script = os.path.join(scripts_path, provision_script)
        self.remove_script = os.path.join(scripts_path, remove_script)

    def _command(self, script: str, *args: str) -> List[str]:
        cmd = [script, *args]
        if self.use_sudo:
            cmd.insert(0, "sudo")
        return cmd

    async def _run(self, cmd: Sequence[str], timeout: float) -> Tuple[int, str, str]:
        """
        Run cmd and return (returncode, stdout, stderr).

        The agent runs in its own session so that a timeout can stop the
        whole process group (certbot, nginx reloads) and not just the
        script. Launch failures propagate as ProvisioningError(launch_failed).
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Provisioning agent could not be started: {e}")
            raise ProvisioningError(
                f"Provisioning agent could not be started: {e}",
                reason="launch_failed",
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout
            )
        except asyncio.TimeoutError:
            await self._stop(process)
            raise

        return (
            process.returncode,
            stdout.decode(errors="replace").strip(),
            stderr.decode(errors="replace").strip(),
        )

    async def _reap(self, process: asyncio.subprocess.Process) -> bool:
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace)
        except asyncio.TimeoutError:
            return False
        return True

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        """
        SIGTERM the agent (sudo relays it), then SIGKILL its process group.

        Each wait is bounded by kill_grace, so a stuck grandchild holding
        the output pipes never extends the timeout indefinitely.
        """
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
        await self._reap(process)

        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            # Root-owned children under sudo; only the relayed SIGTERM reaches them
            logger.warning(f"Could not kill agent process group {process.pid}: {e}")

        if not await self._reap(process):
            logger.error(f"Agent process {process.pid} not reaped after timeout")

    def _interpret(
        self,
        action: str,
        domain: str,
        markers: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> AgentResult:
        logger.info(f"{action} {domain}: exit={returncode} stdout={stdout!r}")
        if stderr:
            logger.info(f"{action} {domain}: stderr={stderr!r}")

        if returncode != 0:
            error_msg = stderr or stdout or f"exit status {returncode}"
            return AgentResult(
                success=False,
                message=f"Failed to {action} domain",
                error=error_msg,
                reason="agent_failed",
                stdout=stdout,
                stderr=stderr,
            )

        if any(marker in stdout for marker in markers):
            return AgentResult(
                success=True,
                message=f"Domain {action} completed",
                stdout=stdout,
                stderr=stderr,
            )

        # Exit 0 without a success marker is never trusted
        return AgentResult(
            success=False,
            message=f"{action.capitalize()} completed but status unclear",
            error=stderr or "Check server logs for details",
            reason="ambiguous_output",
            stdout=stdout,
            stderr=stderr,
        )

    async def attach(self, domain: str, routing_key: str) -> AgentResult:
        domain = domain.lower().rstrip(".")
        cmd = self._command(self.provision_script, domain, routing_key)
        logger.info(f"Provisioning {domain} -> {routing_key}")

        try:
            returncode, stdout, stderr = await self._run(cmd, self.attach_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Provisioning timed out for {domain}")
            return AgentResult(
                success=False,
                message="Failed to provision domain",
                error=f"Provisioning timed out after {self.attach_timeout:g}s",
                reason="timeout",
            )

        return self._interpret(
            "provision", domain, ATTACH_MARKERS, returncode, stdout, stderr
        )

    async def detach(self, domain: str) -> AgentResult:
        domain = domain.lower().rstrip(".")
        cmd = self._command(self.remove_script, domain)
        logger.info(f"Removing {domain}")

        try:
            returncode, stdout, stderr = await self._run(cmd, self.detach_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Removal timed out for {domain}")
            return AgentResult(
                success=False,
                message="Failed to remove domain",
                error=f"Removal timed out after {self.detach_timeout:g}s",
                reason="timeout",
            )

        return self._interpret(
            "remove", domain, DETACH_MARKERS, returncode, stdout, stderr
        )


@dataclass
class SimulatedProvisioningAgent(ProvisioningAgent):
    """
    Deterministic agent for development and tests.

    Records every call so callers can assert on what would have run.
    """

    attach_succeeds: bool = True
    detach_succeeds: bool = True
    failure_message: str = "Simulated provisioning failure"
    calls: List[tuple] = field(default_factory=list)

    async def attach(self, domain: str, routing_key: str) -> AgentResult:
        self.calls.append(("attach", domain, routing_key))
        if self.attach_succeeds:
            logger.info(f"Simulated provisioning for {domain}")
            return AgentResult(
                success=True,
                message="Domain provisioned successfully (development mode)",
                stdout="SUCCESS",
            )
        return AgentResult(
            success=False,
            message="Failed to provision domain",
            error=self.failure_message,
            reason="agent_failed",
        )

    async def detach(self, domain: str) -> AgentResult:
        self.calls.append(("detach", domain))
        if self.detach_succeeds:
            return AgentResult(
                success=True,
                message="Domain removed successfully (development mode)",
                stdout="SUCCESS",
            )
        return AgentResult(
            success=False,
            message="Failed to remove domain",
            error=self.failure_message,
            reason="agent_failed",
        )
