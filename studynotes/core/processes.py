import asyncio
import logging

logger = logging.getLogger(__name__)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        # exited between the returncode check and kill()
        pass
    await proc.wait()


async def run_process(*cmd: str, timeout: float) -> tuple[int, bytes, bytes]:
    """Run ``cmd`` and return ``(returncode, stdout, stderr)``.

    The child never outlives this call: on timeout, cancellation or any other
    error it is killed and reaped before the exception propagates, so callers
    can delete its output paths right after.
    """
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    finally:
        if proc.returncode is None:
            logger.warning("Killing %s (pid %s)", cmd[0], proc.pid)
            await _kill(proc)
    return proc.returncode, stdout, stderr
