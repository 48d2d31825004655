"""
Device probing helpers: CPU architecture and non-root execution.
"""

from __future__ import annotations

import asyncio
import platform
from pathlib import Path

from frida_launcher.logging import get_logger
from frida_launcher.models import Architecture
from frida_launcher.session import ShellSession

logger = get_logger(__name__)

# Android ABI names as reported by ro.product.cpu.abi
ABI_ARCHITECTURES: dict[str, Architecture] = {
    "armeabi-v7a": Architecture.ARM,
    "armeabi": Architecture.ARM,
    "arm64-v8a": Architecture.ARM64,
    "x86": Architecture.X86,
    "x86_64": Architecture.X86_64,
}

# platform.machine() values
MACHINE_ARCHITECTURES: dict[str, Architecture] = {
    "aarch64": Architecture.ARM64,
    "arm64": Architecture.ARM64,
    "armv7l": Architecture.ARM,
    "armv8l": Architecture.ARM,
    "i386": Architecture.X86,
    "i686": Architecture.X86,
    "x86": Architecture.X86,
    "x86_64": Architecture.X86_64,
    "amd64": Architecture.X86_64,
}

DEFAULT_ARCHITECTURE = Architecture.ARM

ANDROID_SHELL = Path("/system/bin/sh")


def architecture_from_abi(abi: str) -> Architecture | None:
    """Map the first entry of an ABI string (``arm64-v8a,armeabi``...)."""
    primary = abi.strip().split(",")[0].strip()
    return ABI_ARCHITECTURES.get(primary)


async def detect_architecture(session: ShellSession | None = None) -> Architecture:
    """
    Determine which server build the device needs.

    The primary ABI is read with ``getprop`` through the session; without an
    answer the interpreter's machine type is used, and ``arm`` is the last
    resort.
    """
    if session is not None:
        abi = await session.execute("getprop ro.product.cpu.abi")
        arch = architecture_from_abi(abi)
        if arch is not None:
            logger.debug("Architecture from ABI", extra={"abi": abi.strip()})
            return arch

    machine = platform.machine().lower()
    arch = MACHINE_ARCHITECTURES.get(machine, DEFAULT_ARCHITECTURE)
    logger.debug(
        "Architecture from machine type",
        extra={"machine": machine, "architecture": arch.value},
    )
    return arch


def _shell_path() -> str:
    return str(ANDROID_SHELL) if ANDROID_SHELL.exists() else "/bin/sh"


async def can_use_non_root_mode(work_dir: Path | str, timeout: float = 10.0) -> bool:
    """
    Check whether executables in ``work_dir`` can run without root.

    A throwaway shell script is written, run and removed.
    """
    script = Path(work_dir) / "test.sh"
    try:
        script.parent.mkdir(parents=True, exist_ok=True)
        script.write_text(f"#!{_shell_path()}\necho 'test'\n")
        script.chmod(0o755)
        proc = await asyncio.create_subprocess_exec(
            str(script),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            logger.info("Non-root test script timed out", extra={"timeout": timeout})
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            return False
    except OSError as e:
        logger.info("Non-root execution unavailable", extra={"error": str(e)})
        return False
    finally:
        if script.exists():
            script.unlink()

    return proc.returncode == 0 and "test" in stdout.decode(errors="replace")
