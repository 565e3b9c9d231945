"""
Helpers for the external ffmpeg toolchain.

The services build ffmpeg command lists and execute them with `run_cmd`;
ffprobe metadata is read through the ffmpeg-python bindings. This module also
checks at start-up that the configured executables actually run, and condenses
ffmpeg's stderr into something that fits in a record's `error` field.
"""
import os
import shlex
import subprocess
from typing import List, Optional, Union

from loguru import logger

# ffmpeg's stderr is long; keep only the tail, which holds the actual error.
STDERR_TAIL_LINES = 5


def stderr_tail(stderr: Optional[Union[bytes, str]], lines: int = STDERR_TAIL_LINES) -> str:
    """Returns the last `lines` non-empty lines of an ffmpeg stderr capture."""
    if not stderr:
        return ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    kept = [line for line in stderr.splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


def display_cmd(cmd_list: List[str]) -> str:
    """Quotes a command list for log lines, the way the platform's shell would."""
    if os.name == "nt":
        return subprocess.list2cmdline(cmd_list)
    return shlex.join(cmd_list)


def run_cmd(
    cmd_list: List[str],
    show_cmd: bool = False,
    timeout: Optional[float] = None,
) -> Optional[subprocess.CompletedProcess]:
    """
    Executes an external command and captures its output.

    Args:
        cmd_list: The command and its arguments. Never run through a shell.
        show_cmd: If True, the command is logged at DEBUG level before execution.
        timeout: Seconds after which the command is killed, or None for no limit.

    Returns:
        The `subprocess.CompletedProcess` (check `returncode`), or None if the
        command could not be started or timed out.
    """
    if not cmd_list:
        logger.error("run_cmd received an empty command list.")
        return None

    display_cmd_str = display_cmd(cmd_list)
    if show_cmd:
        logger.debug(f"Executing command: {display_cmd_str}")

    try:
        result = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            shell=False,
            timeout=timeout,
        )
    except FileNotFoundError:
        logger.error(
            f"Error: Command not found ('{cmd_list[0]}'). Ensure it's in your system's PATH or configured correctly."
        )
        return None
    except subprocess.TimeoutExpired:
        logger.error(f"Error: Command timed out after {timeout}s. Command: {display_cmd_str}")
        return None

    if result.stderr and result.returncode != 0:
        logger.debug(f"Command stderr (error, rc={result.returncode}): {stderr_tail(result.stderr, 20)}")
    elif result.stderr:
        logger.trace(f"Command stderr (non-error, rc={result.returncode}): {result.stderr[-500:]}")
    return result


def verify_tool(executable: str) -> bool:
    """
    Verifies that an ffmpeg-family executable is installed and runs.

    Runs `<executable> -version` and logs the first line of its output on
    success, or a descriptive error when it cannot be executed.

    Returns:
        True if the executable answered, False otherwise.
    """
    try:
        result = subprocess.run(
            [executable, "-version"],
            check=True,
            capture_output=True,
            text=True,
            encoding="utf-8",
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"'{executable} -version' failed (return code {e.returncode}):\n{e.stderr}")
        return False
    except FileNotFoundError:
        logger.error(
            f"'{executable}' not found. Install FFmpeg and add it to PATH, "
            "or set `paths.ffmpeg_dir` in the config file."
        )
        return False

    first_line = result.stdout.splitlines()[0] if result.stdout else ""
    logger.info(f"{executable} check successful: {first_line}")
    return True


def verify_ffmpeg(ffmpeg_bin: str, ffprobe_bin: str) -> bool:
    """Checks both ffmpeg and ffprobe; True only if both run."""
    ffmpeg_ok = verify_tool(ffmpeg_bin)
    ffprobe_ok = verify_tool(ffprobe_bin)
    return ffmpeg_ok and ffprobe_ok
