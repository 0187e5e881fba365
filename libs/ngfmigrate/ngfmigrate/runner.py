"""
Run migration steps as subprocesses.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .commands import Step

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1800  # eksctl create cluster routinely takes 15-20 minutes


class CommandError(RuntimeError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, argv: List[str], returncode: int, stderr: str = ""):
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr
        message = f"'{' '.join(argv)}' failed with exit code {returncode}"
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message)


@dataclass
class StepResult:
    """Outcome of one step."""
    step: Step
    returncode: Optional[int] = None  # None for dry runs
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode in (None, 0)


def check_tools(tools: Iterable[str]) -> List[str]:
    """Return the tools that are not on PATH."""
    return [tool for tool in tools if shutil.which(tool) is None]


def run_command(argv: List[str], timeout: int = DEFAULT_TIMEOUT) -> subprocess.CompletedProcess:
    """
    Run argv and capture its output.

    Raises:
        CommandError: If the executable is missing or the command times out
    """
    logger.debug(f"Running: {' '.join(argv)}")
    try:
        return subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError:
        raise CommandError(argv, 127, f"{argv[0]}: command not found")
    except subprocess.TimeoutExpired:
        raise CommandError(argv, 124, f"timed out after {timeout}s")


def run_step(step: Step, dry_run: bool = False, timeout: int = DEFAULT_TIMEOUT) -> StepResult:
    """
    Execute a single step.

    Raises:
        CommandError: If the step is checked and the command fails
    """
    if dry_run:
        logger.info(f"[dry-run] {step.render()}")
        return StepResult(step=step)

    logger.info(f"{step.description}")
    proc = run_command(step.argv, timeout=timeout)
    result = StepResult(
        step=step,
        returncode=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
    )

    if proc.returncode != 0:
        if step.check:
            raise CommandError(step.argv, proc.returncode, proc.stderr)
        logger.warning(f"Ignoring failure of '{step.render()}': {proc.stderr.strip()}")

    return result


def run_plan(
    steps: List[Step],
    dry_run: bool = False,
    continue_on_error: bool = False,
    timeout: int = DEFAULT_TIMEOUT,
) -> List[StepResult]:
    """
    Execute steps in order.

    Stops at the first failing checked step unless continue_on_error is set,
    in which case the failure is recorded and the remaining steps still run.

    Raises:
        CommandError: On the first failure when continue_on_error is False
    """
    results: List[StepResult] = []
    total = len(steps)
    for index, step in enumerate(steps, start=1):
        logger.debug(f"Step {index}/{total} [{step.phase.value}]")
        try:
            results.append(run_step(step, dry_run=dry_run, timeout=timeout))
        except CommandError as e:
            if not continue_on_error:
                raise
            logger.error(f"Step {index}/{total} failed: {e}")
            results.append(StepResult(
                step=step,
                returncode=e.returncode,
                stderr=e.stderr,
            ))
    return results


def kubectl_json(args: List[str], timeout: int = 60) -> str:
    """
    Run `kubectl <args> -o json` and return stdout.

    Raises:
        CommandError: If kubectl fails
    """
    argv = ["kubectl"] + args + ["-o", "json"]
    proc = run_command(argv, timeout=timeout)
    if proc.returncode != 0:
        raise CommandError(argv, proc.returncode, proc.stderr)
    return proc.stdout
