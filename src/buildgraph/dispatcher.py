# dispatcher.py
from __future__ import annotations

import os
import shlex
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import StepExecutionError
from .model import Action, Layer, PlanStep, StepResult, StepStatus, Submodule

# Engine-side exit codes for steps that never produced one of their own.
CWD_MISSING_EXIT_CODE = 66
TIMEOUT_EXIT_CODE = 124

# Exit codes the shells use for "command not found".
NOT_FOUND_EXIT_CODES = (127, 9009)

TOOL_HINTS = {
    "bal": "Install the Ballerina distribution (bal) or fix PATH.",
    "gradle": "Install Gradle or fix PATH.",
    "mvn": "Install Maven or fix PATH.",
    "java": "Install a JDK (17+) or fix PATH.",
}

OutputSink = Callable[[Submodule, str], None]


# ----------------------------------------------------------------------
# Shell selection
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ShellStrategy:
    """How a command string is handed to the host's command interpreter."""
    name: str
    prefix: tuple

    @property
    def windows(self) -> bool:
        return self.name == "cmd"

    def wrap(self, command: str) -> List[str]:
        return [*self.prefix, command]

    def quote(self, arg: str) -> str:
        if self.windows:
            return f'"{arg}"' if any(c in arg for c in ' &()^|<>"') else arg
        return shlex.quote(arg)

    def delete_dir(self, path: str) -> str:
        q = self.quote(path)
        if self.windows:
            return f"if exist {q} rmdir /s /q {q}"
        return f"rm -rf {q}"


POSIX_SHELL = ShellStrategy("sh", ("sh", "-c"))
WINDOWS_SHELL = ShellStrategy("cmd", ("cmd", "/c"))


def detect_shell(os_name: str | None = None, platform: str | None = None) -> ShellStrategy:
    os_name = os.name if os_name is None else os_name
    platform = sys.platform if platform is None else platform
    if os_name == "nt" or platform.startswith(("win", "cygwin", "msys")):
        return WINDOWS_SHELL
    return POSIX_SHELL


# ----------------------------------------------------------------------
# Command derivation
# ----------------------------------------------------------------------

DEFAULT_COMMANDS: Dict[Layer, Dict[Action, str]] = {
    Layer.NATIVE: {
        Action.BUILD: "gradle build",
        Action.PACK: "gradle build",
    },
    Layer.PLUGIN: {
        Action.BUILD: "gradle build",
        Action.PACK: "gradle build",
    },
    Layer.BINDING: {
        Action.BUILD: "bal build",
        Action.PACK: "bal pack",
        Action.PUSH_LOCAL: "bal pack && bal push --repository=local",
    },
}


def command_for(sub: Submodule, action: Action, shell: ShellStrategy) -> str:
    override = sub.command_override(action)
    if override:
        return override
    if action is Action.CLEAN:
        return shell.delete_dir(sub.output_dir)
    try:
        return DEFAULT_COMMANDS[sub.kind][action]
    except KeyError:
        raise StepExecutionError(
            submodule=sub.qualified_name,
            action=action.value,
            exit_code=-1,
            command="",
            details={"reason": f"no command for {action.value} on a {sub.kind.value} submodule"},
        ) from None


def hint_for(result: StepResult) -> Optional[str]:
    """Suggest a fix when the step failed because its tool is missing."""
    if result.exit_code not in NOT_FOUND_EXIT_CODES or not result.command:
        return None
    tool = result.command.split()[0]
    return TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")


def _print_line(sub: Submodule, line: str) -> None:
    print(f"[{sub.qualified_name}] {line}")


# ----------------------------------------------------------------------
# Dispatcher
# ----------------------------------------------------------------------

class CommandDispatcher:
    """
    Runs exactly one (submodule, action) step as an external command.

    Knows nothing about ordering: it resolves the command, runs it in the
    submodule's directory, streams output as it arrives and reports the
    exit status.
    """

    def __init__(
        self,
        *,
        shell: ShellStrategy | None = None,
        base_dir: str | Path = ".",
        env: Optional[Dict[str, str]] = None,
        product_env: Optional[Dict[str, Dict[str, str]]] = None,
        sink: OutputSink | None = None,
        timeout: float | None = None,
    ):
        self.shell = shell or detect_shell()
        self.base_dir = Path(base_dir).resolve()
        self.env = dict(env or {})
        self.product_env = {k: dict(v) for k, v in (product_env or {}).items()}
        self.sink = sink or _print_line
        self.timeout = timeout

    def workdir(self, sub: Submodule) -> Path:
        if sub.cwd is None:
            return self.base_dir / sub.product / sub.name
        return (self.base_dir / sub.cwd).resolve()

    def _child_env(self, sub: Submodule) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.product_env.get(sub.product, {}))
        env.update(dict(sub.env))
        env.update(self.env)
        return env

    def run(self, step: PlanStep, action: Action | None = None) -> StepResult:
        """
        Execute `step` synchronously. `action` overrides the action that is
        dispatched (a push-local plan dispatches its terminal Pack as
        pack-then-publish) while the result still reports `step`.
        """
        sub = step.submodule
        action = action or step.action
        result = StepResult(step=step, status=StepStatus.RUNNING)

        try:
            command = command_for(sub, action, self.shell)
        except StepExecutionError as e:
            result.status = StepStatus.FAILED
            result.exit_code = e.exit_code
            result.error = e
            return result
        result.command = command

        cwd = self.workdir(sub)
        if not cwd.is_dir():
            if action is Action.CLEAN:
                # nothing was ever built here
                result.status = StepStatus.SUCCEEDED
                result.exit_code = 0
                return result
            result.status = StepStatus.FAILED
            result.exit_code = CWD_MISSING_EXIT_CODE
            result.error = StepExecutionError(
                submodule=sub.qualified_name,
                action=action.value,
                exit_code=CWD_MISSING_EXIT_CODE,
                command=command,
                details={"reason": f"working directory not found: {cwd}"},
            )
            return result

        started = time.monotonic()
        exit_code, output, timed_out = self._execute(sub, command, cwd)
        result.duration = time.monotonic() - started
        result.output = output
        result.exit_code = exit_code

        if exit_code == 0:
            result.status = StepStatus.SUCCEEDED
        else:
            result.status = StepStatus.FAILED
            details = {"cwd": str(cwd)}
            if timed_out:
                details["reason"] = f"timed out after {self.timeout}s"
            result.error = StepExecutionError(
                submodule=sub.qualified_name,
                action=action.value,
                exit_code=exit_code,
                command=command,
                details=details,
            )
        return result

    def _execute(self, sub: Submodule, command: str, cwd: Path) -> tuple[int, str, bool]:
        proc = subprocess.Popen(
            self.shell.wrap(command),
            cwd=str(cwd),
            env=self._child_env(sub),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            **_new_group_kwargs(),
        )

        timed_out = threading.Event()
        timer = None
        if self.timeout is not None:
            def _expire() -> None:
                timed_out.set()
                _kill_group(proc)

            timer = threading.Timer(self.timeout, _expire)
            timer.daemon = True
            timer.start()

        captured: List[str] = []
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                line = line.rstrip("\r\n")
                captured.append(line)
                self.sink(sub, line)
            returncode = proc.wait()
        except KeyboardInterrupt:
            _terminate(proc)
            raise
        finally:
            if timer is not None:
                timer.cancel()
            if proc.stdout is not None:
                proc.stdout.close()

        if timed_out.is_set():
            returncode = TIMEOUT_EXIT_CODE
        elif returncode < 0:
            # killed by a signal; report it the way shells do
            returncode = 128 + abs(returncode)
        return returncode, "\n".join(captured), timed_out.is_set()


def _new_group_kwargs() -> dict:
    """Start the shell in its own process group so the commands it spawns can be stopped with it."""
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _kill_group(proc: subprocess.Popen, force: bool = True) -> None:
    if os.name == "nt":
        args = ["taskkill", "/T", "/PID", str(proc.pid)]
        if force:
            args.insert(1, "/F")
        subprocess.run(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False)
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL if force else signal.SIGTERM)
    except (ProcessLookupError, PermissionError):
        # the whole group already exited
        return


def _terminate(proc: subprocess.Popen, grace: float = 5.0) -> None:
    _kill_group(proc, force=False)
    try:
        proc.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        proc.wait()
