"""
Start and stop the server process.

A server is launched in one of two mutually exclusive I/O modes, fixed at
construction time:

  - CapturedProcess: stdout/stderr are read line by line into an output
    sink and stdin stays open; stop writes the stop command to stdin.
  - WindowedProcess: the server owns its own console window and no stream
    is wired; stop posts the stop command to that window (Windows) or
    sends SIGTERM (POSIX, where a process owns no window).

Stopping never waits for the exit and never kills; the caller watches the
returned handle for that.
"""

from __future__ import annotations
import abc
import os
import platform
import shlex
import signal
import subprocess
import threading
from pathlib import Path
from typing import IO, List, Optional, Union

from .collaborators import OutputSink
from .console import output
from .errors import EXIT_LAUNCH, EXIT_STOP, Outcome
from .models import STOP_COMMAND


STARTING       = "Starting"
RUNNING        = "Running"
STOP_REQUESTED = "StopRequested"
EXITED         = "Exited"


def _is_windows():

    return platform.system().lower() == "windows"


def build_command(executable: str, args: str) -> Union[str, List[str]]:
    """
    Combine the executable and its argument string into a launch target.
    Windows takes a single command line; POSIX gets a split argv.
    """

    if _is_windows():

        return subprocess.list2cmdline([str(executable)]) + (" " + args if args else "")

    return [str(executable)] + shlex.split(args or "")


class ManagedProcess(abc.ABC):
    """
    A launched server process plus the settings it was launched with.
    Only the two I/O variants below are ever constructed.
    """

    captured = False

    def __init__(self, popen: subprocess.Popen, work_dir: Path, executable: str, args: str):

        self.popen = popen

        self.work_dir = Path(work_dir)

        self.executable = executable

        self.args = args

        self._state = STARTING

    @property
    def pid(self) -> int:

        return self.popen.pid

    @property
    def returncode(self) -> Optional[int]:

        return self.popen.poll()

    @property
    def state(self) -> str:

        if self.popen.poll() is not None:

            return EXITED

        return self._state

    def is_running(self) -> bool:

        return self.popen.poll() is None

    def wait(self, timeout: Optional[float] = None) -> int:

        return self.popen.wait(timeout=timeout)

    def _mark_running(self):

        if self._state == STARTING:

            self._state = RUNNING

    @abc.abstractmethod
    def stop(self) -> Outcome:
        """
        Ask the server to shut down without waiting for it.
        """

    def _exited_failure(self) -> Optional[Outcome]:

        code = self.popen.poll()

        if code is not None:

            return Outcome.fail(EXIT_STOP, f"Server process {self.pid} has already exited (code {code})", target=str(self.pid))

        return None


class CapturedProcess(ManagedProcess):
    """
    Server whose stdout/stderr feed an OutputSink and whose stdin is ours.
    """

    captured = True

    def __init__(self, popen: subprocess.Popen, work_dir: Path, executable: str, args: str, sink: OutputSink):

        super().__init__(popen, work_dir, executable, args)

        self.sink = sink

        self.readers: List[threading.Thread] = []

    @property
    def stdin(self) -> Optional[IO[str]]:

        return self.popen.stdin

    def start_readers(self):
        """
        One daemon thread per output stream, each feeding whole lines to the sink.
        """

        for name, stream in (("stdout", self.popen.stdout), ("stderr", self.popen.stderr)):

            if stream is None:

                continue

            thread = threading.Thread(target=self._pump, args=(stream,), daemon=True,
                                      name=f"server-{self.pid}-{name}")

            thread.start()

            self.readers.append(thread)

        self._mark_running()

    def _pump(self, stream: IO[str]):

        try:

            for line in iter(stream.readline, ""):

                self.sink.on_line(line.rstrip("\r\n"))

        except (OSError, ValueError):

            # Stream closed underneath us while the process went away.
            pass

    def send_command(self, command: str) -> Outcome:
        """
        Write one console command line to the server's stdin.
        """

        exited = self._exited_failure()

        if exited:

            return exited

        if self.stdin is None or self.stdin.closed:

            return Outcome.fail(EXIT_STOP, "Server input stream is closed", target=str(self.pid))

        try:

            self.stdin.write(command + "\n")

            self.stdin.flush()

        except (BrokenPipeError, OSError, ValueError) as e:

            return Outcome.fail(EXIT_STOP, f"Could not write to server input: {e}", target=str(self.pid))

        return Outcome.ok()

    def stop(self) -> Outcome:

        result = self.send_command(STOP_COMMAND)

        if result:

            self._state = STOP_REQUESTED

            output(f"# Sent '{STOP_COMMAND}' to server input (PID {self.pid})")

        return result


class WindowedProcess(ManagedProcess):
    """
    Server running in its own console window, with no streams wired.
    """

    def window_handle(self) -> Optional[int]:

        if not _is_windows():

            return None

        return find_main_window(self.pid)

    def stop(self) -> Outcome:

        exited = self._exited_failure()

        if exited:

            return exited

        if _is_windows():

            hwnd = self.window_handle()

            if not hwnd:

                return Outcome.fail(EXIT_STOP, f"No window found for server process {self.pid}", target=str(self.pid))

            if not post_console_line(hwnd, STOP_COMMAND):

                return Outcome.fail(EXIT_STOP, f"Window {hwnd} rejected the stop message", target=str(self.pid))

            output(f"# Sent '{STOP_COMMAND}' to server window (PID {self.pid})")

        else:

            try:

                os.kill(self.pid, signal.SIGTERM)

            except (ProcessLookupError, PermissionError) as e:

                return Outcome.fail(EXIT_STOP, f"Could not signal server process {self.pid}: {e}", target=str(self.pid))

            output(f"# Sent SIGTERM to server (PID {self.pid})")

        self._state = STOP_REQUESTED

        return Outcome.ok()


def start_server(work_dir: Path, executable: str, args: str, capture_output: bool, sink: Optional[OutputSink] = None) -> Outcome:
    """
    Launch the server and hand back its ManagedProcess.
    With capture_output the sink must be ready before launch and stay valid
    while the server runs. Launch errors come back as LaunchFailed.
    """

    if capture_output and sink is None:

        return Outcome.fail(EXIT_LAUNCH, "Captured output requested without an output sink")

    command = build_command(executable, args)

    kwargs = {"cwd": str(work_dir)}

    if capture_output:

        kwargs.update(stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                      text=True, encoding="utf-8", errors="replace", bufsize=1)

        if _is_windows():

            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

    elif _is_windows():

        startupinfo = subprocess.STARTUPINFO()

        startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW

        startupinfo.wShowWindow = 7  # SW_SHOWMINNOACTIVE

        kwargs.update(creationflags=subprocess.CREATE_NEW_CONSOLE, startupinfo=startupinfo)

    output(f"# Starting: {command if isinstance(command, str) else ' '.join(command)}")

    try:

        popen = subprocess.Popen(command, **kwargs)

    except (OSError, ValueError, subprocess.SubprocessError) as e:

        return Outcome.fail(EXIT_LAUNCH, f"Failed to start server: {e}", target=str(executable), os_error=getattr(e, "errno", None))

    if capture_output:

        proc = CapturedProcess(popen, work_dir, executable, args, sink)

        proc.start_readers()

    else:

        proc = WindowedProcess(popen, work_dir, executable, args)

        proc._mark_running()

    output(f"# Server started (PID {proc.pid})")

    return Outcome.ok(proc)


def stop_server(proc: ManagedProcess) -> Outcome:
    """
    Ask the server to shut down and return immediately.
    """

    return proc.stop()


# === Windows console messaging ===

WM_CHAR = 0x0102

VK_RETURN = 0x0D

GW_OWNER = 4


def _user32():

    import ctypes

    return ctypes.WinDLL("user32", use_last_error=True)


def find_main_window(pid: int) -> Optional[int]:
    """
    First visible, unowned top-level window belonging to pid.
    """

    import ctypes
    from ctypes import wintypes

    user32 = _user32()

    found: List[int] = []

    WNDENUMPROC = ctypes.WINFUNCTYPE(wintypes.BOOL, wintypes.HWND, wintypes.LPARAM)

    def callback(hwnd, lparam):

        owner = wintypes.DWORD()

        user32.GetWindowThreadProcessId(hwnd, ctypes.byref(owner))

        if owner.value == pid and user32.IsWindowVisible(hwnd) and not user32.GetWindow(hwnd, GW_OWNER):

            found.append(hwnd)

            return False

        return True

    user32.EnumWindows(WNDENUMPROC(callback), 0)

    return found[0] if found else None


def post_console_line(hwnd: int, text: str) -> bool:
    """
    Type text into a console window followed by Enter.
    False as soon as the window refuses a message.
    """

    user32 = _user32()

    if not user32.IsWindow(hwnd):

        return False

    for ch in text:

        if not user32.PostMessageW(hwnd, WM_CHAR, ord(ch), 0):

            return False

    return bool(user32.PostMessageW(hwnd, WM_CHAR, VK_RETURN, 0))
