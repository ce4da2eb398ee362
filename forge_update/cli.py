from __future__ import annotations
import argparse
import platform
import sys
import threading
from pathlib import Path
from textwrap import dedent
from typing import List, Optional

from . import __version__
from .collaborators import AcceptAll, ConsolePrompt, JavaLocator, ServerPaths, ServerTreePaths
from .console import configure_output, fatal, is_batch, output
from .errors import EXIT_ARTIFACT_MISSING, EXIT_NOTHING, EXIT_STOP, EXIT_UPDATE, Outcome
from .installer import file_sha256
from .lifecycle import ServerLifecycle
from .models import BUILD_STREAMS, STOP_COMMAND, ServerConfig
from .process import ManagedProcess
from .serverfiles import PROPERTIES_FILE


GITHUB = 'https://files.minecraftforge.net'


def build_parser() -> argparse.ArgumentParser:

    parser = argparse.ArgumentParser(prog='forge-update', description=r'Forge Server Updater -- Typical Syntax: forge-update -options C:\minecraft -- the directory holding the forge server jar')

    parser.add_argument('path', help='Server files directory', default=Path.cwd(), type=Path, nargs='?')
    parser.add_argument('-s', '--stream', help='Build stream to follow', choices=BUILD_STREAMS, default='latest')
    parser.add_argument('-sv', '--server-version', help='Displays the installed server artifact, version and build', action='store_true')
    parser.add_argument('-V', '--script-version', help='Display this scripts version and basic contact info', action='store_true')
    parser.add_argument('-c', '--check-only', help='Checks for an update, does not download', action='store_true')
    parser.add_argument('-n', '--new', help='Install a new server into the directory (asks for EULA agreement)', action='store_true')
    parser.add_argument('-st', '--start', help='Start the installed server and supervise it until it exits, Ctrl-C stops it', action='store_true')
    parser.add_argument('-va', '--validate', help='Exit 0 if the directory holds a server artifact', action='store_true')
    parser.add_argument('-nc', '--no-check', help='Does not check for an update, reinstalls the remote release', action='store_true')
    parser.add_argument('-nk', '--no-cleanup', help='Keep the previous artifact and installer after an update', action='store_true')
    parser.add_argument('-ni', '--no-integrity', help='DISABLES SHA-256 verification of the installer. USE WITH CAUTION!', action='store_false')
    parser.add_argument('-y', '--accept-eula', help='Agree to the Minecraft EULA without prompting', action='store_true')
    parser.add_argument('-j', '--java', help='Java executable to use (default: JAVA_HOME, then PATH)', type=str, default=None)
    parser.add_argument('-p', '--params', help='Extra JVM parameters placed before -jar', type=str, default='')
    parser.add_argument('-w', '--windowed', help='Run the server in its own console window instead of capturing output', action='store_true')
    parser.add_argument('-t', '--timeout', help='Seconds to wait for the installer before killing it', type=float, default=None)
    parser.add_argument('-id', '--server-id', help='Treat path as a root holding servers/<id>/serverfiles', type=str, default=None)
    parser.add_argument('-ua', '--user-agent', help='User agent to utilize when making requests', type=str, default='')
    parser.add_argument('-ba', '--batch', help='Log-friendly output mainly for batch scripts', action='store_true')
    parser.add_argument('-q', '--quiet', help='Suppress all output! -silent mode- Only exit codes will be returned.', action='store_true')
    props = parser.add_argument_group('Server Properties', 'Values written to server.properties on install')
    props.add_argument('--name', help='Server name (motd)', default='Minecraft: Forge Server')
    props.add_argument('--port', help='Server port', type=int, default=25565)
    props.add_argument('--query-port', help='Query port', type=int, default=25565)
    props.add_argument('--write-properties', help='(Re)write server.properties and exit', action='store_true')

    return parser


def banner():

    output("\n+==========================================================================+")
    output(dedent(r'''
            |     ______                         __  __          __      __          |
            |    / ____/___  _________ ____     / / / /___  ____/ /___ _/ /____      |
            |   / /_  / __ \/ ___/ __ `/ _ \   / / / / __ \/ __  / __ `/ __/ _ \     |
            |  / __/ / /_/ / /  / /_/ /  __/  / /_/ / /_/ / /_/ / /_/ / /_/  __/     |
            | /_/    \____/_/   \__, /\___/   \____/ .___/\__,_/\__,_/\__/\___/      |
            |                  /____/             /_/                                |''').lstrip('\n'))
    output("+==========================================================================+")
    output("\n[Forge Server Updater]")
    output("[Handles the installing, updating, starting and stopping of Forge servers]\n")


def fail(result: Outcome):

    fatal(result.code, f"{result.name}: {result.message}", target=result.target, os_error=result.os_error)


def report_installed(serv: ServerLifecycle) -> int:

    artifact = serv.installed_artifact()

    if artifact is None:

        fatal(EXIT_ARTIFACT_MISSING, f"No server artifact found in {serv.server_dir}", target=str(serv.server_dir))

    try:

        sha_line = f"  > SHA256:  [{file_sha256(artifact.absolute_path)}]"

    except OSError:

        sha_line = "  > SHA256:  [Error reading file]"

    output("\n+=============================================================================+")
    output("# Local Server Version Information:")
    output(f"  > File:    [{artifact.file_name}]")
    output(f"  > Version: [{artifact.version or 'unknown'}]")
    output(f"  > Build:   [{artifact.build or 'unknown'}]")
    output(sha_line)
    output("+=============================================================================+\n")

    return EXIT_NOTHING


def forward_input(serv: ServerLifecycle, proc: ManagedProcess):
    """
    Pass terminal lines to the server as console commands until it exits
    or the stop command goes through. End of input asks it to stop.
    """

    while proc.is_running():

        try:

            line = input().strip()

        except EOFError:

            if proc.is_running():

                stopped = serv.stop(proc)

                if not stopped:

                    output(f"# {stopped.message}")

            return

        if not line:

            continue

        sent = proc.send_command(line)

        if not sent or line == STOP_COMMAND:

            return


def supervise(serv: ServerLifecycle, proc: ManagedProcess) -> int:
    """
    Stay attached to a started server until it exits, on its own or not.
    Captured servers get our terminal input as console commands;
    Ctrl-C or end of input asks the server to stop.
    """

    if proc.captured and sys.stdin is not None and sys.stdin.isatty():

        threading.Thread(target=forward_input, args=(serv, proc), daemon=True, name=f"server-{proc.pid}-input").start()

    try:

        return proc.wait()

    except KeyboardInterrupt:

        stopped = serv.stop(proc)

        if not stopped and proc.is_running():

            fatal(EXIT_STOP, stopped.message, target=stopped.target)

        output("# Waiting for the server to exit ...")

        return proc.wait()


def main(argv: Optional[List[str]] = None) -> int:

    parser = build_parser()

    args = parser.parse_args(argv)

    configure_output(quiet=args.quiet, batch=args.batch)

    if args.script_version:

        output("\n\n+===============================================================+\n")
        output(f"   Forge Updater Script - version: {__version__}\n")
        output(f"   Forge files: {GITHUB}")
        output(f"   Current Python Version: {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro} ({platform.system()})")
        output("\n+===============================================================+\n")

        return EXIT_NOTHING

    if not is_batch():

        banner()

    config = ServerConfig(server_id=args.server_id or "1", name=args.name, port=args.port,
                          query_port=args.query_port, params=args.params, capture_output=not args.windowed)

    paths = ServerTreePaths(args.path) if args.server_id else ServerPaths(args.path)

    serv = ServerLifecycle(config, paths, runtime=JavaLocator(args.java),
                           consent=AcceptAll() if args.accept_eula else ConsolePrompt(),
                           stream=args.stream, installer_timeout=args.timeout,
                           integrity=args.no_integrity, user_agent=args.user_agent)

    output(f"# Server directory: {serv.server_dir}")

    if args.validate:

        if serv.is_install_valid():

            output("# Server artifact present.")

            return EXIT_NOTHING

        output("# No server artifact found.")

        return EXIT_ARTIFACT_MISSING

    if args.server_version:

        return report_installed(serv)

    if args.write_properties:

        result = serv.create_server_config()

        if not result:

            fail(result)

        return EXIT_NOTHING

    if args.check_only:

        result = serv.check()

        if not result:

            fail(result)

        output("\n[ --== Version Check Complete! ==-- ]")

        return EXIT_NOTHING

    if args.start:

        result = serv.start()

        if not result:

            fail(result)

        code = supervise(serv, result.value)

        output(f"# Server exited with code {code}")

        return EXIT_NOTHING

    if args.new:

        result = serv.install()

        if not result:

            fail(result)

        if not (serv.server_dir / PROPERTIES_FILE).exists():

            written = serv.create_server_config()

            if not written:

                fail(written)

        return EXIT_UPDATE

    if args.no_check:

        output("\n# Skipping Version Check (forced: --no-check)")

    else:

        checked = serv.check()

        if not checked:

            fail(checked)

        if not checked.value.available:

            return EXIT_NOTHING

    result = serv.update(force=True, cleanup=not args.no_cleanup)

    if not result:

        fail(result)

    if result.message:

        output(f"# Warning: update installed, but cleanup was incomplete: {result.message}")

    return EXIT_UPDATE
