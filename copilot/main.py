#!/usr/bin/env python3
"""Command-line entry point for the LegalSay Contract Copilot.

This module provides:
- CLI argument parsing for configuration and subcommands
- Orchestrator and session storage setup
- A plain-text risk report for the stored analysis
- An interactive negotiation loop with streamed agent output
"""

import argparse
import mimetypes
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger

from copilot.config import JURISDICTIONS, Settings, load_settings
from copilot.error_handling import CopilotError, InvalidInputError, user_message
from copilot.logging_config import setup_logging
from copilot.models import AnalysisResult, ContractFile, Flag
from copilot.orchestrator import ContractReviewOrchestrator, create_orchestrator
from memory.session_service import SQLiteSessionStorage
from negotiation.workspace import NegotiationWorkspace
from tools.clause_anchoring import Segment
from tools.document_diff import render_diff


SEVERITY_LABELS = {"red": "RED", "yellow": "YELLOW", "green": "GREEN"}


def read_contract_file(path: str) -> ContractFile:
    """Load a document from disk as an in-memory upload."""
    file_path = Path(path)
    if not file_path.is_file():
        raise InvalidInputError(f"File not found: {path}")

    mime_type, _ = mimetypes.guess_type(file_path.name)
    return ContractFile(
        filename=file_path.name,
        content=file_path.read_bytes(),
        mime_type=mime_type or "application/octet-stream",
    )


def format_report(analysis: AnalysisResult, flags: List[Flag]) -> str:
    """Render an analysis as a plain-text risk report."""
    lines = [
        f"Contract Type: {analysis.contract_type}",
        f"Health Score: {analysis.health_score:g}",
        "",
        "Summary:",
        analysis.summary or "(none)",
    ]

    if analysis.key_details:
        lines += ["", "Key Details:"]
        lines += [f"  {detail.label}: {detail.value}" for detail in analysis.key_details]

    for severity in ("red", "yellow", "green"):
        group = [f for f in flags if f.severity == severity]
        if not group:
            continue
        lines += ["", f"{SEVERITY_LABELS[severity]} FLAGS ({len(group)}):"]
        for flag in group:
            lines.append(f"  [{flag.id}] {flag.analysis}")

    return "\n".join(lines)


def render_document(segments: List[Segment]) -> str:
    """Plain-text rendering of a highlighted document: ``[[text]]{clause-id}``."""
    return "".join(
        f"[[{segment.text}]]{{{segment.clause_id}}}" if segment.highlighted else segment.text
        for segment in segments
    )


def export_document(document: str, path: str) -> Path:
    """Write the working document to ``path`` as UTF-8 text."""
    if not path:
        raise InvalidInputError("Usage: /export PATH")

    output = Path(path)
    try:
        output.write_text(document, encoding="utf-8")
    except OSError as e:
        raise InvalidInputError(f"Could not write {output}: {e.strerror}") from e
    logger.info(f"Document exported to {output}", length=len(document))
    return output


class StreamPrinter:
    """Echoes agent text to the terminal as a negotiation turn streams in."""

    def __init__(self, workspace: NegotiationWorkspace, out=None):
        self.workspace = workspace
        self.out = out or sys.stdout
        self._message = None
        self._printed = 0
        self._editing_announced = False

    def reset(self) -> None:
        self._message = None
        self._printed = 0
        self._editing_announced = False

    def __call__(self, what: str) -> None:
        if what == "document":
            if not self._editing_announced:
                self.out.write("\n[agent is editing the document...]\n")
                self._editing_announced = True
            return

        last = self.workspace.transcript.last
        if last is None or last.role != "agent":
            return
        if last is not self._message:
            self._message, self._printed = last, 0
            self.out.write("\nagent> ")

        new_text = last.text[self._printed:]
        if new_text:
            self.out.write(new_text)
            self._printed = len(last.text)
        self.out.flush()


class CopilotApplication:
    """Main application class for the Contract Copilot CLI.

    Manages configuration, logging and the session-bound orchestrator.
    """

    def __init__(self, args: argparse.Namespace, settings: Optional[Settings] = None):
        """Initialize the application with parsed arguments.

        Args:
            args: Parsed command-line arguments
            settings: Optional resolved settings (loaded from the environment when omitted)
        """
        self.args = args
        self.settings = settings or load_settings()
        self.storage: Optional[SQLiteSessionStorage] = None
        self.orchestrator: Optional[ContractReviewOrchestrator] = None

        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        logger.warning(f"Received {signal_name} signal, shutting down")
        sys.exit(0)

    def initialize(self) -> None:
        """Set up logging, session storage and the orchestrator."""
        if self.args.api_base_url:
            self.settings.api_base_url = self.args.api_base_url.rstrip("/")
        if self.args.db_path:
            self.settings.session_db_path = self.args.db_path

        setup_logging(
            log_dir=self.args.log_dir or self.settings.log_dir,
            level=self.args.log_level or self.settings.log_level,
            console=self.args.verbose
        )

        logger.info("LegalSay Contract Copilot starting")
        logger.info(f"API: {self.settings.api_base_url}")
        logger.info(f"Session: {self.args.session_id}")

        self.storage = SQLiteSessionStorage(
            db_path=self.settings.session_db_path,
            cleanup_hours=self.settings.session_cleanup_hours
        )
        self.orchestrator = create_orchestrator(
            settings=self.settings,
            storage=self.storage,
            session_id=self.args.session_id
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def cmd_analyze(self) -> int:
        if self.args.text:
            self.orchestrator.analyze_text(self.args.text, self.args.jurisdiction)
        elif self.args.path:
            file = read_contract_file(self.args.path)
            self.orchestrator.analyze_file(file, self.args.jurisdiction)
        else:
            raise InvalidInputError("Provide a contract file or --text.")

        return self.cmd_report()

    def cmd_report(self) -> int:
        store = self.orchestrator.store
        if store.analysis is None:
            print("No analysis stored for this session. Run 'analyze' first.")
            return 1

        print(f"Contract: {store.contract.filename} ({store.jurisdiction})")
        print(format_report(store.analysis, store.flags))
        return 0

    def cmd_explain(self) -> int:
        print(self.orchestrator.explain_flag(self.args.flag_id))
        return 0

    def cmd_redline(self) -> int:
        file = read_contract_file(self.args.file) if self.args.file else None
        document = self.orchestrator.redline_flag(self.args.flag_id, file=file)

        output = Path(self.args.output or f"redlined_{self.args.flag_id}.docx")
        output.write_bytes(document)
        print(f"Redlined document written to {output}")
        return 0

    def cmd_reset(self) -> int:
        self.orchestrator.store.reset()
        print(f"Session '{self.args.session_id}' cleared.")
        return 0

    def cmd_cleanup(self) -> int:
        cleaned = self.storage.cleanup_old_sessions()
        print(f"Removed {cleaned} inactive session(s).")
        return 0

    def cmd_negotiate(self) -> int:
        workspace = NegotiationWorkspace(self.orchestrator.store, self.orchestrator.client)
        printer = StreamPrinter(workspace)
        workspace.on_update = printer

        print("Negotiation workspace. Type /help for commands, /quit to exit.")
        self._print_clauses(workspace)

        while True:
            try:
                line = input("\nyou> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                return 0

            if not line:
                continue
            if line in ("/quit", "/exit"):
                return 0

            printer.reset()
            try:
                self._handle_line(workspace, line)
            except CopilotError as e:
                print(f"Error: {user_message(e)}")
            except KeyboardInterrupt:
                workspace.cancel()
                print("\n[cancelled]")

    def _handle_line(self, workspace: NegotiationWorkspace, line: str) -> None:
        command, _, argument = line.partition(" ")
        argument = argument.strip()

        if command == "/help":
            print(INTERACTIVE_HELP)
        elif command == "/clauses":
            self._print_clauses(workspace)
        elif command == "/select":
            selected = workspace.toggle_selection(argument)
            print(f"{argument} {'selected' if selected else 'deselected'}")
        elif command == "/negotiate":
            self._report_turn(workspace.negotiate_one(argument))
        elif command == "/all":
            self._report_turn(workspace.negotiate_many(instruction=argument or None))
        elif command == "/doc":
            print(render_document(workspace.highlighted_segments()))
        elif command == "/export":
            output = export_document(workspace.document, argument)
            print(f"Document written to {output}")
        elif command == "/diff":
            print(render_diff(workspace.document_changes()))
        elif command == "/reanalyze":
            self.orchestrator.reanalyze()
            workspace.reload_document()
            self._print_clauses(workspace)
        elif command.startswith("/"):
            print(f"Unknown command: {command}. Type /help for commands.")
        else:
            self._report_turn(workspace.send_message(line))

    def _print_clauses(self, workspace: NegotiationWorkspace) -> None:
        clauses = workspace.clauses
        if not clauses:
            print("No negotiable clauses remain.")
            return

        selected = set(workspace.selected_ids)
        for clause in clauses:
            marker = "*" if clause.id in selected else " "
            print(f" {marker} [{clause.id}] ({clause.risk_level}) {clause.title}")

    def _report_turn(self, outcome) -> None:
        print()
        if outcome.cancelled:
            print("[negotiation cancelled]")
        elif outcome.error:
            print(f"Error: {outcome.error}")
        elif not outcome.completed:
            print("[the negotiation ended early; clauses were kept so you can retry]")
        elif outcome.edited:
            print("[document updated; /diff shows the changes]")

    def run(self) -> int:
        handler = getattr(self, f"cmd_{self.args.command}")
        return handler()


INTERACTIVE_HELP = """Commands:
  /clauses           List the remaining negotiable clauses
  /select ID         Select or deselect a clause
  /negotiate ID      Negotiate a single clause
  /all [message]     Negotiate all selected clauses together
  /doc               Show the current document, clauses marked [[text]]{id}
  /export PATH       Save the current document to a text file
  /diff              Show changes made by the last negotiation turn
  /reanalyze         Analyze the current document again
  /quit              Exit
Anything else is sent to the copilot as a chat message.
Press Ctrl+C while the copilot is responding to cancel the turn."""


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="legalsay",
        description="LegalSay Contract Copilot - analyze and negotiate contracts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze a document and print the risk report
  legalsay analyze agreement.pdf --jurisdiction California

  # Explain one flag from the stored analysis
  legalsay explain red-0

  # Negotiate interactively
  legalsay negotiate
        """
    )

    parser.add_argument(
        "--session-id",
        type=str,
        default="default",
        help="Session whose contract state is used (default: default)"
    )
    parser.add_argument(
        "--api-base-url",
        type=str,
        default=None,
        help="Analysis service base URL (default: from LEGALSAY_API_BASE_URL env var)"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="Session database path (default: from SESSION_DB_PATH env var)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: from LOG_LEVEL env var or INFO)"
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Directory for log files (default: from LOG_DIR env var or logs)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Also write logs to the console"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze a contract file or pasted text")
    analyze.add_argument("path", nargs="?", help="Contract file (.pdf, .docx or .txt)")
    analyze.add_argument("--text", type=str, help="Contract text to analyze instead of a file")
    analyze.add_argument(
        "--jurisdiction",
        type=str,
        default=None,
        help=f"Governing jurisdiction, e.g. one of: {', '.join(JURISDICTIONS)}"
    )

    subparsers.add_parser("report", help="Print the stored risk report")

    explain = subparsers.add_parser("explain", help="Explain one flag in plain language")
    explain.add_argument("flag_id", help="Flag id as shown in the report, e.g. red-0")

    redline = subparsers.add_parser("redline", help="Download a redlined .docx for one flag")
    redline.add_argument("flag_id", help="Flag id as shown in the report")
    redline.add_argument("--file", type=str, help="The original .docx (required after a restart)")
    redline.add_argument("--output", type=str, help="Output path (default: redlined_<flag>.docx)")

    subparsers.add_parser("negotiate", help="Open the interactive negotiation workspace")
    subparsers.add_parser("reset", help="Clear the stored contract for this session")
    subparsers.add_parser("cleanup", help="Remove inactive sessions from the database")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    load_dotenv()
    args = parse_arguments(argv)

    try:
        app = CopilotApplication(args)
        app.initialize()
        return app.run()

    except CopilotError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {user_message(e)}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
