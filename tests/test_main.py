import pytest

from copilot.error_handling import InvalidInputError
from copilot.main import CopilotApplication, export_document, format_report, parse_arguments, render_document
from negotiation.workspace import NegotiationWorkspace
from tools.clause_anchoring import Segment
from tools.clause_mapper import flags_from_analysis


def test_report_lists_flags_by_severity(analysis):
    report = format_report(analysis, flags_from_analysis(analysis))

    assert "Contract Type: Non-Disclosure Agreement" in report
    assert "Health Score: 58" in report
    assert "RED FLAGS (2):" in report
    assert "[yellow-0] Late payment: invoices are due quickly." in report
    assert "GREEN FLAGS (1):" in report
    assert report.index("RED FLAGS") < report.index("YELLOW FLAGS") < report.index("GREEN FLAGS")


def test_parse_analyze_arguments():
    args = parse_arguments(["--session-id", "s1", "analyze", "nda.pdf", "--jurisdiction", "Delaware"])

    assert args.command == "analyze"
    assert args.session_id == "s1"
    assert args.path == "nda.pdf"
    assert args.jurisdiction == "Delaware"


def test_parse_redline_arguments():
    args = parse_arguments(["redline", "red-0", "--file", "nda.docx"])

    assert args.flag_id == "red-0"
    assert args.file == "nda.docx"
    assert args.session_id == "default"


def make_app(settings):
    return CopilotApplication(parse_arguments(["negotiate"]), settings=settings)


def test_render_document_marks_clause_anchors():
    segments = [
        Segment(text="The Recipient "),
        Segment(text="shall be liable", clause_id="red-0"),
        Segment(text=" for losses."),
    ]

    assert render_document(segments) == "The Recipient [[shall be liable]]{red-0} for losses."


def test_doc_command_shows_highlighted_clauses(settings, loaded_store, capsys):
    workspace = NegotiationWorkspace(loaded_store, client=None)

    make_app(settings)._handle_line(workspace, "/doc")

    output = capsys.readouterr().out
    assert "[[shall be liable for all losses]]{red-0}" in output
    assert "[[pay within 30\ndays]]{yellow-0}" in output


def test_export_command_writes_document(settings, loaded_store, tmp_path, capsys):
    workspace = NegotiationWorkspace(loaded_store, client=None)
    target = tmp_path / "negotiated.txt"

    make_app(settings)._handle_line(workspace, f"/export {target}")

    assert target.read_text(encoding="utf-8") == workspace.document
    assert f"Document written to {target}" in capsys.readouterr().out


def test_export_requires_a_path():
    with pytest.raises(InvalidInputError):
        export_document("text", "")


def test_export_to_missing_directory_is_a_typed_error(tmp_path):
    with pytest.raises(InvalidInputError, match="Could not write"):
        export_document("text", str(tmp_path / "missing" / "out.txt"))
