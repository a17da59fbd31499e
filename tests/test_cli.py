"""Tests for the UtilSign CLI."""

import json

from click.testing import CliRunner

from utilsign.cli import main
from utilsign.engine import CompletionEngine
from utilsign.models import Caller, DocumentType
from utilsign.store import ObjectStorage, RecordStore


def _invoke(tmp_path, *args):
    return CliRunner().invoke(main, ["--data-dir", str(tmp_path), *args])


class TestBurnCommand:

    def test_burn_writes_output(self, tmp_path, sample_pdf, png_payload, placements):
        pdf = tmp_path / "in.pdf"
        pdf.write_bytes(sample_pdf)
        plan = tmp_path / "plan.json"
        plan.write_text(
            json.dumps(
                [
                    {
                        "placeholder": {
                            "page_number": 1,
                            "x_percent": 10,
                            "y_percent": 10,
                            "width_percent": 20,
                            "height_percent": 10,
                        },
                        "image_base64": png_payload,
                    },
                    {
                        "placeholder": {
                            "page_number": 3,
                            "x_percent": 0,
                            "y_percent": 0,
                            "width_percent": 1,
                            "height_percent": 1,
                        },
                        "image_base64": png_payload,
                    },
                ]
            )
        )
        out = tmp_path / "out.pdf"

        result = _invoke(tmp_path, "burn", str(pdf), "--placements", str(plan), "--out", str(out))

        assert result.exit_code == 0, result.output
        assert "SKIPPED" in result.output
        assert len(placements(out.read_bytes())) == 1

    def test_burn_rejects_bad_plan(self, tmp_path, sample_pdf):
        pdf = tmp_path / "in.pdf"
        pdf.write_bytes(sample_pdf)
        plan = tmp_path / "plan.json"
        plan.write_text("{not json")

        result = _invoke(
            tmp_path, "burn", str(pdf), "--placements", str(plan), "--out", str(tmp_path / "o.pdf")
        )
        assert result.exit_code == 1
        assert "Invalid placements file" in result.output


class TestReadCommands:

    def _seed(self, tmp_path, sample_pdf):
        engine = CompletionEngine(RecordStore(tmp_path), ObjectStorage(tmp_path))
        return engine.create_document(
            Caller(user_id="user-1", email="owner@example.com"),
            "contract.pdf",
            sample_pdf,
            doc_type=DocumentType.SELF_SIGN,
        )

    def test_list(self, tmp_path, sample_pdf):
        self._seed(tmp_path, sample_pdf)
        result = _invoke(tmp_path, "list", "--user", "user-1")
        assert result.exit_code == 0
        assert "contract.pdf" in result.output

    def test_list_empty(self, tmp_path):
        result = _invoke(tmp_path, "list", "--user", "nobody")
        assert "No documents found" in result.output

    def test_status(self, tmp_path, sample_pdf):
        doc = self._seed(tmp_path, sample_pdf)
        result = _invoke(tmp_path, "status", doc.id, "--user", "user-1")
        assert result.exit_code == 0
        assert "draft" in result.output

    def test_status_unknown_document(self, tmp_path):
        result = _invoke(tmp_path, "status", "nope", "--user", "user-1")
        assert result.exit_code == 1
        assert "Document not found" in result.output

    def test_audit(self, tmp_path, sample_pdf):
        doc = self._seed(tmp_path, sample_pdf)
        result = _invoke(tmp_path, "audit", doc.id, "--user", "user-1")
        assert result.exit_code == 0
        assert "document_created" in result.output
