"""
End-to-end tests for the command-line entry point.

The store is a directory configured through PDFSIGNER_* environment
variables, exactly as a user would set it up.

Coverage matrix:

  no command                  → banner + help, exit 0
  list                        → both scopes rendered, exit 0
  sign → verify               → exit 0 for both
  verify unsigned document    → exit 1
  sign with unknown identity  → "✗ Error: ...", exit 1
  batch                       → per-file lines + summary, exit 0
  --output FILE               → report written to file, before or after command
  --output FILE --console     → report in both
  bad arguments               → argparse exit 2
"""

import pytest

from pdfsigner.app.main import BANNER, main
from pdfsigner.tests.fixtures.cert_factory import (
    make_certificate,
    write_pem,
    write_pkcs12,
)
from pdfsigner.tests.fixtures.pdf_factory import write_pdf


@pytest.fixture
def cert_dirs(tmp_path, monkeypatch):
    user = tmp_path / "user-store"
    machine = tmp_path / "machine-store"
    user.mkdir()
    machine.mkdir()

    cert, key = make_certificate("Alice", "A1")
    write_pem(user / "alice.pem", cert, key)
    cert, key = make_certificate("Machine Signer", "M9")
    write_pkcs12(machine / "machine.p12", cert, key)

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PDFSIGNER_USER_STORE_DIR", str(user))
    monkeypatch.setenv("PDFSIGNER_MACHINE_STORE_DIR", str(machine))
    return user, machine


def test_no_command_prints_help(cert_dirs, capsys):
    assert main([]) == 0

    out = capsys.readouterr().out
    assert out.startswith(BANNER)
    assert "usage: pdfsigner" in out
    assert "Examples:" in out


def test_list(cert_dirs, capsys):
    assert main(["list"]) == 0

    out = capsys.readouterr().out
    assert "Available certificates in Current User store:" in out
    assert "Available certificates in Local Machine store:" in out
    assert "  Subject: SERIALNUMBER=A1, CN=Alice" in out
    assert "  Subject: SERIALNUMBER=M9, CN=Machine Signer" in out
    assert "  Has Private Key: True" in out


def test_sign_then_verify(cert_dirs, tmp_path, capsys):
    source = write_pdf(tmp_path / "contract.pdf")
    target = tmp_path / "contract-signed.pdf"

    assert main(["sign", str(source), str(target), "Alice", "Contract", "Oslo"]) == 0
    out = capsys.readouterr().out
    assert "Reason: Contract" in out
    assert "  ✓ SERIALNUMBER verified: A1" in out
    assert "✓ PDF signed and verified successfully" in out

    assert main(["verify", str(target)]) == 0
    out = capsys.readouterr().out
    assert "Found 1 signature(s)" in out
    assert "  ✓ SERIALNUMBER: A1" in out
    assert "✓ PDF signature verification successful" in out


def test_sign_with_machine_scope_certificate(cert_dirs, tmp_path, capsys):
    source = write_pdf(tmp_path / "doc.pdf")

    assert main(["sign", str(source), str(tmp_path / "out.pdf"), "Machine"]) == 0
    assert "SERIALNUMBER verified: M9" in capsys.readouterr().out


def test_verify_unsigned_document_fails(cert_dirs, tmp_path, capsys):
    source = write_pdf(tmp_path / "plain.pdf")

    assert main(["verify", str(source)]) == 1
    assert (
        "✗ Verification failed: No signatures found in the PDF"
        in capsys.readouterr().out
    )


def test_sign_with_unknown_certificate(cert_dirs, tmp_path, capsys):
    source = write_pdf(tmp_path / "doc.pdf")

    assert main(["sign", str(source), str(tmp_path / "out.pdf"), "CN=Nobody"]) == 1
    out = capsys.readouterr().out
    assert "✗ Error: Certificate with identifier 'CN=Nobody' not found" in out
    assert not (tmp_path / "out.pdf").exists()


def test_batch(cert_dirs, tmp_path, capsys):
    docs = tmp_path / "docs"
    docs.mkdir()
    write_pdf(docs / "one.pdf")
    write_pdf(docs / "two.pdf")

    assert main(["batch", f"{docs}/", str(tmp_path / "signed"), "Alice"]) == 0

    out = capsys.readouterr().out
    assert "Found 2 PDF file(s) to sign" in out
    assert "one.pdf -> one-sig.pdf - status: signed and verified" in out
    assert "  ✓ Successful: 2" in out
    assert "  ✗ Failed: 0" in out
    assert (tmp_path / "signed" / "two-sig.pdf").is_file()


@pytest.mark.parametrize("position", ["before", "after"])
def test_output_file(cert_dirs, tmp_path, capsys, position):
    log = tmp_path / "certs.txt"
    argv = (
        ["--output", str(log), "list"]
        if position == "before"
        else ["list", "--output", str(log)]
    )

    assert main(argv) == 0

    assert capsys.readouterr().out == ""
    assert "SERIALNUMBER=A1, CN=Alice" in log.read_text(encoding="utf-8")


def test_output_file_with_console_echo(cert_dirs, tmp_path, capsys):
    log = tmp_path / "certs.txt"

    assert main(["list", "-o", str(log), "-c"]) == 0

    assert capsys.readouterr().out == log.read_text(encoding="utf-8")


def test_missing_arguments_exit_with_usage(cert_dirs):
    with pytest.raises(SystemExit) as excinfo:
        main(["sign", "only-input.pdf"])

    assert excinfo.value.code == 2
