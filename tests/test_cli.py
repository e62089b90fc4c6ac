import json

from alynappi import cli


def test_pdf_command_with_empty_sources_reports_nothing(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("EMBEDDING_PROVIDER", "hash")
    monkeypatch.setenv("OCR_PROVIDER", "local")
    (tmp_path / "tietolahteet" / "lehti-pdf").mkdir(parents=True)

    exit_code = cli.main(["pdf", "--sources-dir", str(tmp_path / "tietolahteet")])

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == {"processed": [], "skipped": [], "failed": {}}


def test_missing_api_key_is_a_configuration_error(capsys):
    exit_code = cli.main(["web", "--sitemap", "https://klvl.fi/page-sitemap.xml"])

    assert exit_code == 2
    assert "MISTRAL_API_KEY" in capsys.readouterr().err
