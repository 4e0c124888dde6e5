import pytest

from pws_ingest.cli import main
from pws_ingest.ingestion import Normalizer
from pws_ingest.tests.helpers import make_observation, open_store


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PWS_STATION_ID", "PWS_API_KEY", "PWS_DATABASE"):
        monkeypatch.delenv(name, raising=False)


def test_report_prints_coverage(tmp_path, capsys):
    store = open_store(str(tmp_path))
    normalizer = Normalizer()
    for local in ("2025-05-01 10:00:00", "2025-05-03 09:00:00"):
        store.insert(normalizer.normalize(make_observation(local=local)))
    store.close()

    rc = main(["--database", str(tmp_path / "wu.sqlite"), "report"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Total observations: 2" in out
    assert "XY123" in out
    assert "No data for dates 2025-05-02." in out


def test_report_on_empty_store(tmp_path, capsys):
    rc = main(["--database", str(tmp_path / "new.sqlite"), "report"])
    assert rc == 0
    assert "No observations found." in capsys.readouterr().out


def test_fetch_without_station_is_config_error(tmp_path, capsys):
    rc = main(["--database", str(tmp_path / "wu.sqlite"), "fetch", "--date", "20250501"])
    assert rc == 2
    assert "station name cannot be empty" in capsys.readouterr().err


def test_fetch_range_must_be_ordered(tmp_path, capsys):
    rc = main(
        ["--database", str(tmp_path / "wu.sqlite"), "fetch", "--start", "2025-05-03", "--end", "2025-05-01"]
    )
    assert rc == 2
    assert "before --start" in capsys.readouterr().err


def test_report_on_directory_fails_to_open(tmp_path, capsys):
    rc = main(["--database", str(tmp_path), "report"])
    assert rc == 2
    assert capsys.readouterr().err.startswith("error:")


def test_report_on_unusable_parent_is_clean_error(tmp_path, capsys):
    (tmp_path / "afile").write_text("not a directory")
    rc = main(["--database", str(tmp_path / "afile" / "sub" / "wu.sqlite"), "report"])
    assert rc == 2
    assert capsys.readouterr().err.startswith("error: Could not create database directory")
