import json

from retirement_monte_carlo import main, summary_frame
from engine.monte_carlo import run_monte_carlo


def test_main_prints_summary_and_writes_json(tmp_path, capsys):
    out = tmp_path / "result.json"
    code = main(["--iterations", "20", "--seed", "3", "--no-swr", "--json", str(out), "--log-level", "WARNING"])
    assert code == 0
    assert "Probability of success" in capsys.readouterr().out
    data = json.loads(out.read_text())
    assert data["iterations"] == 20
    assert data["seed"] == 3
    assert data["safe_withdrawal_rate"] is None


def test_main_rejects_invalid_input(capsys):
    code = main(["--iterations", "5", "--current-age", "0", "--no-swr", "--log-level", "WARNING"])
    assert code == 2
    assert "current_age" in capsys.readouterr().err


def test_summary_frame_formats_missing_swr(single_retiree):
    result = run_monte_carlo(single_retiree, 10, 1, swr_search=False)
    frame = summary_frame(result)
    assert frame.loc["Safe withdrawal rate", "value"] == "n/a"
