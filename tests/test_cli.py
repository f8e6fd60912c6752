import json

from repcoach.runtime import cli

from conftest import frame_message, pushup_frame


def _write(tmp_path, lines):
    path = tmp_path / "frames.jsonl"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return str(path)


def test_replay_prints_each_rep(tmp_path, capsys):
    lines = [json.dumps(frame_message(pushup_frame(a, alignment=175))) for a in (170, 80, 60, 170, 85, 50, 170)]
    path = _write(tmp_path, lines)
    assert cli.main(["replay", path, "--exercise", "push_ups"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "pose ready"
    assert out[1] == "rep 1: valid | Great rep!"
    assert out[2] == "rep 2: invalid | Don't collapse at the bottom"
    assert out[-1] == "total: 2 reps (1 valid)"


def test_replay_skips_bad_lines(tmp_path, capsys):
    good = [json.dumps(frame_message(pushup_frame(a))) for a in (170, 80, 60, 170)]
    path = _write(tmp_path, ["{oops", "", json.dumps({"keypoints": []})] + good)
    reps = cli.replay(path, "push_ups")
    assert [r.repetition for r in reps] == [1]


def test_unknown_exercise_is_an_error(tmp_path, capsys):
    path = _write(tmp_path, [])
    assert cli.main(["replay", path, "-e", "plank"]) == 1
    assert "unknown exercise" in capsys.readouterr().err


def test_serve_uses_configured_host_and_port(monkeypatch, capsys):
    calls = []
    monkeypatch.setenv("REPCOACH_PORT", "8123")
    monkeypatch.setattr(cli.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    assert cli.main(["serve", "--host", "0.0.0.0"]) == 0
    from repcoach.runtime.server import app

    assert calls[0][0] is app
    assert (calls[0][1]["host"], calls[0][1]["port"]) == ("0.0.0.0", 8123)
    assert "Serving on http://0.0.0.0:8123" in capsys.readouterr().out
