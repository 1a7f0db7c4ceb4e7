import json

from app.modules.learning import cli
from app.modules.learning.client import GenerationTimeout
from tests.helpers import FakeClient, cards_json, quiz_json


def _run(monkeypatch, capsys, fake, argv):
    monkeypatch.setattr(cli, "GenerationClient", lambda url: fake)
    code = cli.main(argv)
    return code, json.loads(capsys.readouterr().out)


def test_explain(monkeypatch, capsys):
    fake = FakeClient(cards_json("Intro", "Orbits", clean_topic="Gravity"))
    code, out = _run(monkeypatch, capsys, fake, ["explain", "-t", "gravity"])
    assert code == 0
    assert out["title"] == "Gravity"
    assert [c["title"] for c in out["cards"]] == ["Intro", "Orbits"]


def test_topic_from_file(monkeypatch, capsys, tmp_path):
    topic_file = tmp_path / "topic.txt"
    topic_file.write_text("  gravity\n", encoding="utf-8")
    fake = FakeClient(quiz_json(2))
    code, out = _run(
        monkeypatch, capsys, fake, ["quiz", "--topic-file", str(topic_file), "-n", "2"]
    )
    assert code == 0
    assert len(out["questions"]) == 2
    assert fake.calls[0] == ("quiz", {"topic": "gravity", "numQuestions": 2})


def test_clarify(monkeypatch, capsys):
    fake = FakeClient(cards_json("Intro", clean_topic="Gravity"), cards_json("Clarification"))
    code, out = _run(monkeypatch, capsys, fake, ["clarify", "-t", "gravity", "-c", "why?"])
    assert code == 0
    assert out["clarification"]["title"] == "Clarification"


def test_failure_exit_code(monkeypatch, capsys):
    code, out = _run(monkeypatch, capsys, FakeClient(GenerationTimeout()), ["explain", "-t", "x"])
    assert code == 1
    assert "timeout" in out["error"].lower()
