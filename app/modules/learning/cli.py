from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from app.modules.learning.client import GenerationClient, GenerationError
from app.modules.learning.models import SessionState
from app.modules.learning.pipeline import SessionPipeline


def _load_topic(args: argparse.Namespace) -> str:
    if args.topic and args.topic_file:
        raise SystemExit("Provide either --topic or --topic-file, not both")
    if args.topic_file:
        return Path(args.topic_file).read_text(encoding="utf-8").strip()
    if args.topic:
        return args.topic
    raise SystemExit("--topic or --topic-file is required")


def _add_topic_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--topic", "-t", help="Topic to learn about (text)")
    p.add_argument("--topic-file", help="Path to a file containing the topic")


async def _explain(pipeline: SessionPipeline, topic: str) -> tuple[int, dict]:
    session = await pipeline.load_session(topic)
    if session.state == SessionState.FAILED:
        return 1, {"error": session.error}
    return 0, {
        "title": session.title,
        "cards": [c.model_dump() for c in session.cards],
    }


async def _clarify(pipeline: SessionPipeline, topic: str, confusion: str) -> tuple[int, dict]:
    session = await pipeline.load_session(topic)
    if session.state == SessionState.FAILED:
        return 1, {"error": session.error}
    try:
        card = await pipeline.append_clarification(session, confusion)
    except GenerationError as e:
        return 1, {"error": str(e)}
    return 0, {"title": session.title, "clarification": card.model_dump()}


async def _quiz(pipeline: SessionPipeline, topic: str, n: int) -> tuple[int, dict]:
    try:
        questions = await pipeline.load_quiz(topic, n)
    except GenerationError as e:
        return 1, {"error": str(e)}
    return 0, {"questions": [q.model_dump(by_alias=True) for q in questions]}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="study-bot", description="Explanation and quiz generator CLI (guest mode)"
    )
    parser.add_argument("--proxy-url", help="Gemini proxy endpoint URL")
    sub = parser.add_subparsers(dest="cmd", required=True)

    e = sub.add_parser("explain", help="Explain a topic as a set of cards")
    _add_topic_args(e)

    c = sub.add_parser("clarify", help="Explain a topic, then clarify a confusion")
    _add_topic_args(c)
    c.add_argument("--confusion", "-c", required=True, help="What is unclear")

    q = sub.add_parser("quiz", help="Generate quiz questions for a topic")
    _add_topic_args(q)
    q.add_argument("--num-questions", "-n", type=int, default=3)

    args = parser.parse_args(argv)
    pipeline = SessionPipeline(GenerationClient(args.proxy_url))
    topic = _load_topic(args)

    if args.cmd == "explain":
        code, out = asyncio.run(_explain(pipeline, topic))
    elif args.cmd == "clarify":
        code, out = asyncio.run(_clarify(pipeline, topic, args.confusion))
    elif args.cmd == "quiz":
        code, out = asyncio.run(_quiz(pipeline, topic, args.num_questions))
    else:
        parser.print_help()
        return 2

    print(json.dumps(out, indent=2, ensure_ascii=False))
    return code


if __name__ == "__main__":
    raise SystemExit(main())
