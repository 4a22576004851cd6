"""Terminal entry point for the pubGPT chat client.

Usage::

    python main.py --user-id 42
    python main.py --login alice --password secret

Commands at the prompt: ``/new``, ``/history``, ``/open <id>``, ``/sql``,
``/csv <file>``, ``/quit``.  Anything else is sent as a question.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys

import httpx

from config.settings import get_settings
from errors.exceptions import ChatClientError, ConversationStateError
from models.auth import User
from models.checklist import PHASE_LABELS, PhaseState
from models.conversation import ConversationState, ConversationTurn, ResultShape
from models.stream_outcome import Progress, StreamOutcome
from services.api_client import get_api_client
from services.auth import AuthSession
from services.chat_orchestrator import ChatOrchestrator
from services.chat_stream import get_chat_stream_client
from services.checklist import visible_phases
from services.clarification import OTHER_CHOICE, ClarificationForm
from services.conversation_client import ConversationClient
from services.csv_export import export_rows

logger = logging.getLogger(__name__)

_STATE_MARKS = {
    PhaseState.PENDING: " ",
    PhaseState.ACTIVE: "…",
    PhaseState.DONE: "✓",
    PhaseState.SKIPPED: "-",
}


def print_progress(outcome: StreamOutcome, turn: ConversationTurn | None) -> None:
    if isinstance(outcome, Progress) and outcome.event.message:
        print(f"  · {outcome.event.message}")


def print_turn(turn: ConversationTurn) -> None:
    checklist = turn.checklist
    marks = [
        f"[{_STATE_MARKS[checklist.state(p)]}] {PHASE_LABELS[p]}"
        for p in visible_phases(checklist)
        if checklist.state(p) is not PhaseState.PENDING
    ]
    if marks:
        print("\n".join(marks))
    print(f"\n{turn.text}\n")
    if turn.result_shape in (ResultShape.TABLE, ResultShape.CHART):
        print(f"({len(turn.json_data)} lignes, /csv <fichier> pour exporter)")
        for row in turn.json_data[:10]:
            print("  " + " | ".join(str(v) for v in row.values()))


def ask_clarification(form: ClarificationForm) -> None:
    """Fill *form* interactively."""
    for index, question in enumerate(form.questions):
        choices = form.choices(index)
        print(f"\n{question.question}")
        for number, choice in enumerate(choices, start=1):
            print(f"  {number}. {choice}")
        while not form.is_answered(index):
            raw = input("> ").strip()
            if not raw.isdigit() or not 1 <= int(raw) <= len(choices):
                continue
            choice = choices[int(raw) - 1]
            if choice == OTHER_CHOICE:
                form.answer_other(index, input("Précisez: "))
            else:
                form.select(index, choice)


async def handle_command(
    line: str, orchestrator: ChatOrchestrator, history: ConversationClient, auth: AuthSession
) -> bool:
    """Run a slash command.  Returns False on ``/quit``."""
    command, _, arg = line.partition(" ")
    arg = arg.strip()

    if command == "/quit":
        return False
    if command == "/new":
        await orchestrator.new_conversation()
        print("Nouvelle conversation.")
    elif command == "/history":
        for summary in await history.list_conversations(auth.require_user_id()):
            print(f"{summary.session_id}  {summary.title}  ({summary.message_count} messages)")
    elif command == "/open" and arg:
        for turn in await orchestrator.open_conversation(arg):
            prefix = "Vous" if turn.role == "user" else "pubGPT"
            print(f"{prefix}: {turn.text}")
    elif command == "/sql":
        print(orchestrator.last_generated_sql() or "Aucune requête SQL disponible.")
    elif command == "/csv" and arg:
        rows = orchestrator.last_response.rows if orchestrator.last_response else []
        if rows:
            print(f"Exporté vers {export_rows(rows, arg)}")
        else:
            print("Aucun résultat à exporter.")
    else:
        print("Commandes: /new /history /open <id> /sql /csv <fichier> /quit")
    return True


async def ask(orchestrator: ChatOrchestrator, question: str) -> None:
    turn = await orchestrator.submit(question)
    while orchestrator.state is ConversationState.AMBIGUITY_PENDING:
        session = orchestrator.ambiguity
        if session is None:
            raise ConversationStateError("clarify a question", orchestrator.state.value)
        form = ClarificationForm(session.questions)
        try:
            ask_clarification(form)
        except (EOFError, KeyboardInterrupt):
            orchestrator.dismiss_ambiguity()
            print("\nClarification annulée.")
            return
        turn = await orchestrator.resolve_ambiguity(form.build_context())
    if turn is not None:
        print_turn(turn)


async def repl(args: argparse.Namespace) -> int:
    settings = get_settings()
    api = get_api_client()
    stream_client = get_chat_stream_client()
    await api.start()
    await stream_client.start()

    auth = AuthSession(api=api, settings=settings)
    history = ConversationClient(api, settings=settings)
    try:
        if args.login:
            password = args.password or getpass.getpass("Mot de passe: ")
            response = await auth.login(args.login, password)
            if not response.success:
                print(f"Connexion refusée: {response.message}")
                return 1
        elif args.user_id is not None:
            auth = AuthSession(api=api, settings=settings, user=User(id=args.user_id, login=str(args.user_id)))
        else:
            print("--user-id ou --login requis")
            return 2

        orchestrator = ChatOrchestrator(stream_client, auth, history, on_event=print_progress)
        while True:
            try:
                line = input("pubGPT> ").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not line:
                continue
            try:
                if line.startswith("/"):
                    if not await handle_command(line, orchestrator, history, auth):
                        break
                else:
                    await ask(orchestrator, line)
            except (ChatClientError, httpx.HTTPError) as exc:
                logger.error("Command failed: %s", exc)
                print(f"Erreur: {exc}")
        await orchestrator.cancel()
    finally:
        await stream_client.close()
        await api.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="pubGPT terminal client")
    parser.add_argument("--user-id", type=int, default=None, help="Caller user id")
    parser.add_argument("--login", default=None, help="Log in with this account")
    parser.add_argument("--password", default=None, help="Password (prompted if omitted)")
    parser.add_argument("--health", action="store_true", help="Check the chat endpoint and exit")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.health:
        return asyncio.run(health())
    return asyncio.run(repl(args))


async def health() -> int:
    client = get_chat_stream_client()
    await client.start()
    try:
        print(await client.health_check())
        return 0
    except httpx.HTTPError as exc:
        logger.error("Health check failed: %s", exc)
        return 1
    finally:
        await client.close()


if __name__ == "__main__":
    sys.exit(main())
