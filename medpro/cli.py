#!/usr/bin/env python3
"""
Terminal front end for the MedPro practitioner client.
Lists assistant sessions, chats, transcribes audio and shows patient history.
"""

import argparse
import asyncio
import sys
from typing import List, Optional, Sequence

from medpro import __version__
from medpro.models.assistant import AssistantMessage
from medpro.models.auth import User
from medpro.services.api import ApiService
from medpro.services.assistant_api import AssistantApiService
from medpro.services.errors import ApiError, AttachmentError
from medpro.stores.assistant_store import AssistantStore
from medpro.stores.auth_store import AuthStore
from medpro.stores.patient_history_store import PatientHistoryStore
from medpro.utils.config import settings
from medpro.utils.dates import format_date, format_datetime
from medpro.utils.logging import get_logger

logger = get_logger(__name__)

CHAT_HELP = "Comandos: /more (mensagens anteriores), /retry, /new, /sessions, /quit"


class Client:
    """Services and stores wired around one set of credentials."""

    def __init__(self, auth: AuthStore, base_url: Optional[str] = None):
        self.auth = auth
        self.api = ApiService(auth=auth, base_url=base_url)
        self.assistant_api = AssistantApiService(auth=auth, base_url=base_url)
        auth.api = self.api
        self.assistant = AssistantStore(self.assistant_api, auth)
        self.history = PatientHistoryStore(self.api)

    async def close(self):
        await self.api.close()
        await self.assistant_api.close()


def build_auth(args: argparse.Namespace) -> AuthStore:
    auth = AuthStore()
    practitioner = args.practitioner or settings.practitioner_id
    token = args.token or settings.token
    if practitioner:
        auth.set_user(
            User(email=practitioner, username=practitioner, organization=settings.organization)
        )
    if token:
        auth.set_token(token)
    return auth


def print_messages(
    store: AssistantStore,
    count: Optional[int] = None,
    messages: Optional[List[AssistantMessage]] = None,
) -> None:
    if messages is None:
        messages = store.state.messages if count is None else store.state.messages[-count:]
    for message in messages:
        who = "Você" if message.role == "user" else "Assistente"
        print(f"[{message.timestamp:%H:%M}] {who}: {message.content}")


def print_error(store_error: Optional[str]) -> None:
    if store_error:
        print(f"[ERROR] {store_error}", file=sys.stderr)


# ---------- commands ----------
async def cmd_sessions(client: Client, args: argparse.Namespace) -> int:
    await client.assistant.load_sessions()
    if client.assistant.state.last_error:
        print_error(client.assistant.state.last_error)
        return 1
    sessions = client.assistant.state.sessions
    if not sessions:
        print("Nenhuma conversa encontrada.")
        return 0
    for session in sessions:
        updated = format_datetime(session.last_message_at or session.updated_at)
        print(f"{session.id}\t{updated}\t{session.title}")
    return 0


async def _open_session(client: Client, args: argparse.Namespace) -> bool:
    store = client.assistant
    if getattr(args, "new", False):
        return await store.create_new_session() is not None
    if getattr(args, "session", None):
        await store.select_session(args.session)
        return store.state.last_error is None
    await store.initialize_assistant()
    return store.state.last_error is None


async def cmd_chat(client: Client, args: argparse.Namespace) -> int:
    store = client.assistant
    if not await _open_session(client, args):
        print_error(store.state.last_error)
        return 1

    session = store.active_session
    print(f"Conversa: {session.title if session else 'nova'}")
    print(CHAT_HELP)
    print_messages(store)

    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            break
        text = line.strip()
        if not text:
            continue
        if text == "/quit":
            break
        if text == "/more":
            before = len(store.state.messages)
            await store.load_more_messages()
            added = len(store.state.messages) - before
            if added:
                print_messages(store, messages=store.state.messages[:added])
            else:
                print("Não há mensagens anteriores.")
            continue
        if text == "/retry":
            await store.retry()
        elif text == "/new":
            await store.create_new_session()
            print("Nova conversa criada.")
            continue
        elif text == "/sessions":
            await cmd_sessions(client, args)
            continue
        else:
            await store.send_message(text)

        print_messages(store, 1)
        print_error(store.state.last_error)
    return 0


async def cmd_ask(client: Client, args: argparse.Namespace) -> int:
    store = client.assistant
    if args.session:
        await store.select_session(args.session)
    elif args.new:
        await store.create_new_session()

    await store.send_message(" ".join(args.text))
    print_messages(store, 1)
    if store.state.last_error:
        print_error(store.state.last_error)
        return 1
    return 0


async def cmd_transcribe(client: Client, args: argparse.Namespace) -> int:
    store = client.assistant
    try:
        text = await store.transcribe_audio(args.file)
    except (ApiError, AttachmentError) as e:
        print_error(f"{store.state.last_error}: {e}")
        return 1

    print(text)
    if args.send:
        await store.send_audio_message(args.file, transcription=text)
        print_messages(store, 1)
        print_error(store.state.last_error)
    return 0


async def cmd_history(client: Client, args: argparse.Namespace) -> int:
    store = client.history
    encounters = await store.load_history(args.cpf, limit=args.limit)
    if store.state.error:
        print_error(store.state.error)
        return 1
    if not encounters:
        print("Nenhum atendimento encontrado.")
        return 0
    for encounter in encounters:
        print(
            f"{format_date(encounter.actual_start)}  {encounter.status or '-'}  "
            f"{encounter.pract_name or encounter.practitioner or '-'}"
        )
        print(
            f"    registros: {encounter.clinical_count}  medicações: {encounter.medication_count}  "
            f"diagnósticos: {encounter.diagnostic_count}  imagens: {encounter.image_count}  "
            f"anexos: {encounter.attachment_count}"
        )
        if encounter.short_ai_summary:
            print(f"    {encounter.short_ai_summary}")
    return 0


async def cmd_health(client: Client, args: argparse.Namespace) -> int:
    healthy = await client.api.check_health()
    print(f"{client.api.base_url}: {'OK' if healthy else 'FALHA'}")
    return 0 if healthy else 1


COMMANDS = {
    "sessions": cmd_sessions,
    "chat": cmd_chat,
    "ask": cmd_ask,
    "transcribe": cmd_transcribe,
    "history": cmd_history,
    "health": cmd_health,
}
AUTHENTICATED_COMMANDS = {"sessions", "chat", "ask", "transcribe", "history"}


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(prog="medpro", description="MedPro practitioner client")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--token", help="Bearer token (default: MEDPRO_TOKEN)")
    parser.add_argument(
        "--practitioner", help="Practitioner e-mail (default: MEDPRO_PRACTITIONER_ID)"
    )
    parser.add_argument("--base-url", help="Backend URL (default: MEDPRO_API_BASE_URL)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sessions", help="List assistant conversations")

    chat = subparsers.add_parser("chat", help="Interactive assistant chat")
    chat.add_argument("--session", help="Conversation id to open")
    chat.add_argument("--new", action="store_true", help="Start a new conversation")

    ask = subparsers.add_parser("ask", help="Send a single message to the assistant")
    ask.add_argument("text", nargs="+", help="Message text")
    ask.add_argument("--session", help="Conversation id to post to")
    ask.add_argument("--new", action="store_true", help="Post to a new conversation")

    transcribe = subparsers.add_parser("transcribe", help="Transcribe an audio file")
    transcribe.add_argument("file", help="Audio file (m4a/mp4)")
    transcribe.add_argument(
        "--send", action="store_true", help="Send the transcription to the assistant"
    )

    history = subparsers.add_parser("history", help="Show a patient's encounter history")
    history.add_argument("cpf", help="Patient CPF")
    history.add_argument("--limit", type=int, default=50, help="Maximum encounters")

    subparsers.add_parser("health", help="Check backend availability")

    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    auth = build_auth(args)
    if args.command in AUTHENTICATED_COMMANDS and not (auth.token and auth.practitioner_id):
        print_error("Informe --token e --practitioner (ou MEDPRO_TOKEN e MEDPRO_PRACTITIONER_ID).")
        return 2

    client = Client(auth, base_url=args.base_url)
    try:
        return await COMMANDS[args.command](client, args)
    finally:
        await client.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nAté logo")
        return 130


if __name__ == "__main__":
    sys.exit(main())
