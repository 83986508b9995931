"""
Run Document Chat - interactive console

Usage:
    python run_chat.py [FILE ...]

Each FILE is ingested before the prompt opens. Commands at the prompt:
    /docs            - List ingested documents
    /stats           - Show index statistics
    /add <path>      - Ingest another file
    /remove <id>     - Remove a document
    /clear           - Clear conversation history
    /quit            - Exit
"""
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

from config.settings import get_settings
from docchat import DocChatError, create_agent

CONVERSATION_ID = "console"


async def ingest_path(agent, path_text: str) -> None:
    path = Path(path_text)
    if not path.is_file():
        print(f"❌ File not found: {path}")
        return
    try:
        document = await agent.ingest_file(path.read_bytes(), path.name)
    except DocChatError as e:
        print(f"❌ Could not ingest {path.name}: {e}")
        return
    print(f"✅ {document.name} ingested as {document.document_id} ({document.total_chunks} chunks)")


async def main(paths) -> None:
    agent = create_agent()

    for path_text in paths:
        await ingest_path(agent, path_text)

    print("\nAsk a question about your documents (/quit to exit).\n")
    loop = asyncio.get_running_loop()

    while True:
        try:
            line = await loop.run_in_executor(None, input, "You: ")
        except EOFError:
            break

        line = line.strip()
        if not line:
            continue

        if line == "/quit":
            break
        if line == "/docs":
            for document in agent.list_documents():
                print(f"  {document.document_id}  {document.name}  ({document.total_chunks} chunks)")
            continue
        if line == "/stats":
            for key, value in agent.get_stats().items():
                print(f"  {key}: {value}")
            continue
        if line == "/clear":
            agent.clear_conversation(CONVERSATION_ID)
            print("🧹 Conversation cleared")
            continue
        if line.startswith("/add "):
            await ingest_path(agent, line[5:].strip())
            continue
        if line.startswith("/remove "):
            document_id = line[8:].strip()
            removed = agent.remove_document(document_id)
            print("🗑️ Removed" if removed else f"Unknown document: {document_id}")
            continue

        result = await agent.ask(line, conversation_id=CONVERSATION_ID)
        print(f"\nBot: {result.answer}")
        if result.generated and result.chunks_found:
            print(f"\n   📚 Found {result.chunks_found} relevant document sections")
        print()


if __name__ == "__main__":
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )

    print("=" * 60)
    print("  🤖 Document Chat - Starting...")
    print("=" * 60)

    try:
        asyncio.run(main(sys.argv[1:]))
    except KeyboardInterrupt:
        pass
