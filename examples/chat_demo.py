"""Minimal console chat against the configured providers.

    ASSISTANT_MODELS=lmstudio ASSISTANT_MODEL_LMSTUDIO_MODEL=... python examples/chat_demo.py
"""

import asyncio

from assistant_core.api.service import get_default_engine


async def main() -> None:
    engine = get_default_engine()
    print("Providers:", ", ".join(p.display_name for p in engine.providers))
    for message in engine.messages:
        print("AI:" if message.role == "assistant" else "You:", message.text)
    while True:
        text = input("You: ").strip()
        if text in ("", "/quit"):
            break
        if text.startswith("/use "):
            print("Switched to", engine.set_active_provider(text[5:]).display_name)
            continue
        reply = await engine.send(text)
        if reply is not None:
            print(f"{reply.provider_label or 'AI'}:", reply.text)


if __name__ == "__main__":
    asyncio.run(main())
