"""
HomeHarmony — Entry Point.

`python main.py` starts the household bot: it opens the SQLite stores,
registers the chat commands and the recurring-chore check, then polls.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# Polling logs every getUpdates request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

from src.bot.telegram_bot import main

if __name__ == "__main__":
    main()
