import asyncio
import json
import logging
from datetime import datetime, timezone

import nats
from nats.aio.msg import Msg

from backend.app.store import EventStore
from shared.config import settings
from shared.database import SessionLocal

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

MAX_RETRIES = 5
RETRY_DELAY_BASE = 3


def get_retry_count(msg: Msg) -> int:
    if msg.header is None:
        return 0
    retry_count = msg.header.get("X-Retry-Count", "0")
    try:
        return int(retry_count)
    except (ValueError, TypeError):
        return 0


async def send_to_dlq(nc: nats.NATS, original_msg: Msg, error_msg: str):
    try:
        headers = {
            "X-Original-Subject": original_msg.subject,
            "X-Error-Message": error_msg,
            "X-Failed-At": datetime.now(timezone.utc).isoformat(),
            "X-Retry-Count": str(get_retry_count(original_msg)),
        }

        await nc.publish(
            settings.DLQ_SUBJECT,
            original_msg.data,
            headers=headers
        )
        logger.warning(f"Message sent to DLQ after {get_retry_count(original_msg)} retries: {error_msg}")
    except Exception as e:
        logger.error(f"Failed to send message to DLQ: {e}")


async def process_actions_message(msg: Msg, nc: nats.NATS):
    retry_count = get_retry_count(msg)

    try:
        data = json.loads(msg.data.decode())
        actions_data = data.get("actions", [])

        logger.info(f"Recording {len(actions_data)} actions (attempt {retry_count + 1}/{MAX_RETRIES + 1})")

        store = EventStore(SessionLocal)
        written = store.record_many(actions_data)
        logger.info(f"Stored {written} of {len(actions_data)} actions")

    except Exception as e:
        error_msg = str(e)
        logger.error(f"Error processing message (attempt {retry_count + 1}/{MAX_RETRIES + 1}): {error_msg}")

        if retry_count < MAX_RETRIES:
            retry_delay = RETRY_DELAY_BASE ** (retry_count + 1)
            logger.info(f"Scheduling retry in {retry_delay} seconds...")

            await asyncio.sleep(retry_delay)

            headers = dict(msg.header) if msg.header else {}
            headers["X-Retry-Count"] = str(retry_count + 1)

            await nc.publish(
                msg.subject,
                msg.data,
                headers=headers
            )
            logger.info(f"Message requeued for retry {retry_count + 1}")
        else:
            await send_to_dlq(nc, msg, error_msg)


async def main():
    logger.info("Starting actions worker...")

    nc = await nats.connect(settings.NATS_URL)
    logger.info("Connected to NATS")

    sub = await nc.subscribe(settings.ACTIONS_SUBJECT)
    logger.info(f"Subscribed to {settings.ACTIONS_SUBJECT}")

    dlq_sub = await nc.subscribe(settings.DLQ_SUBJECT)
    logger.info(f"Subscribed to {settings.DLQ_SUBJECT} for monitoring")

    async def dlq_handler():
        async for msg in dlq_sub.messages:
            logger.error(f"DLQ message received: {msg.header}")

    dlq_task = asyncio.create_task(dlq_handler())

    try:
        async for msg in sub.messages:
            await process_actions_message(msg, nc)
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        dlq_task.cancel()
        await nc.close()


if __name__ == "__main__":
    asyncio.run(main())
