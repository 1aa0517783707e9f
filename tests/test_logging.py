import logging

import pytest

from convo_mcp.core.logging import ContextFilter, LogContext, setup_logging
from convo_mcp.flow.dispatcher import dispatch_tool
from convo_mcp.schemas.tools import SaveDocNumberRequest
from convo_mcp.services.user_service import get_user


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def recorded():
    handler = RecordingHandler()
    handler.addFilter(ContextFilter())
    logger = logging.getLogger("convo_mcp.tests.context")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(handler)
    yield logger, handler.records
    logger.removeHandler(handler)


def test_context_fields_reach_records(recorded):
    logger, records = recorded
    with LogContext(tool="getState", external_id="573001112233", channel=None):
        logger.info("inside")
    logger.info("outside")

    assert records[0].tool == "getState"
    assert records[0].external_id == "573001112233"
    assert not hasattr(records[0], "channel")
    assert not hasattr(records[1], "tool")


def test_extra_fields_win_over_context(recorded):
    logger, records = recorded
    with LogContext(external_id="573001112233", conversation_id=1):
        logger.info("explicit", extra={"external_id": "web-1", "conversation_id": 2})
        logger.info("implicit")

    assert records[0].external_id == "web-1"
    assert records[0].conversation_id == 2
    assert records[1].external_id == "573001112233"


@pytest.mark.asyncio
async def test_save_doc_number_with_app_logging(database):
    setup_logging()

    result = await dispatch_tool(
        "saveDocNumber",
        SaveDocNumberRequest(externalId="573001112233", docNumber="1020304050"),
    )

    assert result["step"] == "awaiting_doc_confirmation"
    async with database.session() as session:
        user = await get_user(session, "whatsapp", "573001112233")
    assert user.doc_number == "1020304050"
