"""Tests for the JSON log line format and campaign-scoped logging."""

import json
import logging
from unittest.mock import patch

from mnemora.utils.logging_config import CampaignAdapter, JSONFormatter, get_logger


def _record(**extra):
    record = logging.makeLogRecord({"name": "mnemora.test", "levelname": "INFO", "msg": "drift detected"})
    record.__dict__.update(extra)
    return record


class TestJSONFormatter:

    def test_context_keys_are_merged_and_none_dropped(self):
        line = JSONFormatter().format(_record(entity_id="e1", continuity_id=None, metadata={"field": "name"}))
        entry = json.loads(line)
        assert entry["message"] == "drift detected"
        assert entry["logger"] == "mnemora.test"
        assert entry["entity_id"] == "e1"
        assert entry["metadata"] == {"field": "name"}
        assert "continuity_id" not in entry

    def test_unknown_extras_are_not_emitted(self):
        entry = json.loads(JSONFormatter().format(_record(story_id="s1")))
        assert "story_id" not in entry


class TestCampaignAdapter:

    def test_campaign_id_joins_caller_extra(self):
        logger = get_logger("session_runs")
        adapter = CampaignAdapter(logger, "c1")
        with patch.object(logger, "_log") as emit:
            adapter.info("session run started", extra={"session_id": "s1"})
        extra = emit.call_args.kwargs["extra"]
        assert extra == {"session_id": "s1", "campaign_id": "c1"}

    def test_bare_names_land_under_mnemora(self):
        assert get_logger("drift").name == "mnemora.drift"
        assert get_logger("mnemora.drift").name == "mnemora.drift"
