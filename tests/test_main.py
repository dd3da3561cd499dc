"""Smoke test for the command-line entrypoint (appraiser.main)."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest
import respx
import structlog

import appraiser.main as main_module
from helpers import features_payload, make_png


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestMain:
    @pytest.mark.asyncio
    async def test_runs_one_request(self, tmp_path, capsys, session_factory, card, reset_structlog):
        """
        Unconfigured price sources and no reasoning key still give a completed
        run: an empty valuation and a signals-only authenticity verdict.
        """
        image_root = tmp_path / "images"
        (image_root / "uploads" / "user-1").mkdir(parents=True)
        (image_root / "uploads" / "user-1" / "front.png").write_bytes(make_png(seed=4))

        request_file = tmp_path / "request.json"
        request_file.write_text(
            json.dumps(
                {
                    "userId": "user-1",
                    "cardId": card.card_id,
                    "s3Keys": {"front": "uploads/user-1/front.png"},
                    "requestId": "req-cli",
                }
            )
        )

        capsys.readouterr()
        settings = main_module.settings
        with (
            patch.object(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'appraiser.db'}"),
            patch.object(settings, "IMAGE_STORE_ROOT", str(image_root)),
            patch.object(settings, "VISION_SERVICE_URL", "http://vision.test"),
            patch.object(settings, "ANTHROPIC_API_KEY", ""),
            patch.object(settings, "EBAY_APP_ID", ""),
            patch.object(settings, "JUSTTCG_API_KEY", ""),
        ):
            with respx.mock:
                respx.post("http://vision.test/v1/features").mock(
                    return_value=httpx.Response(200, json=features_payload())
                )
                exit_code = await main_module.main([str(request_file)])

        ack = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert ack["status"] == "completed"
        assert ack["requestId"] == "req-cli"
        assert ack["pricingResult"]["compsCount"] == 0
        assert ack["authenticityResult"]["verifiedByAI"] is False

    def test_parse_args(self):
        args = main_module.parse_args(["-", "--log-level", "DEBUG"])
        assert args.input == "-"
        assert args.log_level == "DEBUG"
