"""Tests for public submission ids and lookup key parsing."""

import uuid
from datetime import datetime, timezone

from intake.services.identifier import PUBLIC_ID_PATTERN, generate_submission_id, is_public_id
from intake.services.submission_repository import ByInternalId, ByPublicId, parse_submission_key


class TestGenerateSubmissionId:

    def test_matches_public_format(self):
        for _ in range(50):
            assert PUBLIC_ID_PATTERN.match(generate_submission_id())

    def test_embeds_year_and_month(self):
        now = datetime(2026, 3, 14, tzinfo=timezone.utc)
        assert generate_submission_id(now).startswith("SUB-202603-")

    def test_suffix_is_four_digits(self):
        suffix = generate_submission_id().rsplit("-", 1)[1]
        assert len(suffix) == 4
        assert suffix.isdigit()


class TestIsPublicId:

    def test_accepts_public_ids(self):
        assert is_public_id("SUB-202603-0042")

    def test_rejects_other_shapes(self):
        assert not is_public_id("SUB-2026-0042")
        assert not is_public_id("sub-202603-0042")
        assert not is_public_id("SUB-202603-00420")
        assert not is_public_id(str(uuid.uuid4()))


class TestParseSubmissionKey:

    def test_public_id(self):
        assert parse_submission_key("SUB-202603-0042") == ByPublicId("SUB-202603-0042")

    def test_internal_id(self):
        internal = str(uuid.uuid4())
        assert parse_submission_key(internal) == ByInternalId(internal)

    def test_strips_whitespace(self):
        assert parse_submission_key(" SUB-202603-0042 ") == ByPublicId("SUB-202603-0042")
