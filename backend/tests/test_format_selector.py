"""Tests for format selection."""
import pytest

from stubs import (
    AUDIO_M4A,
    AUDIO_WEBM,
    MUXED_720,
    VIDEO_480,
    VIDEO_1080,
    WATCH_URL,
    make_metadata,
)
from ytgrab.models.media import (
    AudioTarget,
    MediaFormat,
    MergeSpec,
    RetrievalRequest,
    Strategy,
    Unavailable,
)
from ytgrab.services.format_selector import (
    audio_subformat,
    best_audio_only,
    extract_height,
    is_audio_token,
    plan_merge,
    select,
)
from ytgrab.services.transcoder import audio_profile


def request_for(token: str) -> RetrievalRequest:
    return RetrievalRequest(canonical_url=WATCH_URL, requested_token=token)


class TestTokens:
    """Tests for token parsing helpers."""

    @pytest.mark.parametrize("token", ["audio", "audio:mp3", "audio:flac"])
    def test_audio_tokens(self, token: str) -> None:
        assert is_audio_token(token)

    @pytest.mark.parametrize("token", ["best", "720p", "audiobook", ""])
    def test_non_audio_tokens(self, token: str) -> None:
        assert not is_audio_token(token)

    def test_audio_subformat(self) -> None:
        assert audio_subformat("audio:MP3") == "mp3"
        assert audio_subformat("audio", default="wav") == "wav"

    def test_extract_height(self) -> None:
        assert extract_height("720p") == 720
        assert extract_height("1080") == 1080
        assert extract_height("best") is None

    def test_frame_rate_suffix_is_not_split(self) -> None:
        assert extract_height("1080p60") == 108060


class TestMuxedSelection:
    """Tests for direct muxed matches."""

    def test_exact_label_proxied(self) -> None:
        """An exact muxed label match targets that entry via the proxy."""
        metadata = make_metadata(VIDEO_1080, MUXED_720, AUDIO_M4A)

        decision = select(metadata, request_for("720p"))

        assert decision.strategy is Strategy.PROXY
        assert decision.target == MUXED_720
        assert decision.mode == "muxed"

    def test_exact_label_redirected(self) -> None:
        metadata = make_metadata(MUXED_720)

        decision = select(metadata, request_for("720p"), redirect_enabled=True)

        assert decision.strategy is Strategy.REDIRECT
        assert decision.target == MUXED_720

    def test_substring_label_match(self) -> None:
        hfr = MUXED_720.model_copy(update={"id": "300", "quality_label": "720p60"})
        metadata = make_metadata(hfr)

        decision = select(metadata, request_for("720"))

        assert decision.target == hfr

    def test_best_prefers_first_muxed(self) -> None:
        metadata = make_metadata(VIDEO_1080, MUXED_720, AUDIO_M4A)

        decision = select(metadata, request_for("best"))

        assert decision.target == MUXED_720

    def test_muxed_without_url_not_direct(self) -> None:
        """A muxed entry without a direct URL cannot be proxied."""
        no_url = MUXED_720.model_copy(update={"direct_url": None})
        metadata = make_metadata(no_url, AUDIO_M4A)

        decision = select(metadata, request_for("720p"))

        assert decision.strategy is Strategy.TRANSCODE
        assert isinstance(decision.target, MergeSpec)


class TestMergeSelection:
    """Tests for merge decisions."""

    def test_merge_within_height(self) -> None:
        """1080p with only video-only streams merges at or below 1080."""
        metadata = make_metadata(VIDEO_480, VIDEO_1080, AUDIO_M4A)

        decision = select(metadata, request_for("1080p"))

        assert decision.strategy is Strategy.TRANSCODE
        assert decision.mode == "merge"
        merge = decision.target
        assert isinstance(merge, MergeSpec)
        assert merge.max_height == 1080
        assert merge.video is not None
        assert merge.video.height is not None and merge.video.height <= 1080
        assert merge.video == VIDEO_1080
        assert merge.audio == AUDIO_M4A
        assert not merge.via_extractor

    def test_merge_picks_tallest_fitting(self) -> None:
        metadata = make_metadata(VIDEO_480, VIDEO_1080, AUDIO_M4A)

        merge = select(metadata, request_for("720p")).target

        assert merge.video == VIDEO_480

    def test_merge_prefers_highest_bitrate_audio(self) -> None:
        metadata = make_metadata(VIDEO_480, AUDIO_M4A, AUDIO_WEBM)

        merge = select(metadata, request_for("480p")).target

        assert merge.audio == AUDIO_WEBM

    def test_best_without_muxed_merges(self) -> None:
        metadata = make_metadata(VIDEO_480, VIDEO_1080, AUDIO_M4A)

        decision = select(metadata, request_for("best"))

        assert decision.mode == "merge"
        assert decision.target.video == VIDEO_1080

    def test_nothing_fits(self) -> None:
        metadata = make_metadata(MUXED_720, VIDEO_1080)

        assert isinstance(select(metadata, request_for("480p")), Unavailable)

    def test_unknown_label(self) -> None:
        metadata = make_metadata(MUXED_720)

        assert isinstance(select(metadata, request_for("hd")), Unavailable)

    def test_plan_merge_prefers_video_only(self) -> None:
        metadata = make_metadata(MUXED_720, VIDEO_480, AUDIO_M4A)

        merge = plan_merge(metadata, "720p")

        assert merge.video == VIDEO_480

    def test_plan_merge_falls_back_to_muxed(self) -> None:
        metadata = make_metadata(MUXED_720)

        merge = plan_merge(metadata, "720p")

        assert merge.video == MUXED_720
        assert merge.audio is None


class TestEmptyFormats:
    """Tests for decisions without any formats."""

    @pytest.mark.parametrize("token,height", [("best", None), ("720p", 720)])
    def test_extractor_merge(self, token: str, height: int | None) -> None:
        decision = select(make_metadata(), request_for(token))

        assert decision.strategy is Strategy.TRANSCODE
        assert decision.target == MergeSpec(max_height=height, via_extractor=True)

    def test_label_without_height(self) -> None:
        assert isinstance(select(make_metadata(), request_for("hd")), Unavailable)


class TestAudioSelection:
    """Tests for audio tokens."""

    @pytest.mark.parametrize(
        "formats",
        [(), (MUXED_720,), (AUDIO_M4A, AUDIO_WEBM), (VIDEO_1080, AUDIO_M4A, MUXED_720)],
    )
    def test_mp3_always_transcodes(self, formats: tuple[MediaFormat, ...]) -> None:
        decision = select(make_metadata(*formats), request_for("audio:mp3"))

        assert decision.strategy is Strategy.TRANSCODE
        assert decision.mode == "audio"
        assert decision.target == AudioTarget(subformat="mp3")
        assert audio_profile(decision.target.subformat).mime_type == "audio/mpeg"

    def test_m4a_served_directly(self) -> None:
        decision = select(make_metadata(MUXED_720, AUDIO_M4A), request_for("audio:m4a"))

        assert decision.strategy is Strategy.PROXY
        assert decision.target == AudioTarget(subformat="m4a", direct=AUDIO_M4A)

    def test_opus_served_directly(self) -> None:
        decision = select(make_metadata(AUDIO_M4A, AUDIO_WEBM), request_for("audio:opus"))

        assert decision.target.direct == AUDIO_WEBM

    def test_bare_audio_uses_default(self) -> None:
        decision = select(make_metadata(AUDIO_M4A), request_for("audio"))

        assert decision.target.subformat == "m4a"

    def test_unknown_subformat(self) -> None:
        outcome = select(make_metadata(AUDIO_M4A), request_for("audio:ogg"))

        assert isinstance(outcome, Unavailable)
        assert "ogg" in outcome.reason


class TestBestAudioOnly:
    """Tests for audio stream ranking."""

    def test_highest_bitrate(self) -> None:
        assert best_audio_only((AUDIO_M4A, AUDIO_WEBM, MUXED_720)) == AUDIO_WEBM

    def test_no_audio_only(self) -> None:
        assert best_audio_only((MUXED_720, VIDEO_480)) is None


class TestFrameRateLabels:
    """Tests for labels carrying a frame-rate suffix."""

    def test_hfr_label_merges_from_tallest(self) -> None:
        hfr_1080 = VIDEO_1080.model_copy(update={"id": "299", "quality_label": "1080p60"})
        metadata = make_metadata(VIDEO_480, hfr_1080, AUDIO_M4A)

        decision = select(metadata, request_for("1080p60"))

        assert decision.mode == "merge"
        assert decision.target.max_height == 108060
        assert decision.target.video == hfr_1080


class TestUnselectableFormats:
    """Formats with neither audio nor video are never chosen."""

    STORYBOARD = MediaFormat(
        id="sb0",
        direct_url="https://i.ytimg.com/sb/abc123/storyboard.jpg",
        mime_hint="video/mhtml",
        quality_label="720p",
        height=720,
    )

    @pytest.mark.parametrize("token", ["best", "720p", "audio", "audio:m4a", "audio:mp3"])
    def test_never_targeted(self, token: str) -> None:
        metadata = make_metadata(self.STORYBOARD, VIDEO_480, AUDIO_M4A)

        decision = select(metadata, request_for(token))

        assert not isinstance(decision, Unavailable)
        target = decision.target
        chosen = [target]
        if isinstance(target, MergeSpec):
            chosen = [target.video, target.audio]
        elif isinstance(target, AudioTarget):
            chosen = [target.direct]
        assert self.STORYBOARD not in chosen

    def test_only_unselectable(self) -> None:
        metadata = make_metadata(self.STORYBOARD)

        decision = select(metadata, request_for("720p"))

        assert decision.target == MergeSpec(max_height=720, via_extractor=True)
